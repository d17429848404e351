# tests/test_api_client.py
from unittest.mock import MagicMock

import pytest
import requests

from bulk_image_cleaner.extension.api_client import ApiClient, ApiError, get_api_base


def response(status=200, json_body=None, text=None, reason="OK"):
    r = MagicMock(spec=requests.Response)
    r.status_code = status
    r.ok = status < 400
    r.reason = reason
    if json_body is not None:
        r.json.return_value = json_body
        r.text = text if text is not None else "json"
    else:
        r.json.side_effect = ValueError("no json")
        r.text = text or ""
    return r


def client_with(*responses):
    http = MagicMock(spec=requests.Session)
    http.request.side_effect = list(responses)
    return ApiClient("https://api.cleaner.test/", session=http), http


def test_api_base_rules():
    assert get_api_base("https://api.cleaner.test//") == "https://api.cleaner.test"
    assert get_api_base("http://localhost:3001/") == "http://localhost:3001"
    assert get_api_base(None, "http://127.0.0.1:3001") == "http://127.0.0.1:3001"
    assert get_api_base("http://api.cleaner.test") == ""
    assert get_api_base("ftp://api.cleaner.test") == ""
    assert get_api_base("  ", "") == ""


def test_api_base_from_env(monkeypatch):
    monkeypatch.setenv("API_BASE", "https://from-env.test/")
    assert get_api_base() == "https://from-env.test"
    assert ApiClient().base == "https://from-env.test"


def test_unconfigured_client_fails_without_network():
    http = MagicMock(spec=requests.Session)
    client = ApiClient("", session=http)
    assert client.configured is False
    with pytest.raises(ApiError) as ei:
        client.sites()
    assert ei.value.status == 0
    http.request.assert_not_called()


def test_error_message_comes_from_json_body():
    client, _ = client_with(response(403, {"message": "Site not authorized"}, reason="Forbidden"))
    with pytest.raises(ApiError) as ei:
        client.delete_asset("s1", "a1")
    assert ei.value.status == 403
    assert ei.value.message == "Site not authorized"


def test_error_message_falls_back_to_text():
    client, _ = client_with(response(502, text="Bad Gateway upstream", reason="Bad Gateway"))
    with pytest.raises(ApiError) as ei:
        client.sites()
    assert ei.value.message == "Bad Gateway upstream"


def test_transport_failure_is_status_zero():
    http = MagicMock(spec=requests.Session)
    http.request.side_effect = requests.ConnectionError("refused")
    client = ApiClient("https://api.cleaner.test", session=http)
    with pytest.raises(ApiError) as ei:
        client.logout()
    assert ei.value.status == 0


def test_delete_quotes_path_segments():
    client, http = client_with(response(204))
    client.delete_asset(" site/1 ", "a b")
    method, url = http.request.call_args[0]
    assert method == "DELETE"
    assert url == "https://api.cleaner.test/api/sites/site%2F1/assets/a%20b"


def test_auth_status_swallows_errors():
    client, _ = client_with(response(500, {"message": "Server error"}))
    assert client.auth_status() is None


def test_sites_payload():
    client, http = client_with(response(200, {"sites": [{"id": "s1"}]}))
    assert client.sites() == [{"id": "s1"}]
    assert http.request.call_args[0] == ("GET", "https://api.cleaner.test/api/sites")
