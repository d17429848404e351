# tests/test_webflow_service.py
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from bulk_image_cleaner.services.webflow_service import (
    WebflowClient,
    WebflowError,
    introspected_site_ids,
    merge_scopes,
    site_names,
)
from bulk_image_cleaner.tests.fakes import make_settings


def response(status=200, text="", json_body=None, headers=None):
    r = MagicMock(spec=requests.Response)
    r.status_code = status
    r.ok = status < 400
    r.text = text
    r.headers = headers or {}
    if json_body is not None:
        r.json.return_value = json_body
    else:
        r.json.side_effect = ValueError("no json")
    return r


def client(**overrides):
    http = MagicMock(spec=requests.Session)
    return WebflowClient(make_settings(**overrides), session=http), http


def test_merge_scopes_dedupes_in_order():
    assert merge_scopes("a,b", "b,c") == "a b c"
    assert merge_scopes("a, b", None) == "a b"
    assert merge_scopes("a", " c  a\nd ") == "a c d"


def test_authorize_url():
    wf, _ = client(WEBFLOW_SCOPES="cms:read")
    parts = urlsplit(wf.authorize_url(workspace="ws-1"))
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://webflow.com/oauth/authorize"
    q = parse_qs(parts.query)
    assert q["client_id"] == ["client-123"]
    assert q["response_type"] == ["code"]
    assert q["redirect_uri"] == ["https://api.cleaner.test/auth/callback"]
    assert q["scope"] == ["sites:read authorized_user:read assets:read assets:write cms:read"]
    assert q["workspace"] == ["ws-1"]


def test_authorize_url_without_workspace():
    wf, _ = client()
    assert "workspace" not in parse_qs(urlsplit(wf.authorize_url()).query)


def test_exchange_code_success():
    wf, http = client()
    http.post.return_value = response(json_body={"access_token": "tok", "scope": "sites:read"})
    grant = wf.exchange_code_for_token("abc")
    assert grant.access_token == "tok"
    assert grant.scope == "sites:read"
    data = http.post.call_args.kwargs["data"]
    assert data["grant_type"] == "authorization_code"
    assert data["client_secret"] == "shh"


def test_exchange_code_error():
    wf, http = client()
    http.post.return_value = response(400, json_body={"message": "invalid_grant"})
    with pytest.raises(WebflowError) as ei:
        wf.exchange_code_for_token("bad")
    assert ei.value.status == 400
    assert ei.value.message == "invalid_grant"


def test_call_sends_bearer_and_parses_json():
    wf, http = client()
    http.request.return_value = response(text='{"sites": []}')
    assert wf.list_sites("tok") == {"sites": []}
    method, url = http.request.call_args[0]
    assert (method, url) == ("GET", "https://api.webflow.com/v2/sites")
    assert http.request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"


def test_delete_asset_with_empty_body():
    wf, http = client()
    http.request.return_value = response(204, text="")
    assert wf.delete_asset("tok", "a/1") is None
    assert http.request.call_args[0] == ("DELETE", "https://api.webflow.com/v2/assets/a%2F1")


def test_upstream_error_keeps_status_and_retry_after():
    wf, http = client()
    http.request.return_value = response(
        429, text='{"message": "Too many requests", "code": "too_many_requests"}',
        headers={"Retry-After": "12"},
    )
    with pytest.raises(WebflowError) as ei:
        wf.introspect("tok")
    assert ei.value.status == 429
    assert ei.value.message == "Too many requests"
    assert ei.value.retry_after == 12
    assert ei.value.body["code"] == "too_many_requests"


def test_invalid_json_on_success_is_bad_gateway():
    wf, http = client()
    http.request.return_value = response(200, text="<html>oops</html>")
    with pytest.raises(WebflowError) as ei:
        wf.authorized_by("tok")
    assert ei.value.status == 502


def test_introspected_site_ids():
    data = {"authorization": {"authorizedTo": {"siteIds": ["s1", " ", None, " s2 "]}}}
    assert introspected_site_ids(data) == ["s1", "s2"]
    assert introspected_site_ids(None) == []
    assert introspected_site_ids({"authorization": None}) == []


def test_site_names_prefers_display_name():
    data = {
        "sites": [
            {"id": "s1", "displayName": "Blog", "shortName": "blog"},
            {"id": "s2", "shortName": "shop"},
            {"id": "s3"},
            {"displayName": "no id"},
            "junk",
        ]
    }
    assert site_names(data) == {"s1": "Blog", "s2": "shop", "s3": ""}
    assert site_names([{"id": "x", "name": "Legacy"}]) == {"x": "Legacy"}
