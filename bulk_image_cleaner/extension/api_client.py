# bulk_image_cleaner/extension/api_client.py
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlsplit

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Backend or transport failure. status 0 means the request never got an HTTP answer."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


def _normalize(v: Optional[str]) -> str:
    return str(v or "").strip().rstrip("/")


def get_api_base(compiled: Optional[str] = None, runtime: Optional[str] = None) -> str:
    """
    Backend base URL: build-time value first, then the runtime override
    (API_BASE env when neither is given). Trailing slashes are stripped and
    plain http is only accepted for localhost. Returns "" when unusable.
    """
    if compiled is None and runtime is None:
        runtime = os.getenv("API_BASE")
    base = _normalize(compiled or runtime)
    if not base:
        return ""
    try:
        parts = urlsplit(base)
        host = (parts.hostname or "").lower()
    except ValueError:
        return ""
    if parts.scheme not in {"http", "https"} or not host:
        return ""
    is_local = host in {"localhost", "127.0.0.1"}
    if not is_local and parts.scheme != "https":
        return ""
    return base


class ApiClient:
    """Cookie-carrying client for the relay backend (credentials always included)."""

    def __init__(
        self,
        base: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base = get_api_base(base) if base is not None else get_api_base()
        self.http = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.base)

    def request(self, method: str, path: str) -> Dict[str, Any]:
        if not self.base:
            raise ApiError(0, "API_BASE is not configured")
        try:
            r = self.http.request(
                method, f"{self.base}{path}", headers={"Accept": "application/json"}
            )
        except requests.RequestException as e:
            raise ApiError(0, str(e) or "Network error")

        if not r.ok:
            msg = r.text or r.reason or ""
            try:
                j = r.json()
                if isinstance(j, dict) and isinstance(j.get("message"), str):
                    msg = j["message"]
            except ValueError:
                pass
            raise ApiError(r.status_code, msg)

        if r.status_code == 204:
            return {}
        try:
            data = r.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def auth_status(self) -> Optional[Dict[str, Any]]:
        try:
            return self.request("GET", "/api/auth/status")
        except ApiError as e:
            logger.info("auth status unavailable: %s", e)
            return None

    def sites(self) -> List[Dict[str, Any]]:
        data = self.request("GET", "/api/sites")
        sites = data.get("sites")
        return sites if isinstance(sites, list) else []

    def logout(self) -> None:
        self.request("POST", "/api/logout")

    def delete_asset(self, site_id: str, asset_id: str) -> None:
        sid = quote(str(site_id or "").strip(), safe="")
        aid = quote(str(asset_id or "").strip(), safe="")
        self.request("DELETE", f"/api/sites/{sid}/assets/{aid}")
