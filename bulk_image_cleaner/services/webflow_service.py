# bulk_image_cleaner/services/webflow_service.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, quote

import requests

from bulk_image_cleaner.config.settings import REQUIRED_SCOPES, Settings, split_list

logger = logging.getLogger(__name__)


class WebflowError(Exception):
    """Upstream error from the Webflow API, carrying its HTTP status and body."""

    def __init__(
        self,
        status: int,
        message: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status = status
        self.message = message
        self.body = body
        self.headers = headers or {}

    @property
    def retry_after(self) -> Optional[int]:
        raw = self.headers.get("Retry-After") or self.headers.get("retry-after")
        try:
            return int(raw) if raw else None
        except (TypeError, ValueError):
            return None


def merge_scopes(required: str, provided: str | None) -> str:
    """
    Union of required and operator-provided scopes: required first, deduped,
    space-joined.  merge_scopes("a,b", "b,c") -> "a b c"
    """
    out: List[str] = []
    for s in split_list(required) + split_list(provided):
        if s not in out:
            out.append(s)
    return " ".join(out)


@dataclass
class TokenGrant:
    access_token: str
    scope: str = ""


def _message_from(data: Any, fallback: str) -> str:
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return fallback


class WebflowClient:
    """Thin requests wrapper over the handful of Webflow endpoints the relay needs."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.http = session or requests.Session()

    # ---------------------------
    # OAuth
    # ---------------------------
    def scope_string(self) -> str:
        return merge_scopes(REQUIRED_SCOPES, self.settings.WEBFLOW_SCOPES)

    def authorize_url(self, workspace: Optional[str] = None) -> str:
        params = {
            "client_id": self.settings.WEBFLOW_CLIENT_ID,
            "redirect_uri": self.settings.WEBFLOW_REDIRECT_URI,
            "response_type": "code",
            "scope": self.scope_string(),
        }
        if workspace:
            params["workspace"] = workspace
        return f"{self.settings.WEBFLOW_OAUTH_BASE.rstrip('/')}/authorize?{urlencode(params)}"

    def exchange_code_for_token(self, code: str) -> TokenGrant:
        r = self.http.post(
            self.settings.WEBFLOW_TOKEN_URL,
            data={
                "client_id": self.settings.WEBFLOW_CLIENT_ID,
                "client_secret": self.settings.WEBFLOW_CLIENT_SECRET,
                "redirect_uri": self.settings.WEBFLOW_REDIRECT_URI,
                "code": code,
                "grant_type": "authorization_code",
            },
            timeout=self.settings.WEBFLOW_TIMEOUT_SECONDS,
        )
        try:
            data = r.json()
        except ValueError:
            data = {}
        if not r.ok:
            raise WebflowError(
                r.status_code,
                _message_from(data, "Token exchange failed"),
                data,
                dict(r.headers),
            )
        return TokenGrant(
            access_token=str(data.get("access_token") or ""),
            scope=str(data.get("scope") or ""),
        )

    # ---------------------------
    # REST v2
    # ---------------------------
    def _call(self, access_token: str, path: str, method: str = "GET") -> Any:
        r = self.http.request(
            method,
            f"{self.settings.WEBFLOW_API_BASE.rstrip('/')}{path}",
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {access_token}",
            },
            timeout=self.settings.WEBFLOW_TIMEOUT_SECONDS,
        )
        text = r.text or ""
        data: Any = None
        if text:
            try:
                data = json.loads(text)
            except ValueError:
                if r.ok:
                    raise WebflowError(
                        502, "Invalid JSON from Webflow", {"raw": text[:500]}
                    )
                data = {"raw": text[:500]}
        if not r.ok:
            raise WebflowError(
                r.status_code,
                _message_from(data, "Webflow API error"),
                data,
                dict(r.headers),
            )
        return data

    def introspect(self, access_token: str) -> Any:
        return self._call(access_token, "/token/introspect")

    def authorized_by(self, access_token: str) -> Any:
        return self._call(access_token, "/token/authorized_by")

    def list_sites(self, access_token: str) -> Any:
        return self._call(access_token, "/sites")

    def delete_asset(self, access_token: str, asset_id: str) -> None:
        self._call(access_token, f"/assets/{quote(asset_id, safe='')}", method="DELETE")


def introspected_site_ids(data: Any) -> List[str]:
    auth = (data or {}).get("authorization") if isinstance(data, dict) else None
    ids = ((auth or {}).get("authorizedTo") or {}).get("siteIds") or []
    return [str(i).strip() for i in ids if str(i or "").strip()]


def site_names(data: Any) -> Dict[str, str]:
    """id -> best display name from a /sites payload (object with "sites" or bare list)."""
    if isinstance(data, dict):
        items = data.get("sites") or []
    elif isinstance(data, list):
        items = data
    else:
        items = []

    out: Dict[str, str] = {}
    for s in items:
        if not isinstance(s, dict):
            continue
        sid = str(s.get("id") or "").strip()
        if not sid:
            continue
        name = str(
            s.get("displayName") or s.get("shortName") or s.get("name") or ""
        ).strip()
        out[sid] = name
    return out
