# bulk_image_cleaner/services/session_store.py
"""
Server-side session state for the OAuth relay.

Each browser gets an opaque session id in a signed cookie; the data behind it
(post-auth redirect, per-site tokens) lives in a SessionStore. Handlers never
touch the store directly: SessionMiddleware loads a SessionState into
request.state.session before the route runs and persists or destroys it after.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse

logger = logging.getLogger(__name__)


@dataclass
class AuthorizedSite:
    site_id: str
    site_name: str = ""
    access_token: Optional[str] = None
    scopes: Optional[str] = None
    first_seen_at: float = 0.0
    last_seen_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "siteId": self.site_id,
            "siteName": self.site_name,
            "accessToken": self.access_token,
            "scopes": self.scopes,
            "firstSeenAt": self.first_seen_at,
            "lastSeenAt": self.last_seen_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthorizedSite":
        return cls(
            site_id=str(data.get("siteId") or ""),
            site_name=str(data.get("siteName") or ""),
            access_token=data.get("accessToken"),
            scopes=data.get("scopes"),
            first_seen_at=float(data.get("firstSeenAt") or 0.0),
            last_seen_at=float(data.get("lastSeenAt") or 0.0),
        )


@dataclass
class SessionState:
    sid: str
    access_token: Optional[str] = None
    scopes: Optional[str] = None
    post_auth_redirect: Optional[str] = None
    authorized_sites: Dict[str, AuthorizedSite] = field(default_factory=dict)

    # bookkeeping, never persisted
    is_new: bool = True
    modified: bool = False
    destroyed: bool = False

    @classmethod
    def new(cls) -> "SessionState":
        return cls(sid=secrets.token_urlsafe(32))

    def mark_modified(self) -> None:
        self.modified = True

    def destroy(self) -> None:
        self.destroyed = True

    def upsert_site(
        self,
        site_id: str,
        *,
        access_token: Optional[str] = None,
        scopes: Optional[str] = None,
        site_name: Optional[str] = None,
        now: Optional[float] = None,
    ) -> Optional[AuthorizedSite]:
        """Insert or refresh a site entry. first_seen_at survives; everything given wins."""
        sid = str(site_id or "").strip()
        if not sid:
            return None
        ts = time.time() if now is None else now
        prev = self.authorized_sites.get(sid)
        entry = AuthorizedSite(
            site_id=sid,
            site_name=site_name if site_name else (prev.site_name if prev else ""),
            access_token=access_token if access_token is not None else (prev.access_token if prev else None),
            scopes=scopes if scopes is not None else (prev.scopes if prev else None),
            first_seen_at=prev.first_seen_at if prev else ts,
            last_seen_at=ts,
        )
        self.authorized_sites[sid] = entry
        self.modified = True
        return entry

    def token_sites(self) -> List[AuthorizedSite]:
        return [s for s in self.authorized_sites.values() if s.access_token]

    @property
    def has_any_authorization(self) -> bool:
        """Any token or site entry at all; weaker than is_authenticated."""
        return bool(self.access_token) or bool(self.authorized_sites)

    @property
    def is_authenticated(self) -> bool:
        # A session-level token without any site entry does not count.
        return bool(self.token_sites())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "scopes": self.scopes,
            "postAuthRedirect": self.post_auth_redirect,
            "authorizedSites": {k: v.to_dict() for k, v in self.authorized_sites.items()},
        }

    @classmethod
    def from_dict(cls, sid: str, data: Dict[str, Any]) -> "SessionState":
        sites = data.get("authorizedSites") or {}
        return cls(
            sid=sid,
            access_token=data.get("accessToken"),
            scopes=data.get("scopes"),
            post_auth_redirect=data.get("postAuthRedirect"),
            authorized_sites={
                k: AuthorizedSite.from_dict(v)
                for k, v in sites.items()
                if isinstance(v, dict)
            },
            is_new=False,
        )


# ---------------------------
# Stores
# ---------------------------
class SessionStore:
    def load(self, sid: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def save(self, sid: str, data: Dict[str, Any], ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, sid: str) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """Process-local store. Fine for a single worker; sessions vanish on restart."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._items: Dict[str, Tuple[Dict[str, Any], float]] = {}
        self._lock = threading.Lock()

    def load(self, sid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get(sid)
            if item is None:
                return None
            data, expires_at = item
            if expires_at <= self._clock():
                del self._items[sid]
                return None
            return dict(data)

    def save(self, sid: str, data: Dict[str, Any], ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._items[sid] = (dict(data), now + ttl_seconds)

    def delete(self, sid: str) -> None:
        with self._lock:
            self._items.pop(sid, None)

    def _purge_expired(self, now: float) -> None:
        # caller holds the lock
        stale = [k for k, (_, expires_at) in self._items.items() if expires_at <= now]
        for k in stale:
            del self._items[k]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class SupabaseSessionStore(SessionStore):
    """Rows of (sid, data jsonb, expires_at timestamptz) in a Supabase table."""

    def __init__(self, client, table: str = "sessions", clock=time.time):
        self.client = client
        self.table = table
        self._clock = clock

    def load(self, sid: str) -> Optional[Dict[str, Any]]:
        resp = (
            self.client.table(self.table)
            .select("data,expires_at")
            .eq("sid", sid)
            .limit(1)
            .execute()
        )
        rows = getattr(resp, "data", None) or []
        if not rows:
            return None
        row = rows[0]
        expires_at = _parse_ts(row.get("expires_at"))
        if expires_at is not None and expires_at <= self._clock():
            self.delete(sid)
            return None
        data = row.get("data")
        return data if isinstance(data, dict) else None

    def save(self, sid: str, data: Dict[str, Any], ttl_seconds: int) -> None:
        expires = datetime.fromtimestamp(self._clock() + ttl_seconds, tz=timezone.utc)
        self.client.table(self.table).upsert(
            {"sid": sid, "data": data, "expires_at": expires.isoformat()},
            on_conflict="sid",
        ).execute()

    def delete(self, sid: str) -> None:
        self.client.table(self.table).delete().eq("sid", sid).execute()


def _parse_ts(value: Any) -> Optional[float]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


# ---------------------------
# Cookie signing
# ---------------------------
def _digest(secret: str, sid: str) -> str:
    mac = hmac.new(secret.encode(), sid.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(mac).decode("ascii").rstrip("=")


def sign_sid(sid: str, secret: str) -> str:
    return f"{sid}.{_digest(secret, sid)}"


def unsign_sid(value: Optional[str], secret: str) -> Optional[str]:
    if not value or "." not in value:
        return None
    sid, sig = value.rsplit(".", 1)
    if not sid or not hmac.compare_digest(sig, _digest(secret, sid)):
        return None
    return sid


def request_is_https(request: Request) -> bool:
    proto = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip().lower()
    return request.url.scheme == "https" or proto == "https"


def cookie_flags(mode: str, is_https: bool) -> Tuple[bool, str]:
    """(secure, samesite) for the configured COOKIE_SECURE mode and this request."""
    if is_https:
        return True, "none"
    if mode == "true":
        return True, "none"
    return False, "lax"


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Loads SessionState into request.state.session and writes it back after the
    route returns. Untouched fresh sessions are never stored or cookied.
    Every response for a live session re-issues the cookie (sliding expiry).
    """

    def __init__(
        self,
        app,
        store: SessionStore,
        secret: str,
        cookie_name: str = "bulk_image_cleaner_sid",
        max_age: int = 7 * 24 * 60 * 60,
        secure_mode: str = "auto",
    ):
        super().__init__(app)
        self.store = store
        self.secret = secret
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure_mode = secure_mode

    def _load(self, request: Request) -> SessionState:
        sid = unsign_sid(request.cookies.get(self.cookie_name), self.secret)
        if sid:
            try:
                data = self.store.load(sid)
            except Exception:
                logger.exception("session load failed; starting a fresh session")
                data = None
            if data is not None:
                return SessionState.from_dict(sid, data)
        return SessionState.new()

    async def dispatch(self, request: Request, call_next):
        state = self._load(request)
        request.state.session = state

        response = await call_next(request)

        if state.destroyed:
            if not state.is_new:
                self.store.delete(state.sid)
            response.delete_cookie(self.cookie_name, path="/")
            return response

        if state.is_new and not state.modified:
            return response

        try:
            self.store.save(state.sid, state.to_dict(), self.max_age)
        except Exception:
            logger.exception("session save failed")
            return PlainTextResponse("Session save failed", status_code=500)

        secure, samesite = cookie_flags(self.secure_mode, request_is_https(request))
        response.set_cookie(
            self.cookie_name,
            sign_sid(state.sid, self.secret),
            max_age=self.max_age,
            path="/",
            httponly=True,
            secure=secure,
            samesite=samesite,
        )
        return response


def get_session(request: Request) -> SessionState:
    """FastAPI dependency: the SessionState loaded by SessionMiddleware."""
    return request.state.session
