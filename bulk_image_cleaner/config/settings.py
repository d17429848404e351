# bulk_image_cleaner/config/settings.py
from __future__ import annotations

import re
from functools import lru_cache
from typing import List

from dotenv import load_dotenv, find_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# We don't override existing env so container/CI secrets still win.
load_dotenv(find_dotenv(usecwd=True), override=False)

# Scopes the cleaner cannot work without; operator extras are appended after these.
REQUIRED_SCOPES = "sites:read,authorized_user:read,assets:read,assets:write"

_SPLIT_RE = re.compile(r"[\s,]+")


def split_list(raw: str | None) -> List[str]:
    """Split a comma/whitespace separated env value, dropping blanks."""
    return [s.strip() for s in _SPLIT_RE.split(raw or "") if s.strip()]


def normalize_origin(value: str | None) -> str:
    return str(value or "").strip().lower().rstrip("/")


class Settings(BaseSettings):
    VERSION: str = "1.0.0"
    PORT: int = 3001

    SESSION_SECRET: str
    WEBFLOW_CLIENT_ID: str
    WEBFLOW_CLIENT_SECRET: str
    WEBFLOW_REDIRECT_URI: str
    FRONTEND_URL: str
    FRONTEND_ORIGINS: str = ""  # CSV or whitespace separated

    # Extra scopes merged after REQUIRED_SCOPES
    WEBFLOW_SCOPES: str = ""
    WEBFLOW_API_BASE: str = "https://api.webflow.com/v2"
    WEBFLOW_OAUTH_BASE: str = "https://webflow.com/oauth"
    WEBFLOW_TOKEN_URL: str = "https://api.webflow.com/oauth/access_token"
    WEBFLOW_TIMEOUT_SECONDS: float = 15.0

    # auto | true | false
    COOKIE_SECURE: str = "auto"
    SESSION_COOKIE_NAME: str = "bulk_image_cleaner_sid"
    SESSION_MAX_AGE_SECONDS: int = 7 * 24 * 60 * 60
    # memory | supabase
    SESSION_STORE: str = "memory"
    SESSION_TABLE: str = "sessions"

    LOG_REQUESTS: bool = True
    LOG_JSON: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cookie_secure_mode(self) -> str:
        mode = (self.COOKIE_SECURE or "auto").strip().lower()
        return mode if mode in {"true", "false"} else "auto"

    @property
    def allowed_origins(self) -> List[str]:
        """FRONTEND_URL plus FRONTEND_ORIGINS, normalized and deduplicated in order."""
        out: List[str] = []
        for raw in [self.FRONTEND_URL, *split_list(self.FRONTEND_ORIGINS)]:
            o = normalize_origin(raw)
            if o and o not in out:
                out.append(o)
        return out


@lru_cache
def get_settings() -> Settings:
    return Settings()
