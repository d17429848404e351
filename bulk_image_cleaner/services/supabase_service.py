# bulk_image_cleaner/services/supabase_service.py
from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv, find_dotenv


# --- Load .env from repo root even when uvicorn cwd varies ---
# We don't override existing env so container/CI secrets still win.
load_dotenv(find_dotenv(usecwd=True), override=False)

# Lazy client: created on first access so imports don't crash without env
_client = None


def _create_client():
    """
    Create and cache the Supabase client on first use.
    Raises at call-time (not import-time) if credentials are missing.
    """
    global _client
    if _client is not None:
        return _client

    url: Optional[str] = os.getenv("SUPABASE_URL")
    # Support either name; service-role preferred
    key: Optional[str] = os.getenv("SUPABASE_SERVICE_ROLE") or os.getenv("SUPABASE_KEY")
    if not url or not key:
        raise RuntimeError(
            "Supabase credentials missing. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE "
            "or SUPABASE_KEY in environment or .env at the repo root."
        )

    # Import here to avoid failing import of this module when keys are absent.
    from supabase import create_client  # type: ignore

    _client = create_client(url, key)
    return _client


class _SupabaseProxy:
    """
    Transparent proxy so callers can keep doing:
        from bulk_image_cleaner.services.supabase_service import supabase
        supabase.table("sessions").select("*").execute()
    The underlying client is initialized on first attribute access.
    """

    def __getattr__(self, name: str) -> Any:
        return getattr(_create_client(), name)


# Public handle used by the session store
supabase = _SupabaseProxy()


def assert_supabase_ready() -> None:
    """Fail fast at startup (not import time) when the supabase session store is selected."""
    _ = _create_client()
