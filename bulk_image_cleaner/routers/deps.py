# bulk_image_cleaner/routers/deps.py
from __future__ import annotations

from fastapi import Depends, Request

from bulk_image_cleaner.errors import NotAuthenticated
from bulk_image_cleaner.services.session_store import SessionState, get_session
from bulk_image_cleaner.services.webflow_service import WebflowClient


def get_webflow(request: Request) -> WebflowClient:
    return request.app.state.webflow


def require_auth(session: SessionState = Depends(get_session)) -> SessionState:
    if not session.is_authenticated:
        raise NotAuthenticated()
    return session
