# bulk_image_cleaner/routers/oauth.py
from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from bulk_image_cleaner.net.redirects import first_safe_redirect
from bulk_image_cleaner.routers.deps import get_webflow
from bulk_image_cleaner.services.session_store import SessionState, get_session
from bulk_image_cleaner.services.webflow_service import (
    WebflowClient,
    introspected_site_ids,
    site_names,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


@router.get("/auth")
def start_auth(
    request: Request,
    redirectTo: Optional[str] = Query(default=None),
    redirect: Optional[str] = Query(default=None),
    returnTo: Optional[str] = Query(default=None),
    workspace: str = Query(default=""),
    session: SessionState = Depends(get_session),
    webflow: WebflowClient = Depends(get_webflow),
):
    """Remember where to send the user afterwards, then bounce to Webflow's consent screen."""
    session.post_auth_redirect = first_safe_redirect(
        [redirectTo or redirect or returnTo, request.headers.get("referer")]
    )
    session.mark_modified()

    url = webflow.authorize_url(workspace=workspace.strip() or None)
    return RedirectResponse(url, status_code=302)


@router.get("/auth/callback")
def auth_callback(
    code: str = Query(default=""),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
    session: SessionState = Depends(get_session),
    webflow: WebflowClient = Depends(get_webflow),
):
    redirect_after = first_safe_redirect([session.post_auth_redirect])

    if error:
        logger.warning("OAuth error: %s %s", error, error_description or "")
        return RedirectResponse(redirect_after, status_code=302)
    if not code:
        return RedirectResponse(redirect_after, status_code=302)

    # WebflowError propagates to the app-level handler with the upstream status.
    grant = webflow.exchange_code_for_token(code)
    session.access_token = grant.access_token
    session.scopes = grant.scope
    session.mark_modified()

    site_ids: List[str] = []
    try:
        site_ids = introspected_site_ids(webflow.introspect(grant.access_token))
    except Exception as e:  # noqa: BLE001
        logger.warning("Token introspect failed: %s", e)

    names: Dict[str, str] = {}
    try:
        names = site_names(webflow.list_sites(grant.access_token))
    except Exception as e:  # noqa: BLE001
        logger.warning("Site list failed: %s", e)

    if not site_ids:
        site_ids = list(names)

    now = time.time()
    for site_id in site_ids:
        session.upsert_site(
            site_id,
            access_token=grant.access_token,
            scopes=grant.scope,
            site_name=names.get(site_id) or None,
            now=now,
        )

    logger.info("OAuth callback stored %d site(s)", len(site_ids))
    return RedirectResponse(redirect_after, status_code=302)
