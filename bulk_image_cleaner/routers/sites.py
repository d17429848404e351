# bulk_image_cleaner/routers/sites.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from bulk_image_cleaner.errors import NotAuthenticated, SiteNotAuthorized
from bulk_image_cleaner.models.messages import AuthStatus, SiteListResponse, SiteSummary
from bulk_image_cleaner.routers.deps import get_webflow, require_auth
from bulk_image_cleaner.services.session_store import SessionState, get_session
from bulk_image_cleaner.services.webflow_service import WebflowClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sites"])


@router.get("/auth/status", response_model=AuthStatus)
def auth_status(session: SessionState = Depends(get_session)):
    ids = [s.site_id for s in session.token_sites()]
    return AuthStatus(
        authenticated=bool(ids), authorizedSitesCount=len(ids), siteIds=ids
    )


@router.get("/me")
def me(
    session: SessionState = Depends(require_auth),
    webflow: WebflowClient = Depends(get_webflow),
):
    token = session.token_sites()[0].access_token
    return webflow.authorized_by(token)


@router.get("/sites", response_model=SiteListResponse)
def list_sites(session: SessionState = Depends(require_auth)):
    sites = sorted(
        session.authorized_sites.values(),
        key=lambda s: ((s.site_name or s.site_id).casefold(), s.site_id),
    )
    return SiteListResponse(
        sites=[
            SiteSummary(id=s.site_id, displayName=s.site_name, shortName=s.site_name)
            for s in sites
        ]
    )


@router.post("/logout", status_code=204)
def logout(session: SessionState = Depends(get_session)):
    session.destroy()
    return Response(status_code=204)


@router.delete("/sites/{site_id}/assets/{asset_id}", status_code=204)
def delete_asset(
    site_id: str,
    asset_id: str,
    session: SessionState = Depends(get_session),
    webflow: WebflowClient = Depends(get_webflow),
):
    if not session.has_any_authorization:
        raise NotAuthenticated()
    site = session.authorized_sites.get(site_id.strip())
    if site is None:
        raise SiteNotAuthorized()
    if not site.access_token:
        raise NotAuthenticated()

    webflow.delete_asset(site.access_token, asset_id.strip())
    logger.info("Deleted asset %s on site %s", asset_id, site.site_id)
    return Response(status_code=204)
