# bulk_image_cleaner/extension/auth_gate.py
from __future__ import annotations

import asyncio
import logging
import webbrowser
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from bulk_image_cleaner.extension.api_client import ApiClient, ApiError
from bulk_image_cleaner.extension.host import HostApi

logger = logging.getLogger(__name__)


class GateStatus(str, Enum):
    LOADING = "loading"
    API_MISSING = "api_missing"
    NEEDS_AUTH = "needs_auth"
    NEEDS_SITE = "needs_site"
    OK = "ok"


@dataclass
class AuthGateState:
    status: GateStatus = GateStatus.LOADING
    site_id: str = ""
    site_name: str = ""
    workspace_id: str = ""
    workspace_slug: str = ""
    authorized_sites: List[Dict[str, Any]] = field(default_factory=list)
    message: Optional[str] = None


class AuthGate:
    """Decides whether the panel may run: backend configured, session authorized, this site granted."""

    def __init__(self, host: HostApi, client: ApiClient, panel_url: str = ""):
        self.host = host
        self.client = client
        self.panel_url = panel_url
        self.state = AuthGateState()

    async def refresh(self) -> AuthGateState:
        info = await self.host.get_site_info()
        base = AuthGateState(
            site_id=str(info.get("siteId") or "").strip(),
            site_name=str(info.get("siteName") or info.get("shortName") or "").strip(),
            workspace_id=str(info.get("workspaceId") or "").strip(),
            workspace_slug=str(info.get("workspaceSlug") or "").strip(),
        )

        if not self.client.configured:
            base.status = GateStatus.API_MISSING
            base.message = "API_BASE is not configured for this extension build."
            self.state = base
            return base

        auth = await asyncio.to_thread(self.client.auth_status)
        if not auth or not auth.get("authenticated"):
            base.status = GateStatus.NEEDS_AUTH
            base.message = "Authorize this app from your Webflow Workspace to continue."
            self.state = base
            return base

        try:
            sites = await asyncio.to_thread(self.client.sites)
        except ApiError as e:
            logger.info("site list failed: %s", e)
            base.status = GateStatus.NEEDS_AUTH
            base.message = (
                "Could not verify authorization with the backend. Authorize again and refresh."
            )
            self.state = base
            return base

        base.authorized_sites = sites
        granted = bool(base.site_id) and any(
            str(s.get("id")) == base.site_id for s in sites if isinstance(s, dict)
        )
        if granted:
            base.status = GateStatus.OK
        else:
            base.status = GateStatus.NEEDS_SITE
            base.message = (
                "This site is not authorized yet. Authorize access to this site "
                "and then refresh here."
            )
        self.state = base
        return base

    def authorize_url(self) -> Optional[str]:
        if not self.client.configured:
            return None
        params = {"redirectTo": self.panel_url} if self.panel_url else {}
        if self.state.workspace_id:
            params["workspace"] = self.state.workspace_id
        query = f"?{urlencode(params)}" if params else ""
        return f"{self.client.base}/auth{query}"

    async def open_authorize(self) -> Optional[str]:
        url = self.authorize_url()
        if not url:
            return None
        if not await self.host.open_url(url):
            webbrowser.open_new_tab(url)
        return url

    async def logout(self) -> AuthGateState:
        try:
            await asyncio.to_thread(self.client.logout)
        except ApiError as e:
            logger.info("logout failed: %s", e)
        return await self.refresh()
