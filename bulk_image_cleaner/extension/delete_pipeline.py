# bulk_image_cleaner/extension/delete_pipeline.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from bulk_image_cleaner.extension.api_client import ApiClient, ApiError
from bulk_image_cleaner.extension.host import (
    HostApi,
    as_list,
    attr,
    call_quiet,
    has_method,
    resolve,
)

logger = logging.getLogger(__name__)

AUTH_HINT = (
    "Auth issue: Please click Authorize again (or Logout → Authorize), then "
    "Refresh, and try deleting again."
)
SCOPE_HINT = (
    "Permission issue: Your token may not have assets:write scope. Please "
    "re-authorize the app in Webflow and grant Assets write access."
)


@dataclass
class DeleteOutcome:
    total: int = 0
    deleted: Set[str] = field(default_factory=set)
    failed: List[str] = field(default_factory=list)
    auth_failed: bool = False
    scope_failed: bool = False

    def message(self) -> Optional[str]:
        """One aggregated, plain-language message; None when everything went through."""
        n = len(self.failed)
        if n == 0:
            return None
        msg = f"Could not delete {n} image{'s' if n > 1 else ''}. They are still listed."
        if self.auth_failed:
            msg += "\n\n" + AUTH_HINT
        elif self.scope_failed:
            msg += "\n\n" + SCOPE_HINT
        return msg


class DeletePipeline:
    """
    Deletes assets one at a time: backend delete first (when the site is
    known), then a best-effort removal from the Designer's local state so the
    Assets panel updates immediately. Either step succeeding counts.
    """

    def __init__(self, host: HostApi, client: Optional[ApiClient] = None, site_id: str = ""):
        self.host = host
        self.client = client
        self.site_id = str(site_id or "").strip()

    async def _delete_remote(self, asset_id: str, outcome: DeleteOutcome) -> bool:
        if not self.site_id or self.client is None:
            return False
        try:
            await asyncio.to_thread(self.client.delete_asset, self.site_id, asset_id)
            return True
        except ApiError as e:
            msg = (e.message or "").lower()
            if e.status == 401:
                outcome.auth_failed = True
            if e.status == 403 or "scope" in msg or "assets:write" in msg:
                outcome.scope_failed = True
            logger.warning("backend delete failed for %s: %s %s", asset_id, e.status, e.message)
        except Exception as e:  # noqa: BLE001
            logger.warning("backend delete failed for %s: %s", asset_id, e)
        return False

    async def _remove_locally(self, asset: Any, asset_id: str) -> bool:
        if asset is None:
            asset = await self.host.get_asset_by_id(asset_id)
        # Nothing left in the Designer to remove.
        if asset is None:
            return True

        if has_method(asset, "remove"):
            try:
                await resolve(asset.remove())
                return True
            except Exception as e:  # noqa: BLE001
                logger.debug("asset.remove failed for %s: %s", asset_id, e)

        try:
            if await self.host.remove_asset(asset):
                return True
        except Exception as e:  # noqa: BLE001
            logger.debug("host remove_asset failed for %s: %s", asset_id, e)
        return False

    async def _local_assets(self) -> Dict[str, Any]:
        assets = as_list(await call_quiet(self.host.raw, "get_all_assets", default=[]))
        return {str(attr(a, "id")): a for a in assets}

    async def run(
        self,
        asset_ids: Iterable[str],
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> DeleteOutcome:
        ids = list(asset_ids)
        outcome = DeleteOutcome(total=len(ids))
        by_id = await self._local_assets()

        for done, asset_id in enumerate(ids, start=1):
            ok = await self._delete_remote(asset_id, outcome)
            # Local removal runs regardless of the backend result.
            local_ok = await self._remove_locally(by_id.get(asset_id), asset_id)
            if ok or local_ok:
                outcome.deleted.add(asset_id)
            else:
                outcome.failed.append(asset_id)
            if on_progress:
                on_progress(done, len(ids))

        # Nudge the host to refresh its asset list.
        await call_quiet(self.host.raw, "get_all_assets")

        logger.info(
            "delete done: %d deleted, %d failed (auth=%s scope=%s)",
            len(outcome.deleted),
            len(outcome.failed),
            outcome.auth_failed,
            outcome.scope_failed,
        )
        return outcome
