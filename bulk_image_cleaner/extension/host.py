# bulk_image_cleaner/extension/host.py
"""
Capability wrapper over the Designer extension runtime.

The runtime hands the panel an untyped object whose method set differs between
host versions. HostApi probes for each capability at call time: an absent
capability yields a default (no reference found, no-op remove) instead of an
AttributeError, and only the capabilities the panel cannot work without are
enforced through `require`. Calls may return plain values or awaitables.
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, List, Optional

logger = logging.getLogger(__name__)


class HostCapabilityMissing(RuntimeError):
    def __init__(self, capability: str, message: Optional[str] = None):
        self.capability = capability
        super().__init__(
            message
            or f"This Webflow environment does not expose the {capability} API."
        )


async def resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def attr(obj: Any, name: str, default: Any = None) -> Any:
    """Read a plain field from a host object (attribute or mapping key)."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def has_method(obj: Any, name: str) -> bool:
    return obj is not None and callable(getattr(obj, name, None))


async def call_optional(obj: Any, name: str, *args: Any, default: Any = None) -> Any:
    """Call obj.<name>(*args) if the capability exists; errors propagate."""
    if not has_method(obj, name):
        return default
    return await resolve(getattr(obj, name)(*args))


async def call_quiet(obj: Any, name: str, *args: Any, default: Any = None) -> Any:
    """Like call_optional, but a failing call also yields the default."""
    try:
        return await call_optional(obj, name, *args, default=default)
    except Exception as e:  # noqa: BLE001
        logger.debug("host call %s failed: %s", name, e)
        return default


def as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


class HostApi:
    def __init__(self, host: Any):
        self.raw = host

    def has(self, capability: str) -> bool:
        return has_method(self.raw, capability)

    def require(self, capability: str) -> None:
        if not self.has(capability):
            raise HostCapabilityMissing(capability)

    # ---- assets ----
    async def get_all_assets(self) -> List[Any]:
        self.require("get_all_assets")
        return as_list(await resolve(self.raw.get_all_assets()))

    async def get_asset_by_id(self, asset_id: str) -> Any:
        return await call_quiet(self.raw, "get_asset_by_id", asset_id)

    async def remove_asset(self, asset: Any) -> bool:
        """Host-level removal; False when the capability is absent."""
        if not self.has("remove_asset"):
            return False
        await resolve(self.raw.remove_asset(asset))
        return True

    # ---- pages / elements / styles ----
    async def get_pages(self) -> List[Any]:
        items = await call_quiet(self.raw, "get_all_pages_and_folders", default=[])
        return [i for i in as_list(items) if attr(i, "type") == "Page"]

    async def switch_page(self, page: Any) -> None:
        self.require("switch_page")
        await resolve(self.raw.switch_page(page))

    async def get_all_elements(self) -> List[Any]:
        return as_list(await call_quiet(self.raw, "get_all_elements", default=[]))

    async def get_all_styles(self) -> Optional[List[Any]]:
        """None when the host cannot enumerate styles at all."""
        if not self.has("get_all_styles"):
            return None
        return as_list(await call_quiet(self.raw, "get_all_styles", default=[]))

    # ---- panel chrome ----
    async def get_site_info(self) -> dict:
        info = await call_quiet(self.raw, "get_site_info", default=None)
        if isinstance(info, dict):
            return info
        if info is None:
            return {}
        keys = ("siteId", "siteName", "shortName", "workspaceId", "workspaceSlug")
        return {k: attr(info, k) for k in keys if attr(info, k) is not None}

    async def set_extension_size(self, size: str) -> None:
        await call_quiet(self.raw, "set_extension_size", size)

    async def open_url(self, url: str) -> bool:
        if not self.has("open_url_in_new_tab"):
            return False
        try:
            await resolve(self.raw.open_url_in_new_tab(url))
            return True
        except Exception as e:  # noqa: BLE001
            logger.debug("open_url_in_new_tab failed: %s", e)
            return False
