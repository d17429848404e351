# bulk_image_cleaner/extension/sweep.py
from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from bulk_image_cleaner.extension.host import HostApi, as_list, attr, call_quiet

logger = logging.getLogger(__name__)

# Webflow object ids are 24 hex chars; anything shaped like one is a candidate.
_ID_RE = re.compile(r"[a-f0-9]{24}", re.I)
_URL_RE = re.compile(r"https?://[^\s\"'()\\]+")

STYLE_BATCH = 40


@dataclass
class ImageRow:
    id: str
    name: str
    url: str = ""
    mime_type: str = ""
    is_unused: bool = True


@dataclass
class ScanMeta:
    scanned_pages: int = 0
    scanned_elements: int = 0
    scanned_styles: int = 0
    detected_references: int = 0
    duration_ms: int = 0
    scanned_assets: int = 0


@dataclass
class ScanResult:
    images: List[ImageRow] = field(default_factory=list)
    meta: ScanMeta = field(default_factory=ScanMeta)

    @property
    def unused(self) -> List[ImageRow]:
        return [i for i in self.images if i.is_unused]

    @property
    def unused_count(self) -> int:
        return len(self.unused)


class ProgressTracker:
    """Monotonic 0..100 percentage plus a human-readable step label."""

    def __init__(self, on_change: Optional[Callable[[int, str], None]] = None):
        self.value = 0
        self.step = ""
        self._on_change = on_change

    def _emit(self) -> None:
        if self._on_change:
            self._on_change(self.value, self.step)

    def update(self, v: float) -> None:
        self.value = max(self.value, min(100, int(v)))
        self._emit()

    def set_step(self, step: str) -> None:
        self.step = step
        self._emit()

    def bump(self, ceiling: int = 92) -> None:
        if self.value < ceiling:
            self.value += 1
            self._emit()

    def reset(self) -> None:
        self.value = 0
        self.step = ""
        self._emit()


class ProgressTicker:
    """Advances a tracker on a timer so the bar moves while host calls are slow."""

    def __init__(self, tracker: ProgressTracker, interval: float = 0.18, ceiling: int = 92):
        self.tracker = tracker
        self.interval = interval
        self.ceiling = ceiling
        self._task: Optional[asyncio.Task] = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tracker.bump(self.ceiling)

    def start(self) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


@dataclass
class _Image:
    id: str
    name: str
    url: str
    mime_type: str
    used: bool = False


class ReferenceIndex:
    """Known image assets keyed by id and by URL; records the first hit per asset."""

    def __init__(self, images: List[_Image]):
        self.by_id: Dict[str, _Image] = {}
        self.url_to_id: Dict[str, str] = {}
        self.detected = 0
        for img in images:
            self.by_id[img.id] = img
            if img.url:
                self.url_to_id[img.url] = img.id

    def mark_used(self, asset_id: Any) -> None:
        if not asset_id:
            return
        entry = self.by_id.get(str(asset_id))
        if entry is not None and not entry.used:
            entry.used = True
            self.detected += 1

    def mark_url(self, url: Any) -> None:
        if url:
            self.mark_used(self.url_to_id.get(str(url)))

    def scan_payload(self, payload: Any) -> None:
        if not payload:
            return
        if isinstance(payload, str):
            s = payload
        else:
            try:
                s = json.dumps(payload, default=str, ensure_ascii=False)
            except (TypeError, ValueError):
                s = str(payload)

        for candidate in _ID_RE.findall(s):
            if candidate in self.by_id:
                self.mark_used(candidate)
        for u in _URL_RE.findall(s):
            self.mark_url(u)


class ReferenceSweep:
    """
    Read-only pass that classifies every image asset as used or unused.

    Assets -> every page's elements (image bindings, attached/inline styles,
    background images, social images) -> every style in the project. A single
    failing page, element or style never aborts the sweep; it just contributes
    no references.
    """

    def __init__(
        self,
        host: HostApi,
        progress: Optional[ProgressTracker] = None,
        batch_size: int = STYLE_BATCH,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.host = host
        self.progress = progress or ProgressTracker()
        self.batch_size = max(1, batch_size)
        self.clock = clock

    async def _collect_images(self, assets: List[Any]) -> List[_Image]:
        images: List[_Image] = []
        for asset in assets:
            mime = await call_quiet(asset, "get_mime_type", default="") or ""
            if not str(mime).startswith("image/"):
                continue
            name = await call_quiet(asset, "get_name", default="") or "Untitled"
            url = await call_quiet(asset, "get_url", default="") or ""
            images.append(
                _Image(id=str(attr(asset, "id")), name=str(name), url=str(url), mime_type=str(mime))
            )
        return images

    async def _scan_element(self, el: Any, index: ReferenceIndex) -> None:
        if attr(el, "type") == "Image":
            bound = await call_quiet(el, "get_asset")
            index.mark_used(attr(bound, "id"))

        for st in as_list(await call_quiet(el, "get_styles", default=[])):
            index.scan_payload(await call_quiet(st, "get_properties"))

        inline = await call_quiet(el, "get_style")
        if inline is not None:
            index.scan_payload(await call_quiet(inline, "get_properties"))

        bg = await call_quiet(el, "get_background_image")
        index.mark_used(attr(bg, "id"))

    async def _scan_page(self, page: Any, index: ReferenceIndex, meta: ScanMeta) -> None:
        try:
            await self.host.switch_page(page)
        except Exception as e:  # noqa: BLE001
            logger.info("skipping page %s: %s", attr(page, "id", "?"), e)
            return

        meta.scanned_pages += 1
        elements = await self.host.get_all_elements()
        meta.scanned_elements += len(elements)
        for el in elements:
            await self._scan_element(el, index)

        # Open Graph / search preview images are plain URLs
        index.mark_url(await call_quiet(page, "get_open_graph_image", default=""))
        index.mark_url(await call_quiet(page, "get_search_image", default=""))

    async def _scan_styles(self, index: ReferenceIndex, meta: ScanMeta) -> None:
        styles = await self.host.get_all_styles()
        if styles is None:
            return
        meta.scanned_styles = len(styles)
        total = max(1, len(styles))
        for i in range(0, len(styles), self.batch_size):
            batch = styles[i : i + self.batch_size]
            props_list = await asyncio.gather(
                *(call_quiet(s, "get_properties") for s in batch)
            )
            for props in props_list:
                index.scan_payload(props)
            self.progress.update(82 + round(((i + self.batch_size) / total) * 15))

    async def run(self) -> ScanResult:
        started = self.clock()
        meta = ScanMeta()

        self.progress.set_step("Checking assets…")
        self.progress.update(10)
        assets = await self.host.get_all_assets()
        meta.scanned_assets = len(assets)
        images = await self._collect_images(assets)
        index = ReferenceIndex(images)
        self.progress.update(20)

        self.progress.set_step("Checking pages…")
        pages = await self.host.get_pages()
        total_pages = len(pages)
        self.progress.update(28)

        self.progress.set_step("Checking elements…")
        for i, page in enumerate(pages):
            await self._scan_page(page, index, meta)
            if total_pages > 0:
                self.progress.update(28 + round(((i + 1) / total_pages) * 50))

        self.progress.set_step("Checking background images & styles…")
        self.progress.update(82)
        await self._scan_styles(index, meta)
        self.progress.update(100)

        meta.detected_references = index.detected
        meta.duration_ms = int(round((self.clock() - started) * 1000))

        rows = [
            ImageRow(
                id=img.id,
                name=img.name,
                url=img.url,
                mime_type=img.mime_type,
                is_unused=not img.used,
            )
            for img in images
        ]
        logger.info(
            "sweep done: %d images, %d unused, %d pages, %d styles, %dms",
            len(rows),
            sum(1 for r in rows if r.is_unused),
            meta.scanned_pages,
            meta.scanned_styles,
            meta.duration_ms,
        )
        return ScanResult(images=rows, meta=meta)
