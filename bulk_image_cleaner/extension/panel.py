# bulk_image_cleaner/extension/panel.py
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from bulk_image_cleaner.extension.api_client import ApiClient
from bulk_image_cleaner.extension.auth_gate import AuthGate
from bulk_image_cleaner.extension.delete_pipeline import DeleteOutcome, DeletePipeline
from bulk_image_cleaner.extension.host import HostApi
from bulk_image_cleaner.extension.sweep import (
    ImageRow,
    ProgressTicker,
    ProgressTracker,
    ReferenceSweep,
    ScanResult,
)

logger = logging.getLogger(__name__)


class Screen(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    RESULTS = "results"
    SUCCESS = "success"


@dataclass
class ConfirmState:
    title: str
    body: str = ""
    confirm_text: str = "Delete"
    cancel_text: str = "Cancel"
    danger: bool = True
    on_confirm: Optional[Callable[[], Awaitable[None]]] = None


class CleanerPanel:
    """
    Panel state: idle -> scanning -> results | success, errors back to idle.

    Only one sweep and one delete run at a time; callers disable their
    controls while `busy` is true.
    """

    def __init__(
        self,
        host: HostApi,
        client: Optional[ApiClient] = None,
        auth_gate: Optional[AuthGate] = None,
        style_batch: int = 40,
        tick_interval: float = 0.18,
    ):
        self.host = host
        self.client = client
        self.auth_gate = auth_gate
        self.style_batch = style_batch

        self.screen = Screen.IDLE
        self.scan_result: Optional[ScanResult] = None
        self.error: Optional[str] = None
        self.query = ""
        self.selected_ids: Set[str] = set()

        self.progress = ProgressTracker()
        self.ticker = ProgressTicker(self.progress, interval=tick_interval)

        self.deleting = False
        self.delete_progress: Optional[Tuple[int, int]] = None
        self._scan_generation = 0

    @property
    def busy(self) -> bool:
        return self.screen == Screen.SCANNING or self.deleting

    @property
    def site_id(self) -> str:
        return self.auth_gate.state.site_id if self.auth_gate else ""

    # ---------------------------
    # Sweep
    # ---------------------------
    async def run_scan(self) -> Optional[ScanResult]:
        self.ticker.stop()
        self.error = None
        self.selected_ids = set()
        self.query = ""
        self.screen = Screen.SCANNING
        self.progress.reset()

        self._scan_generation += 1
        generation = self._scan_generation
        self.ticker.start()

        # Each sweep reports into its own tracker; only the current one reaches the panel.
        sweep_progress = ProgressTracker(
            on_change=lambda value, step: self._forward_progress(generation, value, step)
        )
        try:
            await self.host.set_extension_size("comfortable")
            result = await ReferenceSweep(
                self.host, progress=sweep_progress, batch_size=self.style_batch
            ).run()
        except Exception as e:  # noqa: BLE001
            if generation == self._scan_generation:
                logger.warning("scan failed: %s", e)
                self.ticker.stop()
                self.progress.reset()
                self.error = str(e) or "Scan failed"
                self.screen = Screen.IDLE
            return None

        if generation != self._scan_generation:
            # abandoned while the host calls were still in flight
            return None

        self.ticker.stop()
        self.progress.update(100)
        self.scan_result = result
        self.screen = Screen.SUCCESS if result.unused_count == 0 else Screen.RESULTS
        return result

    def _forward_progress(self, generation: int, value: int, step: str) -> None:
        if generation != self._scan_generation:
            return
        if step != self.progress.step:
            self.progress.set_step(step)
        self.progress.update(value)

    def abandon_scan(self) -> None:
        """Leave the scanning screen; in-flight host calls finish and are discarded."""
        if self.screen != Screen.SCANNING:
            return
        self._scan_generation += 1
        self.ticker.stop()
        self.progress.reset()
        self.screen = Screen.IDLE

    def reset(self) -> None:
        self.ticker.stop()
        self.scan_result = None
        self.error = None
        self.query = ""
        self.selected_ids = set()
        self.progress.reset()
        self.screen = Screen.IDLE

    # ---------------------------
    # Listing & selection
    # ---------------------------
    @property
    def unused_images(self) -> List[ImageRow]:
        base = self.scan_result.unused if self.scan_result else []
        q = self.query.strip().lower()
        if not q:
            return base
        return [i for i in base if q in i.name.lower() or q in i.id.lower()]

    @property
    def all_unused_ids(self) -> Set[str]:
        return {i.id for i in self.scan_result.unused} if self.scan_result else set()

    @property
    def all_unused_selected(self) -> bool:
        ids = self.all_unused_ids
        return bool(ids) and ids <= self.selected_ids

    def toggle(self, asset_id: str) -> None:
        if asset_id in self.selected_ids:
            self.selected_ids.discard(asset_id)
        else:
            self.selected_ids.add(asset_id)

    def toggle_select_all_unused(self) -> None:
        ids = self.all_unused_ids
        if not ids:
            return
        self.selected_ids = set() if ids <= self.selected_ids else set(ids)

    # ---------------------------
    # Delete
    # ---------------------------
    def request_delete(self) -> Optional[ConfirmState]:
        count = len(self.selected_ids)
        if count == 0:
            return None
        return ConfirmState(
            title=f"Delete {count} Unused Image{'s' if count > 1 else ''}?",
            body=(
                "These images are not used anywhere in your project. This action "
                "cannot be undone.\n\nImportant: Images referenced in custom "
                "code/embeds may not be detected. Double-check before deleting."
            ),
            on_confirm=self.perform_delete,
        )

    def _on_delete_progress(self, done: int, total: int) -> None:
        self.delete_progress = (done, total)

    async def perform_delete(self) -> Optional[DeleteOutcome]:
        if self.scan_result is None or not self.selected_ids or self.deleting:
            return None

        ids = sorted(self.selected_ids)
        self.deleting = True
        self.delete_progress = (0, len(ids))
        self.error = None
        try:
            pipeline = DeletePipeline(self.host, self.client, self.site_id)
            outcome = await pipeline.run(ids, on_progress=self._on_delete_progress)

            prev = self.scan_result
            self.scan_result = ScanResult(
                images=[i for i in prev.images if i.id not in outcome.deleted],
                meta=replace(
                    prev.meta,
                    scanned_assets=max(0, prev.meta.scanned_assets - len(outcome.deleted)),
                ),
            )
            self.selected_ids = set()
            self.screen = (
                Screen.SUCCESS if self.scan_result.unused_count == 0 else Screen.RESULTS
            )
            self.error = outcome.message()
            return outcome
        finally:
            self.deleting = False
            self.delete_progress = None
