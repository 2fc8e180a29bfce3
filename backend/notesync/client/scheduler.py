from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from notesync import config
from notesync.client.orchestrator import SyncOrchestrator, SyncResult
from notesync.client.transport import TransportError

logger = logger.bind(module="client.scheduler")


class AutoSyncScheduler:
    """Runs `sync_cycle` on a fixed period until stopped.

    Manual triggers go through the same orchestrator, so its in-flight flag
    keeps scheduled and manual cycles from overlapping.
    """

    def __init__(self, orchestrator: SyncOrchestrator):
        self.orchestrator = orchestrator
        self.interval_ms: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_ms: Optional[int] = None) -> None:
        """Must be called from inside a running event loop."""
        interval_ms = interval_ms if interval_ms is not None else config.sync_interval_ms()
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        self.stop()
        self.interval_ms = interval_ms
        self._task = asyncio.get_running_loop().create_task(self._run(interval_ms / 1000.0))
        logger.info(f"Auto-sync started every {interval_ms} ms")

    def stop(self) -> None:
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
                logger.info("Auto-sync stopped")
            self._task = None

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def trigger(self) -> SyncResult:
        return await self.orchestrator.sync_cycle()

    async def _run(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                await self.orchestrator.sync_cycle()
            except TransportError as exc:
                # the next tick is the retry
                logger.warning(f"Scheduled sync failed (retryable={exc.retryable}): {exc}")
            except Exception:
                logger.exception("Scheduled sync cycle raised; the loop keeps running")
