"""Periodic scheduled sync of every tracked repo."""

from __future__ import annotations

import asyncio
import logging

from reposync.services.sync_service import SyncService

logger = logging.getLogger(__name__)


class PeriodicSyncScheduler:
    """Every ``interval_minutes`` queue a sync for each idle repo.

    An interval of 0 disables the scheduler.
    """

    def __init__(
        self, sync_service: SyncService, interval_minutes: int
    ) -> None:
        self._sync_service = sync_service
        self._interval_minutes = interval_minutes
        self._task: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return self._interval_minutes > 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if not self.enabled or self.is_running:
            return
        self._task = asyncio.create_task(
            self._loop(), name="sync-scheduler"
        )
        logger.info(
            "event=scheduler_started interval_minutes=%d",
            self._interval_minutes,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def tick(self) -> int:
        queued = await self._sync_service.schedule_all_repos()
        logger.info("event=scheduled_sync queued=%d", queued)
        return queued

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_minutes * 60)
            try:
                await self.tick()
            except Exception:
                logger.exception("event=scheduled_sync_error")
