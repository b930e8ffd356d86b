"""Reconciliation between the durable ledger and the ephemeral dispatcher.

Three idempotent operations:

- ``recover_stuck_jobs``: in-flight jobs found at startup belong to a
  dead process; they go back to PENDING with zeroed counters. Runs
  before any worker starts, so it never touches a live job.
- ``requeue_orphaned_jobs``: every PENDING job without a dispatcher
  entry is announced again. This is what survives total dispatcher loss.
- ``cancel_stale_jobs``: PENDING jobs older than a threshold are
  cancelled instead of retried forever.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from reposync.constants import (
    RECOVERED_ERROR,
    SyncJobStatus,
    TriggerSource,
    stale_error,
)
from reposync.queue.dispatcher import Dispatcher, dispatch_key
from reposync.repositories.protocols import (
    EmbedJobRepository,
    SyncJobRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class RecoveryResult:
    sync_jobs: list[str] = field(default_factory=lambda: list[str]())
    embed_jobs: list[str] = field(default_factory=lambda: list[str]())
    requeued: int = 0

    @property
    def total_recovered(self) -> int:
        return len(self.sync_jobs) + len(self.embed_jobs)


class JobReconciler:
    def __init__(
        self,
        jobs: SyncJobRepository,
        dispatcher: Dispatcher,
        embed_jobs: EmbedJobRepository | None = None,
        *,
        interval_seconds: float = 300,
        stale_job_minutes: int = 24 * 60,
    ) -> None:
        self._jobs = jobs
        self._dispatcher = dispatcher
        self._embed_jobs = embed_jobs
        self._interval = interval_seconds
        self._stale_minutes = stale_job_minutes
        self._task: asyncio.Task[None] | None = None

    # ── Operations ───────────────────────────────────────

    async def recover_stuck_jobs(self) -> RecoveryResult:
        sync_ids = await self._jobs.reset_in_flight(RECOVERED_ERROR)
        embed_ids: list[str] = []
        if self._embed_jobs is not None:
            embed_ids = await self._embed_jobs.reset_in_flight(
                RECOVERED_ERROR
            )
        if sync_ids or embed_ids:
            logger.warning(
                "event=stuck_jobs_recovered sync=%d embed=%d",
                len(sync_ids),
                len(embed_ids),
            )
        return RecoveryResult(sync_jobs=sync_ids, embed_jobs=embed_ids)

    async def requeue_orphaned_jobs(self) -> int:
        """Announce PENDING jobs missing from the dispatcher."""
        requeued = 0
        for job in await self._jobs.list_by_status([SyncJobStatus.PENDING]):
            key = dispatch_key(job.repo_id)
            if await self._dispatcher.contains(key):
                continue
            if await self._dispatcher.enqueue(
                key,
                {
                    "job_id": job.id,
                    "repo_id": job.repo_id,
                    "trigger": TriggerSource.REQUEUE,
                },
            ):
                requeued += 1
                logger.info(
                    "event=orphan_requeued job_id=%s key=%s", job.id, key
                )
        return requeued

    async def cancel_stale_jobs(
        self, max_age_minutes: int | None = None
    ) -> list[str]:
        minutes = (
            max_age_minutes
            if max_age_minutes is not None
            else self._stale_minutes
        )
        cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
        cancelled = await self._jobs.cancel_pending_older_than(
            cutoff, stale_error(minutes)
        )
        if cancelled:
            logger.warning(
                "event=stale_jobs_cancelled count=%d max_age_minutes=%d",
                len(cancelled),
                minutes,
            )
        return cancelled

    async def run_startup(self) -> RecoveryResult:
        """Recover stuck jobs, then re-announce everything PENDING."""
        result = await self.recover_stuck_jobs()
        result.requeued = await self.requeue_orphaned_jobs()
        logger.info(
            "event=startup_reconciled recovered=%d requeued=%d",
            result.total_recovered,
            result.requeued,
        )
        return result

    async def run_once(self) -> tuple[list[str], int]:
        """One periodic pass: cancel stale jobs, then requeue orphans."""
        cancelled = await self.cancel_stale_jobs()
        requeued = await self.requeue_orphaned_jobs()
        return cancelled, requeued

    # ── Lifecycle ────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(
            self._loop(), name="job-reconciler"
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

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception:
                logger.exception("event=reconcile_error")
