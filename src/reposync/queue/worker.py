"""Worker pool delivering dispatched jobs to the orchestrator."""

from __future__ import annotations

import asyncio
import logging

from reposync.constants import (
    WORKER_RECEIVE_TIMEOUT,
    SyncJobStatus,
    truncate_error,
)
from reposync.models.sync_job import RepoSyncJob
from reposync.queue.dispatcher import Delivery, Dispatcher
from reposync.repositories.protocols import SyncJobRepository
from reposync.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


class SyncWorker:
    """Runs ``concurrency`` receive loops over one dispatcher.

    ``stop()`` stops receiving, waits up to ``shutdown_grace`` seconds for
    running jobs, then cancels them. A cancelled job stays in-flight in
    the ledger and is reset by recovery on the next start.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        jobs: SyncJobRepository,
        orchestrator: SyncOrchestrator,
        *,
        concurrency: int = 1,
        shutdown_grace: float = 30.0,
        receive_timeout: float = WORKER_RECEIVE_TIMEOUT,
    ) -> None:
        self._dispatcher = dispatcher
        self._jobs = jobs
        self._orchestrator = orchestrator
        self._concurrency = concurrency
        self._shutdown_grace = shutdown_grace
        self._receive_timeout = receive_timeout
        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self.jobs_handled = 0

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        if self.is_running:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._loop(), name=f"sync-worker-{i}")
            for i in range(self._concurrency)
        ]
        logger.info("event=worker_started concurrency=%d", self._concurrency)

    async def stop(self) -> None:
        self._stopping.set()
        if not self._tasks:
            return
        _, pending = await asyncio.wait(
            self._tasks, timeout=self._shutdown_grace
        )
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "event=worker_stop_forced abandoned=%d", len(pending)
            )
        self._tasks = []
        logger.info("event=worker_stopped handled=%d", self.jobs_handled)

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            delivery = await self._dispatcher.receive(
                timeout=self._receive_timeout
            )
            if delivery is None:
                continue
            try:
                await self.handle(delivery)
            except Exception:
                logger.exception(
                    "event=worker_delivery_error key=%s", delivery.key
                )
            finally:
                await self._dispatcher.ack(delivery.key)

    async def handle(self, delivery: Delivery) -> None:
        """Run the delivered job; escaping errors become a FAILED job."""
        job = await self._resolve_job(delivery)
        if job is None:
            logger.info(
                "event=worker_nothing_to_run key=%s", delivery.key
            )
            return

        self.jobs_handled += 1
        try:
            await self._orchestrator.run(job)
        except Exception as exc:
            logger.exception(
                "event=sync_job_error job_id=%s repo_id=%s",
                job.id,
                job.repo_id,
            )
            await self._orchestrator.fail_job(
                job.id, truncate_error(str(exc) or type(exc).__name__)
            )

    async def _resolve_job(self, delivery: Delivery) -> RepoSyncJob | None:
        job_id = delivery.payload.get("job_id")
        if job_id:
            job = await self._jobs.get(str(job_id))
            if job is not None and job.status == SyncJobStatus.PENDING:
                return job
        repo_id = delivery.payload.get("repo_id")
        if not repo_id:
            return None
        # The announced job may be gone; run whatever is pending now.
        job = await self._jobs.find_live_for_repo(str(repo_id))
        if job is not None and job.status == SyncJobStatus.PENDING:
            return job
        return None
