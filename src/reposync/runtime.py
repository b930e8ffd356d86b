"""Explicit wiring of the sync engine.

Everything stateful (dispatcher, worker pool, reconciler, scheduler) is
constructed here per process, never at import time, so the API
lifespan, the CLI and tests each get isolated instances.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.api.event_bus import SyncEventBus
from reposync.config import Settings
from reposync.notifications import initialize_notifications
from reposync.notifications.dispatcher import NotificationDispatcher
from reposync.queue.dispatcher import InMemoryDispatcher
from reposync.queue.recovery import JobReconciler, RecoveryResult
from reposync.queue.scheduler import PeriodicSyncScheduler
from reposync.queue.worker import SyncWorker
from reposync.repositories.embed_job_repo import SqlEmbedJobRepository
from reposync.repositories.file_store import SqlFileStore
from reposync.repositories.repo_repo import SqlRepoRepository
from reposync.repositories.sync_job_repo import SqlSyncJobRepository
from reposync.services.embedding_trigger import LedgerEmbeddingTrigger
from reposync.services.sync_service import SyncService
from reposync.sync.github import (
    GitHubProviderFactory,
    SettingsCredentialResolver,
)
from reposync.sync.orchestrator import SyncOrchestrator
from reposync.sync.providers import CredentialResolver, SourceProviderFactory

logger = logging.getLogger(__name__)


@dataclass
class SyncRuntime:
    """The engine's collaborators plus their start/stop lifecycle."""

    settings: Settings
    dispatcher: InMemoryDispatcher
    notifier: NotificationDispatcher
    orchestrator: SyncOrchestrator
    worker: SyncWorker
    reconciler: JobReconciler
    scheduler: PeriodicSyncScheduler
    sync_service: SyncService
    provider_factory: SourceProviderFactory

    async def start(self) -> RecoveryResult:
        """Repair the ledger, then start workers and background loops."""
        result = await self.reconciler.run_startup()
        await self.worker.start()
        await self.reconciler.start()
        await self.scheduler.start()
        return result

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.reconciler.stop()
        await self.worker.stop()
        if isinstance(self.provider_factory, GitHubProviderFactory):
            await self.provider_factory.aclose()


def build_runtime(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    event_bus: SyncEventBus | None = None,
    provider_factory: SourceProviderFactory | None = None,
    credentials: CredentialResolver | None = None,
) -> SyncRuntime:
    repos = SqlRepoRepository(session_factory)
    jobs = SqlSyncJobRepository(session_factory)
    file_store = SqlFileStore(session_factory)
    embed_jobs = SqlEmbedJobRepository(session_factory)

    dispatcher = InMemoryDispatcher()
    notifier = initialize_notifications(event_bus)
    factory = provider_factory or GitHubProviderFactory(settings)

    orchestrator = SyncOrchestrator(
        repos=repos,
        jobs=jobs,
        file_store=file_store,
        credentials=credentials or SettingsCredentialResolver(settings),
        provider_factory=factory,
        notifier=notifier,
        embedding_trigger=LedgerEmbeddingTrigger(embed_jobs, file_store),
        settings=settings,
    )
    sync_service = SyncService(repos, jobs, dispatcher)

    return SyncRuntime(
        settings=settings,
        dispatcher=dispatcher,
        notifier=notifier,
        orchestrator=orchestrator,
        worker=SyncWorker(
            dispatcher,
            jobs,
            orchestrator,
            concurrency=settings.worker_concurrency,
            shutdown_grace=settings.shutdown_grace_seconds,
        ),
        reconciler=JobReconciler(
            jobs,
            dispatcher,
            embed_jobs,
            interval_seconds=settings.reconcile_interval_seconds,
            stale_job_minutes=settings.stale_job_minutes,
        ),
        scheduler=PeriodicSyncScheduler(
            sync_service, settings.scheduled_sync_minutes
        ),
        sync_service=sync_service,
        provider_factory=factory,
    )
