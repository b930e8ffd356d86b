"""Sync job lifecycle: idempotent creation, cancel, listing, scheduling."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from reposync.constants import (
    DEFAULT_JOB_LIST_LIMIT,
    USER_CANCELLED_ERROR,
    SyncJobStatus,
    TriggerSource,
)
from reposync.models.repo import Repo
from reposync.models.sync_job import FileSyncJob, RepoSyncJob
from reposync.queue.dispatcher import Dispatcher, dispatch_key
from reposync.repositories.protocols import (
    RepoRepository,
    SyncJobRepository,
)
from reposync.resilience.errors import (
    JobNotCancellableError,
    JobNotFoundError,
    RepoNotFoundError,
)
from reposync.resilience.idempotency import IdempotencyGuard
from reposync.sync.schemas import SyncConfig

logger = logging.getLogger(__name__)


class SyncService:
    """Entry point for every sync trigger (API, CLI, scheduler).

    At most one live job exists per repo: ``create_sync_job`` hands back
    the existing PENDING / in-flight job instead of inserting another.
    """

    def __init__(
        self,
        repos: RepoRepository,
        jobs: SyncJobRepository,
        dispatcher: Dispatcher,
        guard: IdempotencyGuard | None = None,
    ) -> None:
        self._repos = repos
        self._jobs = jobs
        self._dispatcher = dispatcher
        self._guard = guard or IdempotencyGuard()

    # ── Repos ────────────────────────────────────────────

    async def add_repo(
        self, full_name: str, default_branch: str | None = None
    ) -> tuple[Repo, bool]:
        """Track a repo by ``owner/name``. Returns (repo, created)."""
        full_name = full_name.strip().strip("/")
        owner, _, name = full_name.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(
                f"Repo must be given as owner/name, got {full_name!r}"
            )
        existing = await self._repos.get_by_full_name(full_name)
        if existing is not None:
            return existing, False
        repo = await self._repos.create(
            Repo(full_name=full_name, default_branch=default_branch)
        )
        logger.info("event=repo_added repo=%s id=%s", full_name, repo.id)
        return repo, True

    async def get_repo(self, repo_id: str) -> Repo | None:
        return await self._repos.get_by_id(repo_id)

    async def find_repo(self, ref: str) -> Repo | None:
        """Look a repo up by ``owner/name`` or by id."""
        if "/" in ref:
            return await self._repos.get_by_full_name(ref.strip("/"))
        return await self._repos.get_by_id(ref)

    async def list_repos(self) -> list[Repo]:
        return await self._repos.list_all()

    # ── Jobs ─────────────────────────────────────────────

    async def create_sync_job(
        self,
        repo_id: str,
        config: SyncConfig | None = None,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
    ) -> tuple[RepoSyncJob, bool]:
        """Return (job, created) and make sure the job is announced."""
        repo = await self._repos.get_by_id(repo_id)
        if repo is None:
            raise RepoNotFoundError(repo_id)

        key = dispatch_key(repo_id)

        async def _create() -> tuple[RepoSyncJob, bool]:
            return await self._create_or_reuse(
                repo_id, config or SyncConfig(), triggered_by
            )

        (job, inserted), owner = await self._guard.execute(key, _create)
        created = inserted and owner
        if job.status == SyncJobStatus.PENDING:
            await self._dispatcher.enqueue(
                key,
                {
                    "job_id": job.id,
                    "repo_id": repo_id,
                    "trigger": triggered_by,
                },
            )
        return job, created

    async def _create_or_reuse(
        self,
        repo_id: str,
        config: SyncConfig,
        triggered_by: TriggerSource,
    ) -> tuple[RepoSyncJob, bool]:
        existing = await self._jobs.find_live_for_repo(repo_id)
        if existing is not None:
            logger.info(
                "event=sync_job_reused job_id=%s repo_id=%s status=%s",
                existing.id,
                repo_id,
                existing.status,
            )
            return existing, False
        job = await self._jobs.create(
            RepoSyncJob(
                repo_id=repo_id,
                status=SyncJobStatus.PENDING,
                config=config.to_json(),
                triggered_by=triggered_by,
            )
        )
        logger.info(
            "event=sync_job_created job_id=%s repo_id=%s trigger=%s",
            job.id,
            repo_id,
            triggered_by,
        )
        return job, True

    async def cancel_job(self, job_id: str) -> RepoSyncJob:
        """Cancel a PENDING job. Running jobs cannot be cancelled."""
        job = await self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        cancelled = await self._jobs.try_set_status(
            job_id,
            {SyncJobStatus.PENDING},
            SyncJobStatus.CANCELLED,
            error=USER_CANCELLED_ERROR,
            completed_at=datetime.now(UTC),
        )
        refreshed = await self._jobs.get(job_id)
        if not cancelled or refreshed is None:
            raise JobNotCancellableError(
                job_id, refreshed.status if refreshed else job.status
            )
        logger.info("event=sync_job_cancelled job_id=%s", job_id)
        return refreshed

    async def get_job(self, job_id: str) -> RepoSyncJob | None:
        return await self._jobs.get(job_id)

    async def list_jobs(
        self,
        *,
        status: str | None = None,
        repo_id: str | None = None,
        limit: int = DEFAULT_JOB_LIST_LIMIT,
    ) -> list[RepoSyncJob]:
        return await self._jobs.list_jobs(
            status=status, repo_id=repo_id, limit=limit
        )

    async def list_file_jobs(
        self, job_id: str, status: str | None = None
    ) -> list[FileSyncJob]:
        return await self._jobs.list_file_jobs(job_id, status)

    async def schedule_all_repos(self) -> int:
        """Queue a scheduled sync for every repo without a live job."""
        queued = 0
        for repo in await self._repos.list_all():
            if await self._jobs.find_live_for_repo(repo.id) is not None:
                continue
            _, created = await self.create_sync_job(
                repo.id, triggered_by=TriggerSource.SCHEDULED
            )
            if created:
                queued += 1
        return queued
