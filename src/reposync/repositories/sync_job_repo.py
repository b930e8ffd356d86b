"""SQL implementation of SyncJobRepository (the sync ledger).

Every write that mutates a RepoSyncJob carries a status predicate, so a
row that reached a terminal status is never modified again.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import func, select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.constants import (
    DEFAULT_JOB_LIST_LIMIT,
    IN_FLIGHT_SYNC_STATUSES,
    LIVE_SYNC_STATUSES,
    TERMINAL_SYNC_STATUSES,
    FileJobStatus,
    SyncJobStatus,
)
from reposync.models.sync_job import FileSyncJob, RepoSyncJob
from reposync.sync.schemas import TreeEntry


class SqlSyncJobRepository:
    """Sync ledger repo that owns its own sessions.

    Jobs are written from worker tasks, the reconciler and API handlers
    concurrently, so each operation uses a short-lived session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    # ── RepoSyncJob ──────────────────────────────────────

    async def get(self, job_id: str) -> RepoSyncJob | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RepoSyncJob).where(RepoSyncJob.id == job_id)
            )
            return result.scalar_one_or_none()

    async def find_live_for_repo(
        self, repo_id: str
    ) -> RepoSyncJob | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RepoSyncJob)
                .where(
                    RepoSyncJob.repo_id == repo_id,
                    RepoSyncJob.status.in_(LIVE_SYNC_STATUSES),
                )
                .order_by(RepoSyncJob.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def create(self, job: RepoSyncJob) -> RepoSyncJob:
        async with self._session_factory() as session, session.begin():
            session.add(job)
        return job

    async def list_jobs(
        self,
        *,
        status: str | None = None,
        repo_id: str | None = None,
        limit: int = DEFAULT_JOB_LIST_LIMIT,
    ) -> list[RepoSyncJob]:
        stmt = select(RepoSyncJob)
        if status is not None:
            stmt = stmt.where(RepoSyncJob.status == status)
        if repo_id is not None:
            stmt = stmt.where(RepoSyncJob.repo_id == repo_id)
        stmt = stmt.order_by(RepoSyncJob.created_at.desc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_by_status(
        self, statuses: Iterable[str]
    ) -> list[RepoSyncJob]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RepoSyncJob)
                .where(RepoSyncJob.status.in_(list(statuses)))
                .order_by(RepoSyncJob.created_at)
            )
            return list(result.scalars().all())

    async def try_set_status(
        self,
        job_id: str,
        expected: set[str],
        new_status: str,
        **values: Any,
    ) -> bool:
        """Atomically set status only if current status matches expected."""
        live_expected = set(expected) - TERMINAL_SYNC_STATUSES
        if not live_expected:
            return False
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(RepoSyncJob)
                .where(
                    RepoSyncJob.id == job_id,
                    RepoSyncJob.status.in_(live_expected),
                )
                .values(status=new_status, **values)
            )
            rowcount: int = getattr(result, "rowcount", 0) or 0
            return rowcount > 0

    async def update_progress(
        self,
        job_id: str,
        *,
        processed_files: int,
        skipped_files: int,
        failed_files: int,
    ) -> bool:
        """Write counters only while the job is PROCESSING_FILES."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_update(RepoSyncJob)
                .where(
                    RepoSyncJob.id == job_id,
                    RepoSyncJob.status == SyncJobStatus.PROCESSING_FILES,
                )
                .values(
                    processed_files=processed_files,
                    skipped_files=skipped_files,
                    failed_files=failed_files,
                )
            )
            rowcount: int = getattr(result, "rowcount", 0) or 0
            return rowcount > 0

    async def reset_in_flight(self, error: str) -> list[str]:
        """Return FETCHING_TREE / PROCESSING_FILES jobs to PENDING."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(RepoSyncJob.id).where(
                    RepoSyncJob.status.in_(IN_FLIGHT_SYNC_STATUSES)
                )
            )
            ids = list(result.scalars().all())
            if not ids:
                return []
            await session.execute(
                sa_update(RepoSyncJob)
                .where(
                    RepoSyncJob.id.in_(ids),
                    RepoSyncJob.status.in_(IN_FLIGHT_SYNC_STATUSES),
                )
                .values(
                    status=SyncJobStatus.PENDING,
                    total_files=0,
                    processed_files=0,
                    skipped_files=0,
                    failed_files=0,
                    started_at=None,
                    error=error,
                )
            )
            return ids

    async def cancel_pending_older_than(
        self, cutoff: datetime, error: str
    ) -> list[str]:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(RepoSyncJob.id).where(
                    RepoSyncJob.status == SyncJobStatus.PENDING,
                    RepoSyncJob.created_at < cutoff,
                )
            )
            ids = list(result.scalars().all())
            if not ids:
                return []
            await session.execute(
                sa_update(RepoSyncJob)
                .where(
                    RepoSyncJob.id.in_(ids),
                    RepoSyncJob.status == SyncJobStatus.PENDING,
                )
                .values(
                    status=SyncJobStatus.CANCELLED,
                    error=error,
                    completed_at=datetime.now(UTC),
                )
            )
            return ids

    # ── FileSyncJob ──────────────────────────────────────

    async def replace_file_jobs(
        self,
        job_id: str,
        repo_id: str,
        entries: Sequence[TreeEntry],
    ) -> int:
        """Delete every file row of the job, then insert one per entry."""
        now = datetime.now(UTC)
        async with self._session_factory() as session, session.begin():
            await session.execute(
                sa_delete(FileSyncJob).where(
                    FileSyncJob.sync_job_id == job_id
                )
            )
            session.add_all([
                FileSyncJob(
                    sync_job_id=job_id,
                    repo_id=repo_id,
                    path=entry.path,
                    sha=entry.sha,
                    size=entry.size,
                    ordinal=ordinal,
                    status=FileJobStatus.PENDING,
                    created_at=now,
                )
                for ordinal, entry in enumerate(entries)
            ])
        return len(entries)

    async def list_file_jobs(
        self, job_id: str, status: str | None = None
    ) -> list[FileSyncJob]:
        stmt = select(FileSyncJob).where(
            FileSyncJob.sync_job_id == job_id
        )
        if status is not None:
            stmt = stmt.where(FileSyncJob.status == status)
        stmt = stmt.order_by(FileSyncJob.created_at, FileSyncJob.ordinal)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_file_job(
        self, file_job_id: str, status: str, **values: Any
    ) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                sa_update(FileSyncJob)
                .where(FileSyncJob.id == file_job_id)
                .values(status=status, **values)
            )

    async def count_file_jobs(
        self, job_id: str, statuses: Iterable[str] | None = None
    ) -> int:
        stmt = select(func.count()).where(
            FileSyncJob.sync_job_id == job_id
        )
        if statuses is not None:
            stmt = stmt.where(FileSyncJob.status.in_(list(statuses)))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()
