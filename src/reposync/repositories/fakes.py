"""In-memory fake repositories for testing.

Dict-backed implementations of the 4 repository protocols.
No SQLAlchemy, no I/O: instant operations for unit tests. Defaults
that the ORM would fill in on flush are filled in by create().
"""

# pyright: reportUnusedFunction=false

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from reposync.constants import (
    DEFAULT_JOB_LIST_LIMIT,
    IN_FLIGHT_EMBED_STATUSES,
    IN_FLIGHT_SYNC_STATUSES,
    LIVE_EMBED_STATUSES,
    LIVE_SYNC_STATUSES,
    TERMINAL_SYNC_STATUSES,
    EmbedJobStatus,
    FileJobStatus,
    SyncJobStatus,
    TriggerSource,
)
from reposync.models.embed_job import EmbedJob
from reposync.models.repo import Repo
from reposync.models.stored_file import StoredFile
from reposync.models.sync_job import FileSyncJob, RepoSyncJob
from reposync.sync.schemas import TreeEntry


def _new_id() -> str:
    return str(uuid.uuid4())


class FakeRepoRepository:
    """Dict-backed RepoRepository for testing."""

    def __init__(self) -> None:
        self._store: dict[str, Repo] = {}

    async def get_by_id(self, repo_id: str) -> Repo | None:
        return self._store.get(repo_id)

    async def get_by_full_name(self, full_name: str) -> Repo | None:
        for repo in self._store.values():
            if repo.full_name == full_name:
                return repo
        return None

    async def list_all(self) -> list[Repo]:
        return sorted(self._store.values(), key=lambda r: r.full_name)

    async def create(self, repo: Repo) -> Repo:
        if not repo.id:
            repo.id = _new_id()
        if repo.created_at is None:
            repo.created_at = datetime.now(UTC)
        self._store[repo.id] = repo
        return repo

    async def update_default_branch(
        self, repo_id: str, branch: str
    ) -> None:
        repo = self._store.get(repo_id)
        if repo:
            repo.default_branch = branch

    async def mark_synced(
        self,
        repo_id: str,
        commit_sha: str | None,
        indexed_at: datetime,
    ) -> None:
        repo = self._store.get(repo_id)
        if repo:
            repo.last_indexed = indexed_at
            if commit_sha is not None:
                repo.last_commit_sha = commit_sha


class FakeSyncJobRepository:
    """Dict-backed SyncJobRepository for testing."""

    def __init__(self) -> None:
        self._jobs: dict[str, RepoSyncJob] = {}
        self._files: dict[str, FileSyncJob] = {}

    async def get(self, job_id: str) -> RepoSyncJob | None:
        return self._jobs.get(job_id)

    async def find_live_for_repo(
        self, repo_id: str
    ) -> RepoSyncJob | None:
        live = [
            j
            for j in self._jobs.values()
            if j.repo_id == repo_id and j.status in LIVE_SYNC_STATUSES
        ]
        live.sort(key=lambda j: j.created_at, reverse=True)
        return live[0] if live else None

    async def create(self, job: RepoSyncJob) -> RepoSyncJob:
        if not job.id:
            job.id = _new_id()
        if job.status is None:
            job.status = SyncJobStatus.PENDING
        for counter in (
            "total_files",
            "processed_files",
            "skipped_files",
            "failed_files",
        ):
            if getattr(job, counter) is None:
                setattr(job, counter, 0)
        if job.config is None:
            job.config = {}
        if job.triggered_by is None:
            job.triggered_by = TriggerSource.MANUAL
        if job.created_at is None:
            job.created_at = datetime.now(UTC)
        self._jobs[job.id] = job
        return job

    async def list_jobs(
        self,
        *,
        status: str | None = None,
        repo_id: str | None = None,
        limit: int = DEFAULT_JOB_LIST_LIMIT,
    ) -> list[RepoSyncJob]:
        jobs = [
            j
            for j in self._jobs.values()
            if (status is None or j.status == status)
            and (repo_id is None or j.repo_id == repo_id)
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    async def list_by_status(
        self, statuses: Iterable[str]
    ) -> list[RepoSyncJob]:
        wanted = set(statuses)
        jobs = [j for j in self._jobs.values() if j.status in wanted]
        jobs.sort(key=lambda j: j.created_at)
        return jobs

    async def try_set_status(
        self,
        job_id: str,
        expected: set[str],
        new_status: str,
        **values: Any,
    ) -> bool:
        """CAS: set status only if current status is in expected set."""
        job = self._jobs.get(job_id)
        if (
            job is None
            or job.status in TERMINAL_SYNC_STATUSES
            or job.status not in expected
        ):
            return False
        job.status = new_status
        for name, value in values.items():
            setattr(job, name, value)
        return True

    async def update_progress(
        self,
        job_id: str,
        *,
        processed_files: int,
        skipped_files: int,
        failed_files: int,
    ) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job.status != SyncJobStatus.PROCESSING_FILES:
            return False
        job.processed_files = processed_files
        job.skipped_files = skipped_files
        job.failed_files = failed_files
        return True

    async def reset_in_flight(self, error: str) -> list[str]:
        ids: list[str] = []
        for job in self._jobs.values():
            if job.status in IN_FLIGHT_SYNC_STATUSES:
                job.status = SyncJobStatus.PENDING
                job.total_files = 0
                job.processed_files = 0
                job.skipped_files = 0
                job.failed_files = 0
                job.started_at = None
                job.error = error
                ids.append(job.id)
        return ids

    async def cancel_pending_older_than(
        self, cutoff: datetime, error: str
    ) -> list[str]:
        ids: list[str] = []
        for job in self._jobs.values():
            if (
                job.status == SyncJobStatus.PENDING
                and job.created_at < cutoff
            ):
                job.status = SyncJobStatus.CANCELLED
                job.error = error
                job.completed_at = datetime.now(UTC)
                ids.append(job.id)
        return ids

    async def replace_file_jobs(
        self,
        job_id: str,
        repo_id: str,
        entries: Sequence[TreeEntry],
    ) -> int:
        self._files = {
            fid: f
            for fid, f in self._files.items()
            if f.sync_job_id != job_id
        }
        now = datetime.now(UTC)
        for ordinal, entry in enumerate(entries):
            row = FileSyncJob(
                id=_new_id(),
                sync_job_id=job_id,
                repo_id=repo_id,
                path=entry.path,
                sha=entry.sha,
                size=entry.size,
                ordinal=ordinal,
                status=FileJobStatus.PENDING,
                created_at=now,
            )
            self._files[row.id] = row
        return len(entries)

    async def list_file_jobs(
        self, job_id: str, status: str | None = None
    ) -> list[FileSyncJob]:
        rows = [
            f
            for f in self._files.values()
            if f.sync_job_id == job_id
            and (status is None or f.status == status)
        ]
        rows.sort(key=lambda f: (f.created_at, f.ordinal))
        return rows

    async def update_file_job(
        self, file_job_id: str, status: str, **values: Any
    ) -> None:
        row = self._files.get(file_job_id)
        if row is None:
            return
        row.status = status
        for name, value in values.items():
            setattr(row, name, value)

    async def count_file_jobs(
        self, job_id: str, statuses: Iterable[str] | None = None
    ) -> int:
        wanted = set(statuses) if statuses is not None else None
        return sum(
            1
            for f in self._files.values()
            if f.sync_job_id == job_id
            and (wanted is None or f.status in wanted)
        )


class FakeFileStore:
    """Dict-backed FileStore keyed by (repo_id, path)."""

    def __init__(self) -> None:
        self._store: dict[tuple[str, str], StoredFile] = {}

    async def get(self, repo_id: str, path: str) -> StoredFile | None:
        return self._store.get((repo_id, path))

    async def upsert(self, stored: StoredFile) -> StoredFile:
        if not stored.id:
            stored.id = _new_id()
        stored.updated_at = datetime.now(UTC)
        key = (stored.repo_id, stored.path)
        existing = self._store.get(key)
        if existing is not None:
            stored.id = existing.id
            stored.last_embedded_sha = existing.last_embedded_sha
        self._store[key] = stored
        return stored

    async def delete_paths(
        self, repo_id: str, paths: Sequence[str]
    ) -> int:
        deleted = 0
        for path in paths:
            if self._store.pop((repo_id, path), None) is not None:
                deleted += 1
        return deleted

    async def delete_missing(
        self, repo_id: str, current_paths: set[str]
    ) -> int:
        stale = [
            key
            for key in self._store
            if key[0] == repo_id and key[1] not in current_paths
        ]
        for key in stale:
            del self._store[key]
        return len(stale)

    async def list_by_repo(self, repo_id: str) -> list[StoredFile]:
        return sorted(
            (f for (rid, _), f in self._store.items() if rid == repo_id),
            key=lambda f: f.path,
        )

    async def count_needing_embedding(self, repo_id: str) -> int:
        return sum(
            1
            for (rid, _), f in self._store.items()
            if rid == repo_id
            and f.content is not None
            and f.skipped_reason is None
            and f.last_embedded_sha != f.sha
        )


class FakeEmbedJobRepository:
    """Dict-backed EmbedJobRepository for testing."""

    def __init__(self) -> None:
        self._store: dict[str, EmbedJob] = {}

    async def find_live_for_repo(
        self, repo_id: str
    ) -> EmbedJob | None:
        for job in self._store.values():
            if job.repo_id == repo_id and job.status in LIVE_EMBED_STATUSES:
                return job
        return None

    async def create(self, job: EmbedJob) -> EmbedJob:
        if not job.id:
            job.id = _new_id()
        if job.status is None:
            job.status = EmbedJobStatus.PENDING
        if job.created_at is None:
            job.created_at = datetime.now(UTC)
        self._store[job.id] = job
        return job

    async def list_by_repo(self, repo_id: str) -> list[EmbedJob]:
        return [j for j in self._store.values() if j.repo_id == repo_id]

    async def reset_in_flight(self, error: str) -> list[str]:
        ids: list[str] = []
        for job in self._store.values():
            if job.status in IN_FLIGHT_EMBED_STATUSES:
                job.status = EmbedJobStatus.PENDING
                job.processed_files = 0
                job.chunks_created = 0
                job.embeddings_generated = 0
                job.failed_files = 0
                job.started_at = None
                job.error = error
                ids.append(job.id)
        return ids
