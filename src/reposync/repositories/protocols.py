"""Protocol-based repository interfaces.

SQL implementations satisfy these protocols structurally (no inheritance).
Test doubles can be plain classes or mocks matching the same signature.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Protocol

from reposync.models.embed_job import EmbedJob
from reposync.models.repo import Repo
from reposync.models.stored_file import StoredFile
from reposync.models.sync_job import FileSyncJob, RepoSyncJob
from reposync.sync.schemas import TreeEntry


class RepoRepository(Protocol):
    async def get_by_id(self, repo_id: str) -> Repo | None: ...
    async def get_by_full_name(self, full_name: str) -> Repo | None: ...
    async def list_all(self) -> list[Repo]: ...
    async def create(self, repo: Repo) -> Repo: ...
    async def update_default_branch(
        self, repo_id: str, branch: str
    ) -> None: ...
    async def mark_synced(
        self,
        repo_id: str,
        commit_sha: str | None,
        indexed_at: datetime,
    ) -> None: ...


class SyncJobRepository(Protocol):
    async def get(self, job_id: str) -> RepoSyncJob | None: ...
    async def find_live_for_repo(
        self, repo_id: str
    ) -> RepoSyncJob | None: ...
    async def create(self, job: RepoSyncJob) -> RepoSyncJob: ...
    async def list_jobs(
        self,
        *,
        status: str | None = None,
        repo_id: str | None = None,
        limit: int = 20,
    ) -> list[RepoSyncJob]: ...
    async def list_by_status(
        self, statuses: Iterable[str]
    ) -> list[RepoSyncJob]: ...
    async def try_set_status(
        self,
        job_id: str,
        expected: set[str],
        new_status: str,
        **values: Any,
    ) -> bool: ...
    async def update_progress(
        self,
        job_id: str,
        *,
        processed_files: int,
        skipped_files: int,
        failed_files: int,
    ) -> bool: ...
    async def reset_in_flight(self, error: str) -> list[str]: ...
    async def cancel_pending_older_than(
        self, cutoff: datetime, error: str
    ) -> list[str]: ...
    async def replace_file_jobs(
        self,
        job_id: str,
        repo_id: str,
        entries: Sequence[TreeEntry],
    ) -> int: ...
    async def list_file_jobs(
        self, job_id: str, status: str | None = None
    ) -> list[FileSyncJob]: ...
    async def update_file_job(
        self, file_job_id: str, status: str, **values: Any
    ) -> None: ...
    async def count_file_jobs(
        self, job_id: str, statuses: Iterable[str] | None = None
    ) -> int: ...


class FileStore(Protocol):
    async def get(self, repo_id: str, path: str) -> StoredFile | None: ...
    async def upsert(self, stored: StoredFile) -> StoredFile: ...
    async def delete_paths(
        self, repo_id: str, paths: Sequence[str]
    ) -> int: ...
    async def delete_missing(
        self, repo_id: str, current_paths: set[str]
    ) -> int: ...
    async def list_by_repo(self, repo_id: str) -> list[StoredFile]: ...
    async def count_needing_embedding(self, repo_id: str) -> int: ...


class EmbedJobRepository(Protocol):
    async def find_live_for_repo(
        self, repo_id: str
    ) -> EmbedJob | None: ...
    async def create(self, job: EmbedJob) -> EmbedJob: ...
    async def list_by_repo(self, repo_id: str) -> list[EmbedJob]: ...
    async def reset_in_flight(self, error: str) -> list[str]: ...
