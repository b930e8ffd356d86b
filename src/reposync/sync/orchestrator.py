"""Drive one sync job end to end.

State machine::

    PENDING -> FETCHING_TREE -> PROCESSING_FILES -> COMPLETED
                                                 -> FAILED (via fail_job)

Only setup-fatal errors (missing repo, missing credential) and truly
unexpected exceptions escape ``run``. The worker turns those into
``fail_job``. Branch and diff problems degrade to fallbacks, and
per-file errors are recorded on the file row while the loop continues.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime

from reposync.config import Settings
from reposync.constants import (
    DEFAULT_BRANCH_FALLBACK,
    IN_FLIGHT_SYNC_STATUSES,
    LIVE_SYNC_STATUSES,
    PROGRESS_CHECKPOINT_EVERY,
    PROGRESS_LOG_EVERY,
    SHORT_SHA_LENGTH,
    SKIP_LOG_EVERY,
    SKIP_LOG_FIRST,
    FileJobStatus,
    LogLevel,
    SyncJobStatus,
    truncate_error,
)
from reposync.models.repo import Repo
from reposync.models.sync_job import FileSyncJob, RepoSyncJob
from reposync.notifications.dispatcher import NullNotifier, SyncNotifier
from reposync.notifications.events import LogEntry, ProgressEvent
from reposync.repositories.protocols import (
    FileStore,
    RepoRepository,
    SyncJobRepository,
)
from reposync.resilience.errors import (
    MissingCredentialError,
    RepoNotFoundError,
)
from reposync.sync.diff import DiffStrategy
from reposync.sync.file_processor import ContentBudget, FileProcessor
from reposync.sync.providers import (
    CredentialResolver,
    EmbeddingTrigger,
    SourceProvider,
    SourceProviderFactory,
)
from reposync.sync.schemas import FileResult, WorkPlan

logger = logging.getLogger(__name__)


@dataclass
class _Counters:
    total: int
    processed: int = 0
    skipped: int = 0
    failed: int = 0


def _error_text(exc: BaseException) -> str:
    return truncate_error(str(exc) or type(exc).__name__)


class SyncOrchestrator:
    def __init__(
        self,
        *,
        repos: RepoRepository,
        jobs: SyncJobRepository,
        file_store: FileStore,
        credentials: CredentialResolver,
        provider_factory: SourceProviderFactory,
        notifier: SyncNotifier | None = None,
        embedding_trigger: EmbeddingTrigger | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._repos = repos
        self._jobs = jobs
        self._file_store = file_store
        self._credentials = credentials
        self._provider_factory = provider_factory
        self._notifier: SyncNotifier = notifier or NullNotifier()
        self._embedding_trigger = embedding_trigger
        self._settings = settings or Settings()

    # ── Entry points ─────────────────────────────────────

    async def run(self, job: RepoSyncJob) -> None:
        """Run a PENDING job. Returns quietly if the job cannot be claimed."""
        started = time.monotonic()
        config = job.sync_config
        logger.info(
            "event=sync_start job_id=%s repo_id=%s config=%s",
            job.id,
            job.repo_id,
            config.to_json(),
        )

        repo = await self._repos.get_by_id(job.repo_id)
        if repo is None:
            raise RepoNotFoundError(job.repo_id)

        await self._log(
            repo.id, LogLevel.INFO, f"Starting sync for {repo.full_name}", job
        )
        credential = await self._credentials.resolve(repo)
        if not credential:
            await self._log(
                repo.id, LogLevel.ERROR, "No source credential found", job
            )
            raise MissingCredentialError(repo.full_name)
        provider = self._provider_factory(repo, credential)

        claimed = await self._jobs.try_set_status(
            job.id,
            {SyncJobStatus.PENDING},
            SyncJobStatus.FETCHING_TREE,
            started_at=datetime.now(UTC),
        )
        if not claimed:
            logger.info("event=sync_claim_skipped job_id=%s", job.id)
            return
        await self._progress(job, repo, SyncJobStatus.FETCHING_TREE)

        branch = await self._resolve_branch(repo, provider, job)
        if repo.last_commit_sha:
            await self._log(
                repo.id,
                LogLevel.INFO,
                "Checking for changes since last sync "
                f"({repo.last_commit_sha[:SHORT_SHA_LENGTH]})...",
                job,
            )
        plan = await DiffStrategy(provider).plan(repo, branch)

        if plan.fallback_reason is not None:
            await self._log(
                repo.id,
                LogLevel.WARN,
                "Could not compare with last synced commit, "
                "falling back to full sync",
                job,
                details=plan.fallback_reason,
            )
        if plan.no_changes:
            await self._log(
                repo.id,
                LogLevel.SUCCESS,
                "No changes detected since last sync",
                job,
            )
            await self._complete_empty(
                job, repo, synced_sha=plan.head_commit_sha
            )
            return
        if plan.empty_repository:
            await self._log(
                repo.id,
                LogLevel.WARN,
                "Repository appears to be empty (no branches/commits)",
                job,
            )
            await self._log(
                repo.id,
                LogLevel.SUCCESS,
                "Sync completed (empty repository)",
                job,
            )
            await self._complete_empty(job, repo)
            return

        await self._apply_removals(job, repo, plan)

        entries = plan.entries
        if config.max_files is not None and len(entries) > config.max_files:
            logger.info(
                "event=sync_truncated job_id=%s total=%d limit=%d",
                job.id,
                len(entries),
                config.max_files,
            )
            await self._log(
                repo.id,
                LogLevel.INFO,
                f"Limiting to {config.max_files} files "
                f"({len(entries)} total)",
                job,
            )
            entries = entries[: config.max_files]

        if not entries:
            await self._log(
                repo.id, LogLevel.SUCCESS, "No files to process", job
            )
            await self._complete_empty(
                job, repo, synced_sha=plan.head_commit_sha
            )
            return

        total = await self._jobs.replace_file_jobs(job.id, repo.id, entries)
        moved = await self._jobs.try_set_status(
            job.id,
            {SyncJobStatus.FETCHING_TREE},
            SyncJobStatus.PROCESSING_FILES,
            total_files=total,
        )
        if not moved:
            logger.warning(
                "event=sync_lost_claim job_id=%s phase=processing",
                job.id,
            )
            return
        await self._log(
            repo.id,
            LogLevel.INFO,
            f"Created {total} file sync jobs ({plan.mode} sync)",
            job,
        )
        await self._progress(
            job, repo, SyncJobStatus.PROCESSING_FILES, _Counters(total)
        )

        counters = await self._process_files(job, repo, provider, total)
        if counters is None:
            return

        if not plan.is_incremental:
            # Compare against the whole listing, not the max_files slice.
            current_paths = {entry.path for entry in plan.entries}
            removed = await self._file_store.delete_missing(
                repo.id, current_paths
            )
            if removed:
                await self._log(
                    repo.id,
                    LogLevel.INFO,
                    f"Removed {removed} files no longer in the repository",
                    job,
                )

        if not await self._mark_completed(job, counters):
            return
        await self._repos.mark_synced(
            repo.id, plan.head_commit_sha, datetime.now(UTC)
        )

        duration = time.monotonic() - started
        logger.info(
            "event=sync_completed job_id=%s repo_id=%s processed=%d "
            "skipped=%d failed=%d duration_s=%.1f",
            job.id,
            repo.id,
            counters.processed,
            counters.skipped,
            counters.failed,
            duration,
        )
        await self._log(
            repo.id,
            LogLevel.SUCCESS,
            f"Sync completed in {duration:.1f}s",
            job,
            details=(
                f"{counters.processed} processed, "
                f"{counters.skipped} skipped, {counters.failed} failed"
            ),
        )
        await self._trigger_embedding(repo.id, job)
        # The final event closes the repo's stream, so it goes last.
        await self._progress(job, repo, SyncJobStatus.COMPLETED, counters)

    async def fail_job(self, job_id: str, error: str) -> bool:
        """Mark a live job FAILED and notify. False if already terminal."""
        message = truncate_error(error)
        changed = await self._jobs.try_set_status(
            job_id,
            set(LIVE_SYNC_STATUSES),
            SyncJobStatus.FAILED,
            error=message,
            completed_at=datetime.now(UTC),
        )
        if not changed:
            logger.warning("event=fail_job_skipped job_id=%s", job_id)
            return False

        logger.error("event=sync_failed job_id=%s error=%s", job_id, message)
        job = await self._jobs.get(job_id)
        if job is None:
            return True
        await self._log(
            job.repo_id, LogLevel.ERROR, "Sync failed", job, details=message
        )
        await self._emit_progress(
            ProgressEvent(
                job_id=job.id,
                repo_id=job.repo_id,
                status=SyncJobStatus.FAILED,
                processed_files=job.processed_files or 0,
                total_files=job.total_files or 0,
                skipped_files=job.skipped_files or 0,
                failed_files=job.failed_files or 0,
                error=message,
            )
        )
        return True

    # ── Phases ───────────────────────────────────────────

    async def _resolve_branch(
        self, repo: Repo, provider: SourceProvider, job: RepoSyncJob
    ) -> str:
        """Upstream default branch; cached value or "main" on failure."""
        try:
            branch = await provider.get_default_branch()
        except Exception as exc:
            branch = repo.default_branch or DEFAULT_BRANCH_FALLBACK
            logger.warning(
                "event=default_branch_unavailable repo=%s fallback=%s "
                "error=%s",
                repo.full_name,
                branch,
                exc,
            )
            await self._log(
                repo.id,
                LogLevel.WARN,
                f"Could not detect default branch, using: {branch}",
                job,
            )
            return branch

        if branch != repo.default_branch:
            await self._repos.update_default_branch(repo.id, branch)
            repo.default_branch = branch
        await self._log(
            repo.id, LogLevel.INFO, f"Using branch: {branch}", job
        )
        return branch

    async def _apply_removals(
        self, job: RepoSyncJob, repo: Repo, plan: WorkPlan
    ) -> None:
        if not plan.is_incremental:
            await self._log(
                repo.id,
                LogLevel.INFO,
                f"Found {len(plan.entries)} files in repository",
                job,
            )
            return
        added_or_modified = len(plan.entries)
        await self._log(
            repo.id,
            LogLevel.INFO,
            f"Incremental sync: {added_or_modified} added or modified, "
            f"{len(plan.removed)} removed",
            job,
        )
        if plan.removed:
            deleted = await self._file_store.delete_paths(
                repo.id, plan.removed
            )
            await self._log(
                repo.id,
                LogLevel.SUCCESS,
                f"Removed {deleted} deleted files",
                job,
            )

    async def _process_files(
        self,
        job: RepoSyncJob,
        repo: Repo,
        provider: SourceProvider,
        total: int,
    ) -> _Counters | None:
        """Run every file row. None when the job was taken away mid-run."""
        config = job.sync_config
        budget = ContentBudget(config.max_content_files)
        processor = FileProcessor(provider, self._file_store, self._settings)
        counters = _Counters(total)

        for file_job in await self._jobs.list_file_jobs(job.id):
            try:
                await self._jobs.update_file_job(
                    file_job.id, FileJobStatus.PROCESSING
                )
                result = await processor.process(
                    file_job, budget, skip_content=config.skip_content
                )
                await self._record(job, repo, file_job, result, counters)
            except Exception as exc:
                logger.exception(
                    "event=file_error job_id=%s path=%s",
                    job.id,
                    file_job.path,
                )
                message = _error_text(exc)
                await self._jobs.update_file_job(
                    file_job.id,
                    FileJobStatus.FAILED,
                    error=message,
                    processed_at=datetime.now(UTC),
                )
                counters.failed += 1
                await self._log(
                    repo.id,
                    LogLevel.ERROR,
                    f"Exception processing: {file_job.path}",
                    job,
                    details=message,
                )
            counters.processed += 1
            if not await self._checkpoint(job, repo, file_job, counters):
                logger.warning(
                    "event=sync_lost_claim job_id=%s phase=files "
                    "processed=%d",
                    job.id,
                    counters.processed,
                )
                return None

        return counters

    async def _record(
        self,
        job: RepoSyncJob,
        repo: Repo,
        file_job: FileSyncJob,
        result: FileResult,
        counters: _Counters,
    ) -> None:
        now = datetime.now(UTC)
        # Counters move only once the row write has succeeded.
        if result.outcome == "skipped":
            await self._jobs.update_file_job(
                file_job.id,
                FileJobStatus.SKIPPED,
                skip_reason=result.reason,
                processed_at=now,
            )
            counters.skipped += 1
            if (
                counters.skipped <= SKIP_LOG_FIRST
                or counters.skipped % SKIP_LOG_EVERY == 0
            ):
                await self._log(
                    repo.id,
                    LogLevel.INFO,
                    f"Skipped: {file_job.path}",
                    job,
                    details=result.reason,
                )
        elif result.outcome == "failed":
            await self._jobs.update_file_job(
                file_job.id,
                FileJobStatus.FAILED,
                error=truncate_error(result.error or "unknown error"),
                processed_at=now,
            )
            counters.failed += 1
            await self._log(
                repo.id,
                LogLevel.ERROR,
                f"Failed: {file_job.path}",
                job,
                details=result.error,
            )
        else:
            await self._jobs.update_file_job(
                file_job.id, FileJobStatus.COMPLETED, processed_at=now
            )

    async def _checkpoint(
        self,
        job: RepoSyncJob,
        repo: Repo,
        file_job: FileSyncJob,
        counters: _Counters,
    ) -> bool:
        """Persist counters every few files.

        Returns False once the job has left PROCESSING_FILES, e.g. when
        another process reset or failed it.
        """
        is_last = counters.processed == counters.total
        if counters.processed % PROGRESS_CHECKPOINT_EVERY == 0 or is_last:
            if not await self._jobs.update_progress(
                job.id,
                processed_files=counters.processed,
                skipped_files=counters.skipped,
                failed_files=counters.failed,
            ):
                return False
            await self._progress(
                job,
                repo,
                SyncJobStatus.PROCESSING_FILES,
                counters,
                current_file=file_job.path,
            )
        if counters.processed % PROGRESS_LOG_EVERY == 0 or is_last:
            pct = round(counters.processed / counters.total * 100)
            await self._log(
                repo.id,
                LogLevel.INFO,
                f"Progress: {counters.processed}/{counters.total} "
                f"files ({pct}%)",
                job,
            )
        return True

    async def _mark_completed(
        self, job: RepoSyncJob, counters: _Counters
    ) -> bool:
        completed = await self._jobs.try_set_status(
            job.id,
            set(IN_FLIGHT_SYNC_STATUSES),
            SyncJobStatus.COMPLETED,
            total_files=counters.total,
            processed_files=counters.processed,
            skipped_files=counters.skipped,
            failed_files=counters.failed,
            completed_at=datetime.now(UTC),
        )
        if not completed:
            logger.warning(
                "event=sync_lost_claim job_id=%s phase=complete", job.id
            )
            return False
        return True

    async def _complete_empty(
        self,
        job: RepoSyncJob,
        repo: Repo,
        *,
        synced_sha: str | None = None,
    ) -> None:
        """Zero-work completion: no file rows may survive for this job.

        The repo is marked synced at ``synced_sha`` only once the job
        itself reached COMPLETED.
        """
        if await self._jobs.count_file_jobs(job.id) > 0:
            await self._jobs.replace_file_jobs(job.id, repo.id, [])
        counters = _Counters(0)
        if not await self._mark_completed(job, counters):
            return
        if synced_sha is not None:
            await self._repos.mark_synced(
                repo.id, synced_sha, datetime.now(UTC)
            )
        await self._progress(job, repo, SyncJobStatus.COMPLETED, counters)

    async def _trigger_embedding(self, repo_id: str, job: RepoSyncJob) -> None:
        """Hand off to the embedding pipeline. Errors are warnings only."""
        if self._embedding_trigger is None:
            return
        try:
            needing = await self._file_store.count_needing_embedding(repo_id)
            if needing == 0:
                await self._log(
                    repo_id,
                    LogLevel.INFO,
                    "All files already have embeddings",
                    job,
                )
                return
            await self._embedding_trigger.notify_may_need_embedding(repo_id)
            await self._log(
                repo_id,
                LogLevel.INFO,
                "Embedding requested",
                job,
                details=f"{needing} files need embedding",
            )
        except Exception as exc:
            logger.warning(
                "event=embedding_trigger_failed repo_id=%s error=%s",
                repo_id,
                exc,
            )
            await self._log(
                repo_id,
                LogLevel.WARN,
                "Could not trigger embedding",
                job,
                details=_error_text(exc),
            )

    # ── Notifications ────────────────────────────────────

    async def _progress(
        self,
        job: RepoSyncJob,
        repo: Repo,
        status: SyncJobStatus,
        counters: _Counters | None = None,
        *,
        current_file: str | None = None,
    ) -> None:
        counters = counters or _Counters(0)
        await self._emit_progress(
            ProgressEvent(
                job_id=job.id,
                repo_id=repo.id,
                status=status,
                processed_files=counters.processed,
                total_files=counters.total,
                skipped_files=counters.skipped,
                failed_files=counters.failed,
                current_file=current_file,
            )
        )

    async def _emit_progress(self, event: ProgressEvent) -> None:
        try:
            await self._notifier.progress(event)
        except Exception:
            logger.warning(
                "event=notifier_error kind=progress job_id=%s",
                event.job_id,
                exc_info=True,
            )

    async def _log(
        self,
        repo_id: str,
        level: LogLevel,
        message: str,
        job: RepoSyncJob,
        *,
        details: str | None = None,
    ) -> None:
        try:
            await self._notifier.log(
                LogEntry(
                    repo_id=repo_id,
                    level=level,
                    message=message,
                    details=details,
                    job_id=job.id,
                )
            )
        except Exception:
            logger.warning(
                "event=notifier_error kind=log job_id=%s",
                job.id,
                exc_info=True,
            )
