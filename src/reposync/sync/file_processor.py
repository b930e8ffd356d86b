"""Fetch or skip a single file's content.

The processor writes the local mirror (StoredFile) but never touches
ledger rows: it hands a FileResult back to the orchestrator.
"""

from __future__ import annotations

import logging

from reposync.config import Settings
from reposync.constants import SkipReason
from reposync.models.stored_file import StoredFile
from reposync.models.sync_job import FileSyncJob
from reposync.repositories.protocols import FileStore
from reposync.resilience.errors import (
    FileNotFoundUpstreamError,
    FileTooLargeUpstreamError,
    SourceProviderError,
)
from reposync.sync.classifier import classify, count_lines, detect_language
from reposync.sync.providers import SourceProvider
from reposync.sync.schemas import FileResult

logger = logging.getLogger(__name__)

# Skips decided by job config, not by the file: a later job must retry them.
_CONFIG_SKIPS = frozenset({
    SkipReason.SKIP_CONTENT,
    SkipReason.CONTENT_BUDGET,
})


class ContentBudget:
    """Caps the number of content fetches in one job.

    Only real fetch attempts consume the budget; classifier skips and
    ``skip_content`` skips never do.
    """

    def __init__(self, limit: int | None = None) -> None:
        self.limit = limit
        self.used = 0

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self.used >= self.limit

    def consume(self) -> None:
        self.used += 1


class FileProcessor:
    def __init__(
        self,
        provider: SourceProvider,
        file_store: FileStore,
        settings: Settings | None = None,
    ) -> None:
        self._provider = provider
        self._file_store = file_store
        self._settings = settings or Settings()

    async def process(
        self,
        file_job: FileSyncJob,
        budget: ContentBudget,
        *,
        skip_content: bool = False,
    ) -> FileResult:
        """Mirror one file and report ok / skipped / failed.

        Unexpected errors propagate; the orchestrator records them as
        a failed file.
        """
        existing = await self._file_store.get(
            file_job.repo_id, file_job.path
        )
        if (
            existing is not None
            and existing.sha == file_job.sha
            and existing.skipped_reason not in _CONFIG_SKIPS
        ):
            logger.debug(
                "event=file_unchanged path=%s sha=%s",
                file_job.path,
                file_job.sha,
            )
            return FileResult.skipped(SkipReason.UNCHANGED)

        check = classify(
            file_job.path,
            file_job.size,
            self._settings.max_file_size_bytes,
        )
        skip_reason: SkipReason | None = check.reason if check.skip else None
        if skip_reason is None and skip_content:
            skip_reason = SkipReason.SKIP_CONTENT
        if skip_reason is None and budget.exhausted:
            skip_reason = SkipReason.CONTENT_BUDGET

        content: str | None = None
        if skip_reason is None:
            budget.consume()
            try:
                content = await self._provider.fetch_content(
                    file_job.path, file_job.sha
                )
            except FileNotFoundUpstreamError:
                logger.warning(
                    "event=file_not_found path=%s", file_job.path
                )
                return FileResult.skipped(SkipReason.NOT_FOUND)
            except FileTooLargeUpstreamError:
                logger.warning(
                    "event=file_too_large_upstream path=%s",
                    file_job.path,
                )
                skip_reason = SkipReason.TOO_LARGE
            except SourceProviderError as exc:
                logger.warning(
                    "event=file_fetch_failed path=%s status=%s error=%s",
                    file_job.path,
                    exc.status_code,
                    exc,
                )
                return FileResult.failed(str(exc))

        await self._file_store.upsert(
            StoredFile(
                repo_id=file_job.repo_id,
                path=file_job.path,
                sha=file_job.sha,
                size=file_job.size,
                content=content,
                encoding="utf-8" if content is not None else None,
                skipped_reason=skip_reason,
                language=detect_language(file_job.path),
                loc=count_lines(content) if content is not None else None,
            )
        )

        if skip_reason is not None:
            return FileResult.skipped(skip_reason)
        return FileResult.ok(content)
