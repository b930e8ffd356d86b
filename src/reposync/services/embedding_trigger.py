"""Ledger-backed handoff to the downstream embedding pipeline."""

from __future__ import annotations

import logging

from reposync.constants import EmbedJobStatus
from reposync.models.embed_job import EmbedJob
from reposync.repositories.protocols import EmbedJobRepository, FileStore

logger = logging.getLogger(__name__)


class LedgerEmbeddingTrigger:
    """Creates a PENDING EmbedJob unless the repo already has a live one."""

    def __init__(
        self, embed_jobs: EmbedJobRepository, file_store: FileStore
    ) -> None:
        self._embed_jobs = embed_jobs
        self._file_store = file_store

    async def notify_may_need_embedding(self, repo_id: str) -> None:
        existing = await self._embed_jobs.find_live_for_repo(repo_id)
        if existing is not None:
            logger.info(
                "event=embed_job_exists repo_id=%s job_id=%s",
                repo_id,
                existing.id,
            )
            return
        needing = await self._file_store.count_needing_embedding(repo_id)
        job = await self._embed_jobs.create(
            EmbedJob(
                repo_id=repo_id,
                status=EmbedJobStatus.PENDING,
                total_files=needing,
            )
        )
        logger.info(
            "event=embed_job_created repo_id=%s job_id=%s files=%d",
            repo_id,
            job.id,
            needing,
        )
