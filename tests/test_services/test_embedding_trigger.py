"""Tests for LedgerEmbeddingTrigger."""

from __future__ import annotations

import pytest

from reposync.constants import EmbedJobStatus
from reposync.models.embed_job import EmbedJob
from reposync.models.stored_file import StoredFile
from reposync.repositories.fakes import FakeEmbedJobRepository, FakeFileStore
from reposync.services.embedding_trigger import LedgerEmbeddingTrigger


@pytest.fixture
def embed_jobs() -> FakeEmbedJobRepository:
    return FakeEmbedJobRepository()


@pytest.fixture
def files() -> FakeFileStore:
    return FakeFileStore()


@pytest.mark.asyncio
async def test_creates_pending_job_with_file_count(
    embed_jobs: FakeEmbedJobRepository, files: FakeFileStore
) -> None:
    for path in ("a.py", "b.py"):
        await files.upsert(
            StoredFile(
                repo_id="r1", path=path, sha=f"sha-{path}", content="x"
            )
        )
    trigger = LedgerEmbeddingTrigger(embed_jobs, files)

    await trigger.notify_may_need_embedding("r1")

    created = await embed_jobs.list_by_repo("r1")
    assert len(created) == 1
    assert created[0].status == EmbedJobStatus.PENDING
    assert created[0].total_files == 2


@pytest.mark.asyncio
async def test_live_job_absorbs_the_request(
    embed_jobs: FakeEmbedJobRepository, files: FakeFileStore
) -> None:
    await embed_jobs.create(
        EmbedJob(repo_id="r1", status=EmbedJobStatus.CHUNKING)
    )
    trigger = LedgerEmbeddingTrigger(embed_jobs, files)

    await trigger.notify_may_need_embedding("r1")
    await trigger.notify_may_need_embedding("r1")

    assert len(await embed_jobs.list_by_repo("r1")) == 1


@pytest.mark.asyncio
async def test_finished_job_does_not_block_a_new_one(
    embed_jobs: FakeEmbedJobRepository, files: FakeFileStore
) -> None:
    await embed_jobs.create(
        EmbedJob(repo_id="r1", status=EmbedJobStatus.COMPLETED)
    )
    trigger = LedgerEmbeddingTrigger(embed_jobs, files)

    await trigger.notify_may_need_embedding("r1")

    statuses = sorted(j.status for j in await embed_jobs.list_by_repo("r1"))
    assert statuses == [EmbedJobStatus.COMPLETED, EmbedJobStatus.PENDING]
