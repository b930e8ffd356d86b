"""Tests for runtime wiring: startup recovery feeds the worker pool."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.config import Settings
from reposync.constants import RECOVERED_ERROR, SyncJobStatus
from reposync.models.sync_job import RepoSyncJob
from reposync.repositories.sync_job_repo import SqlSyncJobRepository
from reposync.runtime import build_runtime
from reposync.sync.github import GitHubProviderFactory
from tests.conftest import FakeSourceProvider, StaticCredentials, entry


@pytest.mark.asyncio
async def test_crashed_job_is_recovered_and_finished(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    provider = FakeSourceProvider(entries=[entry("a.py")])
    runtime = build_runtime(
        Settings(_env_file=None, scheduled_sync_minutes=0),  # type: ignore[call-arg]
        session_factory,
        provider_factory=lambda repo, credential: provider,
        credentials=StaticCredentials(),
    )
    repo, _ = await runtime.sync_service.add_repo("octo/demo")
    jobs = SqlSyncJobRepository(session_factory)
    crashed = await jobs.create(
        RepoSyncJob(repo_id=repo.id, status=SyncJobStatus.PROCESSING_FILES)
    )

    result = await runtime.start()
    try:
        assert result.sync_jobs == [crashed.id]
        assert result.requeued == 1
        assert runtime.worker.is_running
        assert runtime.reconciler.is_running
        assert runtime.scheduler.is_running is False

        for _ in range(200):
            job = await jobs.get(crashed.id)
            assert job is not None
            if job.status == SyncJobStatus.COMPLETED:
                break
            await asyncio.sleep(0.02)
    finally:
        await runtime.stop()

    assert job.status == SyncJobStatus.COMPLETED
    # the recovery note is kept until the next failure overwrites it
    assert job.error == RECOVERED_ERROR
    assert not runtime.worker.is_running
    assert not runtime.reconciler.is_running


@pytest.mark.asyncio
async def test_default_wiring_uses_github(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    runtime = build_runtime(
        Settings(_env_file=None),  # type: ignore[call-arg]
        session_factory,
    )
    assert isinstance(runtime.provider_factory, GitHubProviderFactory)
    assert runtime.notifier.handler_count == 1
    await runtime.stop()
