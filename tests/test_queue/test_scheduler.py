"""Tests for PeriodicSyncScheduler."""

from __future__ import annotations

import pytest

from reposync.constants import SyncJobStatus, TriggerSource
from reposync.models.repo import Repo
from reposync.models.sync_job import RepoSyncJob
from reposync.queue.dispatcher import InMemoryDispatcher
from reposync.queue.scheduler import PeriodicSyncScheduler
from reposync.repositories.fakes import (
    FakeRepoRepository,
    FakeSyncJobRepository,
)
from reposync.services.sync_service import SyncService


@pytest.fixture
def repos() -> FakeRepoRepository:
    return FakeRepoRepository()


@pytest.fixture
def jobs() -> FakeSyncJobRepository:
    return FakeSyncJobRepository()


@pytest.fixture
def service(
    repos: FakeRepoRepository, jobs: FakeSyncJobRepository
) -> SyncService:
    return SyncService(repos, jobs, InMemoryDispatcher())


@pytest.mark.asyncio
async def test_tick_queues_idle_repos_only(
    repos: FakeRepoRepository,
    jobs: FakeSyncJobRepository,
    service: SyncService,
) -> None:
    idle = await repos.create(Repo(full_name="octo/idle"))
    busy = await repos.create(Repo(full_name="octo/busy"))
    await jobs.create(
        RepoSyncJob(repo_id=busy.id, status=SyncJobStatus.PROCESSING_FILES)
    )
    scheduler = PeriodicSyncScheduler(service, interval_minutes=5)

    assert await scheduler.tick() == 1

    queued = await jobs.find_live_for_repo(idle.id)
    assert queued is not None
    assert queued.triggered_by == TriggerSource.SCHEDULED

    # second tick finds the job just created
    assert await scheduler.tick() == 0


@pytest.mark.asyncio
async def test_zero_interval_disables(service: SyncService) -> None:
    scheduler = PeriodicSyncScheduler(service, interval_minutes=0)

    assert scheduler.enabled is False
    await scheduler.start()
    assert scheduler.is_running is False


@pytest.mark.asyncio
async def test_start_stop(service: SyncService) -> None:
    scheduler = PeriodicSyncScheduler(service, interval_minutes=60)

    await scheduler.start()
    assert scheduler.is_running
    await scheduler.stop()
    assert not scheduler.is_running
