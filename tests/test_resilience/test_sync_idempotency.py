"""Tests for IdempotencyGuard keyed on dispatch keys."""

from __future__ import annotations

import asyncio

import pytest

from reposync.queue.dispatcher import dispatch_key
from reposync.resilience.idempotency import IdempotencyGuard


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_creation() -> None:
    guard = IdempotencyGuard()
    call_count = 0

    async def _create() -> str:
        nonlocal call_count
        call_count += 1
        await asyncio.sleep(0.05)
        return "job-1"

    key = dispatch_key("repo-1")
    results = await asyncio.gather(
        *(guard.execute(key, _create) for _ in range(3))
    )

    assert [job for job, _ in results] == ["job-1", "job-1", "job-1"]
    assert [owner for _, owner in results].count(True) == 1
    assert call_count == 1


@pytest.mark.asyncio
async def test_distinct_repos_run_separately() -> None:
    guard = IdempotencyGuard()
    call_count = 0

    async def _create() -> str:
        nonlocal call_count
        call_count += 1
        return "ok"

    results = await asyncio.gather(
        guard.execute(dispatch_key("a"), _create),
        guard.execute(dispatch_key("b"), _create),
    )
    assert call_count == 2
    assert all(owner for _, owner in results)


@pytest.mark.asyncio
async def test_error_reaches_every_waiter() -> None:
    guard = IdempotencyGuard()

    async def _failing() -> str:
        await asyncio.sleep(0.02)
        raise ValueError("ledger down")

    results = await asyncio.gather(
        guard.execute("k", _failing),
        guard.execute("k", _failing),
        return_exceptions=True,
    )

    assert all(isinstance(r, ValueError) for r in results)
    assert guard.active_keys == []


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_owner_running() -> None:
    guard = IdempotencyGuard()
    release = asyncio.Event()

    async def _create() -> str:
        await release.wait()
        return "job-1"

    owner = asyncio.create_task(guard.execute("sync-r1", _create))
    await asyncio.sleep(0)
    waiter = asyncio.create_task(guard.execute("sync-r1", _create))
    await asyncio.sleep(0)

    waiter.cancel()
    release.set()

    assert await owner == ("job-1", True)
    with pytest.raises(asyncio.CancelledError):
        await waiter


@pytest.mark.asyncio
async def test_key_is_visible_while_running_and_released_after() -> None:
    guard = IdempotencyGuard()
    seen: list[list[str]] = []

    async def _op() -> str:
        seen.append(guard.active_keys)
        return "done"

    await guard.execute("sync-r1", _op)

    assert seen == [["sync-r1"]]
    assert guard.active_keys == []


@pytest.mark.asyncio
async def test_sequential_calls_each_execute() -> None:
    guard = IdempotencyGuard()
    calls: list[int] = []

    async def _op() -> int:
        calls.append(1)
        return len(calls)

    assert await guard.execute("k", _op) == (1, True)
    assert await guard.execute("k", _op) == (2, True)
