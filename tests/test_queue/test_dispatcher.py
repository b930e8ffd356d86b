"""Tests for InMemoryDispatcher key de-duplication."""

from __future__ import annotations

import asyncio

import pytest

from reposync.queue.dispatcher import InMemoryDispatcher, dispatch_key


def test_dispatch_key_is_stable() -> None:
    assert dispatch_key("r1") == "sync-r1"
    assert dispatch_key("r1") == dispatch_key("r1")


@pytest.mark.asyncio
async def test_duplicate_keys_are_rejected() -> None:
    d = InMemoryDispatcher()

    assert await d.enqueue("sync-r1", {"job_id": "j1"}) is True
    assert await d.enqueue("sync-r1", {"job_id": "j2"}) is False
    assert await d.size() == 1


@pytest.mark.asyncio
async def test_key_stays_present_until_ack() -> None:
    d = InMemoryDispatcher()
    await d.enqueue("sync-r1", {"job_id": "j1"})

    delivery = await d.receive(timeout=0.1)

    assert delivery is not None
    assert delivery.payload == {"job_id": "j1"}
    assert await d.contains("sync-r1") is True
    assert await d.enqueue("sync-r1", {}) is False

    await d.ack("sync-r1")
    assert await d.contains("sync-r1") is False
    assert await d.enqueue("sync-r1", {}) is True


@pytest.mark.asyncio
async def test_receive_times_out_when_empty() -> None:
    d = InMemoryDispatcher()
    assert await d.receive(timeout=0.01) is None


@pytest.mark.asyncio
async def test_receive_wakes_on_enqueue() -> None:
    d = InMemoryDispatcher()
    waiter = asyncio.create_task(d.receive(timeout=2.0))
    await asyncio.sleep(0)

    await d.enqueue("sync-r2", {"repo_id": "r2"})
    delivery = await waiter

    assert delivery is not None
    assert delivery.key == "sync-r2"


@pytest.mark.asyncio
async def test_fifo_order() -> None:
    d = InMemoryDispatcher()
    for key in ("sync-a", "sync-b", "sync-c"):
        await d.enqueue(key, {})

    keys = []
    for _ in range(3):
        delivery = await d.receive(timeout=0.1)
        assert delivery is not None
        keys.append(delivery.key)

    assert keys == ["sync-a", "sync-b", "sync-c"]


@pytest.mark.asyncio
async def test_flush_loses_everything() -> None:
    d = InMemoryDispatcher()
    await d.enqueue("sync-a", {})
    await d.enqueue("sync-b", {})
    await d.receive(timeout=0.1)

    assert await d.flush() == 2
    assert await d.size() == 0
    assert await d.active_count() == 0
    assert await d.contains("sync-a") is False
