"""Work announcement: tells a worker that a sync job is ready.

The dispatcher is ephemeral. Its whole state may be lost on restart
(or by ``flush``); the ledger stays authoritative and the reconciler
re-enqueues any PENDING job whose key is missing here.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol

from reposync.constants import SYNC_KEY_PREFIX

logger = logging.getLogger(__name__)


def dispatch_key(repo_id: str) -> str:
    """Stable dispatcher key derived from the job's repo."""
    return f"{SYNC_KEY_PREFIX}{repo_id}"


@dataclass(frozen=True)
class Delivery:
    key: str
    payload: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )


class Dispatcher(Protocol):
    async def enqueue(self, key: str, payload: dict[str, Any]) -> bool:
        """Announce work. False when the key is already present."""
        ...

    async def contains(self, key: str) -> bool: ...

    async def receive(self, timeout: float | None = None) -> Delivery | None:
        """Next delivery, or None when nothing arrived within timeout."""
        ...

    async def ack(self, key: str) -> None: ...

    async def size(self) -> int: ...


class InMemoryDispatcher:
    """In-process broker with key de-duplication.

    A key stays present from ``enqueue`` until ``ack``, so a delivered
    but unfinished job is never enqueued a second time.
    """

    def __init__(self) -> None:
        self._queue: deque[Delivery] = deque()
        self._queued: set[str] = set()
        self._active: set[str] = set()
        self._available = asyncio.Condition()

    async def enqueue(self, key: str, payload: dict[str, Any]) -> bool:
        async with self._available:
            if key in self._queued or key in self._active:
                return False
            self._queue.append(Delivery(key=key, payload=dict(payload)))
            self._queued.add(key)
            self._available.notify()
        logger.debug("event=dispatch_enqueued key=%s", key)
        return True

    async def contains(self, key: str) -> bool:
        return key in self._queued or key in self._active

    async def receive(self, timeout: float | None = None) -> Delivery | None:
        async with self._available:
            if not self._queue:
                try:
                    await asyncio.wait_for(
                        self._available.wait_for(lambda: bool(self._queue)),
                        timeout,
                    )
                except TimeoutError:
                    return None
            delivery = self._queue.popleft()
            self._queued.discard(delivery.key)
            self._active.add(delivery.key)
            return delivery

    async def ack(self, key: str) -> None:
        async with self._available:
            self._active.discard(key)

    async def size(self) -> int:
        return len(self._queue)

    async def active_count(self) -> int:
        return len(self._active)

    async def flush(self) -> int:
        """Drop every queued and active key. Returns how many were lost."""
        async with self._available:
            lost = len(self._queued) + len(self._active)
            self._queue.clear()
            self._queued.clear()
            self._active.clear()
        logger.warning("event=dispatch_flushed lost=%d", lost)
        return lost
