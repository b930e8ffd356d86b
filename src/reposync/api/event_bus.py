"""In-memory per-repo pub/sub with replay for SSE sync streams.

A browser that opens /repos/{id}/sync/events while a job is already
running receives every event published so far for that job (replay)
followed by live events. The channel is closed when the job's final
progress event is published.

Single-process only: each worker process has its own instance.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field


@dataclass
class _Channel:
    """Per-repo event channel with replay buffer."""

    events: deque[dict[str, str]] = field(
        default_factory=lambda: deque[dict[str, str]](),
    )
    subscribers: list[asyncio.Queue[dict[str, str] | None]] = field(
        default_factory=lambda: list[asyncio.Queue[dict[str, str] | None]](),
    )


class SyncEventBus:
    """Per-repo pub/sub with replay buffer.

    ``publish`` is synchronous and opens the channel on first use, so
    notification handlers never wait on the bus.
    """

    def __init__(self, max_replay: int = 500) -> None:
        self._channels: dict[str, _Channel] = {}
        self._lock = asyncio.Lock()
        self._max_replay = max_replay

    def has_channel(self, repo_id: str) -> bool:
        return repo_id in self._channels

    def publish(self, repo_id: str, event: dict[str, str]) -> None:
        """Publish *event* to current subscribers and the replay buffer."""
        ch = self._channels.get(repo_id)
        if ch is None:
            ch = _Channel(events=deque(maxlen=self._max_replay))
            self._channels[repo_id] = ch
        ch.events.append(event)
        for q in ch.subscribers:
            q.put_nowait(event)

    def get_latest_events(self, repo_id: str) -> list[dict[str, str]]:
        """Return a copy of the replay buffer for read-only access."""
        ch = self._channels.get(repo_id)
        if ch is None:
            return []
        return list(ch.events)

    async def subscribe(
        self,
        repo_id: str,
    ) -> asyncio.Queue[dict[str, str] | None]:
        """Subscribe to *repo_id* and receive replayed + live events.

        If no channel exists (no job running), returns a queue holding
        only the ``None`` end-of-stream sentinel.
        """
        async with self._lock:
            ch = self._channels.get(repo_id)
            q: asyncio.Queue[dict[str, str] | None] = asyncio.Queue()
            if ch is None:
                q.put_nowait(None)
                return q
            for ev in ch.events:
                q.put_nowait(ev)
            ch.subscribers.append(q)
            return q

    async def unsubscribe(
        self,
        repo_id: str,
        queue: asyncio.Queue[dict[str, str] | None],
    ) -> None:
        async with self._lock:
            ch = self._channels.get(repo_id)
            if ch is not None and queue in ch.subscribers:
                ch.subscribers.remove(queue)

    async def complete(self, repo_id: str) -> None:
        """Signal end-of-stream and remove the channel. Idempotent."""
        async with self._lock:
            ch = self._channels.pop(repo_id, None)
        if ch is None:
            return
        for q in ch.subscribers:
            q.put_nowait(None)
