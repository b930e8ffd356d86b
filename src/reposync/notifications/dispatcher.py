"""Notifier interface and fan-out dispatcher for sync notifications."""

from __future__ import annotations

import logging
from typing import Protocol

from reposync.notifications.events import (
    LogEntry,
    ProgressEvent,
    SyncNotification,
)
from reposync.notifications.handlers import NotificationHandler

logger = logging.getLogger(__name__)


class SyncNotifier(Protocol):
    """Receives progress and log notifications from the orchestrator.

    Implementations must never raise and must not block on I/O:
    a notification failure never affects a sync job.
    """

    async def progress(self, event: ProgressEvent) -> None: ...
    async def log(self, entry: LogEntry) -> None: ...


class NullNotifier:
    """Discards every notification."""

    async def progress(self, event: ProgressEvent) -> None:
        return None

    async def log(self, entry: LogEntry) -> None:
        return None


class NotificationDispatcher:
    """Fan-out dispatcher -- emits notifications to all registered handlers.

    Best-effort delivery: handler errors are logged, never raised.
    """

    def __init__(self) -> None:
        self._handlers: list[NotificationHandler] = []

    def register(self, handler: NotificationHandler) -> None:
        """Register a handler. Duplicates (by name) are ignored."""
        if not any(h.name == handler.name for h in self._handlers):
            self._handlers.append(handler)

    async def emit(self, notification: SyncNotification) -> None:
        """Best-effort fan-out to all registered handlers."""
        for handler in self._handlers:
            try:
                await handler.handle(notification)
            except Exception:
                logger.warning(
                    "event=notification_handler_error handler=%s",
                    handler.name,
                    exc_info=True,
                )

    async def progress(self, event: ProgressEvent) -> None:
        await self.emit(event)

    async def log(self, entry: LogEntry) -> None:
        await self.emit(entry)

    @property
    def handler_count(self) -> int:
        return len(self._handlers)
