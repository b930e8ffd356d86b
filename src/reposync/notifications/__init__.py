"""Notification layer -- notifier interface, dispatcher + pluggable handlers."""

from __future__ import annotations

from reposync.api.event_bus import SyncEventBus
from reposync.notifications.dispatcher import (
    NotificationDispatcher,
    NullNotifier,
    SyncNotifier,
)
from reposync.notifications.events import (
    LogEntry,
    ProgressEvent,
    SyncNotification,
)
from reposync.notifications.handlers.console import (
    ConsoleNotificationHandler,
)
from reposync.notifications.handlers.event_bus import (
    EventBusNotificationHandler,
)

__all__ = [
    "LogEntry",
    "NotificationDispatcher",
    "NullNotifier",
    "ProgressEvent",
    "SyncNotification",
    "SyncNotifier",
    "initialize_notifications",
]


def initialize_notifications(
    bus: SyncEventBus | None = None,
    *,
    console: bool = True,
) -> NotificationDispatcher:
    """Create dispatcher and register handlers."""
    dispatcher = NotificationDispatcher()
    if console:
        dispatcher.register(ConsoleNotificationHandler())
    if bus is not None:
        dispatcher.register(EventBusNotificationHandler(bus))
    return dispatcher
