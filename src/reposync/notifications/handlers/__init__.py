"""Pluggable notification handler backends."""

from __future__ import annotations

from typing import Protocol

from reposync.notifications.events import SyncNotification


class NotificationHandler(Protocol):
    """Pluggable notification handler -- implement for each backend."""

    @property
    def name(self) -> str: ...

    async def handle(self, notification: SyncNotification) -> None: ...
