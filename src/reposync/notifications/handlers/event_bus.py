"""Event bus notification handler -- feeds the SSE progress stream."""

from __future__ import annotations

import json

from reposync.api.event_bus import SyncEventBus
from reposync.notifications.events import SyncNotification


class EventBusNotificationHandler:
    """Publishes notifications on the repo's event bus channel.

    A final progress event (COMPLETED / FAILED) closes the channel so
    subscribed SSE streams end.
    """

    def __init__(self, bus: SyncEventBus) -> None:
        self._bus = bus

    @property
    def name(self) -> str:
        return "event_bus"

    async def handle(self, notification: SyncNotification) -> None:
        self._bus.publish(
            notification.repo_id,
            {
                "event": notification.sse_event,
                "data": json.dumps(notification.to_dict()),
            },
        )
        if notification.is_final:
            await self._bus.complete(notification.repo_id)
