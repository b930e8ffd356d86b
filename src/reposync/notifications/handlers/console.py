"""Console notification handler -- key=value log output."""

from __future__ import annotations

import logging

from reposync.constants import LogLevel
from reposync.notifications.events import LogEntry, SyncNotification

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class ConsoleNotificationHandler:
    """Logs notifications as key=value messages."""

    @property
    def name(self) -> str:
        return "console"

    async def handle(self, notification: SyncNotification) -> None:
        if isinstance(notification, LogEntry):
            parts = [
                "event=sync_log",
                f"repo_id={notification.repo_id}",
                f"level={notification.level}",
                f"message={notification.message!r}",
            ]
            if notification.details:
                parts.append(f"details={notification.details!r}")
            logger.log(
                _LOG_LEVELS.get(notification.level, logging.INFO),
                " ".join(parts),
            )
            return

        parts = [
            "event=sync_progress",
            f"job_id={notification.job_id}",
            f"repo_id={notification.repo_id}",
            f"status={notification.status}",
            f"processed={notification.processed_files}",
            f"total={notification.total_files}",
            f"skipped={notification.skipped_files}",
            f"failed={notification.failed_files}",
        ]
        if notification.error:
            parts.append(f"error={notification.error!r}")
        logger.debug(" ".join(parts))
