"""Typed notifications emitted while a sync job runs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeAlias

from reposync.constants import LogLevel, SSEEvent, SyncJobStatus


@dataclass(frozen=True)
class ProgressEvent:
    """Snapshot of a job's counters."""

    job_id: str
    repo_id: str
    status: str
    processed_files: int = 0
    total_files: int = 0
    skipped_files: int = 0
    failed_files: int = 0
    current_file: str | None = None
    error: str | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC)
    )

    @property
    def sse_event(self) -> SSEEvent:
        if self.status == SyncJobStatus.COMPLETED:
            return SSEEvent.COMPLETE
        if self.status == SyncJobStatus.FAILED:
            return SSEEvent.ERROR
        return SSEEvent.PROGRESS

    @property
    def is_final(self) -> bool:
        return self.status in (
            SyncJobStatus.COMPLETED,
            SyncJobStatus.FAILED,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class LogEntry:
    """User-facing log line for a repo's sync stream."""

    repo_id: str
    level: LogLevel
    message: str
    details: str | None = None
    job_id: str | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC)
    )

    @property
    def sse_event(self) -> SSEEvent:
        return SSEEvent.LOG

    @property
    def is_final(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


SyncNotification: TypeAlias = ProgressEvent | LogEntry
