"""Shared constants: single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so downstream code (JSON, SQL,
SSE payloads) works unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class SyncJobStatus(StrEnum):
    """RepoSyncJob lifecycle status."""

    PENDING = "PENDING"
    FETCHING_TREE = "FETCHING_TREE"
    PROCESSING_FILES = "PROCESSING_FILES"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class FileJobStatus(StrEnum):
    """FileSyncJob status within a sync job."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class EmbedJobStatus(StrEnum):
    """EmbedJob lifecycle status (consumed by the embedding pipeline)."""

    PENDING = "PENDING"
    CHUNKING = "CHUNKING"
    EMBEDDING = "EMBEDDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class SkipReason(StrEnum):
    """Why a file's content was not fetched.

    The first five come from the classifier; the rest are decided
    by the file processor at fetch time.
    """

    TOO_LARGE = "too_large"
    IGNORED_DIRECTORY = "ignored_directory"
    LOCK_FILE = "lock_file"
    BINARY_EXTENSION = "binary_extension"
    GENERATED_FILE = "generated_file"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    SKIP_CONTENT = "skip_content"
    CONTENT_BUDGET = "content_budget"


class SyncMode(StrEnum):
    """Which diff strategy produced the work set."""

    FULL = "full"
    INCREMENTAL = "incremental"


class TriggerSource(StrEnum):
    """Who asked for a sync job."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    REQUEUE = "requeue"
    API = "api"
    CLI = "cli"


class LogLevel(StrEnum):
    """Levels for user-facing sync log entries."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    SUCCESS = "success"


class SSEEvent(StrEnum):
    """Server-Sent Event type names."""

    PROGRESS = "progress"
    LOG = "log"
    COMPLETE = "complete"
    ERROR = "error"


# ── Status Groups ────────────────────────────────────────

TERMINAL_SYNC_STATUSES = frozenset({
    SyncJobStatus.COMPLETED,
    SyncJobStatus.FAILED,
    SyncJobStatus.CANCELLED,
})

IN_FLIGHT_SYNC_STATUSES = frozenset({
    SyncJobStatus.FETCHING_TREE,
    SyncJobStatus.PROCESSING_FILES,
})

LIVE_SYNC_STATUSES = frozenset({
    SyncJobStatus.PENDING,
    *IN_FLIGHT_SYNC_STATUSES,
})

TERMINAL_FILE_STATUSES = frozenset({
    FileJobStatus.COMPLETED,
    FileJobStatus.SKIPPED,
    FileJobStatus.FAILED,
})

IN_FLIGHT_EMBED_STATUSES = frozenset({
    EmbedJobStatus.CHUNKING,
    EmbedJobStatus.EMBEDDING,
})

LIVE_EMBED_STATUSES = frozenset({
    EmbedJobStatus.PENDING,
    *IN_FLIGHT_EMBED_STATUSES,
})

# ── Ledger Messages ──────────────────────────────────────

RECOVERED_ERROR = "Recovered after service restart"
USER_CANCELLED_ERROR = "Cancelled by user"


def stale_error(max_age_minutes: int) -> str:
    """Explanatory error stored on a PENDING job cancelled for age."""
    return (
        f"Cancelled: pending for more than {max_age_minutes} minutes"
        " without being dispatched"
    )


# ── Orchestrator Cadence ─────────────────────────────────

PROGRESS_CHECKPOINT_EVERY = 10
PROGRESS_LOG_EVERY = 25
SKIP_LOG_FIRST = 5
SKIP_LOG_EVERY = 50
DEFAULT_BRANCH_FALLBACK = "main"
SHORT_SHA_LENGTH = 7

# ── Dispatcher ───────────────────────────────────────────

SYNC_KEY_PREFIX = "sync-"
WORKER_RECEIVE_TIMEOUT = 1.0

# ── Classifier Defaults ──────────────────────────────────

DEFAULT_MAX_FILE_SIZE_BYTES = 50 * 1024

# ── Retry Strategy ───────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_WAIT = 1
RETRY_MAX_WAIT = 15

# ── Circuit Breaker Configuration ────────────────────────

CB_PROVIDER_FAILURE_THRESHOLD = 5
CB_PROVIDER_RECOVERY_TIMEOUT = 60

# ── Misc ─────────────────────────────────────────────────

SSE_POLL_TIMEOUT = 0.5
ERROR_TRUNCATION_CHARS = 500
DEFAULT_JOB_LIST_LIMIT = 20

# ── Auth Exempt Paths ────────────────────────────────────

AUTH_EXEMPT_PATHS = frozenset({
    "/api/health",
    "/api/docs",
    "/api/redoc",
    "/api/openapi.json",
})

AUTH_EXEMPT_PREFIXES = ("/api/health",)


def truncate_error(message: str) -> str:
    """Clamp an error string before it is written to the ledger."""
    return message[:ERROR_TRUNCATION_CHARS]
