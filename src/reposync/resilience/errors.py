"""Sync error hierarchy and error classification.

The hierarchy separates setup-fatal failures (the job never starts)
from source provider failures, which the orchestrator and file
processor map to fallbacks or per-file outcomes.

Classification drives retry in the source provider:
- TRANSIENT / SERVER / TIMEOUT are retried with backoff
- CLIENT / UNKNOWN are raised immediately
"""

from __future__ import annotations

import asyncio
from enum import Enum

import httpx


class SyncError(Exception):
    """Base class for sync engine errors."""


class SetupError(SyncError):
    """The job cannot start: the caller marks it FAILED."""


class RepoNotFoundError(SetupError):
    def __init__(self, repo_id: str) -> None:
        super().__init__(f"Repo not found: {repo_id}")
        self.repo_id = repo_id


class MissingCredentialError(SetupError):
    def __init__(self, full_name: str) -> None:
        super().__init__(
            f"No source credential found for repo: {full_name}"
        )
        self.full_name = full_name


class SourceProviderError(SyncError):
    """A source provider call failed.

    ``status_code`` carries the upstream HTTP status when there is one.
    """

    def __init__(
        self, message: str, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyRepositoryError(SourceProviderError):
    """The repository has no commits or branches yet."""


class FileNotFoundUpstreamError(SourceProviderError):
    def __init__(self, path: str) -> None:
        super().__init__(f"File not found upstream: {path}", 404)
        self.path = path


class FileTooLargeUpstreamError(SourceProviderError):
    def __init__(self, path: str) -> None:
        super().__init__(f"File too large for the contents API: {path}", 403)
        self.path = path


class ErrorClass(Enum):
    TRANSIENT = "transient"  # 429, network errors: retryable
    SERVER = "server"  # 500, 502, 503: retryable
    TIMEOUT = "timeout"  # deadline exceeded: retryable with backoff
    CLIENT = "client"  # 400, 401, 403, 404: do NOT retry
    UNKNOWN = "unknown"  # unclassified: do NOT retry


def _status_code(error: Exception) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status_code = getattr(error, "status_code", None)
    return status_code if isinstance(status_code, int) else None


def classify_error(error: Exception) -> ErrorClass:
    """Classify an error to determine handling strategy.

    Checks structured attributes first (status codes, httpx transport
    errors), falls back to string matching for untyped exceptions.
    """
    status_code = _status_code(error)
    if status_code is not None:
        if status_code == 429:
            return ErrorClass.TRANSIENT
        if 400 <= status_code < 500:
            return ErrorClass.CLIENT
        if 500 <= status_code < 600:
            return ErrorClass.SERVER

    if isinstance(
        error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)
    ):
        return ErrorClass.TIMEOUT
    if isinstance(error, httpx.TransportError):
        return ErrorClass.TRANSIENT

    msg = str(error).lower()

    if "timeout" in msg or "timed out" in msg:
        return ErrorClass.TIMEOUT
    if "429" in msg or "rate limit" in msg or "rate_limit" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("500", "502", "503", "504")):
        return ErrorClass.SERVER
    if "econnrefused" in msg or "connection" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("400", "401", "403", "404")):
        return ErrorClass.CLIENT

    return ErrorClass.UNKNOWN


_RETRYABLE = frozenset({
    ErrorClass.TRANSIENT,
    ErrorClass.SERVER,
    ErrorClass.TIMEOUT,
})


def is_retryable(error: BaseException) -> bool:
    """Return True if the error category supports retry."""
    if not isinstance(error, Exception):
        return False
    return classify_error(error) in _RETRYABLE


class JobNotFoundError(SyncError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Sync job not found: {job_id}")
        self.job_id = job_id


class JobNotCancellableError(SyncError):
    """Only PENDING jobs can be cancelled; running jobs cannot."""

    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(
            f"Sync job {job_id} is {status}; only PENDING jobs can be cancelled"
        )
        self.job_id = job_id
        self.status = status
