"""Tests for the sync error hierarchy and retry classification."""

from __future__ import annotations

import httpx
import pytest

from reposync.resilience.errors import (
    EmptyRepositoryError,
    ErrorClass,
    FileNotFoundUpstreamError,
    FileTooLargeUpstreamError,
    JobNotCancellableError,
    MissingCredentialError,
    RepoNotFoundError,
    SetupError,
    SourceProviderError,
    classify_error,
    is_retryable,
)


def _http_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.github.com/repos/o/r")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(
        f"{status}", request=request, response=response
    )


# ── Hierarchy ────────────────────────────────────────────


def test_setup_errors_are_distinct_from_provider_errors() -> None:
    assert isinstance(RepoNotFoundError("r1"), SetupError)
    assert isinstance(MissingCredentialError("o/r"), SetupError)
    assert not isinstance(EmptyRepositoryError("x"), SetupError)


def test_upstream_file_errors_carry_status() -> None:
    missing = FileNotFoundUpstreamError("a.py")
    too_large = FileTooLargeUpstreamError("big.bin")

    assert isinstance(missing, SourceProviderError)
    assert missing.status_code == 404
    assert missing.path == "a.py"
    assert too_large.status_code == 403


def test_not_cancellable_message_names_status() -> None:
    err = JobNotCancellableError("j1", "FETCHING_TREE")
    assert "FETCHING_TREE" in str(err)
    assert err.status == "FETCHING_TREE"


# ── classify_error ───────────────────────────────────────


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (429, ErrorClass.TRANSIENT),
        (401, ErrorClass.CLIENT),
        (404, ErrorClass.CLIENT),
        (500, ErrorClass.SERVER),
        (503, ErrorClass.SERVER),
    ],
)
def test_classify_http_status(status: int, expected: ErrorClass) -> None:
    assert classify_error(_http_error(status)) == expected


def test_classify_provider_error_status_attribute() -> None:
    err = SourceProviderError("upstream said no", 502)
    assert classify_error(err) == ErrorClass.SERVER


def test_classify_timeouts() -> None:
    assert classify_error(TimeoutError()) == ErrorClass.TIMEOUT
    assert (
        classify_error(httpx.ReadTimeout("slow"))
        == ErrorClass.TIMEOUT
    )


def test_classify_transport_error_as_transient() -> None:
    assert (
        classify_error(httpx.ConnectError("refused"))
        == ErrorClass.TRANSIENT
    )


def test_classify_string_fallbacks() -> None:
    assert (
        classify_error(Exception("rate limit exceeded"))
        == ErrorClass.TRANSIENT
    )
    assert (
        classify_error(Exception("request timed out after 30s"))
        == ErrorClass.TIMEOUT
    )
    assert (
        classify_error(Exception("something unexpected"))
        == ErrorClass.UNKNOWN
    )


# ── is_retryable ─────────────────────────────────────────


def test_is_retryable() -> None:
    assert is_retryable(_http_error(502)) is True
    assert is_retryable(_http_error(429)) is True
    assert is_retryable(httpx.ConnectError("refused")) is True
    assert is_retryable(_http_error(401)) is False
    assert is_retryable(FileNotFoundUpstreamError("a.py")) is False
    assert is_retryable(Exception("mystery")) is False


def test_base_exceptions_are_never_retried() -> None:
    assert is_retryable(KeyboardInterrupt()) is False
