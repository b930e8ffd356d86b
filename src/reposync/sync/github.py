"""GitHub REST source provider and token-based credential resolver.

One ``httpx.AsyncClient`` is shared by every provider the factory
creates; each provider sends its own repo's token. Requests retry
transient failures with jittered exponential backoff and go through a
per-host circuit breaker; an open breaker fails the call immediately.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any
from urllib.parse import quote, urlsplit

import httpx
from circuitbreaker import (  # pyright: ignore[reportUnknownVariableType]
    CircuitBreaker,
    CircuitBreakerError,
)
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from reposync.config import Settings
from reposync.constants import (
    CB_PROVIDER_FAILURE_THRESHOLD,
    CB_PROVIDER_RECOVERY_TIMEOUT,
    RETRY_INITIAL_WAIT,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_WAIT,
    SHORT_SHA_LENGTH,
)
from reposync.models.repo import Repo
from reposync.resilience.errors import (
    EmptyRepositoryError,
    FileNotFoundUpstreamError,
    FileTooLargeUpstreamError,
    SourceProviderError,
    is_retryable,
)
from reposync.sync.classifier import should_ignore_path
from reposync.sync.schemas import CompareResult, TreeEntry, TreeSnapshot

logger = logging.getLogger(__name__)

_API_VERSION = "2022-11-28"
_USER_AGENT = "reposync/0.1"


def _counts_as_failure(
    thrown_type: type, thrown_value: BaseException
) -> bool:
    """Only transient / server failures trip the breaker, not 404s."""
    return is_retryable(thrown_value)


def _should_retry(error: BaseException) -> bool:
    if isinstance(error, CircuitBreakerError):
        return False
    return is_retryable(error)


# Per-host circuit breaker registry.
_breaker_registry: dict[str, CircuitBreaker] = {}  # pyright: ignore[reportUnknownVariableType]


def _get_breaker(host: str) -> CircuitBreaker:  # pyright: ignore[reportUnknownParameterType]
    if host not in _breaker_registry:
        _breaker_registry[host] = CircuitBreaker(  # pyright: ignore[reportUnknownMemberType]
            failure_threshold=CB_PROVIDER_FAILURE_THRESHOLD,
            recovery_timeout=CB_PROVIDER_RECOVERY_TIMEOUT,
            expected_exception=_counts_as_failure,
            name=f"source_{host}",
        )
    return _breaker_registry[host]


def _error_message(response: httpx.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and "message" in body:
        return str(body["message"])  # pyright: ignore[reportUnknownArgumentType]
    return response.text[:200]


class GitHubSourceProvider:
    """SourceProvider for one GitHub repository."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        full_name: str,
        token: str,
        *,
        retry_wait: wait_base | None = None,
    ) -> None:
        self._client = client
        self._full_name = full_name
        self._headers = {"Authorization": f"Bearer {token}"}
        self._retry_wait = retry_wait or wait_exponential_jitter(
            initial=RETRY_INITIAL_WAIT, max=RETRY_MAX_WAIT
        )
        host = urlsplit(str(client.base_url)).hostname or "github"
        self._breaker = _get_breaker(host)

    @property
    def full_name(self) -> str:
        return self._full_name

    # ── Transport ────────────────────────────────────────

    async def _get(
        self, path: str, params: dict[str, str] | None = None
    ) -> Any:
        """GET ``/repos/{full_name}{path}`` and return decoded JSON.

        Non-2xx responses raise SourceProviderError carrying the status.
        """
        url = f"/repos/{self._full_name}{path}"
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(RETRY_MAX_ATTEMPTS),
            wait=self._retry_wait,
            retry=retry_if_exception(_should_retry),
            reraise=True,
        ):
            with attempt:
                return await self._send(url, params)
        raise RuntimeError("unreachable: retry loop exhausted")

    async def _send(
        self, url: str, params: dict[str, str] | None
    ) -> Any:
        if self._breaker.opened:  # pyright: ignore[reportUnknownMemberType]
            raise CircuitBreakerError(self._breaker)  # pyright: ignore[reportUnknownArgumentType]
        with self._breaker:  # pyright: ignore[reportUnknownMemberType]
            response = await self._client.get(
                url, params=params, headers=self._headers
            )
            if response.is_error:
                raise SourceProviderError(
                    f"GitHub API {response.status_code} for {url}: "
                    f"{_error_message(response)}",
                    status_code=response.status_code,
                )
            return response.json()

    # ── SourceProvider ───────────────────────────────────

    async def get_default_branch(self) -> str:
        data = await self._get("")
        return str(data["default_branch"])

    async def fetch_tree(self, branch: str) -> TreeSnapshot:
        try:
            branch_data = await self._get(
                f"/branches/{quote(branch, safe='')}"
            )
        except SourceProviderError as exc:
            # 404: branch missing, 409: "Git Repository is empty"
            if exc.status_code in (404, 409):
                raise EmptyRepositoryError(
                    f"Branch not found: {branch}", exc.status_code
                ) from exc
            raise

        commit_sha = str(branch_data["commit"]["sha"])
        tree_sha = str(branch_data["commit"]["commit"]["tree"]["sha"])
        tree_data = await self._get(
            f"/git/trees/{tree_sha}", params={"recursive": "1"}
        )

        entries = [
            TreeEntry(
                path=item["path"],
                sha=item["sha"],
                size=int(item["size"]),
            )
            for item in tree_data.get("tree", [])
            if item.get("type") == "blob"
            and item.get("size") is not None
            and not should_ignore_path(item.get("path", ""))
        ]
        truncated = bool(tree_data.get("truncated", False))
        logger.info(
            "event=tree_fetched repo=%s branch=%s files=%d truncated=%s",
            self._full_name,
            branch,
            len(entries),
            truncated,
        )
        return TreeSnapshot(
            entries=entries,
            commit_sha=commit_sha,
            tree_sha=tree_sha,
            truncated=truncated,
        )

    async def compare_commits(
        self, base_sha: str, branch: str
    ) -> CompareResult | None:
        """Delta since base_sha; None when GitHub cannot compare.

        Renames are reported as removal of the old path plus an
        addition of the new one.
        """
        try:
            data = await self._get(
                f"/compare/{base_sha}...{quote(branch, safe='')}"
            )
        except SourceProviderError as exc:
            logger.warning(
                "event=compare_failed repo=%s base=%s status=%s",
                self._full_name,
                base_sha[:SHORT_SHA_LENGTH],
                exc.status_code,
            )
            return None

        merge_base = str(data.get("merge_base_commit", {}).get("sha", ""))
        if data.get("status") == "identical":
            return CompareResult(
                head_commit_sha=merge_base or base_sha,
                base_commit_sha=base_sha,
                total_changes=0,
            )

        added: list[TreeEntry] = []
        modified: list[TreeEntry] = []
        removed: list[str] = []
        for item in data.get("files") or []:
            filename = item["filename"]
            status = item.get("status")
            # The compare API has no blob size; "changes" is an estimate.
            entry = TreeEntry(
                path=filename,
                sha=item.get("sha") or "",
                size=int(item.get("changes") or 0),
            )
            if status == "renamed":
                previous = item.get("previous_filename")
                if previous and not should_ignore_path(previous):
                    removed.append(previous)
                if not should_ignore_path(filename):
                    added.append(entry)
                continue
            if should_ignore_path(filename):
                continue
            if status == "added":
                added.append(entry)
            elif status in ("modified", "changed"):
                modified.append(entry)
            elif status == "removed":
                removed.append(filename)

        commits = data.get("commits") or []
        head_sha = commits[-1]["sha"] if commits else merge_base
        total = len(added) + len(modified) + len(removed)
        logger.info(
            "event=commits_compared repo=%s added=%d modified=%d "
            "removed=%d commits=%s",
            self._full_name,
            len(added),
            len(modified),
            len(removed),
            data.get("total_commits"),
        )
        return CompareResult(
            added=added,
            modified=modified,
            removed=removed,
            head_commit_sha=head_sha,
            base_commit_sha=base_sha,
            total_changes=total,
        )

    async def fetch_content(self, path: str, sha: str) -> str:
        try:
            data = await self._get(f"/contents/{quote(path, safe='/')}")
        except SourceProviderError as exc:
            if exc.status_code == 404:
                raise FileNotFoundUpstreamError(path) from exc
            if exc.status_code == 403 and "too large" in str(exc).lower():
                raise FileTooLargeUpstreamError(path) from exc
            raise

        if not isinstance(data, dict) or "content" not in data:
            raise SourceProviderError(f"Not a file: {path}")
        encoding = data.get("encoding") or "base64"
        # Files over 1 MB come back with encoding "none" and no content.
        if encoding == "none":
            raise FileTooLargeUpstreamError(path)
        raw = str(data["content"])
        if encoding != "base64":
            return raw
        try:
            return base64.b64decode(raw).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as exc:
            raise SourceProviderError(
                f"Undecodable content for {path}: {exc}"
            ) from exc


class GitHubProviderFactory:
    """Builds a GitHubSourceProvider per repo over one shared client."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_wait: wait_base | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.github_api_url.rstrip("/"),
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": _API_VERSION,
                "User-Agent": _USER_AGENT,
            },
            timeout=settings.github_timeout_seconds,
            transport=transport,
        )
        self._retry_wait = retry_wait

    def __call__(self, repo: Repo, credential: str) -> GitHubSourceProvider:
        return GitHubSourceProvider(
            self._client,
            repo.full_name,
            credential,
            retry_wait=self._retry_wait,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class SettingsCredentialResolver:
    """Per-owner token from ``github_tokens``, else ``github_token``."""

    def __init__(self, settings: Settings) -> None:
        self._tokens = settings.github_tokens
        self._default = settings.github_token

    async def resolve(self, repo: Repo) -> str | None:
        token = self._tokens.get(repo.owner.lower())
        if token:
            return token
        return self._default or None
