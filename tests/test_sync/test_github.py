"""Tests for the GitHub source provider over httpx.MockTransport."""

from __future__ import annotations

import base64
from collections.abc import Callable
from typing import TypeAlias

import httpx
import pytest
from circuitbreaker import CircuitBreakerError
from tenacity import wait_none

from reposync.config import Settings
from reposync.models.repo import Repo
from reposync.resilience.errors import (
    EmptyRepositoryError,
    FileNotFoundUpstreamError,
    FileTooLargeUpstreamError,
    SourceProviderError,
)
from reposync.sync import github
from reposync.sync.github import (
    GitHubProviderFactory,
    GitHubSourceProvider,
    SettingsCredentialResolver,
)

Handler: TypeAlias = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def _fresh_breakers() -> None:
    github._breaker_registry.clear()  # pyright: ignore[reportPrivateUsage]


def _provider(handler: Handler) -> GitHubSourceProvider:
    factory = GitHubProviderFactory(
        Settings(_env_file=None),  # pyright: ignore[reportCallIssue]
        transport=httpx.MockTransport(handler),
        retry_wait=wait_none(),
    )
    return factory(Repo(id="r1", full_name="octo/demo"), "tok")


def _b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


class TestRepositoryMetadata:
    @pytest.mark.asyncio
    async def test_default_branch_sends_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"default_branch": "trunk"})

        assert await _provider(handler).get_default_branch() == "trunk"
        assert seen[0].url.path == "/repos/octo/demo"
        assert seen[0].headers["Authorization"] == "Bearer tok"
        assert seen[0].headers["X-GitHub-Api-Version"] == "2022-11-28"


class TestFetchTree:
    @pytest.mark.asyncio
    async def test_lists_blobs_and_drops_ignored_dirs(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/repos/octo/demo/branches/main":
                return httpx.Response(
                    200,
                    json={
                        "commit": {
                            "sha": "c1",
                            "commit": {"tree": {"sha": "t1"}},
                        }
                    },
                )
            assert request.url.path == "/repos/octo/demo/git/trees/t1"
            assert request.url.params["recursive"] == "1"
            return httpx.Response(
                200,
                json={
                    "truncated": True,
                    "tree": [
                        {"path": "src", "type": "tree", "sha": "d"},
                        {"path": "src/a.py", "type": "blob", "sha": "b1", "size": 12},
                        {"path": "node_modules/x.js", "type": "blob", "sha": "b2", "size": 3},
                        {"path": "sub", "type": "commit", "sha": "m"},
                    ],
                },
            )

        snapshot = await _provider(handler).fetch_tree("main")

        assert snapshot.commit_sha == "c1"
        assert snapshot.tree_sha == "t1"
        assert snapshot.truncated is True
        assert [(e.path, e.sha, e.size) for e in snapshot.entries] == [
            ("src/a.py", "b1", 12)
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 409])
    async def test_missing_branch_means_empty_repository(
        self, status: int
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                status, json={"message": "Git Repository is empty."}
            )

        with pytest.raises(EmptyRepositoryError):
            await _provider(handler).fetch_tree("main")


class TestCompareCommits:
    @pytest.mark.asyncio
    async def test_identical(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/octo/demo/compare/base...main"
            return httpx.Response(
                200,
                json={
                    "status": "identical",
                    "merge_base_commit": {"sha": "base"},
                    "files": [],
                },
            )

        result = await _provider(handler).compare_commits("base", "main")

        assert result is not None
        assert result.total_changes == 0
        assert result.head_commit_sha == "base"

    @pytest.mark.asyncio
    async def test_maps_file_statuses(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "status": "ahead",
                    "total_commits": 2,
                    "merge_base_commit": {"sha": "base"},
                    "commits": [{"sha": "c1"}, {"sha": "c2"}],
                    "files": [
                        {"filename": "new.py", "status": "added", "sha": "n", "changes": 4},
                        {"filename": "mod.py", "status": "modified", "sha": "m"},
                        {"filename": "old.py", "status": "removed", "sha": "o"},
                        {
                            "filename": "b.py",
                            "previous_filename": "a.py",
                            "status": "renamed",
                            "sha": "r",
                        },
                        {"filename": "node_modules/x.js", "status": "added", "sha": "x"},
                    ],
                },
            )

        result = await _provider(handler).compare_commits("base", "main")

        assert result is not None
        assert [e.path for e in result.added] == ["new.py", "b.py"]
        assert result.added[0].size == 4
        assert [e.path for e in result.modified] == ["mod.py"]
        assert result.removed == ["old.py", "a.py"]
        assert result.head_commit_sha == "c2"
        assert result.total_changes == 5

    @pytest.mark.asyncio
    async def test_unknown_base_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "No common ancestor"})

        assert await _provider(handler).compare_commits("gone", "main") is None


class TestFetchContent:
    @pytest.mark.asyncio
    async def test_decodes_base64(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/octo/demo/contents/src/a.py"
            return httpx.Response(
                200,
                json={"encoding": "base64", "content": _b64("x = 1\n")},
            )

        content = await _provider(handler).fetch_content("src/a.py", "s")
        assert content == "x = 1\n"

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Not Found"})

        with pytest.raises(FileNotFoundUpstreamError):
            await _provider(handler).fetch_content("a.py", "s")

    @pytest.mark.asyncio
    async def test_too_large_by_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                403, json={"message": "This file is too large to display"}
            )

        with pytest.raises(FileTooLargeUpstreamError):
            await _provider(handler).fetch_content("a.bin", "s")

    @pytest.mark.asyncio
    async def test_too_large_by_encoding(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"encoding": "none", "content": ""})

        with pytest.raises(FileTooLargeUpstreamError):
            await _provider(handler).fetch_content("a.sql", "s")


class TestResilience:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                return httpx.Response(502, text="Bad Gateway")
            return httpx.Response(200, json={"default_branch": "main"})

        assert await _provider(handler).get_default_branch() == "main"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(401, json={"message": "Bad credentials"})

        with pytest.raises(SourceProviderError) as exc_info:
            await _provider(handler).get_default_branch()
        assert exc_info.value.status_code == 401
        assert calls == 1

    @pytest.mark.asyncio
    async def test_breaker_opens_after_repeated_failures(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503, text="unavailable")

        provider = _provider(handler)
        for _ in range(2):
            with pytest.raises((SourceProviderError, CircuitBreakerError)):
                await provider.get_default_branch()
        made = calls

        with pytest.raises(CircuitBreakerError):
            await provider.get_default_branch()
        assert calls == made


class TestCredentials:
    @pytest.mark.asyncio
    async def test_owner_token_then_default(self) -> None:
        resolver = SettingsCredentialResolver(
            Settings(
                _env_file=None,  # pyright: ignore[reportCallIssue]
                github_token="default",
                github_tokens={"Octo": "octo-token"},
            )
        )

        octo = await resolver.resolve(Repo(full_name="octo/demo"))
        other = await resolver.resolve(Repo(full_name="else/demo"))

        assert octo == "octo-token"
        assert other == "default"

    @pytest.mark.asyncio
    async def test_no_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GITHUB_TOKENS", raising=False)
        resolver = SettingsCredentialResolver(
            Settings(_env_file=None)  # pyright: ignore[reportCallIssue]
        )
        assert await resolver.resolve(Repo(full_name="octo/demo")) is None
