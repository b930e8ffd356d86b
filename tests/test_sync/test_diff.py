"""Tests for DiffStrategy work-set planning."""

from __future__ import annotations

import pytest

from reposync.constants import SyncMode
from reposync.models.repo import Repo
from reposync.resilience.errors import SourceProviderError
from reposync.sync.diff import DiffStrategy
from reposync.sync.schemas import CompareResult
from tests.conftest import FakeSourceProvider, entry


def _repo(last_commit_sha: str | None = None) -> Repo:
    return Repo(id="r1", full_name="octo/demo", last_commit_sha=last_commit_sha)


@pytest.mark.asyncio
async def test_first_sync_is_full() -> None:
    provider = FakeSourceProvider(entries=[entry("a.py"), entry("b.py")])

    plan = await DiffStrategy(provider).plan(_repo(), "main")

    assert plan.mode == SyncMode.FULL
    assert not plan.is_incremental
    assert [e.path for e in plan.entries] == ["a.py", "b.py"]
    assert plan.head_commit_sha == "head-1"
    assert plan.fallback_reason is None
    assert provider.compare_calls == 0


@pytest.mark.asyncio
async def test_incremental_combines_added_and_modified() -> None:
    provider = FakeSourceProvider(
        compare=CompareResult(
            added=[entry("new.py")],
            modified=[entry("mod.py")],
            removed=["old.py"],
            head_commit_sha="head-2",
            base_commit_sha="base",
            total_changes=3,
        )
    )

    plan = await DiffStrategy(provider).plan(_repo("base"), "main")

    assert plan.is_incremental
    assert [e.path for e in plan.entries] == ["new.py", "mod.py"]
    assert plan.removed == ["old.py"]
    assert plan.head_commit_sha == "head-2"
    assert provider.tree_calls == 0


@pytest.mark.asyncio
async def test_zero_changes_reports_no_changes() -> None:
    provider = FakeSourceProvider(
        compare=CompareResult(head_commit_sha="base", base_commit_sha="base")
    )

    plan = await DiffStrategy(provider).plan(_repo("base"), "main")

    assert plan.no_changes is True
    assert plan.entries == []
    assert plan.head_commit_sha == "base"


@pytest.mark.asyncio
async def test_unavailable_compare_falls_back() -> None:
    provider = FakeSourceProvider(entries=[entry("a.py")], compare=None)

    plan = await DiffStrategy(provider).plan(_repo("base"), "main")

    assert plan.mode == SyncMode.FULL
    assert plan.fallback_reason == "comparison unavailable"
    assert provider.tree_calls == 1


@pytest.mark.asyncio
async def test_compare_error_falls_back() -> None:
    provider = FakeSourceProvider(
        entries=[entry("a.py")],
        compare_error=SourceProviderError("GitHub API 404", 404),
    )

    plan = await DiffStrategy(provider).plan(_repo("base"), "main")

    assert plan.mode == SyncMode.FULL
    assert plan.fallback_reason == "GitHub API 404"


@pytest.mark.asyncio
async def test_empty_repository() -> None:
    provider = FakeSourceProvider(empty=True)

    plan = await DiffStrategy(provider).plan(_repo(), "main")

    assert plan.empty_repository is True
    assert plan.entries == []
    assert plan.head_commit_sha is None


@pytest.mark.asyncio
async def test_truncated_tree_is_still_planned() -> None:
    provider = FakeSourceProvider(entries=[entry("a.py")], truncated=True)

    plan = await DiffStrategy(provider).plan(_repo(), "main")

    assert plan.truncated_tree is True
    assert len(plan.entries) == 1
