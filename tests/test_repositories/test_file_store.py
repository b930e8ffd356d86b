"""Tests for SqlFileStore and SqlRepoRepository."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.models.repo import Repo
from reposync.models.stored_file import StoredFile
from reposync.repositories.file_store import SqlFileStore
from reposync.repositories.repo_repo import SqlRepoRepository


@pytest.fixture
def repos(
    session_factory: async_sessionmaker[AsyncSession],
) -> SqlRepoRepository:
    return SqlRepoRepository(session_factory)


@pytest.fixture
def store(
    session_factory: async_sessionmaker[AsyncSession],
) -> SqlFileStore:
    return SqlFileStore(session_factory)


@pytest.fixture
async def repo(repos: SqlRepoRepository) -> Repo:
    return await repos.create(Repo(full_name="octo/demo"))


def _file(repo: Repo, path: str, sha: str = "s1", **kw: object) -> StoredFile:
    return StoredFile(repo_id=repo.id, path=path, sha=sha, size=5, **kw)


class TestRepoRepository:
    @pytest.mark.asyncio
    async def test_lookup_by_id_and_name(
        self, repos: SqlRepoRepository, repo: Repo
    ) -> None:
        by_id = await repos.get_by_id(repo.id)
        by_name = await repos.get_by_full_name("octo/demo")
        assert by_id is not None
        assert by_name is not None
        assert by_id.id == by_name.id
        assert by_id.owner == "octo"
        assert by_id.name == "demo"

    @pytest.mark.asyncio
    async def test_mark_synced_keeps_sha_when_none(
        self, repos: SqlRepoRepository, repo: Repo
    ) -> None:
        await repos.mark_synced(repo.id, "abc", datetime.now(UTC))
        await repos.mark_synced(repo.id, None, datetime.now(UTC))

        loaded = await repos.get_by_id(repo.id)
        assert loaded is not None
        assert loaded.last_commit_sha == "abc"
        assert loaded.last_indexed is not None

    @pytest.mark.asyncio
    async def test_update_default_branch(
        self, repos: SqlRepoRepository, repo: Repo
    ) -> None:
        await repos.update_default_branch(repo.id, "trunk")
        loaded = await repos.get_by_id(repo.id)
        assert loaded is not None
        assert loaded.default_branch == "trunk"


class TestFileStore:
    @pytest.mark.asyncio
    async def test_upsert_overwrites_by_repo_and_path(
        self, store: SqlFileStore, repo: Repo
    ) -> None:
        await store.upsert(_file(repo, "a.py", "s1", content="one"))
        await store.upsert(
            _file(repo, "a.py", "s2", content=None, skipped_reason="too_large")
        )

        files = await store.list_by_repo(repo.id)
        assert len(files) == 1
        assert files[0].sha == "s2"
        assert files[0].content is None
        assert files[0].skipped_reason == "too_large"

    @pytest.mark.asyncio
    async def test_delete_paths(
        self, store: SqlFileStore, repo: Repo
    ) -> None:
        for path in ("a.py", "b.py", "c.py"):
            await store.upsert(_file(repo, path))

        deleted = await store.delete_paths(repo.id, ["a.py", "missing.py"])

        assert deleted == 1
        assert await store.delete_paths(repo.id, []) == 0
        paths = [f.path for f in await store.list_by_repo(repo.id)]
        assert paths == ["b.py", "c.py"]

    @pytest.mark.asyncio
    async def test_delete_missing(
        self, store: SqlFileStore, repo: Repo
    ) -> None:
        for path in ("a.py", "b.py", "c.py"):
            await store.upsert(_file(repo, path))

        removed = await store.delete_missing(repo.id, {"a.py", "new.py"})

        assert removed == 2
        assert [f.path for f in await store.list_by_repo(repo.id)] == ["a.py"]

    @pytest.mark.asyncio
    async def test_count_needing_embedding(
        self, store: SqlFileStore, repo: Repo
    ) -> None:
        await store.upsert(_file(repo, "fresh.py", content="x"))
        await store.upsert(
            _file(repo, "done.py", content="x", last_embedded_sha="s1")
        )
        await store.upsert(
            _file(repo, "stale.py", "s2", content="x", last_embedded_sha="s1")
        )
        await store.upsert(_file(repo, "meta.py", skipped_reason="skip_content"))

        assert await store.count_needing_embedding(repo.id) == 2
