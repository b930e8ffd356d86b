"""SQL implementation of RepoRepository."""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.models.repo import Repo


class SqlRepoRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, repo_id: str) -> Repo | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Repo).where(Repo.id == repo_id)
            )
            return result.scalar_one_or_none()

    async def get_by_full_name(self, full_name: str) -> Repo | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Repo).where(Repo.full_name == full_name)
            )
            return result.scalar_one_or_none()

    async def list_all(self) -> list[Repo]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Repo).order_by(Repo.full_name)
            )
            return list(result.scalars().all())

    async def create(self, repo: Repo) -> Repo:
        async with self._session_factory() as session, session.begin():
            session.add(repo)
        return repo

    async def update_default_branch(
        self, repo_id: str, branch: str
    ) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                sa_update(Repo)
                .where(Repo.id == repo_id)
                .values(default_branch=branch)
            )

    async def mark_synced(
        self,
        repo_id: str,
        commit_sha: str | None,
        indexed_at: datetime,
    ) -> None:
        """Record a successful sync. A None sha keeps the previous one."""
        values: dict[str, Any] = {"last_indexed": indexed_at}
        if commit_sha is not None:
            values["last_commit_sha"] = commit_sha
        async with self._session_factory() as session, session.begin():
            await session.execute(
                sa_update(Repo).where(Repo.id == repo_id).values(**values)
            )
