"""SQL implementation of FileStore, the local mirror of upstream files."""

from collections.abc import Sequence

from sqlalchemy import delete as sa_delete
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.models.stored_file import StoredFile

_MUTABLE_FIELDS = (
    "sha",
    "size",
    "content",
    "encoding",
    "skipped_reason",
    "language",
    "loc",
)


class SqlFileStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def get(self, repo_id: str, path: str) -> StoredFile | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StoredFile).where(
                    StoredFile.repo_id == repo_id,
                    StoredFile.path == path,
                )
            )
            return result.scalar_one_or_none()

    async def upsert(self, stored: StoredFile) -> StoredFile:
        """Insert, or overwrite the mutable fields of the (repo, path) row."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(StoredFile).where(
                    StoredFile.repo_id == stored.repo_id,
                    StoredFile.path == stored.path,
                )
            )
            existing = result.scalar_one_or_none()
            if existing is None:
                session.add(stored)
                return stored
            for name in _MUTABLE_FIELDS:
                setattr(existing, name, getattr(stored, name))
            return existing

    async def delete_paths(
        self, repo_id: str, paths: Sequence[str]
    ) -> int:
        if not paths:
            return 0
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                sa_delete(StoredFile).where(
                    StoredFile.repo_id == repo_id,
                    StoredFile.path.in_(list(paths)),
                )
            )
            return result.rowcount  # type: ignore[return-value]

    async def delete_missing(
        self, repo_id: str, current_paths: set[str]
    ) -> int:
        """Tombstone cleanup: drop stored files absent from current_paths."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(StoredFile.id, StoredFile.path).where(
                    StoredFile.repo_id == repo_id
                )
            )
            stale_ids = [
                row.id for row in result if row.path not in current_paths
            ]
            if not stale_ids:
                return 0
            await session.execute(
                sa_delete(StoredFile).where(StoredFile.id.in_(stale_ids))
            )
            return len(stale_ids)

    async def list_by_repo(self, repo_id: str) -> list[StoredFile]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StoredFile)
                .where(StoredFile.repo_id == repo_id)
                .order_by(StoredFile.path)
            )
            return list(result.scalars().all())

    async def count_needing_embedding(self, repo_id: str) -> int:
        """Files with content whose current sha has not been embedded."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).where(
                    StoredFile.repo_id == repo_id,
                    StoredFile.content.is_not(None),
                    StoredFile.skipped_reason.is_(None),
                    or_(
                        StoredFile.last_embedded_sha.is_(None),
                        StoredFile.last_embedded_sha != StoredFile.sha,
                    ),
                )
            )
            return result.scalar_one()
