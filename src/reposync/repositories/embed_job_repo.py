"""SQL implementation of EmbedJobRepository."""

from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.constants import (
    IN_FLIGHT_EMBED_STATUSES,
    LIVE_EMBED_STATUSES,
    EmbedJobStatus,
)
from reposync.models.embed_job import EmbedJob


class SqlEmbedJobRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def find_live_for_repo(
        self, repo_id: str
    ) -> EmbedJob | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(EmbedJob)
                .where(
                    EmbedJob.repo_id == repo_id,
                    EmbedJob.status.in_(LIVE_EMBED_STATUSES),
                )
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def create(self, job: EmbedJob) -> EmbedJob:
        async with self._session_factory() as session, session.begin():
            session.add(job)
        return job

    async def list_by_repo(self, repo_id: str) -> list[EmbedJob]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(EmbedJob)
                .where(EmbedJob.repo_id == repo_id)
                .order_by(EmbedJob.created_at.desc())
            )
            return list(result.scalars().all())

    async def reset_in_flight(self, error: str) -> list[str]:
        """Return CHUNKING / EMBEDDING jobs to PENDING with zeroed counters."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                select(EmbedJob.id).where(
                    EmbedJob.status.in_(IN_FLIGHT_EMBED_STATUSES)
                )
            )
            ids = list(result.scalars().all())
            if not ids:
                return []
            await session.execute(
                sa_update(EmbedJob)
                .where(
                    EmbedJob.id.in_(ids),
                    EmbedJob.status.in_(IN_FLIGHT_EMBED_STATUSES),
                )
                .values(
                    status=EmbedJobStatus.PENDING,
                    processed_files=0,
                    chunks_created=0,
                    embeddings_generated=0,
                    failed_files=0,
                    started_at=None,
                    error=error,
                )
            )
            return ids
