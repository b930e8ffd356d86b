"""DB connectivity and ledger health summaries."""

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.models.sync_job import RepoSyncJob


class DataService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def check_connection(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    async def job_status_counts(self) -> dict[str, int]:
        """Number of sync jobs per status."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(RepoSyncJob.status, func.count()).group_by(
                    RepoSyncJob.status
                )
            )
            return {status: count for status, count in result.all()}
