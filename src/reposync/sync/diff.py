"""Work-set computation: incremental commit delta or full tree listing."""

from __future__ import annotations

import logging

from reposync.constants import SHORT_SHA_LENGTH, SyncMode
from reposync.models.repo import Repo
from reposync.resilience.errors import EmptyRepositoryError
from reposync.sync.providers import SourceProvider
from reposync.sync.schemas import CompareResult, WorkPlan

logger = logging.getLogger(__name__)


class DiffStrategy:
    """Chooses between incremental and full sync for one attempt.

    Incremental needs ``repo.last_commit_sha``. When the provider cannot
    diff (returns None or raises) the strategy falls back to a full
    listing; that fallback is a warning, never a failure.
    """

    def __init__(self, provider: SourceProvider) -> None:
        self._provider = provider

    async def plan(self, repo: Repo, branch: str) -> WorkPlan:
        fallback_reason: str | None = None
        if repo.last_commit_sha:
            compare, fallback_reason = await self._compare(
                repo, branch
            )
            if compare is not None:
                return self._incremental_plan(compare)

        plan = await self._full_plan(repo, branch)
        plan.fallback_reason = fallback_reason
        return plan

    async def _compare(
        self, repo: Repo, branch: str
    ) -> tuple[CompareResult | None, str | None]:
        base_sha = repo.last_commit_sha or ""
        try:
            result = await self._provider.compare_commits(base_sha, branch)
        except Exception as exc:
            logger.warning(
                "event=compare_failed repo=%s base=%s error=%s",
                repo.full_name,
                base_sha[:SHORT_SHA_LENGTH],
                exc,
            )
            return None, str(exc)
        if result is None:
            logger.warning(
                "event=compare_unavailable repo=%s base=%s",
                repo.full_name,
                base_sha[:SHORT_SHA_LENGTH],
            )
            return None, "comparison unavailable"
        return result, None

    @staticmethod
    def _incremental_plan(compare: CompareResult) -> WorkPlan:
        if compare.total_changes == 0:
            return WorkPlan(
                mode=SyncMode.INCREMENTAL,
                head_commit_sha=compare.head_commit_sha,
                no_changes=True,
            )
        return WorkPlan(
            mode=SyncMode.INCREMENTAL,
            entries=[*compare.added, *compare.modified],
            removed=list(compare.removed),
            head_commit_sha=compare.head_commit_sha,
        )

    async def _full_plan(self, repo: Repo, branch: str) -> WorkPlan:
        try:
            snapshot = await self._provider.fetch_tree(branch)
        except EmptyRepositoryError:
            logger.info(
                "event=empty_repository repo=%s branch=%s",
                repo.full_name,
                branch,
            )
            return WorkPlan(mode=SyncMode.FULL, empty_repository=True)
        if snapshot.truncated:
            logger.warning(
                "event=tree_truncated repo=%s entries=%d",
                repo.full_name,
                len(snapshot.entries),
            )
        return WorkPlan(
            mode=SyncMode.FULL,
            entries=list(snapshot.entries),
            head_commit_sha=snapshot.commit_sha,
            truncated_tree=snapshot.truncated,
        )
