"""Interfaces of the collaborators the sync engine consumes.

The engine never talks to a source host directly: it asks a
CredentialResolver for a credential, builds a SourceProvider for the
repo through a SourceProviderFactory, and reports downstream through
an EmbeddingTrigger.
"""

from typing import Protocol

from reposync.models.repo import Repo
from reposync.sync.schemas import CompareResult, TreeSnapshot


class CredentialResolver(Protocol):
    async def resolve(self, repo: Repo) -> str | None:
        """Return a credential for the repo, or None when none applies."""
        ...


class SourceProvider(Protocol):
    async def get_default_branch(self) -> str: ...

    async def fetch_tree(self, branch: str) -> TreeSnapshot:
        """Every blob at the branch tip.

        Raises EmptyRepositoryError when the repo has no commits.
        """
        ...

    async def compare_commits(
        self, base_sha: str, branch: str
    ) -> CompareResult | None:
        """Delta since base_sha, or None when no diff can be computed."""
        ...

    async def fetch_content(self, path: str, sha: str) -> str:
        """Decoded file content.

        Raises FileNotFoundUpstreamError or FileTooLargeUpstreamError.
        """
        ...


class SourceProviderFactory(Protocol):
    def __call__(self, repo: Repo, credential: str) -> SourceProvider: ...


class EmbeddingTrigger(Protocol):
    async def notify_may_need_embedding(self, repo_id: str) -> None: ...
