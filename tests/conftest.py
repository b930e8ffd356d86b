"""Shared test fixtures: file-backed SQLite, fakes, a scripted provider."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from reposync.api.app_state import AppState
from reposync.api.event_bus import SyncEventBus
from reposync.config import Settings, create_app_engine
from reposync.main import app
from reposync.models.base import Base
from reposync.models.repo import Repo
from reposync.notifications.events import LogEntry, ProgressEvent
from reposync.repositories.fakes import (
    FakeEmbedJobRepository,
    FakeFileStore,
    FakeRepoRepository,
    FakeSyncJobRepository,
)
from reposync.resilience.errors import EmptyRepositoryError
from reposync.runtime import build_runtime
from reposync.services.data_service import DataService
from reposync.sync.orchestrator import SyncOrchestrator
from reposync.sync.schemas import CompareResult, TreeEntry, TreeSnapshot


def parse_sse_events(
    raw: str,
) -> list[dict[str, str]]:
    """Parse raw SSE text into list of {event, data} dicts.

    Shared helper used by SSE endpoint tests.
    """
    events: list[dict[str, str]] = []
    current_event = ""
    current_data = ""

    for line in raw.replace("\r\n", "\n").split("\n"):
        line = line.strip()
        if line.startswith("event:"):
            current_event = line[6:].strip()
        elif line.startswith("data:"):
            current_data = line[5:].strip()
        elif line == "" and current_event:
            events.append(
                {"event": current_event, "data": current_data}
            )
            current_event = ""
            current_data = ""

    # Handle trailing event without final blank line
    if current_event and current_data:
        events.append(
            {"event": current_event, "data": current_data}
        )

    return events


# ── Database ─────────────────────────────────────────────


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Per-test file database: concurrent sessions need real connections."""
    engine = create_app_engine(f"sqlite:///{tmp_path / 'reposync.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


# ── Source provider ──────────────────────────────────────


def entry(path: str, sha: str | None = None, size: int = 100) -> TreeEntry:
    return TreeEntry(path=path, sha=sha or f"sha-{path}", size=size)


@dataclass
class FakeSourceProvider:
    """Scripted SourceProvider: every answer is set up by the test."""

    branch: str = "main"
    commit_sha: str = "head-1"
    entries: list[TreeEntry] = field(default_factory=lambda: list[TreeEntry]())
    truncated: bool = False
    empty: bool = False
    compare: CompareResult | None = None
    compare_error: Exception | None = None
    branch_error: Exception | None = None
    contents: dict[str, str] = field(default_factory=lambda: dict[str, str]())
    content_errors: dict[str, BaseException] = field(
        default_factory=lambda: dict[str, BaseException]()
    )
    fetched: list[str] = field(default_factory=lambda: list[str]())
    tree_calls: int = 0
    compare_calls: int = 0

    async def get_default_branch(self) -> str:
        if self.branch_error is not None:
            raise self.branch_error
        return self.branch

    async def fetch_tree(self, branch: str) -> TreeSnapshot:
        self.tree_calls += 1
        if self.empty:
            raise EmptyRepositoryError(f"Branch not found: {branch}", 409)
        return TreeSnapshot(
            entries=list(self.entries),
            commit_sha=self.commit_sha,
            tree_sha="tree-1",
            truncated=self.truncated,
        )

    async def compare_commits(
        self, base_sha: str, branch: str
    ) -> CompareResult | None:
        self.compare_calls += 1
        if self.compare_error is not None:
            raise self.compare_error
        return self.compare

    async def fetch_content(self, path: str, sha: str) -> str:
        self.fetched.append(path)
        error = self.content_errors.get(path)
        if error is not None:
            raise error
        return self.contents.get(path, f"content of {path}\n")


class StaticCredentials:
    def __init__(self, token: str | None = "test-token") -> None:
        self.token = token

    async def resolve(self, repo: Repo) -> str | None:
        return self.token


class RecordingNotifier:
    """SyncNotifier that keeps everything it receives."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []
        self.logs: list[LogEntry] = []

    async def progress(self, event: ProgressEvent) -> None:
        self.events.append(event)

    async def log(self, entry: LogEntry) -> None:
        self.logs.append(entry)

    def messages(self) -> list[str]:
        return [e.message for e in self.logs]


class RecordingEmbeddingTrigger:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[str] = []
        self.error = error

    async def notify_may_need_embedding(self, repo_id: str) -> None:
        self.calls.append(repo_id)
        if self.error is not None:
            raise self.error


@dataclass
class SyncHarness:
    """Orchestrator wired to in-memory fakes."""

    repos: FakeRepoRepository
    jobs: FakeSyncJobRepository
    files: FakeFileStore
    embed_jobs: FakeEmbedJobRepository
    provider: FakeSourceProvider
    credentials: StaticCredentials
    notifier: RecordingNotifier
    trigger: RecordingEmbeddingTrigger
    orchestrator: SyncOrchestrator

    async def add_repo(self, full_name: str = "octo/demo", **kw: object) -> Repo:
        return await self.repos.create(Repo(full_name=full_name, **kw))


@pytest.fixture
def harness() -> SyncHarness:
    repos = FakeRepoRepository()
    jobs = FakeSyncJobRepository()
    files = FakeFileStore()
    provider = FakeSourceProvider()
    credentials = StaticCredentials()
    notifier = RecordingNotifier()
    trigger = RecordingEmbeddingTrigger()
    orchestrator = SyncOrchestrator(
        repos=repos,
        jobs=jobs,
        file_store=files,
        credentials=credentials,
        provider_factory=lambda repo, credential: provider,
        notifier=notifier,
        embedding_trigger=trigger,
        settings=Settings(_env_file=None),  # pyright: ignore[reportCallIssue]
    )
    return SyncHarness(
        repos=repos,
        jobs=jobs,
        files=files,
        embed_jobs=FakeEmbedJobRepository(),
        provider=provider,
        credentials=credentials,
        notifier=notifier,
        trigger=trigger,
        orchestrator=orchestrator,
    )


# ── API ──────────────────────────────────────────────────


def setup_test_app(
    session_factory: async_sessionmaker[AsyncSession],
    provider: FakeSourceProvider,
    *,
    api_key: str = "",
) -> AppState:
    """Wire a runtime over the test database and install it on the app.

    The lifespan does not run under ASGITransport, so routes see exactly
    this state. Workers are not started; tests start them when needed.
    """
    settings = Settings(
        _env_file=None,  # pyright: ignore[reportCallIssue]
        api_key=api_key,
        scheduled_sync_minutes=0,
    )
    event_bus = SyncEventBus()
    runtime = build_runtime(
        settings,
        session_factory,
        event_bus=event_bus,
        provider_factory=lambda repo, credential: provider,
        credentials=StaticCredentials(),
    )
    state = AppState(
        settings=settings,
        session_factory=session_factory,
        event_bus=event_bus,
        runtime=runtime,
        data_service=DataService(session_factory),
    )
    app.state.typed = state
    return state
