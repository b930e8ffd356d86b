"""CLI entry point: ``reposync add-repo``, ``sync``, ``jobs``, ``worker``..."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeAlias

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync import __version__
from reposync.config import Settings, create_app_engine
from reposync.constants import (
    DEFAULT_JOB_LIST_LIMIT,
    IN_FLIGHT_SYNC_STATUSES,
    TERMINAL_SYNC_STATUSES,
    FileJobStatus,
    SyncJobStatus,
    TriggerSource,
)
from reposync.logging_config import setup_logging
from reposync.models.base import Base
from reposync.resilience.errors import SyncError
from reposync.runtime import SyncRuntime, build_runtime
from reposync.sync.schemas import SyncConfig

_WAIT_POLL_SECONDS = 0.5


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"reposync {__version__}")
        return

    handler = _COMMANDS.get(args.command or "")
    if handler is None:
        parser.print_help()
        return

    settings = Settings()
    setup_logging("DEBUG" if args.verbose else settings.log_level)
    if args.db:
        settings.database_url = f"sqlite:///{args.db}"

    try:
        code = asyncio.run(_with_runtime(settings, args, handler))
    except KeyboardInterrupt:
        code = 130
    if code:
        sys.exit(code)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="reposync",
        description=(
            "Mirror remote repositories into a local store "
            "with a durable, crash-safe job ledger."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path override (default: from settings)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    sub = parser.add_subparsers(dest="command")

    add_repo = sub.add_parser("add-repo", help="Track a repository")
    add_repo.add_argument("full_name", help="Repository as owner/name")
    add_repo.add_argument(
        "--branch",
        "-b",
        default=None,
        help="Default branch (default: discovered on first sync)",
    )

    sub.add_parser("repos", help="List tracked repositories")

    sync = sub.add_parser("sync", help="Queue a sync for a repository")
    sync.add_argument("repo", help="Repository id or owner/name")
    sync.add_argument(
        "--max-files",
        type=int,
        default=None,
        help="Process at most N files",
    )
    sync.add_argument(
        "--max-content",
        type=int,
        default=None,
        help="Fetch content for at most N files",
    )
    sync.add_argument(
        "--skip-content",
        action="store_true",
        help="Record metadata only, fetch no content",
    )
    sync.add_argument(
        "--wait",
        "-w",
        action="store_true",
        help="Run the job in this process and wait for it to finish",
    )

    status = sub.add_parser("status", help="Show one sync job")
    status.add_argument("job_id")
    status.add_argument(
        "--files",
        action="store_true",
        help="Also list per-file ledger rows",
    )

    jobs = sub.add_parser("jobs", help="List recent sync jobs")
    jobs.add_argument("--repo", default=None, help="Repository id")
    jobs.add_argument("--status", default=None, help="Filter by status")
    jobs.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_JOB_LIST_LIMIT,
        help=f"Max jobs to show (default: {DEFAULT_JOB_LIST_LIMIT})",
    )

    cancel = sub.add_parser("cancel", help="Cancel a PENDING sync job")
    cancel.add_argument("job_id")

    recover = sub.add_parser(
        "recover",
        help="Reset interrupted jobs and cancel stale PENDING jobs",
        description=(
            "Startup-only repair: run it while no worker is live. "
            "In-flight jobs block it unless --force is given."
        ),
    )
    recover.add_argument(
        "--force",
        action="store_true",
        help="Reset in-flight jobs even if a worker may still own them",
    )

    sub.add_parser(
        "worker",
        help="Run workers, reconciler and scheduler until interrupted",
    )

    return parser


@asynccontextmanager
async def _open_store(
    settings: Settings,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Initialize engine + tables, yield a session factory, dispose."""
    engine = create_app_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


_Command: TypeAlias = Callable[[SyncRuntime, argparse.Namespace], Awaitable[int]]


async def _with_runtime(
    settings: Settings,
    args: argparse.Namespace,
    handler: _Command,
) -> int:
    async with _open_store(settings) as session_factory:
        runtime = build_runtime(settings, session_factory)
        try:
            return await handler(runtime, args)
        except SyncError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        finally:
            await runtime.stop()


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# ── Commands ─────────────────────────────────────────────


async def _cmd_add_repo(
    runtime: SyncRuntime, args: argparse.Namespace
) -> int:
    try:
        repo, created = await runtime.sync_service.add_repo(
            args.full_name, args.branch
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    verb = "Added" if created else "Already tracked"
    print(f"{verb}: {repo.full_name} ({repo.id})")
    return 0


async def _cmd_repos(
    runtime: SyncRuntime, args: argparse.Namespace
) -> int:
    repos = await runtime.sync_service.list_repos()
    if not repos:
        print("No repositories tracked.")
        return 0
    for repo in repos:
        sha = (repo.last_commit_sha or "-")[:7]
        print(
            f"{repo.id}  {repo.full_name}  "
            f"branch={repo.default_branch or '-'}  commit={sha}"
        )
    return 0


async def _cmd_sync(
    runtime: SyncRuntime, args: argparse.Namespace
) -> int:
    service = runtime.sync_service
    repo = await service.find_repo(args.repo)
    if repo is None:
        print(f"Error: repository not found: {args.repo}", file=sys.stderr)
        return 1

    try:
        config = SyncConfig(
            max_files=args.max_files,
            max_content_files=args.max_content,
            skip_content=args.skip_content,
        )
    except ValidationError as exc:
        print(f"Error: invalid sync options: {exc}", file=sys.stderr)
        return 2
    job, created = await service.create_sync_job(
        repo.id, config, triggered_by=TriggerSource.CLI
    )
    verb = "Queued" if created else "Already running"
    print(f"{verb}: job {job.id} for {repo.full_name} ({job.status})")
    if not args.wait:
        return 0

    await runtime.worker.start()
    while True:
        current = await service.get_job(job.id)
        if current is None or current.status in TERMINAL_SYNC_STATUSES:
            break
        await asyncio.sleep(_WAIT_POLL_SECONDS)
    if current is None:
        return 1
    print(
        f"Finished: {current.status} "
        f"(processed={current.processed_files} "
        f"skipped={current.skipped_files} failed={current.failed_files})"
    )
    if current.error:
        print(f"  Error: {current.error}")
    return 0 if current.status == SyncJobStatus.COMPLETED else 1


async def _cmd_status(
    runtime: SyncRuntime, args: argparse.Namespace
) -> int:
    service = runtime.sync_service
    job = await service.get_job(args.job_id)
    if job is None:
        print(f"Error: job not found: {args.job_id}", file=sys.stderr)
        return 1
    data = job.to_dict()
    if args.files:
        files = await service.list_file_jobs(job.id)
        data["files"] = [f.to_dict() for f in files]
    else:
        failed = await service.list_file_jobs(job.id, FileJobStatus.FAILED)
        data["failed_paths"] = [f.path for f in failed]
    _print_json(data)
    return 0


async def _cmd_jobs(
    runtime: SyncRuntime, args: argparse.Namespace
) -> int:
    jobs = await runtime.sync_service.list_jobs(
        status=args.status, repo_id=args.repo, limit=args.limit
    )
    if not jobs:
        print("No sync jobs.")
        return 0
    for job in jobs:
        print(
            f"{job.id}  {job.status:<16} repo={job.repo_id}  "
            f"{job.processed_files}/{job.total_files} files  "
            f"created={job.created_at.isoformat()}"
        )
    return 0


async def _cmd_cancel(
    runtime: SyncRuntime, args: argparse.Namespace
) -> int:
    job = await runtime.sync_service.cancel_job(args.job_id)
    print(f"Cancelled: job {job.id}")
    return 0


async def _cmd_recover(
    runtime: SyncRuntime, args: argparse.Namespace
) -> int:
    if not args.force:
        in_flight = [
            job
            for status in sorted(IN_FLIGHT_SYNC_STATUSES)
            for job in await runtime.sync_service.list_jobs(status=status)
        ]
        if in_flight:
            print(
                f"Error: {len(in_flight)} sync job(s) in flight; a live "
                "worker may own them. Stop all workers first, or pass "
                "--force.",
                file=sys.stderr,
            )
            return 1
    result = await runtime.reconciler.recover_stuck_jobs()
    cancelled = await runtime.reconciler.cancel_stale_jobs()
    print(
        f"Recovered {len(result.sync_jobs)} sync job(s), "
        f"{len(result.embed_jobs)} embed job(s); "
        f"cancelled {len(cancelled)} stale job(s)"
    )
    return 0


async def _cmd_worker(
    runtime: SyncRuntime, args: argparse.Namespace
) -> int:
    result = await runtime.start()
    print(
        f"Worker started: recovered={result.total_recovered} "
        f"requeued={result.requeued} "
        f"concurrency={runtime.settings.worker_concurrency}"
    )
    await asyncio.Event().wait()
    return 0


_COMMANDS: dict[str, _Command] = {
    "add-repo": _cmd_add_repo,
    "repos": _cmd_repos,
    "sync": _cmd_sync,
    "status": _cmd_status,
    "jobs": _cmd_jobs,
    "cancel": _cmd_cancel,
    "recover": _cmd_recover,
    "worker": _cmd_worker,
}


if __name__ == "__main__":
    main()
