"""Repo registration, sync triggers and live sync event streams."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from reposync.api.dependencies import get_event_bus, get_sync_service
from reposync.api.event_bus import SyncEventBus
from reposync.api.schemas import APIResponse, RepoCreate, SyncRequest
from reposync.constants import (
    SSE_POLL_TIMEOUT,
    TERMINAL_SYNC_STATUSES,
    SSEEvent,
    TriggerSource,
)
from reposync.resilience.errors import RepoNotFoundError
from reposync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/repos", tags=["repos"])


@router.get("")
async def list_repos(
    service: SyncService = Depends(get_sync_service),
) -> APIResponse:
    """List all tracked repos."""
    repos = await service.list_repos()
    return APIResponse(
        success=True,
        data=[r.to_dict() for r in repos],
    )


@router.post("")
async def create_repo(
    body: RepoCreate,
    service: SyncService = Depends(get_sync_service),
) -> APIResponse:
    """Start tracking a repo. Re-adding an existing repo returns it."""
    try:
        repo, created = await service.add_repo(
            body.full_name, body.default_branch
        )
    except ValueError as exc:
        return APIResponse(success=False, error=str(exc))
    return APIResponse(
        success=True,
        data=repo.to_dict(),
        metadata={"created": created},
    )


@router.get("/{repo_id}")
async def get_repo(
    repo_id: str,
    service: SyncService = Depends(get_sync_service),
) -> APIResponse:
    """Repo metadata plus its most recent sync job."""
    repo = await service.get_repo(repo_id)
    if repo is None:
        return APIResponse(success=False, error="Repo not found")
    latest = await service.list_jobs(repo_id=repo_id, limit=1)
    data = repo.to_dict()
    data["latest_job"] = latest[0].to_dict() if latest else None
    return APIResponse(success=True, data=data)


@router.post("/{repo_id}/sync")
async def trigger_sync(
    repo_id: str,
    body: SyncRequest | None = None,
    service: SyncService = Depends(get_sync_service),
) -> APIResponse:
    """Queue a sync, or return the repo's live job if one exists."""
    config = body.to_config() if body is not None else None
    try:
        job, created = await service.create_sync_job(
            repo_id, config, triggered_by=TriggerSource.API
        )
    except RepoNotFoundError:
        return APIResponse(success=False, error="Repo not found")
    return APIResponse(
        success=True,
        data=job.to_dict(),
        metadata={"created": created},
    )


@router.get("/{repo_id}/sync/events")
async def stream_sync_events(
    request: Request,
    repo_id: str,
    service: SyncService = Depends(get_sync_service),
    bus: SyncEventBus = Depends(get_event_bus),
) -> EventSourceResponse:
    """Replay + live SSE stream of the repo's running sync."""
    return EventSourceResponse(
        _sync_event_stream(request, repo_id, service, bus),
        sep="\n",
    )


async def _sync_event_stream(
    request: Request,
    repo_id: str,
    service: SyncService,
    bus: SyncEventBus,
) -> AsyncIterator[dict[str, str]]:
    """Yield replayed and live events until the job's final event.

    With no sync running, a single snapshot of the latest job is sent
    so the client can render its final state.
    """
    if not bus.has_channel(repo_id):
        async for event in _snapshot(repo_id, service):
            yield event
        return

    queue = await bus.subscribe(repo_id)
    try:
        while True:
            if await request.is_disconnected():
                logger.debug(
                    "event=sse_client_disconnected repo_id=%s", repo_id
                )
                return
            try:
                event = await asyncio.wait_for(
                    queue.get(), timeout=SSE_POLL_TIMEOUT
                )
            except TimeoutError:
                continue
            if event is None:
                return
            yield event
    finally:
        await bus.unsubscribe(repo_id, queue)


async def _snapshot(
    repo_id: str, service: SyncService
) -> AsyncIterator[dict[str, str]]:
    repo = await service.get_repo(repo_id)
    if repo is None:
        yield {
            "event": SSEEvent.ERROR,
            "data": json.dumps({"error": "Repo not found"}),
        }
        return
    latest = await service.list_jobs(repo_id=repo_id, limit=1)
    if not latest:
        return
    job = latest[0]
    event = (
        SSEEvent.COMPLETE
        if job.status in TERMINAL_SYNC_STATUSES
        else SSEEvent.PROGRESS
    )
    yield {"event": event, "data": json.dumps(job.to_dict())}
