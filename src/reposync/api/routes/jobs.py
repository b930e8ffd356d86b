"""Sync job inspection, cancellation and manual reconciliation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from reposync.api.dependencies import get_reconciler, get_sync_service
from reposync.api.schemas import APIResponse
from reposync.constants import DEFAULT_JOB_LIST_LIMIT, SyncJobStatus
from reposync.queue.recovery import JobReconciler
from reposync.resilience.errors import (
    JobNotCancellableError,
    JobNotFoundError,
)
from reposync.services.sync_service import SyncService

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("")
async def list_jobs(
    status: SyncJobStatus | None = None,
    repo_id: str | None = None,
    limit: int = Query(default=DEFAULT_JOB_LIST_LIMIT, ge=1, le=500),
    service: SyncService = Depends(get_sync_service),
) -> APIResponse:
    """Most recent sync jobs, newest first."""
    jobs = await service.list_jobs(
        status=status, repo_id=repo_id, limit=limit
    )
    return APIResponse(
        success=True,
        data=[j.to_dict() for j in jobs],
        metadata={"count": len(jobs)},
    )


@router.post("/reconcile")
async def reconcile(
    reconciler: JobReconciler = Depends(get_reconciler),
) -> APIResponse:
    """Cancel stale PENDING jobs and re-announce orphaned ones now."""
    cancelled, requeued = await reconciler.run_once()
    return APIResponse(
        success=True,
        data={"cancelled": cancelled, "requeued": requeued},
    )


@router.get("/{job_id}")
async def get_job(
    job_id: str,
    service: SyncService = Depends(get_sync_service),
) -> APIResponse:
    job = await service.get_job(job_id)
    if job is None:
        return APIResponse(success=False, error="Job not found")
    return APIResponse(success=True, data=job.to_dict())


@router.get("/{job_id}/files")
async def list_job_files(
    job_id: str,
    status: str | None = None,
    service: SyncService = Depends(get_sync_service),
) -> APIResponse:
    """Per-file ledger rows of a job in processing order."""
    job = await service.get_job(job_id)
    if job is None:
        return APIResponse(success=False, error="Job not found")
    files = await service.list_file_jobs(job_id, status)
    return APIResponse(
        success=True,
        data=[f.to_dict() for f in files],
        metadata={"count": len(files)},
    )


@router.post("/{job_id}/cancel")
async def cancel_job(
    job_id: str,
    service: SyncService = Depends(get_sync_service),
) -> APIResponse:
    """Cancel a job that has not started yet."""
    try:
        job = await service.cancel_job(job_id)
    except JobNotFoundError:
        return APIResponse(success=False, error="Job not found")
    except JobNotCancellableError as exc:
        return APIResponse(success=False, error=str(exc))
    return APIResponse(success=True, data=job.to_dict())
