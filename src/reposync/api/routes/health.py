"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from reposync import __version__
from reposync.api.app_state import AppState
from reposync.api.dependencies import get_app_state

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check for load balancers."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/health/detailed")
async def health_detailed(
    state: AppState = Depends(get_app_state),
) -> dict[str, object]:
    """Detailed health check with component-level status."""
    db_healthy = await state.data_service.check_connection()
    runtime = state.runtime

    components: dict[str, dict[str, object]] = {
        "database": {
            "status": "connected" if db_healthy else "disconnected"
        },
        "worker": {
            "status": "running" if runtime.worker.is_running else "stopped",
            "jobs_handled": runtime.worker.jobs_handled,
        },
        "reconciler": {
            "status": (
                "running" if runtime.reconciler.is_running else "stopped"
            ),
        },
        "dispatcher": {
            "status": "available",
            "queued": await runtime.dispatcher.size(),
            "active": await runtime.dispatcher.active_count(),
        },
    }
    job_counts = (
        await state.data_service.job_status_counts() if db_healthy else {}
    )

    all_healthy = db_healthy and runtime.worker.is_running

    return {
        "status": "healthy" if all_healthy else "degraded",
        "version": __version__,
        "components": components,
        "jobs": job_counts,
        "timestamp": datetime.now(UTC).isoformat(),
    }
