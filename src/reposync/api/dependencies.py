"""FastAPI dependency injection for services held in app state."""

from __future__ import annotations

from fastapi import Request

from reposync.api.app_state import AppState
from reposync.api.event_bus import SyncEventBus
from reposync.queue.recovery import JobReconciler
from reposync.services.data_service import DataService
from reposync.services.sync_service import SyncService


def get_app_state(request: Request) -> AppState:
    return request.app.state.typed  # type: ignore[no-any-return]


def get_sync_service(request: Request) -> SyncService:
    return get_app_state(request).runtime.sync_service


def get_reconciler(request: Request) -> JobReconciler:
    return get_app_state(request).runtime.reconciler


def get_event_bus(request: Request) -> SyncEventBus:
    return get_app_state(request).event_bus


def get_data_service(request: Request) -> DataService:
    return get_app_state(request).data_service
