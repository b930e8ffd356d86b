"""Typed application state, replaces untyped getattr() access."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposync.api.event_bus import SyncEventBus
from reposync.config import Settings
from reposync.runtime import SyncRuntime
from reposync.services.data_service import DataService


@dataclass
class AppState:
    """Typed container for app.state attributes."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    event_bus: SyncEventBus
    runtime: SyncRuntime
    data_service: DataService
