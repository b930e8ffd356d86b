"""Request/response schemas for the HTTP API."""

from typing import Any

from pydantic import BaseModel, Field

from reposync.sync.schemas import SyncConfig


class APIResponse(BaseModel):
    """Standard response envelope for all API endpoints."""

    success: bool
    data: Any | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RepoCreate(BaseModel):
    """Request body for POST /api/repos."""

    full_name: str = Field(
        min_length=3, max_length=300, pattern=r"^[^/\s]+/[^/\s]+$"
    )
    default_branch: str | None = None


class SyncRequest(SyncConfig):
    """Request body for POST /api/repos/{id}/sync."""

    def to_config(self) -> SyncConfig:
        return SyncConfig.model_validate(self.model_dump())
