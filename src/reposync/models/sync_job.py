"""Sync ledger ORM models: RepoSyncJob and its per-file FileSyncJob rows."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from reposync.constants import FileJobStatus, SyncJobStatus, TriggerSource
from reposync.models.base import Base
from reposync.sync.schemas import SyncConfig


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class RepoSyncJob(Base):
    __tablename__ = "repo_sync_jobs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    repo_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("repos.id", ondelete="CASCADE"), index=True
    )
    status: Mapped[str] = mapped_column(
        String(50), default=SyncJobStatus.PENDING
    )
    total_files: Mapped[int] = mapped_column(Integer, default=0)
    processed_files: Mapped[int] = mapped_column(Integer, default=0)
    skipped_files: Mapped[int] = mapped_column(Integer, default=0)
    failed_files: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    triggered_by: Mapped[str] = mapped_column(
        String(20), default=TriggerSource.MANUAL
    )
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_sync_jobs_status_created", "status", "created_at"),
    )

    @property
    def sync_config(self) -> SyncConfig:
        return SyncConfig.model_validate(self.config or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "repo_id": self.repo_id,
            "status": self.status,
            "total_files": self.total_files,
            "processed_files": self.processed_files,
            "skipped_files": self.skipped_files,
            "failed_files": self.failed_files,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "error": self.error,
            "config": self.config or {},
            "triggered_by": self.triggered_by,
            "created_at": self.created_at.isoformat(),
        }


class FileSyncJob(Base):
    __tablename__ = "file_sync_jobs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    sync_job_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("repo_sync_jobs.id", ondelete="CASCADE"),
        index=True,
    )
    repo_id: Mapped[str] = mapped_column(String(36))
    path: Mapped[str] = mapped_column(String(1000))
    sha: Mapped[str] = mapped_column(String(40))
    size: Mapped[int] = mapped_column(Integer, default=0)
    ordinal: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(
        String(20), default=FileJobStatus.PENDING
    )
    skip_reason: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sync_job_id": self.sync_job_id,
            "path": self.path,
            "sha": self.sha,
            "size": self.size,
            "status": self.status,
            "skip_reason": self.skip_reason,
            "error": self.error,
            "processed_at": _iso(self.processed_at),
        }
