"""Repo ORM model: the upstream repository being mirrored."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column

from reposync.models.base import Base


class Repo(Base):
    __tablename__ = "repos"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    full_name: Mapped[str] = mapped_column(String(300), unique=True)
    default_branch: Mapped[str | None] = mapped_column(
        String(200), nullable=True
    )
    last_commit_sha: Mapped[str | None] = mapped_column(
        String(40), nullable=True
    )
    last_indexed: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
    )

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.full_name.split("/", 1)[-1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "default_branch": self.default_branch,
            "last_commit_sha": self.last_commit_sha,
            "last_indexed": (
                self.last_indexed.isoformat()
                if self.last_indexed
                else None
            ),
            "created_at": self.created_at.isoformat(),
        }
