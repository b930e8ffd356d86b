"""StoredFile ORM model: the local mirror of one upstream file."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from reposync.models.base import Base


class StoredFile(Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    repo_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("repos.id", ondelete="CASCADE")
    )
    path: Mapped[str] = mapped_column(String(1000))
    sha: Mapped[str] = mapped_column(String(40))
    size: Mapped[int] = mapped_column(Integer, default=0)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    encoding: Mapped[str | None] = mapped_column(String(20), nullable=True)
    skipped_reason: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    language: Mapped[str | None] = mapped_column(String(50), nullable=True)
    loc: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_embedded_sha: Mapped[str | None] = mapped_column(
        String(40), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        UniqueConstraint("repo_id", "path", name="uq_file_repo_path"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "repo_id": self.repo_id,
            "path": self.path,
            "sha": self.sha,
            "size": self.size,
            "skipped_reason": self.skipped_reason,
            "language": self.language,
            "loc": self.loc,
            "has_content": self.content is not None,
        }
