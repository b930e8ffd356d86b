"""Pydantic models and result types shared by the sync engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from reposync.constants import SkipReason, SyncMode


class SyncConfig(BaseModel):
    """Per-job configuration. Absent fields mean unlimited / off."""

    model_config = ConfigDict(extra="ignore")

    max_files: int | None = Field(default=None, ge=1)
    max_content_files: int | None = Field(default=None, ge=0)
    skip_content: bool = False

    def to_json(self) -> dict[str, Any]:
        """Compact dict for the ledger's JSON column."""
        return self.model_dump(exclude_defaults=True)


class TreeEntry(BaseModel):
    """A blob in the upstream tree or a changed file in a comparison."""

    path: str
    sha: str
    size: int = 0


class TreeSnapshot(BaseModel):
    """Every (non-ignored) blob at the branch tip."""

    entries: list[TreeEntry] = Field(
        default_factory=lambda: list[TreeEntry]()
    )
    commit_sha: str
    tree_sha: str | None = None
    truncated: bool = False


class CompareResult(BaseModel):
    """Delta between a previously synced commit and the branch tip."""

    added: list[TreeEntry] = Field(
        default_factory=lambda: list[TreeEntry]()
    )
    modified: list[TreeEntry] = Field(
        default_factory=lambda: list[TreeEntry]()
    )
    removed: list[str] = Field(default_factory=lambda: list[str]())
    head_commit_sha: str
    base_commit_sha: str
    total_changes: int = 0


@dataclass(frozen=True)
class FileCheck:
    """Classifier verdict for one path."""

    skip: bool
    reason: SkipReason | None = None


@dataclass
class WorkPlan:
    """Output of the diff strategy for one sync attempt."""

    mode: SyncMode
    entries: list[TreeEntry] = field(
        default_factory=lambda: list[TreeEntry]()
    )
    removed: list[str] = field(default_factory=lambda: list[str]())
    head_commit_sha: str | None = None
    no_changes: bool = False
    empty_repository: bool = False
    truncated_tree: bool = False
    fallback_reason: str | None = None

    @property
    def is_incremental(self) -> bool:
        return self.mode == SyncMode.INCREMENTAL


FileOutcome = Literal["ok", "skipped", "failed"]


@dataclass(frozen=True)
class FileResult:
    """Tri-state result of processing one file."""

    outcome: FileOutcome
    content: str | None = None
    reason: SkipReason | None = None
    error: str | None = None

    @classmethod
    def ok(cls, content: str | None) -> FileResult:
        return cls(outcome="ok", content=content)

    @classmethod
    def skipped(cls, reason: SkipReason) -> FileResult:
        return cls(outcome="skipped", reason=reason)

    @classmethod
    def failed(cls, error: str) -> FileResult:
        return cls(outcome="failed", error=error)
