"""SQLAlchemy ORM models."""

from reposync.models.base import Base
from reposync.models.embed_job import EmbedJob
from reposync.models.repo import Repo
from reposync.models.stored_file import StoredFile
from reposync.models.sync_job import FileSyncJob, RepoSyncJob

__all__ = [
    "Base",
    "EmbedJob",
    "FileSyncJob",
    "Repo",
    "RepoSyncJob",
    "StoredFile",
]
