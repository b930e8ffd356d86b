"""Environment-based configuration and database engine setup."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from reposync.constants import DEFAULT_MAX_FILE_SIZE_BYTES

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # Database
    database_url: str = "sqlite:///data/reposync.db"

    # Logging
    log_level: str = "INFO"
    debug_mode: bool = False

    # Source provider (GitHub REST)
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    # Per-owner tokens: "owner=token,other=token" or a JSON object
    github_tokens: Annotated[dict[str, str], NoDecode] = {}
    github_timeout_seconds: float = 30.0

    # Classifier
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES

    # Workers + reconciliation
    worker_concurrency: int = 1
    shutdown_grace_seconds: float = 30.0
    reconcile_interval_seconds: int = 300
    stale_job_minutes: int = 24 * 60
    scheduled_sync_minutes: int = 60  # 0 disables scheduled syncs

    # API
    api_key: str = ""
    cors_origins: str = "http://localhost:3000"

    @field_validator("github_tokens", mode="before")
    @classmethod
    def _parse_tokens(cls, v: Any) -> Any:
        """Accept ``owner=token`` pairs or a JSON object."""
        if not isinstance(v, str):
            return v
        text = v.strip()
        if not text:
            return {}
        if text.startswith("{"):
            return json.loads(text)
        tokens: dict[str, str] = {}
        for pair in text.split(","):
            owner, sep, token = pair.partition("=")
            if not sep or not owner.strip() or not token.strip():
                raise ValueError(
                    f"github_tokens entry must be owner=token, got {pair!r}"
                )
            tokens[owner.strip().lower()] = token.strip()
        return tokens

    @field_validator("github_tokens")
    @classmethod
    def _normalize_owners(cls, v: dict[str, str]) -> dict[str, str]:
        return {owner.lower(): token for owner, token in v.items()}

    @field_validator("worker_concurrency")
    @classmethod
    def _validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("worker_concurrency must be at least 1")
        return v

    @field_validator("stale_job_minutes")
    @classmethod
    def _validate_stale_minutes(cls, v: int) -> int:
        if v < 1:
            raise ValueError("stale_job_minutes must be at least 1")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "extra": "ignore",
    }


def async_database_url(url: str) -> str:
    """Convert ``sqlite:///`` URLs to the aiosqlite driver."""
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite:///" + url[len("sqlite:///"):]
    return url


def _ensure_sqlite_dir(db_url: str) -> None:
    prefix = "sqlite+aiosqlite:///"
    if not db_url.startswith(prefix):
        return
    path = db_url[len(prefix):]
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)


def create_app_engine(
    url: str, *, echo: bool = False
) -> AsyncEngine:
    """Create async engine; SQLite connections get WAL journal mode.

    WAL is set via a pool-connect event listener so it fires once
    per raw DBAPI connection, not per ORM session.
    """
    db_url = async_database_url(url)
    _ensure_sqlite_dir(db_url)
    engine = create_async_engine(db_url, echo=echo)

    if db_url.startswith("sqlite"):

        @event.listens_for(engine.sync_engine, "connect")
        def _set_wal_mode(
            dbapi_conn: object,
            _connection_record: object,
        ) -> None:
            cursor = dbapi_conn.cursor()  # type: ignore[union-attr]
            cursor.execute("PRAGMA journal_mode=WAL")  # pyright: ignore[reportUnknownMemberType]
            cursor.execute("PRAGMA foreign_keys=ON")  # pyright: ignore[reportUnknownMemberType]
            cursor.close()  # pyright: ignore[reportUnknownMemberType]

    return engine
