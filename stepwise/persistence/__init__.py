"""Persistence layer for stepwise runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepwiseConfig, load_config
from .inmemory import InMemoryRunRepository
from .models import RunStatus, StepRun, StepStatus, WorkflowRun
from .repository import RunRepository
from .sqlite import SQLiteRunRepository

_repository_instance: RunRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[StepwiseConfig] = None
) -> RunRepository:
    """Factory function to obtain a run repository.

    The repository backend is selected based on ``database_url`` which can be
    provided explicitly, via environment variable ``STEPWISE_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.

    Supported URLs:
        ``sqlite://<path>``: stdlib sqlite3 backend.
        ``postgres://`` / ``postgresql://``: asyncpg backend.
        ``<dialect>+<driver>://``: SQLModel backend over async SQLAlchemy.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("STEPWISE_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryRunRepository()
        return _repository_instance

    scheme = database_url.split("://", 1)[0]
    if "+" in scheme:
        from ..db import SQLModelRunRepository

        _repository_instance = SQLModelRunRepository(database_url)
    elif scheme == "sqlite":
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteRunRepository(path)
    elif scheme in ("postgres", "postgresql"):
        from .postgres import PostgresRunRepository

        _repository_instance = PostgresRunRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


def reset_repository() -> None:
    """Forget the cached repository so the next call re-reads configuration."""
    global _repository_instance
    _repository_instance = None


__all__ = [
    "RunStatus",
    "StepStatus",
    "StepRun",
    "WorkflowRun",
    "RunRepository",
    "InMemoryRunRepository",
    "SQLiteRunRepository",
    "get_repository",
    "reset_repository",
]
