"""Persistence layer for maestro workflows."""

from __future__ import annotations

import os
from typing import Optional

from ..config import MaestroConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .repository import CheckpointStore, WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresWorkflowRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresWorkflowRepository = None  # type: ignore


def get_repository(
    database_url: Optional[str] = None, config: Optional[MaestroConfig] = None
):
    """Factory function to obtain a workflow repository.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``MAESTRO_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned. Every backend also
    implements :class:`CheckpointStore`.
    """

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("MAESTRO_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        return InMemoryWorkflowRepository()

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteWorkflowRepository(path)
    if database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresWorkflowRepository is None:
            raise RuntimeError("Postgres support not available")
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "CheckpointStore",
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
]
