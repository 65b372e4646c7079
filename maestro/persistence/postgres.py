"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import asyncpg

from ..contracts import Checkpoint, WorkflowInstance, utcnow
from ..exceptions import PersistenceError


class PostgresWorkflowRepository:
    """Persist workflow state and checkpoints using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        try:
            conn = await asyncpg.connect(self._dsn)
        except (OSError, asyncpg.PostgresError) as e:
            raise PersistenceError(f"Could not connect to PostgreSQL: {e}") from e
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                template TEXT NOT NULL,
                status TEXT NOT NULL,
                data JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS checkpoints (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                expires_at TIMESTAMPTZ,
                data JSONB NOT NULL
            )
            """
        )

    async def _run(self, method: str, query: str, *args: Any) -> Any:
        conn = await self._connect()
        try:
            return await getattr(conn, method)(query, *args)
        except asyncpg.PostgresError as e:
            raise PersistenceError(f"PostgreSQL {method} failed: {e}") from e
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def save_workflow(self, instance: WorkflowInstance) -> None:
        await self._run(
            "execute",
            """
            INSERT INTO workflows (id, template, status, data, updated_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (id) DO UPDATE SET
                template = EXCLUDED.template,
                status = EXCLUDED.status,
                data = EXCLUDED.data,
                updated_at = EXCLUDED.updated_at
            """,
            instance.id,
            instance.template,
            instance.status.value,
            instance.model_dump_json(),
            instance.updated_at,
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowInstance | None:
        row = await self._run(
            "fetchrow", "SELECT data FROM workflows WHERE id = $1", workflow_id
        )
        if not row:
            return None
        return WorkflowInstance.model_validate_json(row["data"])

    async def list_workflows(self) -> list[WorkflowInstance]:
        rows = await self._run("fetch", "SELECT data FROM workflows ORDER BY updated_at")
        return [WorkflowInstance.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        await self._run(
            "execute",
            """
            INSERT INTO checkpoints (id, workflow_id, created_at, expires_at, data)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (id) DO NOTHING
            """,
            checkpoint.id,
            checkpoint.workflow_id,
            checkpoint.created_at,
            checkpoint.expires_at,
            checkpoint.model_dump_json(),
        )

    async def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        row = await self._run(
            "fetchrow", "SELECT data FROM checkpoints WHERE id = $1", checkpoint_id
        )
        if not row:
            return None
        return Checkpoint.model_validate_json(row["data"])

    async def list_checkpoints(self, workflow_id: str) -> list[Checkpoint]:
        rows = await self._run(
            "fetch",
            "SELECT data FROM checkpoints WHERE workflow_id = $1 ORDER BY created_at",
            workflow_id,
        )
        return [Checkpoint.model_validate_json(r["data"]) for r in rows]

    async def purge_expired_checkpoints(self, now: Optional[datetime] = None) -> int:
        status = await self._run(
            "execute",
            "DELETE FROM checkpoints WHERE expires_at IS NOT NULL AND expires_at <= $1",
            now or utcnow(),
        )
        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(status.split()[-1])
