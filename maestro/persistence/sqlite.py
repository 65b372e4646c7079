"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..contracts import Checkpoint, WorkflowInstance, utcnow
from ..exceptions import PersistenceError


class SQLiteWorkflowRepository:
    """Persist workflow state and checkpoints using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                template TEXT NOT NULL,
                status TEXT NOT NULL,
                data TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS checkpoints (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_checkpoints_workflow ON checkpoints (workflow_id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        try:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(f"SQLite write failed: {e}") from e

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        try:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"SQLite read failed: {e}") from e

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        try:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"SQLite read failed: {e}") from e

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    async def save_workflow(self, instance: WorkflowInstance) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflows (id, template, status, data, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                template = excluded.template,
                status = excluded.status,
                data = excluded.data,
                updated_at = excluded.updated_at
            """,
            instance.id,
            instance.template,
            instance.status.value,
            instance.model_dump_json(),
            instance.updated_at.isoformat(),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowInstance | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM workflows WHERE id = ?", workflow_id
        )
        if not row:
            return None
        return WorkflowInstance.model_validate_json(row["data"])

    async def list_workflows(self) -> list[WorkflowInstance]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT data FROM workflows ORDER BY updated_at"
        )
        return [WorkflowInstance.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    # Checkpoint store API
    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR REPLACE INTO checkpoints (id, workflow_id, created_at, expires_at, data)
            VALUES (?, ?, ?, ?, ?)
            """,
            checkpoint.id,
            checkpoint.workflow_id,
            checkpoint.created_at.isoformat(),
            checkpoint.expires_at.isoformat() if checkpoint.expires_at else None,
            checkpoint.model_dump_json(),
        )

    async def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM checkpoints WHERE id = ?", checkpoint_id
        )
        if not row:
            return None
        return Checkpoint.model_validate_json(row["data"])

    async def list_checkpoints(self, workflow_id: str) -> list[Checkpoint]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT data FROM checkpoints WHERE workflow_id = ? ORDER BY created_at",
            workflow_id,
        )
        return [Checkpoint.model_validate_json(r["data"]) for r in rows]

    async def purge_expired_checkpoints(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        return await asyncio.to_thread(
            self._execute,
            "DELETE FROM checkpoints WHERE expires_at IS NOT NULL AND expires_at <= ?",
            now.isoformat(),
        )
