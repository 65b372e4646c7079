"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from ..contracts import Checkpoint, WorkflowInstance, utcnow


class InMemoryWorkflowRepository:
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Instances are deep-copied on the way
    in and out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowInstance] = {}
        self._checkpoints: Dict[str, Checkpoint] = {}

    # ------------------------------------------------------------------
    async def save_workflow(self, instance: WorkflowInstance) -> None:
        self._workflows[instance.id] = instance.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> WorkflowInstance | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_workflows(self) -> list[WorkflowInstance]:
        return [wf.model_copy(deep=True) for wf in self._workflows.values()]

    # ------------------------------------------------------------------
    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        self._checkpoints[checkpoint.id] = checkpoint

    async def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        return self._checkpoints.get(checkpoint_id)

    async def list_checkpoints(self, workflow_id: str) -> list[Checkpoint]:
        found = [c for c in self._checkpoints.values() if c.workflow_id == workflow_id]
        return sorted(found, key=lambda c: c.created_at)

    async def purge_expired_checkpoints(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        expired = [cid for cid, c in self._checkpoints.items() if c.is_expired(now)]
        for cid in expired:
            del self._checkpoints[cid]
        return len(expired)
