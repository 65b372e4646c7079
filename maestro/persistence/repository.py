"""Repository abstractions for workflow and checkpoint persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ..contracts import Checkpoint, WorkflowInstance


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends.

    ``save_workflow`` is an upsert of the full instance document, so
    repeating a save is harmless.
    """

    async def save_workflow(self, instance: WorkflowInstance) -> None:
        """Insert or replace the stored instance."""

    async def get_workflow(self, workflow_id: str) -> WorkflowInstance | None:
        """Retrieve the workflow instance by id."""

    async def list_workflows(self) -> list[WorkflowInstance]:
        """Return all persisted workflows."""


class CheckpointStore(Protocol):
    """Protocol for durable checkpoint storage."""

    async def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Persist a checkpoint."""

    async def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        """Retrieve a checkpoint by id."""

    async def list_checkpoints(self, workflow_id: str) -> list[Checkpoint]:
        """Return checkpoints of a workflow, oldest first."""

    async def purge_expired_checkpoints(self, now: Optional[datetime] = None) -> int:
        """Delete expired checkpoints and return how many were removed."""
