"""Snapshots of workflow state and rollback to them."""

from __future__ import annotations

import copy
import logging
from collections import deque
from datetime import timedelta
from typing import Deque, Dict, List, Optional

from ..constants import DEFAULT_CHECKPOINT_TTL_DAYS, DEFAULT_MAX_CHECKPOINTS
from ..contracts import (
    AgentStatus,
    Checkpoint,
    CheckpointState,
    CheckpointSummary,
    CheckpointType,
    RollbackResult,
    WorkflowInstance,
    WorkflowStatus,
    utcnow,
)
from ..exceptions import PersistenceError, RollbackNotFoundError
from ..persistence import CheckpointStore
from .lifecycle import LifecycleManager


class CheckpointManager:
    """Create restorable snapshots and roll instances back to them.

    Snapshots are deep copies taken with :func:`copy.deepcopy`; restoring
    copies again so one checkpoint can be restored any number of times.
    """

    def __init__(
        self,
        lifecycle: LifecycleManager,
        store: CheckpointStore,
        enabled: bool = True,
        max_in_memory: int = DEFAULT_MAX_CHECKPOINTS,
        ttl_days: Optional[int] = DEFAULT_CHECKPOINT_TTL_DAYS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.store = store
        self.enabled = enabled
        self.ttl = timedelta(days=ttl_days) if ttl_days else None
        self._log = logger or logging.getLogger(__name__)
        self.max_in_memory = max_in_memory
        self._recent: Dict[str, Deque[CheckpointSummary]] = {}

    async def create(
        self,
        workflow_id: str,
        type: CheckpointType = CheckpointType.MANUAL,
        description: str = "",
        *,
        force: bool = False,
    ) -> Optional[Checkpoint]:
        """Snapshot the workflow. Returns ``None`` when checkpoints are disabled.

        ``force`` takes the snapshot even when automatic checkpoints are off;
        it is used for checkpoints requested explicitly by a caller.
        """
        if not self.enabled and not force:
            return None
        instance = await self.lifecycle.get(workflow_id)
        recent = await self._recent_for(workflow_id)
        now = utcnow()
        checkpoint = Checkpoint(
            workflow_id=workflow_id,
            type=type,
            description=description or type.value.replace("_", " "),
            step_index=instance.current_step_index,
            current_agent=instance.current_agent,
            status=instance.status,
            state=_snapshot(instance),
            created_at=now,
            expires_at=now + self.ttl if self.ttl else None,
        )
        try:
            await self.store.save_checkpoint(checkpoint)
        except PersistenceError as e:
            self._log.warning(f"Checkpoint {checkpoint.id} kept in memory only: {e}")
        recent.append(checkpoint.summary())
        self._log.info(
            f"Checkpoint {checkpoint.id} ({type.value}) for workflow {workflow_id} "
            f"at step {checkpoint.step_index}"
        )
        return checkpoint

    async def get(self, checkpoint_id: str) -> Optional[Checkpoint]:
        return await self.store.get_checkpoint(checkpoint_id)

    async def list(self, workflow_id: str) -> List[CheckpointSummary]:
        """Return summaries of recent checkpoints, oldest first.

        Workflows without a recent list are read from the store and are not
        added to the in-memory lists.
        """
        recent = self._recent.get(workflow_id)
        if recent:
            return list(recent)
        return await self._stored_summaries(workflow_id)

    def forget(self, workflow_id: str) -> None:
        """Drop the recent list of a workflow no longer running here."""
        self._recent.pop(workflow_id, None)

    def tracked(self) -> List[str]:
        return list(self._recent)

    async def _stored_summaries(self, workflow_id: str) -> List[CheckpointSummary]:
        stored = await self.store.list_checkpoints(workflow_id)
        return [c.summary() for c in stored if not c.is_expired()]

    async def _recent_for(self, workflow_id: str) -> Deque[CheckpointSummary]:
        recent = self._recent.get(workflow_id)
        if recent is None:
            try:
                stored = await self._stored_summaries(workflow_id)
            except PersistenceError as e:
                self._log.warning(f"Could not load checkpoints of workflow {workflow_id}: {e}")
                stored = []
            recent = deque(stored, maxlen=self.max_in_memory)
            self._recent[workflow_id] = recent
        return recent

    async def purge_expired(self) -> int:
        removed = await self.store.purge_expired_checkpoints()
        if removed:
            self._log.info(f"Purged {removed} expired checkpoints")
        return removed

    async def rollback(self, workflow_id: str, checkpoint_id: str) -> RollbackResult:
        """Restore the workflow to ``checkpoint_id`` and leave it rolled back.

        Raises:
            RollbackNotFoundError: The checkpoint is unknown, belongs to a
                different workflow or has expired. The instance is untouched.
        """
        instance = await self.lifecycle.get(workflow_id)
        checkpoint = await self.store.get_checkpoint(checkpoint_id)
        if (
            checkpoint is None
            or checkpoint.workflow_id != workflow_id
            or checkpoint.is_expired()
        ):
            raise RollbackNotFoundError(
                f"Checkpoint {checkpoint_id} not found for workflow {workflow_id}"
            )

        await self.lifecycle.transition(instance, WorkflowStatus.ROLLING_BACK, persist=False)
        try:
            _restore(instance, checkpoint)
        except Exception as e:
            await self.lifecycle.fail(instance, f"Rollback failed: {e}", error_type="rollback_error")
            raise
        instance.epoch += 1
        await self.lifecycle.transition(instance, WorkflowStatus.ROLLED_BACK)
        await self.lifecycle.notify(
            instance,
            "workflow_rolled_back",
            {"checkpoint_id": checkpoint_id, "step_index": checkpoint.step_index},
        )
        self._log.info(
            f"Workflow {workflow_id} rolled back to step {checkpoint.step_index} "
            f"({checkpoint_id})"
        )
        return RollbackResult(
            workflow_id=workflow_id,
            checkpoint_id=checkpoint_id,
            target_step=checkpoint.step_index,
            status=instance.status,
        )


def _snapshot(instance: WorkflowInstance) -> CheckpointState:
    return CheckpointState(
        artifacts=copy.deepcopy(instance.context.artifacts),
        messages=copy.deepcopy(instance.messages),
        errors=copy.deepcopy(instance.errors),
        context=copy.deepcopy(instance.context),
        metadata=copy.deepcopy(instance.metadata),
    )


def _restore(instance: WorkflowInstance, checkpoint: Checkpoint) -> None:
    state = checkpoint.state
    instance.current_step_index = checkpoint.step_index
    instance.current_agent = checkpoint.current_agent
    instance.context = copy.deepcopy(state.context)
    instance.context.artifacts = copy.deepcopy(state.artifacts)
    instance.messages = copy.deepcopy(state.messages)
    instance.errors = copy.deepcopy(state.errors)
    instance.metadata = copy.deepcopy(state.metadata)
    instance.pending_elicitation = None
    instance.agent_status = AgentStatus.IDLE
