"""Workflow instance state machine and live-instance cache."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set

from ..contracts import (
    AgentStatus,
    ErrorRecord,
    Message,
    MessageType,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowStatus,
    utcnow,
)
from ..constants import SYSTEM_AGENT
from ..exceptions import InvalidTransitionError, PersistenceError, WorkflowNotFoundError
from ..notifications import BaseNotifier
from ..persistence import WorkflowRepository

S = WorkflowStatus

TRANSITIONS: Dict[WorkflowStatus, Set[WorkflowStatus]] = {
    S.INITIALIZING: {S.RUNNING, S.ERROR, S.CANCELLED},
    S.RUNNING: {
        S.PAUSED,
        S.PAUSED_FOR_ELICITATION,
        S.COMPLETED,
        S.ERROR,
        S.CANCELLED,
        S.ROLLING_BACK,
    },
    S.PAUSED: {S.RUNNING, S.CANCELLED, S.ROLLING_BACK},
    S.PAUSED_FOR_ELICITATION: {S.RUNNING, S.CANCELLED, S.ROLLING_BACK},
    S.ERROR: {S.CANCELLED, S.ROLLING_BACK},
    S.COMPLETED: {S.ROLLING_BACK},
    S.ROLLING_BACK: {S.ROLLED_BACK, S.ERROR},
    S.ROLLED_BACK: {S.RUNNING, S.CANCELLED, S.ROLLING_BACK},
    S.CANCELLED: set(),
}

TERMINAL_STATUSES = {S.COMPLETED, S.CANCELLED}


def can_transition(current: WorkflowStatus, target: WorkflowStatus) -> bool:
    return target in TRANSITIONS.get(current, set())


class LifecycleManager:
    """Own workflow instances: creation, status changes and persistence.

    Instances in use are kept in an id-indexed cache so the execution loop
    and control operations work on the same object. The orchestrator evicts
    an instance once no execution loop holds it.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        notifier: Optional[BaseNotifier] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repository = repository
        self.notifier = notifier
        self._log = logger or logging.getLogger(__name__)
        self._instances: Dict[str, WorkflowInstance] = {}
        self._dirty: Set[str] = set()

    # ------------------------------------------------------------------
    # Persistence
    async def persist(self, instance: WorkflowInstance) -> bool:
        """Save ``instance``; failures are logged and the instance marked dirty."""
        instance.updated_at = utcnow()
        try:
            await self.repository.save_workflow(instance)
        except PersistenceError as e:
            self._dirty.add(instance.id)
            self._log.warning(f"Failed to persist workflow {instance.id}: {e}")
            return False
        self._dirty.discard(instance.id)
        return True

    def is_dirty(self, workflow_id: str) -> bool:
        return workflow_id in self._dirty

    async def notify(
        self, instance: WorkflowInstance, event: str, payload: Optional[Dict[str, Any]] = None
    ) -> None:
        if self.notifier is not None:
            await self.notifier.notify(instance.id, event, payload, log=self._log)

    # ------------------------------------------------------------------
    # Instances
    async def create(
        self,
        definition: WorkflowDefinition,
        goal: str,
        *,
        workflow_id: Optional[str] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        user_id: str = "system",
        context: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        repository: Any = None,
    ) -> WorkflowInstance:
        fields: Dict[str, Any] = {}
        if workflow_id:
            fields["id"] = workflow_id
        instance = WorkflowInstance(
            name=name or definition.title,
            template=definition.name,
            description=description or definition.description,
            goal=goal,
            steps=list(definition.steps),
            handoff_prompts=dict(definition.handoff_prompts),
            user_id=user_id,
            metadata=dict(metadata or {}),
            repository=repository,
            **fields,
        )
        instance.context.extra.update(context or {})
        instance.messages.append(
            Message(sender="user", recipient=SYSTEM_AGENT, type=MessageType.USER_INPUT, content=goal)
        )
        self._instances[instance.id] = instance
        await self.persist(instance)
        self._log.info(
            f"Created workflow {instance.id} from template '{definition.name}' "
            f"with {instance.total_steps} steps"
        )
        return instance

    async def get(self, workflow_id: str) -> WorkflowInstance:
        """Return the live instance, loading it from persistence if needed."""
        instance = self._instances.get(workflow_id)
        if instance is not None:
            return instance
        instance = await self.repository.get_workflow(workflow_id)
        if instance is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        self._instances[workflow_id] = instance
        return instance

    def evict(self, workflow_id: str) -> bool:
        """Forget the cached instance; the next :meth:`get` reloads it.

        Instances whose last save failed stay cached, since the repository
        does not hold their current state.
        """
        if workflow_id in self._dirty:
            return False
        return self._instances.pop(workflow_id, None) is not None

    def cached(self) -> List[str]:
        return list(self._instances)

    async def list(self) -> List[WorkflowInstance]:
        """Return persisted instances, preferring live copies."""
        stored = await self.repository.list_workflows()
        merged = {wf.id: wf for wf in stored}
        merged.update(self._instances)
        return sorted(merged.values(), key=lambda wf: wf.created_at)

    # ------------------------------------------------------------------
    # State machine
    async def transition(
        self,
        instance: WorkflowInstance,
        target: WorkflowStatus,
        *,
        persist: bool = True,
    ) -> WorkflowInstance:
        current = instance.status
        if not can_transition(current, target):
            raise InvalidTransitionError(instance.id, current.value, target.value)
        instance.status = target
        now = utcnow()
        if target is S.RUNNING and instance.started_at is None:
            instance.started_at = now
        if target in TERMINAL_STATUSES:
            instance.ended_at = now
        elif target is S.RUNNING:
            instance.ended_at = None
        self._log.info(f"Workflow {instance.id}: {current.value} -> {target.value}")
        if persist:
            await self.persist(instance)
        return instance

    async def advance(self, instance: WorkflowInstance) -> int:
        """Move to the next step. The index never decreases or overshoots."""
        if instance.current_step_index < instance.total_steps:
            instance.current_step_index += 1
        nxt = instance.current_step
        instance.current_agent = getattr(nxt, "agent_id", None) if nxt else None
        await self.persist(instance)
        return instance.current_step_index

    async def complete(self, instance: WorkflowInstance, summary: Optional[str] = None) -> None:
        instance.agent_status = AgentStatus.COMPLETED
        instance.current_agent = None
        instance.messages.append(
            Message(
                sender=SYSTEM_AGENT,
                type=MessageType.WORKFLOW_COMPLETE,
                content=summary or "Workflow completed",
            )
        )
        await self.transition(instance, S.COMPLETED)
        await self.notify(
            instance,
            "workflow_completed",
            {
                "artifacts": list(instance.context.artifacts),
                "summary": summary,
                "step_index": instance.current_step_index,
            },
        )

    async def record_error(
        self,
        instance: WorkflowInstance,
        message: str,
        *,
        error_type: str = "step_error",
        recovery_attempted: bool = False,
        attempts: int = 0,
        persist: bool = True,
    ) -> ErrorRecord:
        """Append an error to the instance log without changing its status."""
        record = ErrorRecord(
            step_index=instance.current_step_index,
            message=message,
            error_type=error_type,
            recovery_attempted=recovery_attempted,
            attempts=attempts,
        )
        instance.errors.append(record)
        instance.messages.append(
            Message(sender=SYSTEM_AGENT, type=MessageType.ERROR, content=message)
        )
        if persist:
            await self.persist(instance)
        return record

    async def fail(
        self,
        instance: WorkflowInstance,
        message: str,
        *,
        error_type: str = "step_error",
        recovery_attempted: bool = False,
        attempts: int = 0,
    ) -> ErrorRecord:
        record = await self.record_error(
            instance,
            message,
            error_type=error_type,
            recovery_attempted=recovery_attempted,
            attempts=attempts,
            persist=False,
        )
        instance.agent_status = AgentStatus.ERROR
        if can_transition(instance.status, S.ERROR):
            await self.transition(instance, S.ERROR)
        else:
            await self.persist(instance)
        await self.notify(
            instance,
            "workflow_failed",
            {"error": message, "step_index": record.step_index},
        )
        return record

    async def pause(self, workflow_id: str) -> WorkflowInstance:
        instance = await self.get(workflow_id)
        await self.transition(instance, S.PAUSED, persist=False)
        instance.agent_status = AgentStatus.PAUSED
        await self.persist(instance)
        await self.notify(instance, "workflow_paused", {"step_index": instance.current_step_index})
        return instance

    async def resume(self, workflow_id: str) -> WorkflowInstance:
        instance = await self.get(workflow_id)
        await self.transition(instance, S.RUNNING, persist=False)
        instance.agent_status = AgentStatus.IDLE
        await self.persist(instance)
        await self.notify(instance, "workflow_resumed", {"step_index": instance.current_step_index})
        return instance

    async def cancel(self, workflow_id: str) -> WorkflowInstance:
        instance = await self.get(workflow_id)
        await self.transition(instance, S.CANCELLED, persist=False)
        instance.pending_elicitation = None
        instance.agent_status = AgentStatus.IDLE
        await self.persist(instance)
        await self.notify(instance, "workflow_cancelled", {"step_index": instance.current_step_index})
        return instance
