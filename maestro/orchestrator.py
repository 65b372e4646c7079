"""Public entry point wiring the engine components together."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

from .config import MaestroConfig, load_config
from .constants import MIN_GOAL_LENGTH
from .contracts import (
    Checkpoint,
    CheckpointSummary,
    CheckpointType,
    CommitResult,
    ErrorRecord,
    RepositoryTarget,
    RollbackResult,
    StartOptions,
    StartResult,
    StepOutcome,
    WorkflowInstance,
    WorkflowSnapshot,
    WorkflowStatus,
)
from .engine import (
    ArtifactManager,
    CheckpointManager,
    ErrorRecoveryManager,
    LifecycleManager,
    StepExecutor,
    UserInteractionService,
)
from .exceptions import ArtifactExportError, ValidationError, WorkflowNotFoundError
from .generation import PydanticAIGenerator, TextGenerator
from .notifications import BaseNotifier, get_notifier
from .parser import DefinitionParser
from .persistence import get_repository
from .registry import PersonaRegistry
from .utils.retry import RetryPolicy
from .vcs import VersionControl, get_version_control


class Orchestrator:
    """Start, drive and control multi-agent workflows.

    Each running instance is driven by its own asyncio task. The task loops
    while the instance is ``running`` and stops as soon as anything else
    (pause, elicitation, rollback, cancel, completion, error) changes the
    status. Control operations act on the same cached instance object.
    """

    def __init__(
        self,
        config: Optional[MaestroConfig] = None,
        *,
        repository: Any = None,
        generator: Optional[TextGenerator] = None,
        notifier: Optional[BaseNotifier] = None,
        vcs: Optional[VersionControl] = None,
        parser: Optional[DefinitionParser] = None,
        personas: Optional[PersonaRegistry] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or load_config()
        self._log = logger or logging.getLogger(__name__)
        cfg = self.config

        self.repository = repository or get_repository(config=cfg)
        self.notifier = notifier or get_notifier(config=cfg)
        self.generator = generator or PydanticAIGenerator(cfg.generation.model)
        self.parser = parser or DefinitionParser(
            [cfg.templates_path] if cfg.templates_path else None
        )
        if personas is None:
            personas = PersonaRegistry()
            if cfg.personas_path:
                personas.load_directory(cfg.personas_path)
        self.personas = personas
        if vcs is None:
            vcs = get_version_control(cfg)

        self.lifecycle = LifecycleManager(self.repository, self.notifier, logger=logger)
        self.checkpoints = CheckpointManager(
            self.lifecycle,
            self.repository,
            enabled=cfg.checkpoints.enabled,
            max_in_memory=cfg.checkpoints.max_in_memory,
            ttl_days=cfg.checkpoints.ttl_days,
            logger=logger,
        )
        self.recovery = ErrorRecoveryManager(
            self.lifecycle,
            RetryPolicy(**cfg.recovery.model_dump()),
            sleep=sleep,
            logger=logger,
        )
        self.interaction = UserInteractionService(
            self.lifecycle, on_resume=self._schedule, logger=logger
        )
        self.artifacts = ArtifactManager(vcs, root=cfg.artifacts.root, logger=logger)
        self.executor = StepExecutor(
            self.lifecycle,
            self.personas,
            self.generator,
            self.recovery,
            self.interaction,
            self.artifacts,
            self.checkpoints,
            history_limit=cfg.generation.history_limit,
            logger=logger,
        )
        self._tasks: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Starting
    async def start(
        self, prompt: str, options: Optional[StartOptions] = None
    ) -> StartResult:
        """Create a workflow for ``prompt`` and begin executing it.

        Returns as soon as the execution loop is scheduled.

        Raises:
            ValidationError: The prompt is too short or the id is taken.
            DefinitionError: The template cannot be loaded.
        """
        options = options or StartOptions()
        goal = (prompt or "").strip()
        if len(goal) < MIN_GOAL_LENGTH:
            raise ValidationError(
                f"Goal must be at least {MIN_GOAL_LENGTH} characters long"
            )
        definition = self.parser.parse(options.template)
        if options.workflow_id and await self._exists(options.workflow_id):
            raise ValidationError(f"Workflow {options.workflow_id} already exists")

        instance = await self.lifecycle.create(
            definition,
            goal,
            workflow_id=options.workflow_id,
            name=options.name,
            description=options.description,
            user_id=options.user_id,
            context=options.context,
            metadata=options.metadata,
            repository=options.repository,
        )
        await self.checkpoints.create(
            instance.id, CheckpointType.WORKFLOW_INITIALIZED, "Workflow initialized"
        )
        await self.lifecycle.transition(instance, WorkflowStatus.RUNNING)
        await self.lifecycle.notify(
            instance,
            "workflow_started",
            {
                "template": instance.template,
                "total_steps": instance.total_steps,
                "goal": instance.goal,
            },
        )
        self._schedule(instance.id)
        return StartResult(workflow_id=instance.id, status=instance.status)

    async def _exists(self, workflow_id: str) -> bool:
        try:
            await self.lifecycle.get(workflow_id)
        except WorkflowNotFoundError:
            return False
        return True

    # ------------------------------------------------------------------
    # Execution loop
    def _schedule(self, workflow_id: str) -> asyncio.Task:
        task = self._tasks.get(workflow_id)
        if task is not None and not task.done():
            return task
        task = asyncio.create_task(self._run(workflow_id), name=f"workflow-{workflow_id}")
        self._tasks[workflow_id] = task
        return task

    async def _run(self, workflow_id: str) -> None:
        try:
            await self._drive(workflow_id)
        finally:
            if self._tasks.get(workflow_id) is asyncio.current_task():
                del self._tasks[workflow_id]
                self._release(workflow_id)

    async def _drive(self, workflow_id: str) -> None:
        instance = await self.lifecycle.get(workflow_id)
        while instance.status is WorkflowStatus.RUNNING:
            try:
                if instance.is_finished():
                    await self.lifecycle.complete(instance)
                    await self._on_completed(instance)
                    continue
                outcome = await self.executor.execute(instance)
                if outcome is StepOutcome.TERMINATED_EARLY:
                    await self._on_completed(instance)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._log.exception(f"Unexpected error while running workflow {workflow_id}")
                await self.lifecycle.fail(
                    instance, f"Unexpected error: {e}", error_type="internal_error"
                )
        self._log.info(
            f"Execution loop for workflow {workflow_id} stopped ({instance.status.value})"
        )

    async def _on_completed(self, instance: WorkflowInstance) -> None:
        await self.checkpoints.create(
            instance.id, CheckpointType.WORKFLOW_COMPLETED, "Workflow completed"
        )
        if not (self.config.artifacts.auto_export and instance.repository):
            return
        try:
            result = await self.artifacts.export(instance)
        except ArtifactExportError as e:
            self._log.error(f"Artifact export for workflow {instance.id} failed: {e}")
            instance.errors.append(
                ErrorRecord(
                    step_index=instance.current_step_index,
                    message=str(e),
                    error_type="export_error",
                )
            )
        else:
            instance.metadata["export"] = result.model_dump()
        await self.lifecycle.persist(instance)

    # ------------------------------------------------------------------
    # Cached state
    def _release(self, workflow_id: str) -> None:
        self.lifecycle.evict(workflow_id)
        self.checkpoints.forget(workflow_id)

    @contextmanager
    def _holding(self, workflow_id: str) -> Iterator[None]:
        """Release cached state of ``workflow_id`` afterwards unless a loop runs it."""
        try:
            yield
        finally:
            task = self._tasks.get(workflow_id)
            if task is None or task.done():
                self._tasks.pop(workflow_id, None)
                self._release(workflow_id)

    # ------------------------------------------------------------------
    # Status
    async def get_status(self, workflow_id: str) -> WorkflowSnapshot:
        with self._holding(workflow_id):
            instance = await self.lifecycle.get(workflow_id)
            checkpoints = await self.checkpoints.list(workflow_id)
            return snapshot(instance, checkpoints)

    async def list_workflows(self) -> List[WorkflowSnapshot]:
        return [snapshot(wf) for wf in await self.lifecycle.list()]

    def active(self) -> List[str]:
        """Ids of workflows whose execution loop is running in this process."""
        return [wf_id for wf_id, task in self._tasks.items() if not task.done()]

    async def wait(
        self, workflow_id: str, timeout: Optional[float] = None
    ) -> WorkflowSnapshot:
        """Wait until the execution loop of ``workflow_id`` stops."""
        task = self._tasks.get(workflow_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout)
        return await self.get_status(workflow_id)

    # ------------------------------------------------------------------
    # Control
    async def pause(self, workflow_id: str) -> WorkflowSnapshot:
        with self._holding(workflow_id):
            await self.lifecycle.pause(workflow_id)
            return await self.get_status(workflow_id)

    async def resume(self, workflow_id: str) -> WorkflowSnapshot:
        """Continue a paused, waiting or rolled-back workflow.

        Also picks up a ``running`` instance persisted by a previous process
        and restarts its execution loop. A question the workflow was waiting
        on is discarded and can no longer be answered.
        """
        with self._holding(workflow_id):
            instance = await self.lifecycle.get(workflow_id)
            if instance.status is WorkflowStatus.RUNNING:
                self._schedule(workflow_id)
                return await self.get_status(workflow_id)

            from_rollback = instance.status is WorkflowStatus.ROLLED_BACK
            if instance.status is WorkflowStatus.PAUSED_FOR_ELICITATION:
                self.interaction.discard(instance)
            await self.lifecycle.resume(workflow_id)
            if from_rollback:
                await self.checkpoints.create(
                    workflow_id, CheckpointType.RESUME_FROM_ROLLBACK, "Resumed after rollback"
                )
            self._schedule(workflow_id)
            return await self.get_status(workflow_id)

    async def cancel(self, workflow_id: str) -> WorkflowSnapshot:
        with self._holding(workflow_id):
            await self.lifecycle.cancel(workflow_id)
            return await self.get_status(workflow_id)

    async def respond_to_elicitation(
        self, workflow_id: str, message_id: str, response: Any
    ) -> WorkflowSnapshot:
        with self._holding(workflow_id):
            await self.interaction.handle_user_response(workflow_id, message_id, response)
            return await self.get_status(workflow_id)

    async def rollback(self, workflow_id: str, checkpoint_id: str) -> RollbackResult:
        """Restore a checkpoint; an unanswered question is discarded with it."""
        with self._holding(workflow_id):
            return await self.checkpoints.rollback(workflow_id, checkpoint_id)

    async def create_checkpoint(
        self, workflow_id: str, description: str = ""
    ) -> Checkpoint:
        with self._holding(workflow_id):
            return await self.checkpoints.create(
                workflow_id, CheckpointType.MANUAL, description or "Manual checkpoint", force=True
            )

    async def list_checkpoints(self, workflow_id: str) -> List[CheckpointSummary]:
        with self._holding(workflow_id):
            await self.lifecycle.get(workflow_id)
            return await self.checkpoints.list(workflow_id)

    async def purge_checkpoints(self) -> int:
        return await self.checkpoints.purge_expired()

    async def export_artifacts(
        self, workflow_id: str, target: Optional[RepositoryTarget] = None
    ) -> CommitResult:
        with self._holding(workflow_id):
            instance = await self.lifecycle.get(workflow_id)
            result = await self.artifacts.export(instance, target)
            if result.committed:
                instance.metadata["export"] = result.model_dump()
                await self.lifecycle.persist(instance)
            return result

    async def shutdown(self) -> None:
        """Cancel outstanding execution loops and close the notifier."""
        pending = [t for t in self._tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        await self.notifier.disconnect()


def snapshot(
    instance: WorkflowInstance, checkpoints: Optional[List[CheckpointSummary]] = None
) -> WorkflowSnapshot:
    total = instance.total_steps
    if instance.status is WorkflowStatus.COMPLETED or not total:
        progress = 100
    else:
        progress = int(instance.current_step_index * 100 / total)
    current = instance.current_step
    return WorkflowSnapshot(
        workflow_id=instance.id,
        name=instance.name,
        template=instance.template,
        status=instance.status,
        current_step_index=instance.current_step_index,
        total_steps=total,
        current_step_id=current.id if current else None,
        current_agent=instance.current_agent,
        progress=progress,
        artifacts=list(instance.context.artifacts),
        message_count=len(instance.messages),
        error_count=len(instance.errors),
        last_error=instance.last_error,
        pending_elicitation=instance.pending_elicitation,
        routing_decisions=dict(instance.context.routing_decisions),
        checkpoints=list(checkpoints or []),
        started_at=instance.started_at,
        ended_at=instance.ended_at,
    )
