"""Execute the current step of a workflow instance."""

from __future__ import annotations

import logging
from typing import Optional

from ..constants import DEFAULT_HISTORY_LIMIT
from ..contracts import (
    AgentStatus,
    AgentStep,
    CheckpointType,
    CycleStep,
    Message,
    MessageType,
    RoutingStep,
    StepOutcome,
    WorkflowInstance,
    WorkflowStatus,
)
from ..exceptions import PersonaNotFoundError, PreconditionError, StepExecutionError
from ..generation import AgentContext, GenerationResult, TextGenerator
from ..registry import PersonaRegistry
from .artifacts import ArtifactManager
from .checkpoints import CheckpointManager
from .interaction import UserInteractionService
from .lifecycle import LifecycleManager
from .recovery import ErrorRecoveryManager


class StepExecutor:
    """Run exactly one step: the one at ``current_step_index``.

    A generator result is only applied when the instance is still on the
    same epoch and has not been cancelled; otherwise it is dropped and the
    outcome is ``interrupted``.
    """

    def __init__(
        self,
        lifecycle: LifecycleManager,
        personas: PersonaRegistry,
        generator: TextGenerator,
        recovery: ErrorRecoveryManager,
        interaction: UserInteractionService,
        artifacts: ArtifactManager,
        checkpoints: CheckpointManager,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.personas = personas
        self.generator = generator
        self.recovery = recovery
        self.interaction = interaction
        self.artifacts = artifacts
        self.checkpoints = checkpoints
        self.history_limit = history_limit
        self._log = logger or logging.getLogger(__name__)

    async def execute(self, instance: WorkflowInstance) -> StepOutcome:
        step = instance.current_step
        if step is None:
            await self.lifecycle.complete(instance)
            return StepOutcome.ADVANCED

        context = instance.context
        if step.condition is not None and not step.condition.evaluate(
            context.routing_decisions, context.artifacts.keys()
        ):
            return await self._skip(instance, step)

        if isinstance(step, RoutingStep):
            return await self._route(instance, step)
        if isinstance(step, CycleStep):
            return await self._cycle(instance, step)
        return await self._run_agent(instance, step)

    # ------------------------------------------------------------------
    async def _skip(self, instance: WorkflowInstance, step) -> StepOutcome:
        self._log.info(f"Workflow {instance.id}: skipping step {step.index} ({step.id})")
        await self.lifecycle.notify(
            instance, "step_skipped", {"step_index": step.index, "step_id": step.id}
        )
        await self.lifecycle.advance(instance)
        return StepOutcome.SKIPPED

    async def _advance(self, instance: WorkflowInstance, step) -> StepOutcome:
        await self.lifecycle.notify(
            instance,
            "step_completed",
            {
                "step_index": step.index,
                "step_id": step.id,
                "agent_id": getattr(step, "agent_id", None),
            },
        )
        await self.lifecycle.advance(instance)
        await self.checkpoints.create(
            instance.id,
            CheckpointType.STEP_COMPLETED,
            f"After step {step.index} ({step.id})",
        )
        return StepOutcome.ADVANCED

    async def _route(self, instance: WorkflowInstance, step: RoutingStep) -> StepOutcome:
        decisions = instance.context.routing_decisions
        choice = decisions.get(step.decision)
        if choice is None:
            decisions[step.decision] = step.default_route
            self._log.info(
                f"Workflow {instance.id}: no '{step.decision}' decision, "
                f"defaulting to '{step.default_route}'"
            )
            return await self._advance(instance, step)

        if step.is_terminal(choice):
            self._log.info(f"Workflow {instance.id}: terminal route '{choice}' chosen")
            await self.lifecycle.notify(
                instance,
                "step_completed",
                {"step_index": step.index, "step_id": step.id, "route": choice},
            )
            await self.lifecycle.complete(instance, f"Completed via {choice} route")
            return StepOutcome.TERMINATED_EARLY

        if step.routes and choice not in step.routes:
            self._log.warning(
                f"Workflow {instance.id}: route '{choice}' is not declared on step "
                f"{step.index}; continuing"
            )
        return await self._advance(instance, step)

    async def _cycle(self, instance: WorkflowInstance, step: CycleStep) -> StepOutcome:
        passes = instance.context.cycle_passes
        passes[step.id] = passes.get(step.id, 0) + 1
        self._log.info(f"Workflow {instance.id}: cycle '{step.id}' pass {passes[step.id]}")
        return await self._advance(instance, step)

    # ------------------------------------------------------------------
    def build_context(self, instance: WorkflowInstance, step: AgentStep) -> AgentContext:
        history = instance.messages[-self.history_limit :] if self.history_limit else []
        context = AgentContext(
            workflow_id=instance.id,
            goal=instance.goal,
            step_id=step.id,
            step_index=step.index,
            agent_id=step.agent_id,
            action=step.action,
            description=step.description,
            creates=step.creates,
            uses=step.uses,
            handoff_prompt=instance.handoff_prompts.get(step.agent_id),
            recent_messages=[
                {"sender": m.sender, "type": m.type.value, "content": m.content}
                for m in history
            ],
            artifacts={n: a.content for n, a in instance.context.artifacts.items()},
            routing_decisions=dict(instance.context.routing_decisions),
            answers=list(instance.context.step_inputs.get(step.id, [])),
        )
        self._log.debug(
            f"Built context for step {step.index} with {len(context.artifacts)} artifacts "
            f"and {len(context.recent_messages)} messages"
        )
        return context

    @staticmethod
    def _stale(instance: WorkflowInstance, epoch: int) -> bool:
        return instance.epoch != epoch or instance.status is WorkflowStatus.CANCELLED

    async def _run_agent(self, instance: WorkflowInstance, step: AgentStep) -> StepOutcome:
        epoch = instance.epoch
        missing = [r for r in step.requires if r not in instance.context.artifacts]
        if missing:
            error = PreconditionError(
                f"Step {step.index} ({step.id}) requires missing artifacts: "
                f"{', '.join(missing)}",
                step_index=step.index,
            )
            return await self._give_up(instance, step, error)

        try:
            persona = self.personas.get(step.agent_id)
        except PersonaNotFoundError as e:
            e.step_index = step.index
            return await self._give_up(instance, step, e)

        instance.current_agent = step.agent_id
        instance.agent_status = AgentStatus.ACTIVE
        instance.messages.append(
            Message(
                sender="system",
                recipient=step.agent_id,
                type=MessageType.ACTIVATION,
                content=step.action or step.description or f"Run step {step.id}",
            )
        )
        await self.lifecycle.persist(instance)
        await self.lifecycle.notify(
            instance,
            "step_started",
            {"step_index": step.index, "step_id": step.id, "agent_id": step.agent_id},
        )

        agent_context = self.build_context(instance, step)

        async def attempt() -> GenerationResult:
            result = await self.generator.generate(persona, agent_context)
            if not result.success:
                raise StepExecutionError(
                    result.error or f"Agent {step.agent_id} reported failure",
                    step_index=step.index,
                )
            return result

        try:
            result = await attempt()
        except Exception as e:
            if self._stale(instance, epoch):
                return self._discard(instance, step)
            recovery = await self.recovery.handle(
                instance, e, retry=attempt, fail_workflow=not step.optional
            )
            if recovery.interrupted or self._stale(instance, epoch):
                return self._discard(instance, step)
            if not recovery.recovered:
                return await self._after_failure(instance, step)
            result = recovery.value

        if self._stale(instance, epoch):
            return self._discard(instance, step)
        return await self._apply(instance, step, result)

    async def _give_up(
        self, instance: WorkflowInstance, step: AgentStep, error: BaseException
    ) -> StepOutcome:
        await self.recovery.handle(instance, error, fail_workflow=not step.optional)
        return await self._after_failure(instance, step)

    async def _after_failure(self, instance: WorkflowInstance, step: AgentStep) -> StepOutcome:
        """Optional steps that cannot be recovered are skipped instead of failing."""
        if not step.optional:
            return StepOutcome.FAILED
        instance.agent_status = AgentStatus.IDLE
        self._log.warning(
            f"Workflow {instance.id}: optional step {step.index} ({step.id}) failed; skipping"
        )
        return await self._skip(instance, step)

    def _discard(self, instance: WorkflowInstance, step: AgentStep) -> StepOutcome:
        self._log.info(
            f"Workflow {instance.id}: discarding result of step {step.index} "
            f"(status {instance.status.value}, epoch {instance.epoch})"
        )
        return StepOutcome.INTERRUPTED

    async def _apply(
        self, instance: WorkflowInstance, step: AgentStep, result: GenerationResult
    ) -> StepOutcome:
        if result.elicitation_required:
            if instance.status is not WorkflowStatus.RUNNING:
                return self._discard(instance, step)
            data = dict(result.elicitation_data)
            data.setdefault("prompt", result.content)
            await self.interaction.request(instance, step, data)
            await self.checkpoints.create(
                instance.id,
                CheckpointType.ELICITATION_PAUSE,
                f"Waiting for input at step {step.index} ({step.id})",
            )
            return StepOutcome.PAUSED_FOR_ELICITATION

        recorded = [
            self.artifacts.record(
                instance,
                generated.name,
                generated.content,
                step.agent_id,
                step_index=step.index,
                type=generated.type,
                metadata={"provider": result.provider} if result.provider else None,
            )
            for generated in result.artifacts
        ]
        if not recorded and step.creates:
            recorded.append(
                self.artifacts.record(
                    instance,
                    step.creates,
                    result.content,
                    step.agent_id,
                    step_index=step.index,
                )
            )
        instance.context.routing_decisions.update(result.decisions)
        instance.messages.append(
            Message(
                sender=step.agent_id,
                type=MessageType.COMPLETION,
                content=result.content,
            )
        )
        instance.agent_status = AgentStatus.COMPLETED
        for artifact in recorded:
            await self.lifecycle.notify(
                instance,
                "artifact_created",
                {"name": artifact.name, "type": artifact.type.value, "step_index": step.index},
            )
        self._log.info(
            f"Workflow {instance.id}: step {step.index} ({step.agent_id}) completed "
            f"with {len(recorded)} artifact(s)"
        )
        return await self._advance(instance, step)
