"""Pause workflows for human input and resume them with the answer."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from ..contracts import (
    AgentStatus,
    ElicitationRequest,
    Message,
    MessageType,
    WorkflowInstance,
    WorkflowStatus,
    utcnow,
)
from ..exceptions import ElicitationNotFoundError, InvalidTransitionError, ValidationError
from .lifecycle import LifecycleManager

APPROVE_WORDS = {"true", "yes", "y", "approve", "approved", "ok", "accept"}
REJECT_WORDS = {"false", "no", "n", "reject", "rejected", "deny"}


class UserInteractionService:
    """Track elicitation requests and route answers back into workflows.

    ``on_resume`` is called with the workflow id once an answer has been
    applied; the orchestrator uses it to reschedule the execution loop.
    """

    def __init__(
        self,
        lifecycle: LifecycleManager,
        on_resume: Optional[Callable[[str], Any]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.on_resume = on_resume
        self._log = logger or logging.getLogger(__name__)

    async def request(
        self, instance: WorkflowInstance, step: Any, data: Dict[str, Any]
    ) -> ElicitationRequest:
        """Block ``instance`` on a question for the user."""
        options = [str(o) for o in data.get("options") or []]
        response_type = data.get("response_type") or ("choice" if options else "free_text")
        request = ElicitationRequest(
            workflow_id=instance.id,
            step_index=step.index,
            step_id=step.id,
            agent_id=getattr(step, "agent_id", None),
            prompt=str(data.get("prompt") or data.get("question") or "Input required"),
            response_type=response_type,
            options=options,
            decision_key=data.get("decision_key"),
        )
        instance.pending_elicitation = request
        instance.agent_status = AgentStatus.PAUSED
        instance.messages.append(
            Message(
                id=request.message_id,
                sender=request.agent_id or "system",
                type=MessageType.ELICITATION_REQUEST,
                content=request.prompt,
            )
        )
        await self.lifecycle.transition(instance, WorkflowStatus.PAUSED_FOR_ELICITATION)
        await self.lifecycle.notify(
            instance,
            "elicitation_requested",
            {
                "message_id": request.message_id,
                "step_index": request.step_index,
                "agent_id": request.agent_id,
                "prompt": request.prompt,
                "response_type": request.response_type,
                "options": request.options,
            },
        )
        self._log.info(
            f"Workflow {instance.id} waiting for input at step {request.step_index} "
            f"({request.message_id})"
        )
        return request

    async def pending(self, workflow_id: str) -> List[ElicitationRequest]:
        """Return the request blocking the workflow, if any.

        The instance is the only record of an open request, so a request
        restored from storage is reported the same way as a fresh one.
        """
        instance = await self.lifecycle.get(workflow_id)
        current = instance.pending_elicitation
        if current is None or current.resolved_at is not None:
            return []
        return [current]

    def discard(self, instance: WorkflowInstance) -> Optional[ElicitationRequest]:
        """Drop the open request of ``instance`` without answering it.

        Used when the workflow moves on without the answer (resume, rollback);
        a discarded request can no longer be answered.
        """
        request = instance.pending_elicitation
        instance.pending_elicitation = None
        if request is not None:
            self._log.info(
                f"Discarded elicitation {request.message_id} for workflow {instance.id}"
            )
        return request

    async def handle_user_response(
        self, workflow_id: str, message_id: str, response: Any
    ) -> WorkflowInstance:
        """Apply the user's answer to the request ``message_id``.

        Only the request currently blocking the workflow can be answered.

        Raises:
            ElicitationNotFoundError: ``message_id`` is not the open request.
            InvalidTransitionError: The workflow is not waiting for input.
            ValidationError: The answer does not fit the request.
        """
        instance = await self.lifecycle.get(workflow_id)
        request = instance.pending_elicitation
        if request is None or request.message_id != message_id or request.resolved_at is not None:
            raise ElicitationNotFoundError(
                f"No pending elicitation {message_id} for workflow {workflow_id}"
            )
        if instance.status is not WorkflowStatus.PAUSED_FOR_ELICITATION:
            raise InvalidTransitionError(
                workflow_id, instance.status.value, WorkflowStatus.RUNNING.value
            )

        value = normalize_response(request, response)
        resolved = request.model_copy(update={"response": value, "resolved_at": utcnow()})

        context = instance.context
        if resolved.decision_key:
            context.routing_decisions[resolved.decision_key] = value
        context.step_inputs.setdefault(resolved.step_id, []).append(value)
        context.elicitation_history.append(resolved)
        instance.messages.append(
            Message(
                sender="user",
                recipient=resolved.agent_id or "system",
                type=MessageType.ELICITATION_RESPONSE,
                content=value,
            )
        )
        instance.pending_elicitation = None
        instance.agent_status = AgentStatus.IDLE

        await self.lifecycle.transition(instance, WorkflowStatus.RUNNING)
        await self.lifecycle.notify(
            instance,
            "workflow_resumed",
            {"message_id": message_id, "step_index": instance.current_step_index},
        )
        self._log.info(f"Workflow {workflow_id} received answer for {message_id}")

        if self.on_resume is not None:
            result = self.on_resume(workflow_id)
            if inspect.isawaitable(result):
                await result
        return instance

    async def send_info(self, workflow_id: str, sender: str, text: str) -> None:
        """Post an informational message; never fails the caller."""
        instance = await self.lifecycle.get(workflow_id)
        instance.messages.append(Message(sender=sender, type=MessageType.SYSTEM, content=text))
        await self.lifecycle.persist(instance)
        await self.lifecycle.notify(instance, "info", {"sender": sender, "text": text})


def normalize_response(request: ElicitationRequest, response: Any) -> Any:
    if request.response_type == "choice":
        value = str(response).strip()
        if request.options and value not in request.options:
            raise ValidationError(
                f"'{value}' is not one of the options: {', '.join(request.options)}"
            )
        return value
    if request.response_type == "approval":
        if isinstance(response, bool):
            return response
        word = str(response).strip().lower()
        if word in APPROVE_WORDS:
            return True
        if word in REJECT_WORDS:
            return False
        raise ValidationError(f"Cannot read '{response}' as an approval")
    return response.strip() if isinstance(response, str) else response
