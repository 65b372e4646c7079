"""Exception hierarchy for maestro."""

from __future__ import annotations

from typing import Optional


class MaestroError(Exception):
    """Base class for all maestro errors."""


class DefinitionError(MaestroError):
    """Workflow template is missing, malformed or has no executable steps."""


class ValidationError(MaestroError):
    """A request to the orchestrator was malformed."""


class InvalidTransitionError(ValidationError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, workflow_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Workflow {workflow_id} cannot move from '{current}' to '{target}'"
        )
        self.workflow_id = workflow_id
        self.current = current
        self.target = target


class ElicitationNotFoundError(ValidationError):
    """No pending elicitation request matches the given message id."""


class WorkflowNotFoundError(MaestroError):
    """No workflow instance exists with the given id."""


class StepExecutionError(MaestroError):
    """An agent or routing step failed.

    ``transient`` lets the raiser state whether a retry could help. ``None``
    leaves the decision to the error recovery classifier.
    """

    def __init__(
        self,
        message: str,
        step_index: Optional[int] = None,
        transient: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.step_index = step_index
        self.transient = transient


class PreconditionError(StepExecutionError):
    """A step requires artifacts that have not been produced yet."""

    def __init__(self, message: str, step_index: Optional[int] = None) -> None:
        super().__init__(message, step_index=step_index, transient=False)


class PersonaNotFoundError(StepExecutionError):
    """The agent persona named by a step is not registered."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent persona '{agent_id}' not found", transient=False)
        self.agent_id = agent_id


class PersistenceError(MaestroError):
    """The storage backend could not complete a read or write."""


class RollbackNotFoundError(MaestroError):
    """The requested checkpoint does not exist for the workflow."""


class RecoveryExhausted(MaestroError):
    """All retry attempts for a failed step were used up."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"All {attempts} retry attempts failed. Last error: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


class ArtifactExportError(MaestroError):
    """Artifacts could not be committed to version control."""
