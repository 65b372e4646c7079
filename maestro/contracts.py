"""Core data contracts for maestro workflows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_ROUTE, DEFAULT_TEMPLATE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


class WorkflowStatus(str, Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    PAUSED = "paused"
    PAUSED_FOR_ELICITATION = "paused_for_elicitation"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"


class AgentStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class MessageType(str, Enum):
    ACTIVATION = "activation"
    COMPLETION = "completion"
    ERROR = "error"
    USER_INPUT = "user_input"
    SYSTEM = "system"
    ELICITATION_REQUEST = "elicitation_request"
    ELICITATION_RESPONSE = "elicitation_response"
    WORKFLOW_COMPLETE = "workflow_complete"


class ArtifactType(str, Enum):
    DOCUMENT = "document"
    CODE = "code"
    CONFIGURATION = "configuration"
    TEST = "test"
    REPORT = "report"
    ANALYSIS = "analysis"


class StepOutcome(str, Enum):
    """Result of executing a single step."""

    ADVANCED = "advanced"
    SKIPPED = "skipped"
    PAUSED_FOR_ELICITATION = "paused_for_elicitation"
    TERMINATED_EARLY = "terminated_early"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


class CheckpointType(str, Enum):
    WORKFLOW_INITIALIZED = "workflow_initialized"
    STEP_COMPLETED = "step_completed"
    ELICITATION_PAUSE = "elicitation_pause"
    WORKFLOW_COMPLETED = "workflow_completed"
    RESUME_FROM_ROLLBACK = "resume_from_rollback"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Step definitions


class StepCondition(BaseModel):
    """Guard evaluated against routing decisions and produced artifacts."""

    model_config = ConfigDict(frozen=True)

    decision: Optional[str] = None
    equals: Any = None
    negate: bool = False
    artifact: Optional[str] = None

    @classmethod
    def parse(cls, value: Any) -> "StepCondition":
        """Build a condition from a mapping or a string expression.

        Supported expressions are ``key == value``, ``key != value``,
        ``artifact:name`` and a bare ``key`` (true when the decision is set
        to a truthy value).
        """
        if isinstance(value, StepCondition):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Unsupported condition: {value!r}")

        text = value.strip()
        if text.startswith("artifact:"):
            return cls(artifact=text.split(":", 1)[1].strip())
        for operator, negate in (("!=", True), ("==", False)):
            if operator in text:
                key, expected = (part.strip() for part in text.split(operator, 1))
                return cls(decision=key, equals=_literal(expected), negate=negate)
        return cls(decision=text)

    def evaluate(
        self, routing_decisions: Dict[str, Any], artifact_names: Any = ()
    ) -> bool:
        result = True
        if self.artifact is not None:
            result = self.artifact in artifact_names
        if result and self.decision is not None:
            if self.decision not in routing_decisions:
                result = False
            elif self.equals is None:
                result = bool(routing_decisions[self.decision])
            else:
                result = routing_decisions[self.decision] == self.equals
        return not result if self.negate else result


def _literal(raw: str) -> Any:
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return raw.strip("'\"")


class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str = ""
    terminal: bool = False


class AgentStep(BaseModel):
    """Runs an agent persona through the text-generation collaborator."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["agent"] = "agent"
    id: str
    index: int
    agent_id: str
    action: Optional[str] = None
    description: str = ""
    condition: Optional[StepCondition] = None
    requires: List[str] = Field(default_factory=list)
    creates: Optional[str] = None
    uses: Optional[str] = None
    optional: bool = False


class RoutingStep(BaseModel):
    """Branches on a named routing decision."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["routing"] = "routing"
    id: str
    index: int
    decision: str
    description: str = ""
    condition: Optional[StepCondition] = None
    routes: Dict[str, Route] = Field(default_factory=dict)
    default_route: str = DEFAULT_ROUTE

    def is_terminal(self, route_name: Any) -> bool:
        route = self.routes.get(route_name) if isinstance(route_name, str) else None
        return bool(route and route.terminal)


class CycleStep(BaseModel):
    """Loop marker; advances linearly and counts passes."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["cycle"] = "cycle"
    id: str
    index: int
    description: str = ""
    repeats: Optional[str] = None
    agent_id: Optional[str] = None
    condition: Optional[StepCondition] = None


Step = Annotated[Union[AgentStep, RoutingStep, CycleStep], Field(discriminator="kind")]


class WorkflowDefinition(BaseModel):
    """Parsed, immutable workflow template."""

    model_config = ConfigDict(frozen=True)

    name: str
    title: str
    description: str = ""
    steps: List[Step]
    handoff_prompts: Dict[str, str] = Field(default_factory=dict)
    source_path: Optional[str] = None


# ---------------------------------------------------------------------------
# Runtime records


class Artifact(BaseModel):
    name: str
    type: ArtifactType = ArtifactType.DOCUMENT
    content: str = ""
    created_by: str
    step_index: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    id: str = Field(default_factory=lambda: new_id("msg"))
    sender: str
    recipient: str = "user"
    type: MessageType
    content: Any = None
    timestamp: datetime = Field(default_factory=utcnow)


class ErrorRecord(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    step_index: Optional[int] = None
    message: str
    error_type: str = "step_error"
    recovery_attempted: bool = False
    attempts: int = 0


class ElicitationRequest(BaseModel):
    """Outstanding request for human input."""

    workflow_id: str
    message_id: str = Field(default_factory=lambda: new_id("msg"))
    step_index: int
    step_id: str
    agent_id: Optional[str] = None
    prompt: str
    response_type: Literal["free_text", "choice", "approval"] = "free_text"
    options: List[str] = Field(default_factory=list)
    decision_key: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    response: Any = None


class WorkflowContext(BaseModel):
    artifacts: Dict[str, Artifact] = Field(default_factory=dict)
    routing_decisions: Dict[str, Any] = Field(default_factory=dict)
    elicitation_history: List[ElicitationRequest] = Field(default_factory=list)
    step_inputs: Dict[str, List[Any]] = Field(default_factory=dict)
    cycle_passes: Dict[str, int] = Field(default_factory=dict)
    extra: Dict[str, Any] = Field(default_factory=dict)


class RepositoryTarget(BaseModel):
    """Version-control destination for exported artifacts."""

    owner: str
    repo: str
    branch: str = "main"


class WorkflowInstance(BaseModel):
    """One running execution of a workflow definition."""

    id: str = Field(default_factory=lambda: new_id("workflow"))
    name: str
    template: str
    description: str = ""
    goal: str
    steps: List[Step] = Field(default_factory=list)
    handoff_prompts: Dict[str, str] = Field(default_factory=dict)
    status: WorkflowStatus = WorkflowStatus.INITIALIZING
    current_step_index: int = 0
    current_agent: Optional[str] = None
    agent_status: AgentStatus = AgentStatus.IDLE
    context: WorkflowContext = Field(default_factory=WorkflowContext)
    messages: List[Message] = Field(default_factory=list)
    errors: List[ErrorRecord] = Field(default_factory=list)
    pending_elicitation: Optional[ElicitationRequest] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    user_id: str = "system"
    repository: Optional[RepositoryTarget] = None
    epoch: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def current_step(self) -> Optional[Union[AgentStep, RoutingStep, CycleStep]]:
        if self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    def is_finished(self) -> bool:
        """Return ``True`` once every step has been passed."""
        return self.current_step_index >= len(self.steps)

    @property
    def last_error(self) -> Optional[ErrorRecord]:
        return self.errors[-1] if self.errors else None


class CheckpointState(BaseModel):
    artifacts: Dict[str, Artifact] = Field(default_factory=dict)
    messages: List[Message] = Field(default_factory=list)
    errors: List[ErrorRecord] = Field(default_factory=list)
    context: WorkflowContext = Field(default_factory=WorkflowContext)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Checkpoint(BaseModel):
    """Immutable, restorable snapshot of a workflow instance."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("checkpoint"))
    workflow_id: str
    type: CheckpointType
    description: str = ""
    step_index: int
    current_agent: Optional[str] = None
    status: WorkflowStatus
    state: CheckpointState
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def summary(self) -> "CheckpointSummary":
        return CheckpointSummary(
            id=self.id,
            type=self.type,
            description=self.description,
            step_index=self.step_index,
            current_agent=self.current_agent,
            created_at=self.created_at,
        )


class CheckpointSummary(BaseModel):
    id: str
    type: CheckpointType
    description: str = ""
    step_index: int
    current_agent: Optional[str] = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Control surface


class StartOptions(BaseModel):
    template: str = DEFAULT_TEMPLATE
    name: Optional[str] = None
    description: Optional[str] = None
    workflow_id: Optional[str] = None
    user_id: str = "system"
    context: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    repository: Optional[RepositoryTarget] = None


class StartResult(BaseModel):
    workflow_id: str
    status: WorkflowStatus


class RollbackResult(BaseModel):
    workflow_id: str
    checkpoint_id: str
    target_step: int
    status: WorkflowStatus


class CommitResult(BaseModel):
    committed: int
    commit_ref: Optional[str] = None
    branch: Optional[str] = None
    paths: List[str] = Field(default_factory=list)


class WorkflowSnapshot(BaseModel):
    """Read-only status view of a workflow instance."""

    workflow_id: str
    name: str
    template: str
    status: WorkflowStatus
    current_step_index: int
    total_steps: int
    current_step_id: Optional[str] = None
    current_agent: Optional[str] = None
    progress: int = 0
    artifacts: List[str] = Field(default_factory=list)
    message_count: int = 0
    error_count: int = 0
    last_error: Optional[ErrorRecord] = None
    pending_elicitation: Optional[ElicitationRequest] = None
    routing_decisions: Dict[str, Any] = Field(default_factory=dict)
    checkpoints: List[CheckpointSummary] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
