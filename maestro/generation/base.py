"""Text-generation collaborator contract."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from ..contracts import ArtifactType
from ..registry.models import AgentPersona


class AgentContext(BaseModel):
    """Everything an agent sees when asked to run one step."""

    workflow_id: str
    goal: str
    step_id: str
    step_index: int
    agent_id: str
    action: Optional[str] = None
    description: str = ""
    creates: Optional[str] = None
    uses: Optional[str] = None
    handoff_prompt: Optional[str] = None
    recent_messages: List[Dict[str, Any]] = Field(default_factory=list)
    artifacts: Dict[str, str] = Field(default_factory=dict)
    routing_decisions: Dict[str, Any] = Field(default_factory=dict)
    answers: List[Any] = Field(default_factory=list)

    def render_prompt(self) -> str:
        """Render the context as the user prompt for a language model."""
        parts = [f"Goal: {self.goal}"]
        task = self.action or self.description
        if task:
            parts.append(f"Your task: {task}")
        if self.creates:
            parts.append(f"Produce the document '{self.creates}'.")
        if self.uses:
            parts.append(f"Follow the template '{self.uses}'.")
        if self.handoff_prompt:
            parts.append(f"Handoff note: {self.handoff_prompt}")
        if self.artifacts:
            parts.append("Existing documents:")
            for name, content in self.artifacts.items():
                parts.append(f"--- {name} ---\n{content}")
        if self.routing_decisions:
            decisions = ", ".join(f"{k}={v}" for k, v in self.routing_decisions.items())
            parts.append(f"Decisions so far: {decisions}")
        if self.recent_messages:
            parts.append("Recent conversation:")
            for msg in self.recent_messages:
                parts.append(f"[{msg.get('sender')}] {msg.get('content')}")
        if self.answers:
            parts.append("User answers for this step:")
            parts.extend(f"- {answer}" for answer in self.answers)
        return "\n\n".join(parts)


class GeneratedArtifact(BaseModel):
    name: str
    content: str = ""
    type: Optional[ArtifactType] = None


class GenerationResult(BaseModel):
    """Outcome reported by a text generator for one step."""

    success: bool = True
    content: str = ""
    artifacts: List[GeneratedArtifact] = Field(default_factory=list)
    elicitation_required: bool = False
    elicitation_data: Dict[str, Any] = Field(default_factory=dict)
    provider: Optional[str] = None
    decisions: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class TextGenerator(Protocol):
    """Produces agent output for a step."""

    async def generate(
        self, persona: AgentPersona, context: AgentContext
    ) -> GenerationResult:
        """Run ``persona`` against ``context``."""
