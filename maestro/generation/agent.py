"""Text generator backed by pydantic-ai agents."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from pydantic_ai import Agent

from ..registry.models import AgentPersona
from .base import AgentContext, GeneratedArtifact, GenerationResult

logger = logging.getLogger(__name__)


class AgentReply(BaseModel):
    """Structured output requested from the language model."""

    content: str = Field(description="The deliverable for this step, in markdown.")
    artifacts: List[GeneratedArtifact] = Field(
        default_factory=list,
        description="Named documents produced by this step, if any.",
    )
    needs_input: bool = Field(
        default=False,
        description="Set when the step cannot continue without an answer from the user.",
    )
    question: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    response_type: Literal["free_text", "choice", "approval"] = "free_text"
    decision_key: Optional[str] = None
    decisions: Dict[str, str] = Field(
        default_factory=dict,
        description="Routing decisions made by this step, e.g. {\"architecture_decision\": \"needed\"}.",
    )


class PydanticAIGenerator:
    """Run each step as a pydantic-ai agent configured from the persona."""

    def __init__(self, model: Any = "openai:gpt-4o", **agent_kwargs: Any) -> None:
        self.model = model
        self._agent_kwargs = agent_kwargs

    def build_agent(self, persona: AgentPersona) -> Agent:
        return Agent(
            self.model,
            output_type=AgentReply,
            system_prompt=persona.system_prompt(),
            name=persona.id,
            **self._agent_kwargs,
        )

    async def generate(
        self, persona: AgentPersona, context: AgentContext
    ) -> GenerationResult:
        agent = self.build_agent(persona)
        logger.debug(f"Running agent {persona.id} for step {context.step_id}")
        result = await agent.run(context.render_prompt())
        reply: AgentReply = result.output

        provider = self.model if isinstance(self.model, str) else type(self.model).__name__
        if reply.needs_input:
            return GenerationResult(
                content=reply.content,
                elicitation_required=True,
                elicitation_data={
                    "prompt": reply.question or reply.content,
                    "options": reply.options,
                    "response_type": reply.response_type,
                    "decision_key": reply.decision_key,
                },
                provider=provider,
            )

        artifacts = list(reply.artifacts)
        if not artifacts and context.creates:
            artifacts.append(GeneratedArtifact(name=context.creates, content=reply.content))
        return GenerationResult(
            content=reply.content,
            artifacts=artifacts,
            decisions=reply.decisions,
            provider=provider,
        )
