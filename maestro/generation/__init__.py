"""Text generation for agent steps."""

from __future__ import annotations

from .base import AgentContext, GeneratedArtifact, GenerationResult, TextGenerator
from .agent import AgentReply, PydanticAIGenerator

__all__ = [
    "AgentContext",
    "AgentReply",
    "GeneratedArtifact",
    "GenerationResult",
    "PydanticAIGenerator",
    "TextGenerator",
]
