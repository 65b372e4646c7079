"""Maestro: multi-agent workflow orchestration."""

from .config import MaestroConfig, load_config
from .contracts import (
    StartOptions,
    StartResult,
    StepOutcome,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowSnapshot,
    WorkflowStatus,
)
from .generation import AgentContext, GenerationResult, PydanticAIGenerator
from .notifications import get_notifier
from .orchestrator import Orchestrator
from .parser import DefinitionParser
from .persistence import get_repository
from .registry import PersonaRegistry

__version__ = "0.1.0"
__all__ = [
    "AgentContext",
    "DefinitionParser",
    "GenerationResult",
    "MaestroConfig",
    "Orchestrator",
    "PersonaRegistry",
    "PydanticAIGenerator",
    "StartOptions",
    "StartResult",
    "StepOutcome",
    "WorkflowDefinition",
    "WorkflowInstance",
    "WorkflowSnapshot",
    "WorkflowStatus",
    "get_notifier",
    "get_repository",
    "load_config",
]
