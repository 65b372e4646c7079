"""Workflow execution engine."""

from __future__ import annotations

from .artifacts import ArtifactManager, ArtifactStats
from .checkpoints import CheckpointManager
from .executor import StepExecutor
from .interaction import UserInteractionService
from .lifecycle import TRANSITIONS, LifecycleManager, can_transition
from .recovery import ErrorClass, ErrorRecoveryManager, RecoveryResult, classify

__all__ = [
    "ArtifactManager",
    "ArtifactStats",
    "CheckpointManager",
    "ErrorClass",
    "ErrorRecoveryManager",
    "LifecycleManager",
    "RecoveryResult",
    "StepExecutor",
    "TRANSITIONS",
    "UserInteractionService",
    "can_transition",
    "classify",
]
