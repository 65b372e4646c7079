"""Shared constants for maestro workflows."""

MIN_GOAL_LENGTH = 10
DEFAULT_TEMPLATE = "greenfield-fullstack"
DEFAULT_MAX_CHECKPOINTS = 10
DEFAULT_CHECKPOINT_TTL_DAYS = 30
DEFAULT_HISTORY_LIMIT = 10
DEFAULT_ROUTE = "major_enhancement"
DEFAULT_CHANNEL_PREFIX = "workflow"
DEFAULT_ARTIFACT_ROOT = "docs"
SYSTEM_AGENT = "system"
