from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_ARTIFACT_ROOT,
    DEFAULT_CHANNEL_PREFIX,
    DEFAULT_CHECKPOINT_TTL_DAYS,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_MAX_CHECKPOINTS,
)


class RedisConfig(BaseModel):
    """Configuration for the Redis notifier."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class NotificationConfig(BaseModel):
    """Notification backend settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    channel_prefix: str = DEFAULT_CHANNEL_PREFIX
    redis: RedisConfig = RedisConfig()


class GenerationConfig(BaseModel):
    """Text-generation settings."""

    model: str = "openai:gpt-4o"
    history_limit: int = DEFAULT_HISTORY_LIMIT


class RecoveryConfig(BaseModel):
    """Retry policy for transient step failures. Delays are in seconds."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.5


class CheckpointConfig(BaseModel):
    enabled: bool = True
    max_in_memory: int = DEFAULT_MAX_CHECKPOINTS
    ttl_days: Optional[int] = DEFAULT_CHECKPOINT_TTL_DAYS


class ArtifactConfig(BaseModel):
    root: str = DEFAULT_ARTIFACT_ROOT
    auto_export: bool = False


class GitHubConfig(BaseModel):
    token: Optional[str] = None
    api_url: str = "https://api.github.com"


class MaestroConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    templates_path: Optional[str] = None
    personas_path: Optional[str] = None
    notifications: NotificationConfig = NotificationConfig()
    generation: GenerationConfig = GenerationConfig()
    recovery: RecoveryConfig = RecoveryConfig()
    checkpoints: CheckpointConfig = CheckpointConfig()
    artifacts: ArtifactConfig = ArtifactConfig()
    github: GitHubConfig = GitHubConfig()


def load_config(path: Optional[str] = None) -> MaestroConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to MAESTRO_CONFIG env
            variable or 'maestro.yaml' in the current directory.
    """

    config_path = path or os.getenv("MAESTRO_CONFIG", "maestro.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = MaestroConfig(**data)
    else:
        config = MaestroConfig()

    env_db_url = os.getenv("MAESTRO_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_notifier = os.getenv("MAESTRO_NOTIFIER")
    if env_notifier:
        config.notifications.backend = env_notifier.lower()
    env_token = os.getenv("GITHUB_TOKEN")
    if env_token:
        config.github.token = env_token
    return config
