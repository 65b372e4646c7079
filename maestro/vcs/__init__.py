"""Version control backends for exporting artifacts."""

from __future__ import annotations

from typing import Optional

from ..config import MaestroConfig
from .base import VersionControl
from .github import GitHubVersionControl
from .inmemory import InMemoryVersionControl, RecordedCommit


def get_version_control(config: MaestroConfig) -> Optional[VersionControl]:
    """Return a GitHub backend when a token is configured, else ``None``."""
    if config.github.token:
        return GitHubVersionControl(config.github.token, api_url=config.github.api_url)
    return None


__all__ = [
    "GitHubVersionControl",
    "InMemoryVersionControl",
    "RecordedCommit",
    "VersionControl",
    "get_version_control",
]
