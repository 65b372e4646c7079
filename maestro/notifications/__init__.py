"""Notifier factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import MaestroConfig, load_config
from .base import BaseNotifier, channel_for, safe_publish
from .inmemory import InMemoryNotifier


def get_notifier(
    backend: Optional[str] = None, config: Optional[MaestroConfig] = None
) -> BaseNotifier:
    """Factory function to get the configured notifier."""

    config = config or load_config()
    backend = (
        backend or os.getenv("MAESTRO_NOTIFIER") or config.notifications.backend
    ).lower()
    prefix = config.notifications.channel_prefix

    if backend == "inmemory":
        return InMemoryNotifier(channel_prefix=prefix)
    elif backend == "redis":
        from .redis import RedisNotifier

        redis_conf = config.notifications.redis
        return RedisNotifier(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            channel_prefix=prefix,
        )
    else:
        raise ValueError(f"Unsupported notifier backend: {backend}")


__all__ = [
    "BaseNotifier",
    "InMemoryNotifier",
    "channel_for",
    "get_notifier",
    "safe_publish",
]
