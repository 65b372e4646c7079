"""Redis pub/sub notifier for cross-process event delivery."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from .base import BaseNotifier


class RedisNotifier(BaseNotifier):
    """Publish workflow events as JSON on Redis channels."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        channel_prefix: Optional[str] = None,
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisNotifier")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        if channel_prefix:
            self.channel_prefix = channel_prefix
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        if not self._redis:
            await self.connect()
        body = json.dumps({"event": event, "data": payload}, default=str)
        await self._redis.publish(channel, body)
