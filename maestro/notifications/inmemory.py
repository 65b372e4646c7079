"""In-memory notifier for local development and tests."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from .base import BaseNotifier


class InMemoryNotifier(BaseNotifier):
    """Keep published events in memory and fan them out to subscribers."""

    def __init__(self, channel_prefix: Optional[str] = None) -> None:
        if channel_prefix:
            self.channel_prefix = channel_prefix
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []
        self._queues: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((channel, event, payload))
        for queue in self._queues.get(channel, []):
            queue.put_nowait((event, payload))

    def events_for(self, channel: str) -> List[str]:
        """Return the event names published on a channel, in order."""
        return [event for ch, event, _ in self.events if ch == channel]

    async def subscribe(
        self, channel: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:
        """Yield ``(event, payload)`` pairs published after subscribing.

        Args:
            channel: Channel to listen on.
            lifespan: Seconds to wait for the next event before stopping.
                ``None`` waits indefinitely.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[channel].append(queue)
        try:
            while True:
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=lifespan)
                except asyncio.TimeoutError:
                    break
                yield item
        finally:
            self._queues[channel].remove(queue)
