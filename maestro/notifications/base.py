"""Base notifier interface for workflow events."""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, Optional

from ..constants import DEFAULT_CHANNEL_PREFIX

logger = logging.getLogger(__name__)


def channel_for(workflow_id: str, prefix: str = DEFAULT_CHANNEL_PREFIX) -> str:
    """Return the per-workflow notification channel name."""
    return f"{prefix}-{workflow_id}"


class BaseNotifier(metaclass=abc.ABCMeta):
    """Abstract publisher of workflow events."""

    channel_prefix: str = DEFAULT_CHANNEL_PREFIX

    async def connect(self) -> None:
        """Open connection to the backend (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the backend (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        """Publish one event on a channel."""
        raise NotImplementedError

    async def notify(
        self,
        workflow_id: str,
        event: str,
        payload: Optional[Dict[str, Any]] = None,
        log: Optional[logging.Logger] = None,
    ) -> bool:
        """Publish on the workflow's channel without ever raising.

        Returns ``False`` when the backend rejected the event.
        """
        return await safe_publish(
            self,
            channel_for(workflow_id, self.channel_prefix),
            event,
            {"workflow_id": workflow_id, **(payload or {})},
            log=log,
        )


async def safe_publish(
    notifier: Optional[BaseNotifier],
    channel: str,
    event: str,
    payload: Dict[str, Any],
    log: Optional[logging.Logger] = None,
) -> bool:
    """Publish an event, logging instead of propagating backend failures."""
    if notifier is None:
        return False
    try:
        await notifier.publish(channel, event, payload)
    except Exception as e:
        (log or logger).warning(f"Failed to publish '{event}' on {channel}: {e}")
        return False
    return True
