import asyncio
import logging

import pytest

from maestro.notifications import BaseNotifier, InMemoryNotifier, channel_for, safe_publish


class BrokenNotifier(BaseNotifier):
    async def publish(self, channel, event, payload):
        raise ConnectionError("broker down")


def test_channel_for():
    assert channel_for("workflow_1") == "workflow-workflow_1"
    assert channel_for("workflow_1", "maestro") == "maestro-workflow_1"


@pytest.mark.asyncio
async def test_notify_publishes_on_workflow_channel():
    notifier = InMemoryNotifier(channel_prefix="maestro")
    assert await notifier.notify("workflow_1", "step_started", {"step_index": 0})

    channel, event, payload = notifier.events[0]
    assert channel == "maestro-workflow_1"
    assert event == "step_started"
    assert payload == {"workflow_id": "workflow_1", "step_index": 0}
    assert notifier.events_for("maestro-workflow_1") == ["step_started"]


@pytest.mark.asyncio
async def test_publish_failures_are_logged_not_raised(caplog):
    notifier = BrokenNotifier()
    with caplog.at_level(logging.WARNING):
        delivered = await notifier.notify("workflow_1", "workflow_started")
    assert delivered is False
    assert "broker down" in caplog.text

    assert await safe_publish(None, "workflow-x", "noop", {}) is False


@pytest.mark.asyncio
async def test_subscribe_receives_later_events():
    notifier = InMemoryNotifier()
    channel = channel_for("workflow_1")
    stream = notifier.subscribe(channel, lifespan=0.5)

    pending = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)
    await notifier.notify("workflow_1", "workflow_completed")

    event, payload = await pending
    assert event == "workflow_completed"
    assert payload["workflow_id"] == "workflow_1"
    await stream.aclose()


@pytest.mark.asyncio
async def test_subscribe_stops_after_lifespan():
    notifier = InMemoryNotifier()
    received = [item async for item in notifier.subscribe("quiet", lifespan=0.01)]
    assert received == []
