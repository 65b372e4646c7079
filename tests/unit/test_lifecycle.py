import pytest

from maestro.contracts import (
    AgentStep,
    MessageType,
    WorkflowDefinition,
    WorkflowStatus,
)
from maestro.engine import LifecycleManager, can_transition
from maestro.exceptions import InvalidTransitionError, PersistenceError, WorkflowNotFoundError
from maestro.notifications import InMemoryNotifier, channel_for
from maestro.persistence import InMemoryWorkflowRepository

DEFINITION = WorkflowDefinition(
    name="two-step",
    title="Two Step",
    steps=[
        AgentStep(id="plan", index=0, agent_id="pm", creates="prd.md"),
        AgentStep(id="build", index=1, agent_id="dev", requires=["prd.md"]),
    ],
)


class FlakyRepository(InMemoryWorkflowRepository):
    def __init__(self):
        super().__init__()
        self.broken = False

    async def save_workflow(self, workflow):
        if self.broken:
            raise PersistenceError("disk full")
        await super().save_workflow(workflow)


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def lifecycle(notifier):
    return LifecycleManager(InMemoryWorkflowRepository(), notifier)


def test_transition_table():
    S = WorkflowStatus
    assert can_transition(S.INITIALIZING, S.RUNNING)
    assert can_transition(S.RUNNING, S.PAUSED_FOR_ELICITATION)
    assert can_transition(S.ERROR, S.ROLLING_BACK)
    assert can_transition(S.ROLLED_BACK, S.RUNNING)
    assert not can_transition(S.COMPLETED, S.RUNNING)
    assert not can_transition(S.CANCELLED, S.RUNNING)
    assert not can_transition(S.PAUSED, S.COMPLETED)
    # Completed workflows leave only through an explicit rollback.
    assert can_transition(S.COMPLETED, S.ROLLING_BACK)
    assert not can_transition(S.COMPLETED, S.CANCELLED)
    assert not can_transition(S.CANCELLED, S.ROLLING_BACK)


@pytest.mark.asyncio
async def test_create_persists_and_records_goal(lifecycle):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app", user_id="alice")

    assert wf.status is WorkflowStatus.INITIALIZING
    assert wf.name == "Two Step"
    assert wf.template == "two-step"
    assert wf.total_steps == 2
    assert wf.messages[0].type is MessageType.USER_INPUT
    assert wf.messages[0].content == "Plan a reading list app"
    assert await lifecycle.repository.get_workflow(wf.id) is not None


@pytest.mark.asyncio
async def test_invalid_transition_leaves_instance_untouched(lifecycle):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    with pytest.raises(InvalidTransitionError):
        await lifecycle.transition(wf, WorkflowStatus.COMPLETED)
    assert wf.status is WorkflowStatus.INITIALIZING


@pytest.mark.asyncio
async def test_transition_sets_timestamps(lifecycle):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    await lifecycle.transition(wf, WorkflowStatus.RUNNING)
    assert wf.started_at is not None
    assert wf.ended_at is None

    await lifecycle.complete(wf, "done")
    assert wf.status is WorkflowStatus.COMPLETED
    assert wf.ended_at is not None
    assert wf.messages[-1].type is MessageType.WORKFLOW_COMPLETE


@pytest.mark.asyncio
async def test_advance_is_bounded(lifecycle):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    assert await lifecycle.advance(wf) == 1
    assert wf.current_agent == "dev"
    assert await lifecycle.advance(wf) == 2
    assert wf.current_agent is None
    assert await lifecycle.advance(wf) == 2
    assert wf.is_finished()


@pytest.mark.asyncio
async def test_persistence_failure_keeps_state_and_marks_dirty():
    repo = FlakyRepository()
    lifecycle = LifecycleManager(repo)
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")

    repo.broken = True
    await lifecycle.transition(wf, WorkflowStatus.RUNNING)
    assert wf.status is WorkflowStatus.RUNNING
    assert lifecycle.is_dirty(wf.id)

    repo.broken = False
    assert await lifecycle.persist(wf)
    assert not lifecycle.is_dirty(wf.id)
    assert (await repo.get_workflow(wf.id)).status is WorkflowStatus.RUNNING


@pytest.mark.asyncio
async def test_get_loads_from_repository(lifecycle):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    fresh = LifecycleManager(lifecycle.repository)

    loaded = await fresh.get(wf.id)
    assert loaded.id == wf.id
    assert await fresh.get(wf.id) is loaded

    with pytest.raises(WorkflowNotFoundError):
        await fresh.get("workflow_unknown")


@pytest.mark.asyncio
async def test_evict_reloads_from_repository(lifecycle):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    await lifecycle.transition(wf, WorkflowStatus.RUNNING)

    assert lifecycle.evict(wf.id)
    assert lifecycle.cached() == []
    assert not lifecycle.evict(wf.id)

    reloaded = await lifecycle.get(wf.id)
    assert reloaded is not wf
    assert reloaded.status is WorkflowStatus.RUNNING
    assert lifecycle.cached() == [wf.id]


@pytest.mark.asyncio
async def test_dirty_instance_is_not_evicted():
    repo = FlakyRepository()
    lifecycle = LifecycleManager(repo)
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    repo.broken = True
    await lifecycle.transition(wf, WorkflowStatus.RUNNING)

    assert not lifecycle.evict(wf.id)
    assert await lifecycle.get(wf.id) is wf


@pytest.mark.asyncio
async def test_record_error_keeps_status(lifecycle):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    await lifecycle.transition(wf, WorkflowStatus.RUNNING)

    record = await lifecycle.record_error(wf, "optional step failed", error_type="network")

    assert wf.status is WorkflowStatus.RUNNING
    assert wf.last_error is record
    assert wf.messages[-1].type is MessageType.ERROR
    assert (await lifecycle.repository.get_workflow(wf.id)).errors[-1].message == "optional step failed"


@pytest.mark.asyncio
async def test_fail_records_error_and_notifies(lifecycle, notifier):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    await lifecycle.transition(wf, WorkflowStatus.RUNNING)

    record = await lifecycle.fail(wf, "boom", error_type="network", attempts=2, recovery_attempted=True)

    assert wf.status is WorkflowStatus.ERROR
    assert wf.last_error is record
    assert record.attempts == 2
    assert "workflow_failed" in notifier.events_for(channel_for(wf.id))


@pytest.mark.asyncio
async def test_pause_resume_cancel(lifecycle, notifier):
    wf = await lifecycle.create(DEFINITION, "Plan a reading list app")
    await lifecycle.transition(wf, WorkflowStatus.RUNNING)

    await lifecycle.pause(wf.id)
    assert wf.status is WorkflowStatus.PAUSED
    with pytest.raises(InvalidTransitionError):
        await lifecycle.pause(wf.id)

    await lifecycle.resume(wf.id)
    assert wf.status is WorkflowStatus.RUNNING

    await lifecycle.cancel(wf.id)
    assert wf.status is WorkflowStatus.CANCELLED
    with pytest.raises(InvalidTransitionError):
        await lifecycle.resume(wf.id)

    assert notifier.events_for(channel_for(wf.id)) == [
        "workflow_paused",
        "workflow_resumed",
        "workflow_cancelled",
    ]
