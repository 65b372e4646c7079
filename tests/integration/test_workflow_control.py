"""Pause, cancel, rollback, elicitation and restart of running workflows."""

import pytest

from fixtures.generators import GatedGenerator, ScriptedGenerator
from maestro import StartOptions
from maestro.contracts import CheckpointType, WorkflowStatus
from maestro.exceptions import (
    ElicitationNotFoundError,
    InvalidTransitionError,
    RollbackNotFoundError,
    ValidationError,
)
from maestro.generation import GenerationResult
from maestro.persistence import SQLiteWorkflowRepository

pytestmark = pytest.mark.integration

GOAL = "Build a reading list app with sharing"


def _question(**data):
    data.setdefault("prompt", "Which platform should we target?")
    return GenerationResult(content="Need input", elicitation_required=True, elicitation_data=data)


def _checkpoint_at(snap, type, step_index):
    return next(c for c in snap.checkpoints if c.type is type and c.step_index == step_index)


@pytest.mark.asyncio
async def test_rollback_after_failure_and_resume(make_orchestrator):
    generator = ScriptedGenerator({"architect": [ConnectionError("connection reset")] * 3})
    orch = make_orchestrator(generator)
    started = await orch.start(GOAL, StartOptions(template="three-step"))
    wf_id = started.workflow_id

    failed = await orch.wait(wf_id, timeout=5)
    assert failed.status is WorkflowStatus.ERROR
    assert failed.current_step_index == 1
    assert failed.last_error.error_type == "network"
    assert "All 2 retry attempts failed" in failed.last_error.message

    target = _checkpoint_at(failed, CheckpointType.STEP_COMPLETED, 1)
    result = await orch.rollback(wf_id, target.id)
    assert result.status is WorkflowStatus.ROLLED_BACK
    assert result.target_step == 1

    rolled = await orch.get_status(wf_id)
    assert rolled.status is WorkflowStatus.ROLLED_BACK
    assert rolled.artifacts == ["prd.md"]
    assert rolled.error_count == 0

    await orch.resume(wf_id)
    done = await orch.wait(wf_id, timeout=5)

    assert done.status is WorkflowStatus.COMPLETED
    assert done.artifacts == ["prd.md", "architecture.md", "implementation.md"]
    assert len(generator.calls_for("architect")) == 4
    assert len(generator.calls_for("pm")) == 1
    assert any(c.type is CheckpointType.RESUME_FROM_ROLLBACK for c in done.checkpoints)


@pytest.mark.asyncio
async def test_completed_workflow_can_be_reworked_from_checkpoint(make_orchestrator):
    generator = ScriptedGenerator()
    orch = make_orchestrator(generator)
    started = await orch.start(GOAL, StartOptions(template="three-step"))
    wf_id = started.workflow_id
    done = await orch.wait(wf_id, timeout=5)
    assert done.status is WorkflowStatus.COMPLETED

    target = _checkpoint_at(done, CheckpointType.STEP_COMPLETED, 2)
    await orch.rollback(wf_id, target.id)
    rolled = await orch.get_status(wf_id)
    assert rolled.status is WorkflowStatus.ROLLED_BACK
    assert rolled.artifacts == ["prd.md", "architecture.md"]

    await orch.resume(wf_id)
    again = await orch.wait(wf_id, timeout=5)
    assert again.status is WorkflowStatus.COMPLETED
    assert len(generator.calls_for("dev")) == 2
    assert len(generator.calls_for("architect")) == 1


@pytest.mark.asyncio
async def test_rollback_to_unknown_checkpoint(make_orchestrator):
    orch = make_orchestrator()
    started = await orch.start(GOAL, StartOptions(template="three-step"))
    await orch.wait(started.workflow_id, timeout=5)

    with pytest.raises(RollbackNotFoundError):
        await orch.rollback(started.workflow_id, "checkpoint_missing")
    assert (await orch.get_status(started.workflow_id)).status is WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_elicitation_round_trip(make_orchestrator):
    generator = ScriptedGenerator(
        {"interview": [_question(options=["web", "mobile"], decision_key="platform")]}
    )
    orch = make_orchestrator(generator)
    started = await orch.start(GOAL, StartOptions(template="ask"))
    wf_id = started.workflow_id

    paused = await orch.wait(wf_id, timeout=5)
    assert paused.status is WorkflowStatus.PAUSED_FOR_ELICITATION
    assert paused.current_step_index == 0
    request = paused.pending_elicitation
    assert request.options == ["web", "mobile"]
    assert any(c.type is CheckpointType.ELICITATION_PAUSE for c in paused.checkpoints)

    with pytest.raises(ValidationError):
        await orch.respond_to_elicitation(wf_id, request.message_id, "desktop")
    with pytest.raises(ElicitationNotFoundError):
        await orch.respond_to_elicitation(wf_id, "msg_unknown", "web")
    assert (await orch.get_status(wf_id)).status is WorkflowStatus.PAUSED_FOR_ELICITATION

    await orch.respond_to_elicitation(wf_id, request.message_id, "web")
    done = await orch.wait(wf_id, timeout=5)

    assert done.status is WorkflowStatus.COMPLETED
    assert done.routing_decisions == {"platform": "web"}
    interview_calls = [c for c in generator.calls if c.step_id == "interview"]
    assert len(interview_calls) == 2
    assert interview_calls[1].answers == ["web"]
    assert done.artifacts == ["project-brief.md", "prd.md"]


@pytest.mark.asyncio
async def test_resume_skips_pending_question(make_orchestrator):
    orch = make_orchestrator(ScriptedGenerator({"interview": [_question()]}))
    started = await orch.start(GOAL, StartOptions(template="ask"))
    await orch.wait(started.workflow_id, timeout=5)

    snap = await orch.resume(started.workflow_id)
    assert snap.pending_elicitation is None
    done = await orch.wait(started.workflow_id, timeout=5)
    assert done.status is WorkflowStatus.COMPLETED


def _two_questions():
    return ScriptedGenerator(
        {
            "interview": [
                _question(prompt="first?", decision_key="old"),
                _question(prompt="second?", decision_key="new"),
            ]
        }
    )


async def _answer_second_question(orch, wf_id, first):
    waiting = await orch.wait(wf_id, timeout=5)
    assert waiting.status is WorkflowStatus.PAUSED_FOR_ELICITATION
    second = waiting.pending_elicitation
    assert second.prompt == "second?"
    assert [r.message_id for r in await orch.interaction.pending(wf_id)] == [second.message_id]

    with pytest.raises(ElicitationNotFoundError):
        await orch.respond_to_elicitation(wf_id, first.message_id, "stale answer")
    still = await orch.get_status(wf_id)
    assert still.status is WorkflowStatus.PAUSED_FOR_ELICITATION
    assert still.pending_elicitation.message_id == second.message_id

    await orch.respond_to_elicitation(wf_id, second.message_id, "fresh answer")
    done = await orch.wait(wf_id, timeout=5)
    assert done.status is WorkflowStatus.COMPLETED
    assert done.routing_decisions == {"new": "fresh answer"}
    assert done.pending_elicitation is None


@pytest.mark.asyncio
async def test_question_discarded_by_resume_cannot_be_answered(make_orchestrator):
    orch = make_orchestrator(_two_questions())
    started = await orch.start(GOAL, StartOptions(template="ask"))
    wf_id = started.workflow_id
    first = (await orch.wait(wf_id, timeout=5)).pending_elicitation
    assert first.prompt == "first?"

    await orch.resume(wf_id)
    await _answer_second_question(orch, wf_id, first)


@pytest.mark.asyncio
async def test_question_discarded_by_rollback_cannot_be_answered(make_orchestrator):
    orch = make_orchestrator(_two_questions())
    started = await orch.start(GOAL, StartOptions(template="ask"))
    wf_id = started.workflow_id
    paused = await orch.wait(wf_id, timeout=5)
    first = paused.pending_elicitation

    initial = _checkpoint_at(paused, CheckpointType.WORKFLOW_INITIALIZED, 0)
    await orch.rollback(wf_id, initial.id)
    rolled = await orch.get_status(wf_id)
    assert rolled.pending_elicitation is None
    with pytest.raises(ElicitationNotFoundError):
        await orch.respond_to_elicitation(wf_id, first.message_id, "stale answer")

    await orch.resume(wf_id)
    await _answer_second_question(orch, wf_id, first)


@pytest.mark.asyncio
async def test_pause_during_step_applies_result_then_stops(make_orchestrator):
    generator = GatedGenerator("architect")
    orch = make_orchestrator(generator)
    started = await orch.start(GOAL, StartOptions(template="three-step"))
    wf_id = started.workflow_id

    await generator.entered.wait()
    paused = await orch.pause(wf_id)
    assert paused.status is WorkflowStatus.PAUSED

    generator.release.set()
    snap = await orch.wait(wf_id, timeout=5)
    assert snap.status is WorkflowStatus.PAUSED
    assert snap.current_step_index == 2
    assert generator.calls_for("dev") == []

    with pytest.raises(InvalidTransitionError):
        await orch.pause(wf_id)

    await orch.resume(wf_id)
    done = await orch.wait(wf_id, timeout=5)
    assert done.status is WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_cancel_during_step_discards_result(make_orchestrator):
    generator = GatedGenerator("architect")
    orch = make_orchestrator(generator)
    started = await orch.start(GOAL, StartOptions(template="three-step"))
    wf_id = started.workflow_id

    await generator.entered.wait()
    cancelled = await orch.cancel(wf_id)
    assert cancelled.status is WorkflowStatus.CANCELLED

    generator.release.set()
    snap = await orch.wait(wf_id, timeout=5)
    assert snap.status is WorkflowStatus.CANCELLED
    assert snap.current_step_index == 1
    assert snap.artifacts == ["prd.md"]

    with pytest.raises(InvalidTransitionError):
        await orch.resume(wf_id)


@pytest.mark.asyncio
async def test_rollback_during_step_discards_result(make_orchestrator):
    generator = GatedGenerator("dev")
    orch = make_orchestrator(generator)
    started = await orch.start(GOAL, StartOptions(template="three-step"))
    wf_id = started.workflow_id

    await generator.entered.wait()
    snap = await orch.get_status(wf_id)
    target = _checkpoint_at(snap, CheckpointType.STEP_COMPLETED, 1)
    await orch.rollback(wf_id, target.id)

    generator.release.set()
    rolled = await orch.wait(wf_id, timeout=5)
    assert rolled.status is WorkflowStatus.ROLLED_BACK
    assert rolled.current_step_index == 1
    assert rolled.artifacts == ["prd.md"]

    await orch.resume(wf_id)
    done = await orch.wait(wf_id, timeout=5)
    assert done.status is WorkflowStatus.COMPLETED
    assert len(generator.calls_for("architect")) == 2


@pytest.mark.asyncio
async def test_manual_checkpoint(make_orchestrator):
    orch = make_orchestrator(ScriptedGenerator({"interview": [_question()]}))
    started = await orch.start(GOAL, StartOptions(template="ask"))
    await orch.wait(started.workflow_id, timeout=5)

    checkpoint = await orch.create_checkpoint(started.workflow_id, "before answering")
    assert checkpoint.type is CheckpointType.MANUAL
    assert checkpoint.status is WorkflowStatus.PAUSED_FOR_ELICITATION
    listed = await orch.list_checkpoints(started.workflow_id)
    assert listed[-1].id == checkpoint.id
    assert listed[-1].description == "before answering"
    assert await orch.purge_checkpoints() == 0


@pytest.mark.asyncio
async def test_restart_resumes_from_database(make_orchestrator, tmp_path):
    db = tmp_path / "maestro.db"
    generator = GatedGenerator("architect")
    first = make_orchestrator(generator, repository=SQLiteWorkflowRepository(db))
    started = await first.start(GOAL, StartOptions(template="three-step"))
    wf_id = started.workflow_id

    await generator.entered.wait()
    await first.shutdown()

    repo = SQLiteWorkflowRepository(db)
    second_generator = ScriptedGenerator()
    second = make_orchestrator(second_generator, repository=repo)
    stored = await second.get_status(wf_id)
    assert stored.status is WorkflowStatus.RUNNING
    assert stored.current_step_index == 1
    assert stored.artifacts == ["prd.md"]

    await second.resume(wf_id)
    done = await second.wait(wf_id, timeout=5)

    assert done.status is WorkflowStatus.COMPLETED
    assert [c.agent_id for c in second_generator.calls] == ["architect", "dev"]
    assert (await repo.get_workflow(wf_id)).status is WorkflowStatus.COMPLETED
    await second.shutdown()
    repo.close()
