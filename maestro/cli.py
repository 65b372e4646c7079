"""Command line interface for running maestro workflows."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import typer

from maestro import Orchestrator, StartOptions, WorkflowSnapshot, WorkflowStatus
from maestro.config import load_config
from maestro.constants import DEFAULT_TEMPLATE
from maestro.exceptions import MaestroError
from maestro.parser import DefinitionParser

app = typer.Typer(help="CLI for maestro workflows")

# Command groups
templates_app = typer.Typer(help="Commands for inspecting workflow templates")
workflow_app = typer.Typer(help="Commands for managing workflows")

app.add_typer(templates_app, name="templates")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info logging")) -> None:
    """Maestro CLI entry point."""
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING)


def _call(
    operation: Callable[[Orchestrator], Awaitable[Any]], wait_for: Optional[str] = None
) -> Any:
    """Run ``operation`` against a fresh orchestrator and shut it down.

    When ``wait_for`` names a workflow, its execution loop is awaited first.
    """

    async def runner() -> Any:
        orchestrator = Orchestrator()
        try:
            result = await operation(orchestrator)
            if wait_for is not None:
                result = await orchestrator.wait(wait_for)
            return result
        finally:
            await orchestrator.shutdown()

    try:
        return asyncio.run(runner())
    except MaestroError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _print_snapshot(snap: WorkflowSnapshot) -> None:
    typer.echo(f"Workflow {snap.workflow_id}: {snap.status.value}")
    typer.echo(
        f"Template: {snap.template} - step {snap.current_step_index}/{snap.total_steps} "
        f"({snap.progress}%)"
    )
    if snap.current_agent:
        typer.echo(f"Current agent: {snap.current_agent}")
    if snap.artifacts:
        typer.echo(f"Artifacts: {', '.join(snap.artifacts)}")
    if snap.last_error:
        typer.secho(f"Last error: {snap.last_error.message}", fg=typer.colors.RED)
    pending = snap.pending_elicitation
    if snap.status is WorkflowStatus.PAUSED_FOR_ELICITATION and pending:
        typer.echo(f"Question ({pending.message_id}): {pending.prompt}")
        if pending.options:
            typer.echo(f"  Options: {', '.join(pending.options)}")
        typer.echo(
            f"Answer with: maestro workflow respond {snap.workflow_id} "
            f"{pending.message_id} <answer>"
        )


@app.command("run")
def run(
    goal: str,
    template: str = typer.Option(DEFAULT_TEMPLATE, help="Workflow template to run"),
    wait: bool = typer.Option(True, help="Wait until the workflow stops running"),
) -> None:
    """
    Start a workflow for GOAL.

    With --wait the command returns once the workflow completes, fails or
    needs input. With --no-wait it only records the workflow; continue it
    later with 'maestro workflow resume'.

    Example:
        maestro run "Build a todo app with user accounts" --template backend-service
    """

    async def operation(orch: Orchestrator) -> Optional[WorkflowSnapshot]:
        result = await orch.start(goal, StartOptions(template=template))
        typer.echo(f"Started workflow {result.workflow_id}")
        if wait:
            return await orch.wait(result.workflow_id)
        return None

    snap = _call(operation)
    if snap is not None:
        _print_snapshot(snap)


@templates_app.command("list")
def templates_list() -> None:
    """List available workflow templates."""
    parser = DefinitionParser(_template_paths())
    for name in parser.list_templates():
        typer.echo(name)


@templates_app.command("show")
def templates_show(name: str) -> None:
    """Show the steps of a workflow template."""
    parser = DefinitionParser(_template_paths())
    try:
        definition = parser.parse(name)
    except MaestroError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{definition.title} ({definition.name})")
    if definition.description:
        typer.echo(definition.description)
    for step in definition.steps:
        label = getattr(step, "agent_id", None) or getattr(step, "decision", "")
        extra = f" -> {step.creates}" if getattr(step, "creates", None) else ""
        typer.echo(f"  {step.index}. [{step.kind}] {step.id} ({label}){extra}")


def _template_paths() -> list:
    config = load_config()
    return [config.templates_path] if config.templates_path else []


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflows with their current status.

    Example:
        maestro workflow list
        # Output: workflow_3f2a...    running    2/6
    """
    workflows = _call(lambda orch: orch.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(
            f"{wf.workflow_id}\t{wf.status.value}\t{wf.current_step_index}/{wf.total_steps}"
        )


@workflow_app.command("status")
def workflow_status(workflow_id: str) -> None:
    """Show detailed status for a workflow."""
    _print_snapshot(_call(lambda orch: orch.get_status(workflow_id)))


@workflow_app.command("resume")
def workflow_resume(workflow_id: str) -> None:
    """Resume a paused, rolled back or interrupted workflow and wait for it."""
    snap = _call(lambda orch: orch.resume(workflow_id), wait_for=workflow_id)
    _print_snapshot(snap)


@workflow_app.command("cancel")
def workflow_cancel(workflow_id: str) -> None:
    """Cancel a workflow."""
    _print_snapshot(_call(lambda orch: orch.cancel(workflow_id)))


@workflow_app.command("checkpoints")
def workflow_checkpoints(workflow_id: str) -> None:
    """List checkpoints of a workflow."""
    checkpoints = _call(lambda orch: orch.list_checkpoints(workflow_id))
    if not checkpoints:
        typer.echo("No checkpoints found")
        return
    for cp in checkpoints:
        typer.echo(f"{cp.id}\t{cp.type.value}\tstep {cp.step_index}\t{cp.created_at:%Y-%m-%d %H:%M:%S}")


@workflow_app.command("rollback")
def workflow_rollback(workflow_id: str, checkpoint_id: str) -> None:
    """Roll a workflow back to a checkpoint. Use 'resume' to continue."""
    result = _call(lambda orch: orch.rollback(workflow_id, checkpoint_id))
    typer.echo(
        f"Workflow {result.workflow_id} rolled back to step {result.target_step} "
        f"({result.status.value})"
    )


@workflow_app.command("respond")
def workflow_respond(workflow_id: str, message_id: str, answer: str) -> None:
    """Answer a pending question and continue the workflow."""
    snap = _call(
        lambda orch: orch.respond_to_elicitation(workflow_id, message_id, answer),
        wait_for=workflow_id,
    )
    _print_snapshot(snap)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
