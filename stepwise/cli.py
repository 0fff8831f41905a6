"""Command line interface for defining, running and inspecting workflows."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer

from stepwise import WorkflowEngine, get_repository
from stepwise.config import load_config
from stepwise.errors import (
    RunError,
    StepFailure,
    UnsatisfiedSubsetError,
    WorkflowNotFoundError,
)
from stepwise.persistence import WorkflowRun
from stepwise.registry import WorkflowRegistry, get_registry

app = typer.Typer(help="CLI for stepwise workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting and running workflows")
run_app = typer.Typer(help="Commands for inspecting and controlling runs")

app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """stepwise CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _registry(path: Optional[Path]) -> WorkflowRegistry:
    if path is None:
        return get_registry()
    search_path = path.expanduser().resolve()
    if not search_path.exists():
        _fail("Specified path does not exist")
    registry = WorkflowRegistry(search_path)
    registry.discover()
    return registry


def _run_summary(run: WorkflowRun) -> str:
    return (
        f"{run.id}\t{run.workflow_name}\t{run.status.value}\t"
        f"{run.completed_steps}/{run.total_steps}\t{run.updated_at:%Y-%m-%d %H:%M:%S}"
    )


@workflow_app.command("list")
def workflow_list(
    path: Optional[Path] = typer.Option(None, help="Directory of workflow modules"),
) -> None:
    """
    List workflows available in the configured workflows directory.

    Example:
        stepwise workflow list --path ./workflows
        # Output: content-pipeline - Generate and publish lesson content
        #           Steps: init, load, process, publish
    """
    registry = _registry(path)
    workflows = registry.all()
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        info = wf.info()
        typer.echo(f"{info.name} - {info.description or 'No description'}")
        typer.echo(f"  Steps: {', '.join(info.step_names)}")


@workflow_app.command("show")
def workflow_show(
    name: str,
    path: Optional[Path] = typer.Option(None, help="Directory of workflow modules"),
) -> None:
    """Show a workflow's steps with their dependencies and timeouts."""
    workflow = _registry(path).get(name)
    if workflow is None:
        _fail("Workflow not found")
    info = workflow.info()
    typer.echo(f"Workflow {info.name}: {info.total_steps} steps")
    if workflow.metadata and workflow.metadata.version:
        typer.echo(f"Version: {workflow.metadata.version}")
    for step in workflow.steps:
        line = f"- {step.name}"
        if step.description:
            line += f": {step.description}"
        if step.dependencies:
            line += f" (after {', '.join(step.dependencies)})"
        if step.timeout:
            line += f" [timeout {step.timeout}s]"
        typer.echo(line)


@workflow_app.command("run")
def workflow_run(
    name: str,
    skip: Optional[List[str]] = typer.Option(
        None, "--skip", "-s", help="Step to exclude (repeatable)"
    ),
    resume: Optional[int] = typer.Option(None, help="Run id to resume"),
    path: Optional[Path] = typer.Option(None, help="Directory of workflow modules"),
) -> None:
    """
    Run a workflow in this process, or resume an earlier run.

    Example:
        stepwise workflow run content-pipeline --skip publish
        stepwise workflow run content-pipeline --resume 12
    """
    registry = _registry(path)
    try:
        workflow = registry.require(name)
    except WorkflowNotFoundError as exc:
        _fail(str(exc))

    step_filter = {step: False for step in skip or []}
    engine = WorkflowEngine(get_repository())
    try:
        run_id = asyncio.run(
            engine.run_workflow(workflow, step_filter=step_filter, resume_run_id=resume)
        )
    except StepFailure as exc:
        _fail(f"Run {exc.run_id} failed: {exc.error_message}")
    except (UnsatisfiedSubsetError, RunError) as exc:
        _fail(str(exc))
    typer.echo(f"Workflow {name} completed (run {run_id})")


@run_app.command("list")
def run_list(
    limit: Optional[int] = typer.Option(None, help="Maximum number of runs"),
    workflow: Optional[str] = typer.Option(None, help="Only runs of this workflow"),
) -> None:
    """List recent runs, newest first."""
    limit = limit or load_config().run_history_limit
    engine = WorkflowEngine(get_repository())
    runs = asyncio.run(engine.list_runs(limit=limit, workflow_name=workflow))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(_run_summary(run))


@run_app.command("resumable")
def run_resumable() -> None:
    """List runs that are still marked running, most recently updated first."""
    engine = WorkflowEngine(get_repository())
    runs = asyncio.run(engine.list_resumable_runs())
    if not runs:
        typer.echo("No resumable runs")
        return
    for run in runs:
        typer.echo(_run_summary(run))


@run_app.command("show")
def run_show(run_id: int) -> None:
    """
    Show a run's status and per-step progress.

    Example:
        stepwise run show 3
        # Output: Run 3 (content-pipeline): failed
        #         Progress: 50% (2/4 steps)
        #         - init: completed 100%
        #         - process: failed 40% - boom
    """
    engine = WorkflowEngine(get_repository())
    try:
        run = asyncio.run(engine.get_run(run_id))
    except RunError:
        _fail("Run not found")
    typer.echo(f"Run {run.id} ({run.workflow_name}): {run.status.value}")
    typer.echo(
        f"Progress: {run.overall_progress}% ({run.completed_steps}/{run.total_steps} steps)"
    )
    if run.current_step:
        typer.echo(f"Current step: {run.current_step}")
    for step in run.steps:
        line = f"- {step.step_name}: {step.status.value} {step.progress}%"
        if step.message:
            line += f" ({step.message})"
        if step.duration_ms is not None:
            line += f" in {step.duration_ms}ms"
        if step.error_message:
            line += f" - {step.error_message}"
        typer.echo(line)


@run_app.command("pause")
def run_pause(run_id: int) -> None:
    """Mark a run paused so it is not resumed automatically."""
    engine = WorkflowEngine(get_repository())
    try:
        asyncio.run(engine.pause(run_id))
    except RunError as exc:
        _fail(str(exc))
    typer.echo(f"Run {run_id} paused")


@run_app.command("stop")
def run_stop(run_id: int) -> None:
    """Mark a run failed. Work already in flight is not interrupted."""
    engine = WorkflowEngine(get_repository())
    try:
        asyncio.run(engine.stop(run_id))
    except RunError as exc:
        _fail(str(exc))
    typer.echo(f"Run {run_id} stopped")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
