"""Tests for run state models."""

from stepwise.persistence.models import (
    RunStatus,
    StepRun,
    StepStatus,
    WorkflowRun,
    clamp_progress,
)


def _run(*statuses, progress=0):
    steps = [
        StepRun(
            id=i + 1,
            run_id=1,
            step_name=f"s{i}",
            status=status,
            progress=100 if status == StepStatus.COMPLETED else progress,
        )
        for i, status in enumerate(statuses)
    ]
    return WorkflowRun(
        id=1,
        workflow_name="wf",
        status=RunStatus.RUNNING,
        total_steps=len(steps),
        steps=steps,
    )


def test_clamp_progress():
    assert clamp_progress(150) == 100
    assert clamp_progress(-10) == 0
    assert clamp_progress(49.6) == 50


def test_overall_progress_counts_running_step_fraction():
    run = _run(StepStatus.COMPLETED, StepStatus.RUNNING, StepStatus.PENDING, StepStatus.PENDING, progress=50)
    assert run.overall_progress == 38


def test_overall_progress_without_running_step():
    run = _run(StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.PENDING)
    assert run.overall_progress == 50
    assert run.failed_step.step_name == "s2"


def test_overall_progress_from_counters_when_steps_not_loaded():
    run = WorkflowRun(id=1, workflow_name="wf", total_steps=4, completed_steps=3)
    assert run.overall_progress == 75
    assert WorkflowRun(id=2, workflow_name="wf").overall_progress == 0
    assert run.error is None


def test_completed_run_with_skipped_steps_is_fully_done():
    run = _run(StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.PENDING)
    run.status = RunStatus.COMPLETED
    assert run.overall_progress == 100
