"""Repository abstraction for run state persistence."""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from ..errors import RunAlreadyCompletedError, RunNotFoundError
from .models import RunStatus, StepRun, WorkflowRun


class RunRepository(Protocol):
    """Protocol for run state persistence backends.

    Every method is atomic on its own; no guarantee spans several calls.
    """

    async def create_run(
        self,
        workflow_name: str,
        step_names: Sequence[str],
        config: Optional[dict[str, Any]] = None,
    ) -> WorkflowRun:
        """Persist a ``started`` run with one ``pending`` step per name."""

    async def resume_run(self, run_id: int) -> WorkflowRun:
        """Return the run if it may be resumed, raising otherwise."""

    async def get_run(self, run_id: int) -> WorkflowRun | None:
        """Retrieve a run together with its step records."""

    async def get_step(self, run_id: int, step_name: str) -> StepRun | None:
        """Retrieve a single step record."""

    async def begin_step(self, run_id: int, step_name: str) -> StepRun:
        """Mark the run running on ``step_name`` and the step running."""

    async def complete_step(
        self, run_id: int, step_name: str, duration_ms: int
    ) -> None:
        """Mark a step completed and recount the run's completed steps."""

    async def fail_step(
        self, run_id: int, step_name: str, error_message: str, duration_ms: int
    ) -> None:
        """Mark a step and its run failed."""

    async def complete_run(self, run_id: int) -> None:
        """Mark the run completed."""

    async def update_run_status(self, run_id: int, status: RunStatus) -> None:
        """Set the run status directly (pause/stop)."""

    async def update_step_progress(
        self, step_id: int, percent: float, message: str | None = None
    ) -> None:
        """Record progress, clamped to ``[0, 100]``."""

    async def save_checkpoint(self, step_id: int, data: dict[str, Any]) -> None:
        """Persist an opaque checkpoint for a step."""

    async def load_checkpoint(self, step_id: int) -> dict[str, Any]:
        """Return the step's checkpoint or an empty dict."""

    async def list_runs(
        self, limit: int = 10, workflow_name: str | None = None
    ) -> list[WorkflowRun]:
        """Return the most recent runs, newest first."""

    async def list_resumable_runs(self) -> list[WorkflowRun]:
        """Return runs still marked running, most recently updated first."""


def ensure_resumable(run: WorkflowRun | None, run_id: int) -> WorkflowRun:
    """Validate that ``run`` exists and has not completed."""
    if run is None:
        raise RunNotFoundError(run_id)
    if run.status == RunStatus.COMPLETED:
        raise RunAlreadyCompletedError(run_id)
    return run
