"""In-memory implementation of the run repository."""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional, Sequence

from ..errors import StepNotFoundError
from .models import (
    RunStatus,
    StepRun,
    StepStatus,
    WorkflowRun,
    clamp_progress,
    utcnow,
)
from .repository import RunRepository, ensure_resumable


class InMemoryRunRepository(RunRepository):
    """Store run state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[int, WorkflowRun] = {}
        self._steps: Dict[int, StepRun] = {}
        self._run_id = 0
        self._step_id = 0

    # ------------------------------------------------------------------
    def _find_step(self, run_id: int, step_name: str) -> Optional[StepRun]:
        for step in self._steps.values():
            if step.run_id == run_id and step.step_name == step_name:
                return step
        return None

    def _steps_for(self, run_id: int) -> list[StepRun]:
        return [s for s in self._steps.values() if s.run_id == run_id]

    def _touch(self, run: WorkflowRun, **changes: Any) -> None:
        for key, value in changes.items():
            setattr(run, key, value)
        run.updated_at = utcnow()

    def _snapshot(self, run: WorkflowRun, with_steps: bool = True) -> WorkflowRun:
        copy = run.model_copy(deep=True)
        if with_steps:
            copy.steps = [s.model_copy(deep=True) for s in self._steps_for(run.id)]
        return copy

    # ------------------------------------------------------------------
    async def create_run(
        self,
        workflow_name: str,
        step_names: Sequence[str],
        config: Optional[dict[str, Any]] = None,
    ) -> WorkflowRun:
        self._run_id += 1
        run = WorkflowRun(
            id=self._run_id,
            workflow_name=workflow_name,
            status=RunStatus.STARTED,
            total_steps=len(step_names),
            config=dict(config or {}),
        )
        self._runs[run.id] = run
        for name in step_names:
            self._step_id += 1
            self._steps[self._step_id] = StepRun(
                id=self._step_id, run_id=run.id, step_name=name
            )
        return self._snapshot(run)

    async def resume_run(self, run_id: int) -> WorkflowRun:
        return ensure_resumable(await self.get_run(run_id), run_id)

    async def get_run(self, run_id: int) -> WorkflowRun | None:
        run = self._runs.get(run_id)
        return self._snapshot(run) if run else None

    async def get_step(self, run_id: int, step_name: str) -> StepRun | None:
        step = self._find_step(run_id, step_name)
        return step.model_copy(deep=True) if step else None

    async def begin_step(self, run_id: int, step_name: str) -> StepRun:
        step = self._find_step(run_id, step_name)
        run = self._runs.get(run_id)
        if step is None or run is None:
            raise StepNotFoundError(run_id, step_name)
        if step.status == StepStatus.COMPLETED:
            return step.model_copy(deep=True)
        self._touch(run, status=RunStatus.RUNNING, current_step=step_name)
        step.status = StepStatus.RUNNING
        step.started_at = utcnow()
        step.completed_at = None
        step.error_message = None
        step.progress = 0
        step.message = None
        return step.model_copy(deep=True)

    async def complete_step(
        self, run_id: int, step_name: str, duration_ms: int
    ) -> None:
        step = self._find_step(run_id, step_name)
        if step is None:
            return
        step.status = StepStatus.COMPLETED
        step.progress = 100
        step.completed_at = utcnow()
        step.duration_ms = duration_ms
        run = self._runs.get(run_id)
        if run:
            completed = sum(
                1 for s in self._steps_for(run_id) if s.status == StepStatus.COMPLETED
            )
            self._touch(run, completed_steps=completed)

    async def fail_step(
        self, run_id: int, step_name: str, error_message: str, duration_ms: int
    ) -> None:
        step = self._find_step(run_id, step_name)
        if step is not None:
            step.status = StepStatus.FAILED
            step.error_message = error_message
            step.completed_at = utcnow()
            step.duration_ms = duration_ms
        run = self._runs.get(run_id)
        if run:
            self._touch(run, status=RunStatus.FAILED)

    async def complete_run(self, run_id: int) -> None:
        await self.update_run_status(run_id, RunStatus.COMPLETED)

    async def update_run_status(self, run_id: int, status: RunStatus) -> None:
        run = self._runs.get(run_id)
        if run:
            self._touch(run, status=RunStatus(status))

    async def update_step_progress(
        self, step_id: int, percent: float, message: str | None = None
    ) -> None:
        step = self._steps.get(step_id)
        if step:
            step.progress = clamp_progress(percent)
            step.message = message

    async def save_checkpoint(self, step_id: int, data: dict[str, Any]) -> None:
        step = self._steps.get(step_id)
        if step:
            step.checkpoint = copy.deepcopy(data)

    async def load_checkpoint(self, step_id: int) -> dict[str, Any]:
        step = self._steps.get(step_id)
        return copy.deepcopy(step.checkpoint) if step else {}

    async def list_runs(
        self, limit: int = 10, workflow_name: str | None = None
    ) -> list[WorkflowRun]:
        runs = [
            r
            for r in self._runs.values()
            if workflow_name is None or r.workflow_name == workflow_name
        ]
        runs.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return [self._snapshot(r, with_steps=False) for r in runs[:limit]]

    async def list_resumable_runs(self) -> list[WorkflowRun]:
        runs = [r for r in self._runs.values() if r.status == RunStatus.RUNNING]
        runs.sort(key=lambda r: (r.updated_at, r.id), reverse=True)
        return [self._snapshot(r, with_steps=False) for r in runs]
