"""Data models for persisted run state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Lifecycle of a workflow run."""

    STARTED = "started"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Lifecycle of a single step within a run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_progress(percent: float) -> int:
    """Clamp ``percent`` into the ``[0, 100]`` range."""
    return int(min(100, max(0, round(percent))))


class StepRun(BaseModel):
    """Record of one step's execution within a run."""

    id: int
    run_id: int
    step_name: str
    status: StepStatus = StepStatus.PENDING
    progress: int = 0
    message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    checkpoint: dict[str, Any] = Field(default_factory=dict)


class WorkflowRun(BaseModel):
    """Persisted state of one execution attempt of a workflow."""

    id: int
    workflow_name: str
    status: RunStatus = RunStatus.STARTED
    total_steps: int = 0
    completed_steps: int = 0
    current_step: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    steps: list[StepRun] = Field(default_factory=list)

    def get_step(self, step_name: str) -> Optional[StepRun]:
        return next((s for s in self.steps if s.step_name == step_name), None)

    @property
    def failed_step(self) -> Optional[StepRun]:
        return next((s for s in self.steps if s.status == StepStatus.FAILED), None)

    @property
    def error(self) -> Optional[str]:
        failed = self.failed_step
        return failed.error_message if failed else None

    @property
    def overall_progress(self) -> int:
        """Percent complete, counting the running step's own progress.

        Uses the loaded step records when available and falls back to the
        stored counters for summary rows fetched without steps. A completed
        run is 100 even when filtered-out steps were left pending.
        """
        if self.status == RunStatus.COMPLETED:
            return 100
        if not self.steps:
            if not self.total_steps:
                return 0
            return round(self.completed_steps / self.total_steps * 100)

        total = len(self.steps)
        completed = sum(1 for s in self.steps if s.status == StepStatus.COMPLETED)
        running = next((s for s in self.steps if s.status == StepStatus.RUNNING), None)
        if running is not None:
            return round((completed + running.progress / 100) / total * 100)
        return round(completed / total * 100)
