from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from ..persistence.models import utcnow


class WorkflowRunRow(SQLModel, table=True):
    """Represents one execution attempt of a workflow."""

    __tablename__ = "workflow_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    workflow_name: str = Field(index=True)
    status: str = Field(default="started", index=True)
    total_steps: int = 0
    completed_steps: int = 0
    current_step: Optional[str] = None
    config: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class WorkflowStepRow(SQLModel, table=True):
    """Tracks execution details for a single step of a run."""

    __tablename__ = "workflow_steps"
    __table_args__ = (UniqueConstraint("run_id", "step_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: int = Field(foreign_key="workflow_runs.id", index=True)
    step_name: str
    status: str = Field(default="pending")
    progress: int = 0
    message: Optional[str] = None
    started_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    completed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    checkpoint: Optional[dict] = Field(default=None, sa_column=Column(JSON))
