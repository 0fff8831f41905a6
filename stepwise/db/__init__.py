from .models import WorkflowRunRow, WorkflowStepRow
from .workflow_db import SQLModelRunRepository

__all__ = [
    "WorkflowRunRow",
    "WorkflowStepRow",
    "SQLModelRunRepository",
]
