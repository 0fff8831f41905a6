"""stepwise: Resumable dependency-ordered workflow runs."""

from .context import StepContext
from .definition import (
    StepDefinition,
    Workflow,
    WorkflowBuilder,
    WorkflowMetadata,
    define_workflow,
)
from .engine import WorkflowEngine
from .graph import order_steps, validate_steps
from .persistence import RunStatus, StepStatus, get_repository
from .registry import WorkflowRegistry, get_registry

__version__ = "0.1.0"
__all__ = [
    "StepContext",
    "StepDefinition",
    "Workflow",
    "WorkflowBuilder",
    "WorkflowMetadata",
    "define_workflow",
    "WorkflowEngine",
    "order_steps",
    "validate_steps",
    "RunStatus",
    "StepStatus",
    "get_repository",
    "WorkflowRegistry",
    "get_registry",
]
