"""Exception hierarchy for stepwise workflows."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional


class StepwiseError(Exception):
    """Base exception for all stepwise errors."""


class DefinitionError(StepwiseError):
    """A workflow definition is invalid and can never be run."""

    def __init__(self, workflow_name: str, step: str, message: str) -> None:
        self.workflow_name = workflow_name
        self.step = step
        super().__init__(message)


class DuplicateStepError(DefinitionError):
    def __init__(self, workflow_name: str, step: str) -> None:
        super().__init__(
            workflow_name,
            step,
            f"Step '{step}' is already defined in workflow '{workflow_name}'",
        )


class SelfDependencyError(DefinitionError):
    def __init__(self, workflow_name: str, step: str) -> None:
        super().__init__(
            workflow_name, step, f"Step '{step}' cannot depend on itself"
        )


class UnknownDependencyError(DefinitionError):
    def __init__(self, workflow_name: str, step: str, dependency: str) -> None:
        self.dependency = dependency
        super().__init__(
            workflow_name,
            step,
            f"Step '{step}' depends on '{dependency}', but '{dependency}' "
            f"is not defined in workflow '{workflow_name}'",
        )


class CyclicDependencyError(DefinitionError):
    """Raised with ``step`` set to a step that lies on the detected cycle."""

    def __init__(self, workflow_name: str, step: str) -> None:
        super().__init__(
            workflow_name,
            step,
            f"Circular dependency detected in workflow '{workflow_name}' "
            f"involving step '{step}'",
        )


class UnsatisfiedSubsetError(StepwiseError):
    """The selected steps cannot be ordered without skipping a dependency."""

    def __init__(
        self,
        remaining: Iterable[str],
        missing: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> None:
        self.remaining = list(remaining)
        self.missing = {step: list(deps) for step, deps in (missing or {}).items()}
        if self.missing:
            details = "; ".join(
                f"'{step}' needs [{', '.join(deps)}]"
                for step, deps in self.missing.items()
            )
            message = (
                "Steps have dependencies that are not included in the "
                f"execution plan: {details}"
            )
        else:
            message = (
                "Circular dependency or missing dependency detected among "
                f"steps: {', '.join(self.remaining)}"
            )
        super().__init__(message)


class StepFailure(StepwiseError):
    """A step's work raised; the run has been marked failed."""

    def __init__(self, run_id: int, step_name: str, error_message: str) -> None:
        self.run_id = run_id
        self.step_name = step_name
        self.error_message = error_message
        super().__init__(
            f"Step '{step_name}' failed in run {run_id}: {error_message}"
        )


class StepTimeoutError(StepFailure):
    def __init__(self, run_id: int, step_name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            run_id, step_name, f"Step '{step_name}' timed out after {timeout}s"
        )


class RunError(StepwiseError):
    """A run record cannot be used for the requested operation."""

    def __init__(self, run_id: int, message: str) -> None:
        self.run_id = run_id
        super().__init__(message)


class RunNotFoundError(RunError):
    def __init__(self, run_id: int) -> None:
        super().__init__(run_id, f"Workflow run {run_id} not found")


class RunAlreadyCompletedError(RunError):
    def __init__(self, run_id: int) -> None:
        super().__init__(run_id, f"Workflow run {run_id} is already completed")


class StepNotFoundError(RunError):
    def __init__(self, run_id: int, step_name: str) -> None:
        self.step_name = step_name
        super().__init__(
            run_id, f"Step '{step_name}' not found in workflow run {run_id}"
        )


class RunWorkflowMismatchError(RunError):
    def __init__(self, run_id: int, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            run_id,
            f"Workflow run {run_id} belongs to workflow '{actual}', "
            f"not '{expected}'",
        )


class WorkflowNotFoundError(StepwiseError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Workflow '{name}' not found")
