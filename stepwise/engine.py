"""Execution engine driving one workflow run at a time."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Mapping, Optional

from .context import StepContext
from .definition import StepDefinition, Workflow
from .errors import (
    RunAlreadyCompletedError,
    RunNotFoundError,
    RunWorkflowMismatchError,
    StepFailure,
    StepNotFoundError,
    StepTimeoutError,
)
from .graph import order_steps
from .persistence import (
    RunRepository,
    RunStatus,
    StepRun,
    StepStatus,
    WorkflowRun,
    get_repository,
)

logger = logging.getLogger(__name__)


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _call_in_thread(work: Any, context: StepContext) -> Any:
    result = await asyncio.to_thread(work, context)
    if inspect.isawaitable(result):
        result = await result
    return result


def _discard_late_result(task: asyncio.Future) -> None:
    """Consume the outcome of work that finished after its step timed out."""
    if task.cancelled():
        logger.debug("Timed-out step work was cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Discarding late failure from timed-out step work: {exc!r}")
    else:
        logger.debug("Discarding late result from timed-out step work")


class WorkflowEngine:
    """Executes workflow steps in dependency order against a run repository.

    Steps run strictly one at a time. A step that fails or times out marks
    its record and the run ``failed`` and stops the run; resuming the run
    later re-enters the same loop and skips every step already ``completed``.

    Timeouts race the step's awaitable against a timer. When the timer wins
    the step context is detached and cancellation is requested, but work
    that ignores cancellation (or blocks in a thread) keeps running and
    holding whatever it holds until it finishes on its own; its eventual
    result is discarded. Plain functions with a timeout run in a worker
    thread so the same race applies; without a timeout they run inline.
    """

    def __init__(self, repository: RunRepository | None = None) -> None:
        self._repository = repository or get_repository()

    @property
    def repository(self) -> RunRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Run lifecycle
    async def start(
        self, workflow: Workflow, config: Optional[dict[str, Any]] = None
    ) -> WorkflowRun:
        """Create a run record with a pending entry for every workflow step."""
        run = await self._repository.create_run(
            workflow.name, workflow.step_names, config
        )
        logger.info(f"Started workflow {workflow.name} with run id {run.id}")
        return run

    async def resume(self, workflow: Workflow, run_id: int) -> WorkflowRun:
        run = await self._repository.resume_run(run_id)
        if run.workflow_name != workflow.name:
            raise RunWorkflowMismatchError(run_id, workflow.name, run.workflow_name)
        logger.info(f"Resuming workflow {workflow.name} with run id {run_id}")
        return run

    async def run_workflow(
        self,
        workflow: Workflow,
        step_filter: Optional[Mapping[str, bool]] = None,
        resume_run_id: Optional[int] = None,
        config: Optional[dict[str, Any]] = None,
    ) -> int:
        """Run ``workflow`` to completion and return the run id.

        Args:
            workflow: Validated workflow definition.
            step_filter: Map of step name to inclusion flag. Steps missing
                from the map are included.
            resume_run_id: Existing run to continue instead of starting anew.
            config: Extra data stored on a new run record.

        Raises:
            UnsatisfiedSubsetError: The filter keeps a step but drops one of
                its dependencies. Raised before any run record is touched.
            RunNotFoundError, RunAlreadyCompletedError: Invalid resume.
            StepFailure: A step raised or timed out; the run is ``failed``.
        """
        step_filter = dict(step_filter or {})
        include = [name for name in workflow.step_names if step_filter.get(name, True)]
        order = order_steps(workflow.steps, include)

        if resume_run_id is not None:
            run = await self.resume(workflow, resume_run_id)
        else:
            run = await self.start(workflow, {"steps": step_filter, **(config or {})})

        for name in order:
            step = workflow.get_step(name)
            assert step is not None
            try:
                await self.execute_step(run.id, step)
            except StepFailure:
                logger.error(f"Workflow '{workflow.name}' failed at step '{name}'")
                raise

        await self._repository.complete_run(run.id)
        logger.info(f"Workflow '{workflow.name}' completed successfully (run {run.id})")
        return run.id

    async def execute_step(self, run_id: int, step: StepDefinition) -> StepRun:
        """Execute one step of a run unless it already completed."""
        record = await self._repository.get_step(run_id, step.name)
        if record is None:
            raise StepNotFoundError(run_id, step.name)
        if record.status == StepStatus.COMPLETED:
            logger.info(f"Step {step.name} already completed, skipping")
            return record

        record = await self._repository.begin_step(run_id, step.name)
        context = StepContext(self._repository, run_id, record.id, step.name)
        started = time.monotonic()

        try:
            finished = await self._invoke(step, context)
        except Exception as exc:
            message = _error_text(exc)
            await self._repository.fail_step(
                run_id, step.name, message, _elapsed_ms(started)
            )
            logger.error(f"Step {step.name} failed: {message}")
            raise StepFailure(run_id, step.name, message) from exc

        if not finished:
            assert step.timeout is not None
            error = StepTimeoutError(run_id, step.name, step.timeout)
            await self._repository.fail_step(
                run_id, step.name, error.error_message, _elapsed_ms(started)
            )
            logger.error(f"Step {step.name} failed: {error.error_message}")
            raise error

        duration = _elapsed_ms(started)
        await self._repository.complete_step(run_id, step.name, duration)
        logger.info(f"Step {step.name} completed successfully in {duration}ms")
        completed = await self._repository.get_step(run_id, step.name)
        return completed or record

    async def _invoke(self, step: StepDefinition, context: StepContext) -> bool:
        """Run the step's work; return ``False`` if its timeout elapsed first."""
        if step.timeout is not None and not inspect.iscoroutinefunction(step.work):
            outcome = _call_in_thread(step.work, context)
        else:
            outcome = step.work(context)
        if not inspect.isawaitable(outcome):
            return True

        task = asyncio.ensure_future(outcome)
        if step.timeout is None:
            await task
            return True

        try:
            done, _ = await asyncio.wait({task}, timeout=step.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            task.result()
            return True

        context.detach()
        task.add_done_callback(_discard_late_result)
        task.cancel()
        return False

    # ------------------------------------------------------------------
    # Operator controls and queries
    async def _require_run(self, run_id: int) -> WorkflowRun:
        run = await self._repository.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def pause(self, run_id: int) -> None:
        """Mark a run paused so it is not offered for automatic resumption."""
        run = await self._require_run(run_id)
        if run.status == RunStatus.COMPLETED:
            raise RunAlreadyCompletedError(run_id)
        await self._repository.update_run_status(run_id, RunStatus.PAUSED)
        logger.info(f"Paused workflow run {run_id}")

    async def stop(self, run_id: int) -> None:
        """Mark a run failed. In-flight work is not interrupted."""
        run = await self._require_run(run_id)
        if run.status == RunStatus.COMPLETED:
            raise RunAlreadyCompletedError(run_id)
        await self._repository.update_run_status(run_id, RunStatus.FAILED)
        logger.info(f"Stopped workflow run {run_id}")

    async def get_run(self, run_id: int) -> WorkflowRun:
        return await self._require_run(run_id)

    async def list_runs(
        self, limit: int = 10, workflow_name: str | None = None
    ) -> list[WorkflowRun]:
        return await self._repository.list_runs(limit=limit, workflow_name=workflow_name)

    async def list_resumable_runs(self) -> list[WorkflowRun]:
        return await self._repository.list_resumable_runs()
