"""Handle given to step work for reporting progress and checkpoints."""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

from .persistence import RunRepository

logger = logging.getLogger(__name__)


class StepLoggerAdapter(logging.LoggerAdapter):
    """Prefix log records with the run and step they belong to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        kwargs.setdefault("extra", {}).update(extra)
        return f"[run={extra.get('run_id')} step={extra.get('step_name')}] {msg}", kwargs


class StepContext:
    """Per-step view of the run state store.

    Writes go straight to the repository and only ever touch this step's own
    record. Once the engine detaches the context (after a timeout), further
    writes are dropped so abandoned work cannot overwrite the failed record.
    """

    def __init__(
        self,
        repository: RunRepository,
        run_id: int,
        step_id: int,
        step_name: str,
    ) -> None:
        self._repository = repository
        self.run_id = run_id
        self.step_id = step_id
        self.step_name = step_name
        self.logger = StepLoggerAdapter(
            logging.getLogger("stepwise.step"),
            {"run_id": run_id, "step_name": step_name},
        )
        self._attached = True

    @property
    def attached(self) -> bool:
        return self._attached

    def detach(self) -> None:
        """Stop forwarding writes to the repository."""
        self._attached = False

    def _discard(self, operation: str) -> bool:
        if self._attached:
            return False
        logger.warning(
            f"Discarding {operation} from detached step {self.step_name} "
            f"in run {self.run_id}"
        )
        return True

    async def update_progress(self, percent: float, message: str | None = None) -> None:
        """Report progress in percent; values are clamped to ``[0, 100]``."""
        if self._discard("progress update"):
            return
        await self._repository.update_step_progress(self.step_id, percent, message)

    async def save_checkpoint(self, data: dict[str, Any]) -> None:
        if self._discard("checkpoint"):
            return
        await self._repository.save_checkpoint(self.step_id, data)

    async def load_checkpoint(self) -> dict[str, Any]:
        return await self._repository.load_checkpoint(self.step_id)
