"""PostgreSQL implementation of the run repository."""

from __future__ import annotations

import json
from typing import Any, Optional, Sequence

import asyncpg

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

_RUN_COLUMNS = (
    "id, workflow_name, status, total_steps, completed_steps, current_step, "
    "config, created_at, updated_at"
)
_STEP_COLUMNS = (
    "id, run_id, step_name, status, progress, message, started_at, "
    "completed_at, duration_ms, error_message, checkpoint"
)


def _json(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _record_to_step(r: asyncpg.Record) -> StepRun:
    return StepRun(
        id=r["id"],
        run_id=r["run_id"],
        step_name=r["step_name"],
        status=r["status"],
        progress=r["progress"],
        message=r["message"],
        started_at=r["started_at"],
        completed_at=r["completed_at"],
        duration_ms=r["duration_ms"],
        error_message=r["error_message"],
        checkpoint=_json(r["checkpoint"]),
    )


def _record_to_run(
    r: asyncpg.Record, steps: list[StepRun] | None = None
) -> WorkflowRun:
    return WorkflowRun(
        id=r["id"],
        workflow_name=r["workflow_name"],
        status=r["status"],
        total_steps=r["total_steps"],
        completed_steps=r["completed_steps"],
        current_step=r["current_step"],
        config=_json(r["config"]),
        created_at=r["created_at"],
        updated_at=r["updated_at"],
        steps=steps or [],
    )


class PostgresRunRepository(RunRepository):
    """Persist run state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id SERIAL PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                status TEXT NOT NULL,
                total_steps INTEGER NOT NULL,
                completed_steps INTEGER NOT NULL DEFAULT 0,
                current_step TEXT,
                config JSONB,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_steps (
                id SERIAL PRIMARY KEY,
                run_id INTEGER NOT NULL
                    REFERENCES workflow_runs(id) ON DELETE CASCADE,
                step_name TEXT NOT NULL,
                status TEXT NOT NULL,
                progress INTEGER NOT NULL DEFAULT 0,
                message TEXT,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                duration_ms INTEGER,
                error_message TEXT,
                checkpoint JSONB,
                UNIQUE (run_id, step_name)
            )
            """
        )

    # ------------------------------------------------------------------
    async def create_run(
        self,
        workflow_name: str,
        step_names: Sequence[str],
        config: Optional[dict[str, Any]] = None,
    ) -> WorkflowRun:
        now = utcnow()
        conn = await self._connect()
        try:
            async with conn.transaction():
                run_id = await conn.fetchval(
                    """
                    INSERT INTO workflow_runs
                        (workflow_name, status, total_steps, completed_steps, config, created_at, updated_at)
                    VALUES ($1, $2, $3, 0, $4, $5, $5)
                    RETURNING id
                    """,
                    workflow_name,
                    RunStatus.STARTED.value,
                    len(step_names),
                    json.dumps(config or {}),
                    now,
                )
                await conn.executemany(
                    "INSERT INTO workflow_steps (run_id, step_name, status, progress) VALUES ($1, $2, $3, 0)",
                    [(run_id, name, StepStatus.PENDING.value) for name in step_names],
                )
        finally:
            await conn.close()
        run = await self.get_run(run_id)
        assert run is not None
        return run

    async def resume_run(self, run_id: int) -> WorkflowRun:
        return ensure_resumable(await self.get_run(run_id), run_id)

    async def get_run(self, run_id: int) -> WorkflowRun | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE id = $1", run_id
            )
            if not row:
                return None
            step_rows = await conn.fetch(
                f"SELECT {_STEP_COLUMNS} FROM workflow_steps WHERE run_id = $1 ORDER BY id",
                run_id,
            )
        finally:
            await conn.close()
        return _record_to_run(row, [_record_to_step(r) for r in step_rows])

    async def get_step(self, run_id: int, step_name: str) -> StepRun | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_STEP_COLUMNS} FROM workflow_steps WHERE run_id = $1 AND step_name = $2",
                run_id,
                step_name,
            )
        finally:
            await conn.close()
        return _record_to_step(row) if row else None

    async def begin_step(self, run_id: int, step_name: str) -> StepRun:
        now = utcnow()
        conn = await self._connect()
        try:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"SELECT {_STEP_COLUMNS} FROM workflow_steps "
                    "WHERE run_id = $1 AND step_name = $2 FOR UPDATE",
                    run_id,
                    step_name,
                )
                if row is None:
                    raise StepNotFoundError(run_id, step_name)
                if row["status"] == StepStatus.COMPLETED.value:
                    return _record_to_step(row)
                await conn.execute(
                    "UPDATE workflow_runs SET status = $1, current_step = $2, updated_at = $3 WHERE id = $4",
                    RunStatus.RUNNING.value,
                    step_name,
                    now,
                    run_id,
                )
                row = await conn.fetchrow(
                    f"""
                    UPDATE workflow_steps
                    SET status = $1, started_at = $2, completed_at = NULL, error_message = NULL,
                        progress = 0, message = NULL
                    WHERE id = $3
                    RETURNING {_STEP_COLUMNS}
                    """,
                    StepStatus.RUNNING.value,
                    now,
                    row["id"],
                )
        finally:
            await conn.close()
        return _record_to_step(row)

    async def complete_step(
        self, run_id: int, step_name: str, duration_ms: int
    ) -> None:
        now = utcnow()
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    """
                    UPDATE workflow_steps
                    SET status = $1, progress = 100, completed_at = $2, duration_ms = $3
                    WHERE run_id = $4 AND step_name = $5
                    """,
                    StepStatus.COMPLETED.value,
                    now,
                    duration_ms,
                    run_id,
                    step_name,
                )
                await conn.execute(
                    """
                    UPDATE workflow_runs
                    SET completed_steps = (
                        SELECT COUNT(*) FROM workflow_steps
                        WHERE run_id = $1 AND status = $2
                    ), updated_at = $3
                    WHERE id = $1
                    """,
                    run_id,
                    StepStatus.COMPLETED.value,
                    now,
                )
        finally:
            await conn.close()

    async def fail_step(
        self, run_id: int, step_name: str, error_message: str, duration_ms: int
    ) -> None:
        now = utcnow()
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    """
                    UPDATE workflow_steps
                    SET status = $1, error_message = $2, completed_at = $3, duration_ms = $4
                    WHERE run_id = $5 AND step_name = $6
                    """,
                    StepStatus.FAILED.value,
                    error_message,
                    now,
                    duration_ms,
                    run_id,
                    step_name,
                )
                await conn.execute(
                    "UPDATE workflow_runs SET status = $1, updated_at = $2 WHERE id = $3",
                    RunStatus.FAILED.value,
                    now,
                    run_id,
                )
        finally:
            await conn.close()

    async def complete_run(self, run_id: int) -> None:
        await self.update_run_status(run_id, RunStatus.COMPLETED)

    async def update_run_status(self, run_id: int, status: RunStatus) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE workflow_runs SET status = $1, updated_at = $2 WHERE id = $3",
                RunStatus(status).value,
                utcnow(),
                run_id,
            )
        finally:
            await conn.close()

    async def update_step_progress(
        self, step_id: int, percent: float, message: str | None = None
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE workflow_steps SET progress = $1, message = $2 WHERE id = $3",
                clamp_progress(percent),
                message,
                step_id,
            )
        finally:
            await conn.close()

    async def save_checkpoint(self, step_id: int, data: dict[str, Any]) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE workflow_steps SET checkpoint = $1 WHERE id = $2",
                json.dumps(data),
                step_id,
            )
        finally:
            await conn.close()

    async def load_checkpoint(self, step_id: int) -> dict[str, Any]:
        conn = await self._connect()
        try:
            value = await conn.fetchval(
                "SELECT checkpoint FROM workflow_steps WHERE id = $1", step_id
            )
        finally:
            await conn.close()
        return _json(value)

    async def list_runs(
        self, limit: int = 10, workflow_name: str | None = None
    ) -> list[WorkflowRun]:
        conn = await self._connect()
        try:
            if workflow_name is None:
                rows = await conn.fetch(
                    f"SELECT {_RUN_COLUMNS} FROM workflow_runs "
                    "ORDER BY created_at DESC, id DESC LIMIT $1",
                    limit,
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE workflow_name = $1 "
                    "ORDER BY created_at DESC, id DESC LIMIT $2",
                    workflow_name,
                    limit,
                )
        finally:
            await conn.close()
        return [_record_to_run(r) for r in rows]

    async def list_resumable_runs(self) -> list[WorkflowRun]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE status = $1 "
                "ORDER BY updated_at DESC, id DESC",
                RunStatus.RUNNING.value,
            )
        finally:
            await conn.close()
        return [_record_to_run(r) for r in rows]
