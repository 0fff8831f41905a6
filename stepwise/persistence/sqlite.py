"""SQLite implementation of the run repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

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


def _ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_step(r: sqlite3.Row) -> StepRun:
    return StepRun(
        id=r["id"],
        run_id=r["run_id"],
        step_name=r["step_name"],
        status=r["status"],
        progress=r["progress"],
        message=r["message"],
        started_at=_ts(r["started_at"]),
        completed_at=_ts(r["completed_at"]),
        duration_ms=r["duration_ms"],
        error_message=r["error_message"],
        checkpoint=json.loads(r["checkpoint"]) if r["checkpoint"] else {},
    )


def _row_to_run(r: sqlite3.Row, steps: list[StepRun] | None = None) -> WorkflowRun:
    return WorkflowRun(
        id=r["id"],
        workflow_name=r["workflow_name"],
        status=r["status"],
        total_steps=r["total_steps"],
        completed_steps=r["completed_steps"],
        current_step=r["current_step"],
        config=json.loads(r["config"]) if r["config"] else {},
        created_at=_ts(r["created_at"]),
        updated_at=_ts(r["updated_at"]),
        steps=steps or [],
    )


class SQLiteRunRepository(RunRepository):
    """Persist run state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_name TEXT NOT NULL,
                status TEXT NOT NULL,
                total_steps INTEGER NOT NULL,
                completed_steps INTEGER NOT NULL DEFAULT 0,
                current_step TEXT,
                config TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_steps (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id INTEGER NOT NULL
                    REFERENCES workflow_runs(id) ON DELETE CASCADE,
                step_name TEXT NOT NULL,
                status TEXT NOT NULL,
                progress INTEGER NOT NULL DEFAULT 0,
                message TEXT,
                started_at TEXT,
                completed_at TEXT,
                duration_ms INTEGER,
                error_message TEXT,
                checkpoint TEXT,
                UNIQUE (run_id, step_name)
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _transaction(self, *statements: tuple[str, tuple[Any, ...]]) -> int | None:
        """Run ``statements`` in one transaction, returning the last rowid."""
        with self._lock:
            cur = self._conn.cursor()
            try:
                for query, params in statements:
                    cur.execute(query, params)
            except Exception:
                self._conn.rollback()
                raise
            self._conn.commit()
            return cur.lastrowid

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _create_run(
        self, workflow_name: str, step_names: Sequence[str], config: dict[str, Any]
    ) -> int:
        now = utcnow().isoformat()
        with self._lock:
            cur = self._conn.cursor()
            try:
                cur.execute(
                    f"INSERT INTO workflow_runs ({_RUN_COLUMNS}) "
                    "VALUES (NULL, ?, ?, ?, 0, NULL, ?, ?, ?)",
                    (
                        workflow_name,
                        RunStatus.STARTED.value,
                        len(step_names),
                        json.dumps(config),
                        now,
                        now,
                    ),
                )
                run_id = cur.lastrowid
                cur.executemany(
                    "INSERT INTO workflow_steps (run_id, step_name, status, progress) "
                    "VALUES (?, ?, ?, 0)",
                    [(run_id, name, StepStatus.PENDING.value) for name in step_names],
                )
            except Exception:
                self._conn.rollback()
                raise
            self._conn.commit()
            return run_id

    # ------------------------------------------------------------------
    # Repository API
    async def create_run(
        self,
        workflow_name: str,
        step_names: Sequence[str],
        config: Optional[dict[str, Any]] = None,
    ) -> WorkflowRun:
        run_id = await asyncio.to_thread(
            self._create_run, workflow_name, list(step_names), config or {}
        )
        run = await self.get_run(run_id)
        assert run is not None
        return run

    async def resume_run(self, run_id: int) -> WorkflowRun:
        return ensure_resumable(await self.get_run(run_id), run_id)

    async def get_run(self, run_id: int) -> WorkflowRun | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE id = ?",
            run_id,
        )
        if not row:
            return None
        step_rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_STEP_COLUMNS} FROM workflow_steps WHERE run_id = ? ORDER BY id",
            run_id,
        )
        return _row_to_run(row, [_row_to_step(r) for r in step_rows])

    async def get_step(self, run_id: int, step_name: str) -> StepRun | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_STEP_COLUMNS} FROM workflow_steps WHERE run_id = ? AND step_name = ?",
            run_id,
            step_name,
        )
        return _row_to_step(row) if row else None

    async def begin_step(self, run_id: int, step_name: str) -> StepRun:
        step = await self.get_step(run_id, step_name)
        if step is None:
            raise StepNotFoundError(run_id, step_name)
        if step.status == StepStatus.COMPLETED:
            return step
        now = utcnow().isoformat()
        await asyncio.to_thread(
            self._transaction,
            (
                "UPDATE workflow_runs SET status = ?, current_step = ?, updated_at = ? WHERE id = ?",
                (RunStatus.RUNNING.value, step_name, now, run_id),
            ),
            (
                """
                UPDATE workflow_steps
                SET status = ?, started_at = ?, completed_at = NULL, error_message = NULL,
                    progress = 0, message = NULL
                WHERE id = ?
                """,
                (StepStatus.RUNNING.value, now, step.id),
            ),
        )
        refreshed = await self.get_step(run_id, step_name)
        assert refreshed is not None
        return refreshed

    async def complete_step(
        self, run_id: int, step_name: str, duration_ms: int
    ) -> None:
        now = utcnow().isoformat()
        await asyncio.to_thread(
            self._transaction,
            (
                """
                UPDATE workflow_steps
                SET status = ?, progress = 100, completed_at = ?, duration_ms = ?
                WHERE run_id = ? AND step_name = ?
                """,
                (StepStatus.COMPLETED.value, now, duration_ms, run_id, step_name),
            ),
            (
                """
                UPDATE workflow_runs
                SET completed_steps = (
                    SELECT COUNT(*) FROM workflow_steps
                    WHERE run_id = ? AND status = ?
                ), updated_at = ?
                WHERE id = ?
                """,
                (run_id, StepStatus.COMPLETED.value, now, run_id),
            ),
        )

    async def fail_step(
        self, run_id: int, step_name: str, error_message: str, duration_ms: int
    ) -> None:
        now = utcnow().isoformat()
        await asyncio.to_thread(
            self._transaction,
            (
                """
                UPDATE workflow_steps
                SET status = ?, error_message = ?, completed_at = ?, duration_ms = ?
                WHERE run_id = ? AND step_name = ?
                """,
                (StepStatus.FAILED.value, error_message, now, duration_ms, run_id, step_name),
            ),
            (
                "UPDATE workflow_runs SET status = ?, updated_at = ? WHERE id = ?",
                (RunStatus.FAILED.value, now, run_id),
            ),
        )

    async def complete_run(self, run_id: int) -> None:
        await self.update_run_status(run_id, RunStatus.COMPLETED)

    async def update_run_status(self, run_id: int, status: RunStatus) -> None:
        await asyncio.to_thread(
            self._transaction,
            (
                "UPDATE workflow_runs SET status = ?, updated_at = ? WHERE id = ?",
                (RunStatus(status).value, utcnow().isoformat(), run_id),
            ),
        )

    async def update_step_progress(
        self, step_id: int, percent: float, message: str | None = None
    ) -> None:
        await asyncio.to_thread(
            self._transaction,
            (
                "UPDATE workflow_steps SET progress = ?, message = ? WHERE id = ?",
                (clamp_progress(percent), message, step_id),
            ),
        )

    async def save_checkpoint(self, step_id: int, data: dict[str, Any]) -> None:
        await asyncio.to_thread(
            self._transaction,
            (
                "UPDATE workflow_steps SET checkpoint = ? WHERE id = ?",
                (json.dumps(data), step_id),
            ),
        )

    async def load_checkpoint(self, step_id: int) -> dict[str, Any]:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT checkpoint FROM workflow_steps WHERE id = ?",
            step_id,
        )
        if not row or not row["checkpoint"]:
            return {}
        return json.loads(row["checkpoint"])

    async def list_runs(
        self, limit: int = 10, workflow_name: str | None = None
    ) -> list[WorkflowRun]:
        if workflow_name is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_RUN_COLUMNS} FROM workflow_runs "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                limit,
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE workflow_name = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                workflow_name,
                limit,
            )
        return [_row_to_run(r) for r in rows]

    async def list_resumable_runs(self) -> list[WorkflowRun]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE status = ? "
            "ORDER BY updated_at DESC, id DESC",
            RunStatus.RUNNING.value,
        )
        return [_row_to_run(r) for r in rows]
