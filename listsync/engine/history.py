"""Execution history: one audit record per list per triggered run."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from ..config import TriggerKind
from ..errors import InvalidBatchId, InvalidStatusTransition
from ..infra.storage import SQLiteManager


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


@dataclass(frozen=True, slots=True)
class BatchId:
    """Groups every per-list execution of one run: ``{trigger}-{millis}-{token}``."""

    value: str

    @classmethod
    def generate(cls, trigger: TriggerKind) -> "BatchId":
        millis = int(time.time() * 1000)
        return cls(f"{trigger.value}-{millis}-{secrets.token_hex(4)}")

    @classmethod
    def parse(cls, value: str) -> "BatchId":
        parts = value.split("-")
        if len(parts) != 3:
            raise InvalidBatchId(value, "expected {trigger}-{timestamp}-{token}")
        trigger, millis, token = parts
        if trigger not in {kind.value for kind in TriggerKind}:
            raise InvalidBatchId(value, f"unknown trigger kind {trigger!r}")
        if not millis.isdigit():
            raise InvalidBatchId(value, f"timestamp {millis!r} is not a number")
        if not token.strip():
            raise InvalidBatchId(value, "token is empty")
        return cls(value)

    @property
    def trigger(self) -> TriggerKind:
        return TriggerKind(self.value.split("-")[0])

    @property
    def created_at(self) -> datetime:
        millis = int(self.value.split("-")[1])
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ProcessingExecution:
    id: int
    list_id: int
    batch_id: str
    trigger: TriggerKind
    status: ExecutionStatus
    started_at: datetime
    completed_at: datetime | None = None
    items_found: int = 0
    items_requested: int = 0
    items_failed: int = 0
    error_message: str | None = None

    @property
    def duration(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "list_id": self.list_id,
            "batch_id": self.batch_id,
            "trigger": self.trigger.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "items_found": self.items_found,
            "items_requested": self.items_requested,
            "items_failed": self.items_failed,
            "error_message": self.error_message,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionTracker:
    """Sole writer of ``execution_history``.

    Records are created ``running`` and move exactly once to ``success`` or
    ``error``. Updates only touch status and completion fields; list id,
    batch id, trigger and start time are never rewritten.
    """

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = manager.lock_for(db_path)
        self._conn = self.manager.connect(db_path)

    def start(self, list_id: int, batch_id: BatchId | str, trigger: TriggerKind) -> ProcessingExecution:
        started_at = _now()
        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO execution_history(list_id, batch_id, trigger_kind, status, started_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (list_id, str(batch_id), trigger.value, ExecutionStatus.RUNNING.value, started_at.isoformat()),
            )
            self._conn.commit()
            execution_id = cur.lastrowid
        return ProcessingExecution(
            id=execution_id,
            list_id=list_id,
            batch_id=str(batch_id),
            trigger=trigger,
            status=ExecutionStatus.RUNNING,
            started_at=started_at,
        )

    def mark_success(
        self,
        execution: ProcessingExecution,
        items_found: int,
        items_requested: int,
        items_failed: int,
    ) -> ProcessingExecution:
        completed_at = _now()
        self._transition(
            execution,
            ExecutionStatus.SUCCESS,
            "completed_at = ?, items_found = ?, items_requested = ?, items_failed = ?, error_message = NULL",
            (completed_at.isoformat(), items_found, items_requested, items_failed),
        )
        return replace(
            execution,
            status=ExecutionStatus.SUCCESS,
            completed_at=completed_at,
            items_found=items_found,
            items_requested=items_requested,
            items_failed=items_failed,
            error_message=None,
        )

    def mark_error(self, execution: ProcessingExecution, message: str) -> ProcessingExecution:
        completed_at = _now()
        self._transition(
            execution,
            ExecutionStatus.ERROR,
            "completed_at = ?, items_found = 0, items_requested = 0, items_failed = 0, error_message = ?",
            (completed_at.isoformat(), message),
        )
        return replace(
            execution,
            status=ExecutionStatus.ERROR,
            completed_at=completed_at,
            items_found=0,
            items_requested=0,
            items_failed=0,
            error_message=message,
        )

    def _transition(
        self,
        execution: ProcessingExecution,
        target: ExecutionStatus,
        assignments: str,
        params: tuple,
    ) -> None:
        with self._lock:
            cur = self._conn.execute(
                f"UPDATE execution_history SET status = ?, {assignments} WHERE id = ? AND status = ?",
                (target.value, *params, execution.id, ExecutionStatus.RUNNING.value),
            )
            self._conn.commit()
            if cur.rowcount == 1:
                return
            row = self._conn.execute(
                "SELECT status FROM execution_history WHERE id = ?", (execution.id,)
            ).fetchone()
        current = row["status"] if row else "missing"
        raise InvalidStatusTransition(execution.id, current, target.value)

    # ------------------------------------------------------------------
    def get(self, execution_id: int) -> ProcessingExecution | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM execution_history WHERE id = ?", (execution_id,)
            ).fetchone()
        return self._to_execution(row) if row else None

    def recent(
        self,
        limit: int = 20,
        list_id: int | None = None,
        batch_id: str | None = None,
    ) -> list[ProcessingExecution]:
        clauses: list[str] = []
        params: list[object] = []
        if list_id is not None:
            clauses.append("list_id = ?")
            params.append(list_id)
        if batch_id is not None:
            clauses.append("batch_id = ?")
            params.append(batch_id)
        query = "SELECT * FROM execution_history"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY started_at DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._to_execution(row) for row in rows]

    def for_batch(self, batch_id: str) -> list[ProcessingExecution]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM execution_history WHERE batch_id = ? ORDER BY id", (batch_id,)
            ).fetchall()
        return [self._to_execution(row) for row in rows]

    @staticmethod
    def _to_execution(row) -> ProcessingExecution:
        completed = row["completed_at"]
        return ProcessingExecution(
            id=row["id"],
            list_id=row["list_id"],
            batch_id=row["batch_id"],
            trigger=TriggerKind(row["trigger_kind"]),
            status=ExecutionStatus(row["status"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=datetime.fromisoformat(completed) if completed else None,
            items_found=row["items_found"],
            items_requested=row["items_requested"],
            items_failed=row["items_failed"],
            error_message=row["error_message"],
        )


__all__ = ["BatchId", "ExecutionStatus", "ExecutionTracker", "ProcessingExecution"]
