"""SQLite connection management for the dedup cache and execution history."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock, RLock
from typing import Dict


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees."""

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._path_locks: Dict[Path, RLock] = {}
        self._lock = Lock()

    def lock_for(self, path: Path) -> RLock:
        """Return the lock serialising statements on the shared connection for ``path``."""

        with self._lock:
            return self._path_locks.setdefault(path, RLock())

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        # external_id is UNIQUE: the storage layer, not the caller, enforces
        # that an item is requested at most once across all lists.
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS list_items_cache (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                list_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                year INTEGER,
                external_id INTEGER NOT NULL UNIQUE,
                media_kind TEXT NOT NULL,
                fetched_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS execution_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                list_id INTEGER NOT NULL,
                batch_id TEXT NOT NULL,
                trigger_kind TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                items_found INTEGER NOT NULL DEFAULT 0,
                items_requested INTEGER NOT NULL DEFAULT 0,
                items_failed INTEGER NOT NULL DEFAULT 0,
                error_message TEXT
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_execution_history_list ON execution_history(list_id)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_execution_history_batch ON execution_history(batch_id)"
        )
        conn.commit()

    def reset(self, path: Path) -> None:
        with self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SQLiteManager"]
