"""Global deduplication cache: every external id ever successfully requested."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from ..infra.storage import SQLiteManager
from .items import MediaItem, MediaKind


@dataclass(slots=True)
class CachedItem:
    external_id: int
    list_id: int
    title: str
    year: int | None
    media_kind: MediaKind
    fetched_at: datetime


class GlobalDeduplicationCache:
    """Provide the system-wide "already requested" check.

    Reads always span the whole table regardless of which list is being
    processed; writes rely on the UNIQUE constraint so concurrent writers
    racing on the same id never surface an error.
    """

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = manager.lock_for(db_path)
        self._conn = self.manager.connect(db_path)

    def known_ids(self) -> set[int]:
        with self._lock:
            rows = self._conn.execute("SELECT external_id FROM list_items_cache").fetchall()
        return {row["external_id"] for row in rows}

    def filter_unseen(self, items: Iterable[MediaItem]) -> list[MediaItem]:
        known = self.known_ids()
        return [item for item in items if item.external_id not in known]

    def record_accepted(self, list_id: int, items: Iterable[MediaItem]) -> int:
        """Insert one row per item, ignoring ids already present. Returns rows inserted."""

        fetched_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
        rows = [
            (list_id, item.title, item.year, item.external_id, item.media_kind.value, fetched_at)
            for item in items
        ]
        if not rows:
            return 0
        with self._lock:
            before = self._conn.total_changes
            self._conn.executemany(
                "INSERT OR IGNORE INTO list_items_cache(list_id, title, year, external_id, media_kind, fetched_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
            self._conn.commit()
            return self._conn.total_changes - before

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT count(*) FROM list_items_cache").fetchone()[0]

    def entries(self, limit: int = 50, list_id: int | None = None) -> list[CachedItem]:
        query = "SELECT * FROM list_items_cache"
        params: tuple = ()
        if list_id is not None:
            query += " WHERE list_id = ?"
            params = (list_id,)
        query += " ORDER BY fetched_at DESC, id DESC LIMIT ?"
        with self._lock:
            rows = self._conn.execute(query, params + (limit,)).fetchall()
        return [
            CachedItem(
                external_id=row["external_id"],
                list_id=row["list_id"],
                title=row["title"],
                year=row["year"],
                media_kind=MediaKind(row["media_kind"]),
                fetched_at=datetime.fromisoformat(row["fetched_at"]),
            )
            for row in rows
        ]

    def clear(self) -> int:
        with self._lock:
            cur = self._conn.execute("DELETE FROM list_items_cache")
            self._conn.commit()
            return cur.rowcount


__all__ = ["CachedItem", "GlobalDeduplicationCache"]
