"""Advisory locks keeping two runs of the same target from overlapping."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator

from ..errors import ProcessingInProgress


class RunGuard:
    """Hand out one lock per target key (``list:<id>``, ``batch:<owner>``)."""

    def __init__(self) -> None:
        self._locks: Dict[str, Lock] = {}
        self._lock = Lock()

    def _lock_for(self, key: str) -> Lock:
        with self._lock:
            return self._locks.setdefault(key, Lock())

    @contextmanager
    def hold(self, key: str, blocking: bool = False) -> Iterator[None]:
        lock = self._lock_for(key)
        if not lock.acquire(blocking=blocking):
            raise ProcessingInProgress(key)
        try:
            yield
        finally:
            lock.release()

    def is_held(self, key: str) -> bool:
        return self._lock_for(key).locked()

    @staticmethod
    def list_key(list_id: int) -> str:
        return f"list:{list_id}"

    @staticmethod
    def batch_key(owner_id: int) -> str:
        return f"batch:{owner_id}"


__all__ = ["RunGuard"]
