"""Thread pool running fired jobs independently of the timer engine."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Any, Callable


class ThreadPoolManager:
    """Own the executor that scheduled and background work is submitted to."""

    def __init__(self, default_workers: int = 4) -> None:
        self.default_workers = default_workers
        self._executor: ThreadPoolExecutor | None = None
        self._lock = Lock()

    def get(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.default_workers, thread_name_prefix="listsync"
                )
            return self._executor

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        return self.get().submit(fn, *args)

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None


__all__ = ["ThreadPoolManager"]
