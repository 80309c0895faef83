"""Thread pool shared by concurrently running targets."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock


class ThreadPoolManager:
    """Own one lazily created executor used for whole-target jobs."""

    def __init__(self, default_workers: int = 4) -> None:
        if default_workers < 1:
            raise ValueError("default_workers must be >= 1")
        self.default_workers = default_workers
        self._executor: ThreadPoolExecutor | None = None
        self._lock = Lock()

    def get(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.default_workers, thread_name_prefix="harvester"
                )
            return self._executor

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)


__all__ = ["ThreadPoolManager"]
