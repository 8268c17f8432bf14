"""Process-wide set of in-flight task ids for bounded shutdown drain."""

from __future__ import annotations

import asyncio
import threading
import time
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager


class ActiveTaskSet:
    """Thread-safe multiset of task ids currently being executed.

    Ids are reference counted so that nested tracking (a retry cycle around
    individual attempts) keeps an id present until the outermost scope exits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter()

    def add(self, task_id: str) -> None:
        with self._lock:
            self._counts[task_id] += 1

    def discard(self, task_id: str) -> None:
        with self._lock:
            remaining = self._counts[task_id] - 1
            if remaining > 0:
                self._counts[task_id] = remaining
            else:
                del self._counts[task_id]

    def size(self) -> int:
        with self._lock:
            return len(self._counts)

    def snapshot(self) -> frozenset[str]:
        """Copy of the ids in flight right now."""

        with self._lock:
            return frozenset(self._counts)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._counts

    @contextmanager
    def track(self, task_id: str) -> Iterator[None]:
        """Keep task_id in the set for the duration of the block, on every exit path."""

        self.add(task_id)
        try:
            yield
        finally:
            self.discard(task_id)

    async def wait_until_empty(
        self,
        timeout_seconds: float,
        *,
        poll_interval: float = 0.1,
    ) -> frozenset[str]:
        """Wait up to timeout_seconds for the set to drain; return ids still running."""

        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while True:
            remaining = self.snapshot()
            if not remaining:
                return remaining
            now = time.monotonic()
            if now >= deadline:
                return remaining
            await asyncio.sleep(min(poll_interval, deadline - now))


ACTIVE_TASKS = ActiveTaskSet()


def active_task_ids() -> frozenset[str]:
    """Snapshot of the process-wide in-flight task ids."""

    return ACTIVE_TASKS.snapshot()
