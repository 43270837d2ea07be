from __future__ import annotations

import time
from datetime import datetime, timezone
from threading import Condition
from typing import Callable

from .models import NodeKey


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class WorkQueue:
    """Deduplicating, delayed queue of node keys shared by the dispatcher workers.

    A key is handed to at most one worker at a time. A key added while it is in
    flight is parked and becomes due again once the worker calls ``done``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self.cond = Condition()
        self._due: dict[NodeKey, float] = {}  # key -> monotonic due time
        self._parked: dict[NodeKey, float] = {}  # re-added while processing
        self._processing: set[NodeKey] = set()
        self._failures: dict[NodeKey, int] = {}  # key -> consecutive failed passes
        self._closed = False

    def add(self, key: NodeKey, delay_s: float = 0.0) -> None:
        with self.cond:
            if self._closed:
                return
            due = self.clock() + max(0.0, delay_s)
            if key in self._processing:
                self._parked[key] = min(self._parked.get(key, due), due)
                return
            self._due[key] = min(self._due.get(key, due), due)
            self.cond.notify()

    def get(self, timeout: float | None = None) -> NodeKey | None:
        """Block until a key is due. Returns None on close or timeout."""
        with self.cond:
            deadline = None if timeout is None else self.clock() + timeout
            while not self._closed:
                now = self.clock()
                ready = [k for k, due in self._due.items() if due <= now]
                if ready:
                    key = min(ready, key=lambda k: (self._due[k], k))
                    del self._due[key]
                    self._processing.add(key)
                    return key
                wait = min(self._due.values()) - now if self._due else None
                if deadline is not None:
                    left = deadline - now
                    if left <= 0:
                        return None
                    wait = left if wait is None else min(wait, left)
                self.cond.wait(wait)
            return None

    def done(self, key: NodeKey) -> None:
        with self.cond:
            self._processing.discard(key)
            due = self._parked.pop(key, None)
            if due is not None and not self._closed:
                self._due[key] = min(self._due.get(key, due), due)
                self.cond.notify()

    def record_failure(self, key: NodeKey) -> int:
        with self.cond:
            self._failures[key] = self._failures.get(key, 0) + 1
            return self._failures[key]

    def forget(self, key: NodeKey) -> None:
        with self.cond:
            self._failures.pop(key, None)

    def failures(self, key: NodeKey) -> int:
        with self.cond:
            return self._failures.get(key, 0)

    def close(self) -> None:
        with self.cond:
            self._closed = True
            self.cond.notify_all()

    def reopen(self) -> None:
        """Accept keys again after ``close``. Keys still due are kept."""
        with self.cond:
            self._closed = False
            self.cond.notify_all()

    def pending(self) -> list[NodeKey]:
        with self.cond:
            return sorted(self._due)
