from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from .db import log_event
from .runtime import utc_now


@dataclass(frozen=True)
class Event:
    level: str
    message: str
    namespace: str | None = None
    node: str | None = None
    ts: str = field(default_factory=utc_now)


class EventSink:
    """Where the reconciler reports what it did. Injected, never global."""

    def log(self, level: str, message: str, namespace: str | None = None, node: str | None = None) -> None:
        raise NotImplementedError

    def info(self, message: str, **kw: str | None) -> None:
        self.log("INFO", message, **kw)

    def warn(self, message: str, **kw: str | None) -> None:
        self.log("WARN", message, **kw)

    def error(self, message: str, **kw: str | None) -> None:
        self.log("ERROR", message, **kw)

    def try_log(self, level: str, message: str, **kw: str | None) -> bool:
        """Like ``log`` but a failing sink is reported as False instead of raised.

        Used on error paths whose caller must not fail because the event log did,
        e.g. a locked sqlite database.
        """
        try:
            self.log(level, message, **kw)
        except Exception:
            return False
        return True


class MemoryEventSink(EventSink):
    def __init__(self) -> None:
        self._lock = Lock()
        self.events: list[Event] = []

    def log(self, level: str, message: str, namespace: str | None = None, node: str | None = None) -> None:
        with self._lock:
            self.events.append(Event(level.upper(), message, namespace, node))

    def messages(self, level: str | None = None) -> list[str]:
        with self._lock:
            return [e.message for e in self.events if level is None or e.level == level]


class DbEventSink(EventSink):
    """Writes events to the sqlite ``events`` table."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def log(self, level: str, message: str, namespace: str | None = None, node: str | None = None) -> None:
        log_event(self.db_path, level, message, namespace=namespace, node=node)
