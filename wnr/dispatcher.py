from __future__ import annotations

from threading import Event, Thread
from typing import Callable, Iterable

from .engine import Engine, Outcome, PassResult
from .events import EventSink
from .models import NodeKey
from .runtime import WorkQueue


class Dispatcher:
    """Feeds node keys to the engine from a pool of worker threads.

    Outcomes drive the queue: NOOP forgets the key, REQUEUE retries it shortly,
    REQUEUE_ERROR retries with exponential backoff.
    """

    def __init__(
        self,
        engine: Engine,
        sink: EventSink,
        workers: int = 2,
        requeue_delay_s: float = 1.0,
        backoff_base_s: float = 2.0,
        backoff_max_s: float = 60.0,
        resync_interval_s: float = 0,
        list_keys: Callable[[], Iterable[NodeKey]] | None = None,
        queue: WorkQueue | None = None,
    ):
        self.engine = engine
        self.sink = sink
        self.workers = max(1, int(workers))
        self.requeue_delay_s = max(0.0, requeue_delay_s)
        self.backoff_base_s = max(0.0, backoff_base_s)
        self.backoff_max_s = max(self.backoff_base_s, backoff_max_s)
        self.resync_interval_s = resync_interval_s
        self.list_keys = list_keys
        self.queue = queue or WorkQueue()
        self.cancel = Event()
        self._threads: list[Thread] = []

    def enqueue(self, key: NodeKey, delay_s: float = 0.0) -> None:
        self.queue.add(key, delay_s)

    def resync(self) -> int:
        if self.list_keys is None:
            return 0
        n = 0
        for key in self.list_keys():
            self.enqueue(key)
            n += 1
        return n

    def start(self) -> None:
        if any(t.is_alive() for t in self._threads):
            return
        self.cancel.clear()
        self.queue.reopen()
        self._threads = [Thread(target=self._worker, name=f"wnr-worker-{i}", daemon=True) for i in range(self.workers)]
        if self.list_keys is not None and self.resync_interval_s > 0:
            self._threads.append(Thread(target=self._resync_loop, name="wnr-resync", daemon=True))
        for t in self._threads:
            t.start()
        self.sink.try_log("INFO", f"Dispatcher started with {self.workers} workers")

    def stop(self, timeout_s: float = 5.0) -> None:
        self.cancel.set()
        self.queue.close()
        for t in self._threads:
            t.join(timeout_s)
        self._threads = []
        self.sink.try_log("INFO", "Dispatcher stopped")

    def backoff(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self.backoff_base_s * (2 ** (failures - 1)), self.backoff_max_s)

    def process(self, key: NodeKey) -> PassResult:
        """Run one pass for a key taken from the queue and schedule what comes next."""
        try:
            res = self.engine.reconcile(key, self.cancel)
        finally:
            self.queue.done(key)

        if self.cancel.is_set():
            return res
        if res.outcome is Outcome.NOOP:
            self.queue.forget(key)
        elif res.outcome is Outcome.REQUEUE:
            self.queue.forget(key)
            self.enqueue(key, self.requeue_delay_s)
        else:
            failures = self.queue.record_failure(key)
            delay = self.backoff(failures)
            self.enqueue(key, delay)
            self.sink.try_log(
                "WARN",
                f"Requeue after error in {delay:.1f}s (attempt {failures}): {res.error}",
                namespace=key.namespace,
                node=key.name,
            )
        return res

    def run_once(self, timeout_s: float | None = 0.0) -> PassResult | None:
        key = self.queue.get(timeout=timeout_s)
        if key is None:
            return None
        return self.process(key)

    def _worker(self) -> None:
        while not self.cancel.is_set():
            key = self.queue.get()
            if key is None:
                return
            try:
                self.process(key)
            except Exception as e:
                # process() has already released the key.
                self.sink.try_log("ERROR", f"Worker failed on {key}: {type(e).__name__}: {e}")
                self.enqueue(key, self.backoff(self.queue.record_failure(key)))

    def _resync_loop(self) -> None:
        while not self.cancel.wait(self.resync_interval_s):
            try:
                self.resync()
            except Exception as e:
                self.sink.try_log("ERROR", f"Resync failed: {type(e).__name__}: {e}")


def drain(dispatcher: Dispatcher, max_passes: int = 100) -> list[PassResult]:
    """Run queued passes on the calling thread until nothing is due right now."""
    results: list[PassResult] = []
    for _ in range(max_passes):
        res = dispatcher.run_once(timeout_s=0.0)
        if res is None:
            break
        results.append(res)
    return results
