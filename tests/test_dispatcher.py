import time

from conftest import FakeResolver, make_node
from wnr.dispatcher import Dispatcher, drain
from wnr.engine import Engine, Outcome, PassResult
from wnr.errors import StoreError
from wnr.events import EventSink
from wnr.models import NodeKey
from wnr.runtime import WorkQueue

A = NodeKey("default", "a")
B = NodeKey("default", "b")


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class ScriptedEngine:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.keys = []

    def reconcile(self, key, cancel=None):
        self.keys.append(key)
        outcome = self.outcomes.pop(0) if self.outcomes else Outcome.NOOP
        err = StoreError("flaky") if outcome is Outcome.REQUEUE_ERROR else None
        return PassResult(outcome, err)


def _dispatcher(engine, sink, clock=None, **kw):
    queue = WorkQueue(clock) if clock else WorkQueue()
    return Dispatcher(engine, sink, requeue_delay_s=0, queue=queue, **kw)


def test_queue_deduplicates_keys():
    q = WorkQueue(FakeClock())
    q.add(A)
    q.add(A)
    q.add(B)
    assert q.pending() == [A, B]


def test_key_in_flight_is_parked_until_done():
    q = WorkQueue(FakeClock())
    q.add(A)
    assert q.get(timeout=0) == A
    q.add(A)
    assert q.pending() == []
    assert q.get(timeout=0) is None
    q.done(A)
    assert q.pending() == [A]


def test_delayed_key_waits_for_its_time():
    clock = FakeClock()
    q = WorkQueue(clock)
    q.add(A, delay_s=5)
    assert q.get(timeout=0) is None
    clock.now += 5
    assert q.get(timeout=0) == A


def test_closed_queue_returns_none():
    q = WorkQueue(FakeClock())
    q.add(A)
    q.close()
    assert q.get() is None


def test_noop_forgets_and_requeue_retries(sink):
    engine = ScriptedEngine(Outcome.REQUEUE, Outcome.REQUEUE, Outcome.NOOP)
    d = _dispatcher(engine, sink)
    d.enqueue(A)
    results = drain(d)
    assert [r.outcome for r in results] == [Outcome.REQUEUE, Outcome.REQUEUE, Outcome.NOOP]
    assert d.queue.pending() == []


def test_errors_back_off_exponentially(sink):
    clock = FakeClock()
    engine = ScriptedEngine(Outcome.REQUEUE_ERROR, Outcome.REQUEUE_ERROR, Outcome.NOOP)
    d = _dispatcher(engine, sink, clock, backoff_base_s=2, backoff_max_s=60)
    d.enqueue(A)

    assert d.run_once().outcome is Outcome.REQUEUE_ERROR
    assert d.queue.failures(A) == 1
    assert d.run_once() is None
    clock.now += 2
    assert d.run_once().outcome is Outcome.REQUEUE_ERROR
    clock.now += 2
    assert d.run_once() is None
    clock.now += 2
    assert d.run_once().outcome is Outcome.NOOP
    assert d.queue.failures(A) == 0
    assert any("Requeue after error in 4.0s (attempt 2)" in m for m in sink.messages("WARN"))


def test_backoff_is_capped(sink):
    d = _dispatcher(ScriptedEngine(), sink, backoff_base_s=2, backoff_max_s=10)
    assert [d.backoff(n) for n in range(6)] == [0.0, 2, 4, 8, 10, 10]


def test_resync_enqueues_all_listed_keys(sink):
    d = _dispatcher(ScriptedEngine(), sink, list_keys=lambda: [B, A])
    assert d.resync() == 2
    assert d.queue.pending() == [A, B]


def test_drain_converges_a_real_engine(store, sink):
    store.put_node(make_node(name="a"))
    d = _dispatcher(Engine(store, FakeResolver(), sink), sink)
    d.enqueue(A)
    outcomes = [r.outcome for r in drain(d)]
    assert outcomes == [Outcome.REQUEUE, Outcome.REQUEUE, Outcome.NOOP]
    assert A in store.workloads and A in store.exposures


def test_workers_converge_many_nodes(store, sink):
    keys = [NodeKey("default", f"n{i}") for i in range(6)]
    for k in keys:
        store.put_node(make_node(name=k.name))
    d = Dispatcher(Engine(store, FakeResolver(), sink), sink, workers=3, requeue_delay_s=0)
    d.start()
    try:
        for k in keys:
            d.enqueue(k)
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            if len(store.workloads) == len(keys) and len(store.exposures) == len(keys):
                break
            time.sleep(0.01)
    finally:
        d.stop()

    assert sorted(store.workloads) == sorted(keys)
    assert sorted(store.exposures) == sorted(keys)
    assert "Dispatcher stopped" in sink.messages("INFO")


class FailingSink(EventSink):
    def log(self, level, message, namespace=None, node=None):
        raise RuntimeError("database is locked")


def _wait_converged(store, keys, timeout_s=5):
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if len(store.workloads) == len(keys) and len(store.exposures) == len(keys):
            return True
        time.sleep(0.01)
    return False


def test_failed_event_write_still_requeues_the_key():
    clock = FakeClock()
    d = _dispatcher(ScriptedEngine(Outcome.REQUEUE_ERROR), FailingSink(), clock, backoff_base_s=2)
    d.enqueue(A)
    assert d.run_once().outcome is Outcome.REQUEUE_ERROR
    clock.now += 2
    assert d.queue.pending() == [A]


def test_workers_survive_a_failing_event_log(store):
    keys = [NodeKey("default", f"n{i}") for i in range(3)]
    for k in keys:
        store.put_node(make_node(name=k.name))
    d = Dispatcher(
        Engine(store, FakeResolver(), FailingSink()), FailingSink(), workers=2, requeue_delay_s=0, backoff_base_s=0
    )
    d.start()
    try:
        for k in keys:
            d.enqueue(k)
        assert _wait_converged(store, keys)
        assert all(t.is_alive() for t in d._threads)
    finally:
        d.stop()


def test_dispatcher_restarts_after_stop(store, sink):
    store.put_node(make_node(name="a"))
    d = Dispatcher(Engine(store, FakeResolver(), sink), sink, workers=1, requeue_delay_s=0)
    d.start()
    d.stop()
    d.start()
    try:
        d.enqueue(A)
        assert _wait_converged(store, [A])
    finally:
        d.stop()
    assert sink.messages("INFO").count("Dispatcher started with 1 workers") == 2


def test_reopened_queue_accepts_keys_again():
    q = WorkQueue(FakeClock())
    q.close()
    q.add(A)
    assert q.pending() == []
    q.reopen()
    q.add(A)
    assert q.get(timeout=0) == A
