from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from threading import Event

from .errors import AlreadyExists, NotFound, ReconcileError, StoreError, TranslationFailure
from .events import EventSink
from .models import SPEC_HASH_ANNOTATION, NodeKey, NodeSpec, WorkloadUnit
from .resolver import Resolver
from .store import ObjectStore
from .translator import exposure_from_node, spec_hash, workload_from_node


class Outcome(str, Enum):
    NOOP = "noop"
    REQUEUE = "requeue"
    REQUEUE_ERROR = "requeue_error"


@dataclass(frozen=True)
class PassResult:
    outcome: Outcome
    error: Exception | None = None
    created: tuple[str, ...] = ()

    @property
    def requeue(self) -> bool:
        return self.outcome is not Outcome.NOOP


NOOP = PassResult(Outcome.NOOP)


def _failed(e: Exception) -> PassResult:
    return PassResult(Outcome.REQUEUE_ERROR, e)


class Engine:
    """One reconciliation pass per call: fetch, ensure workload, ensure exposure.

    Only missing units are created. An existing workload whose spec hash no longer
    matches the node is reported but left alone.
    """

    def __init__(self, store: ObjectStore, resolver: Resolver, sink: EventSink):
        self.store = store
        self.resolver = resolver
        self.sink = sink

    def reconcile(self, key: NodeKey, cancel: Event | None = None) -> PassResult:
        try:
            return self._reconcile(key, cancel)
        except Exception as e:
            # The sink may be what failed; the error still travels in the result.
            self.sink.try_log(
                "ERROR", f"Reconcile pass failed: {type(e).__name__}: {e}", namespace=key.namespace, node=key.name
            )
            return _failed(e)

    def _reconcile(self, key: NodeKey, cancel: Event | None) -> PassResult:
        try:
            node = self.store.get_node(key)
        except NotFound:
            self.sink.info("Node object not found, probably deleted", namespace=key.namespace, node=key.name)
            return NOOP
        except StoreError as e:
            self.sink.error(f"Failed to get node: {e}", namespace=key.namespace, node=key.name)
            return _failed(e)

        res = self._ensure_workload(node, cancel)
        if res is not None:
            return res
        res = self._ensure_exposure(node, cancel)
        if res is not None:
            return res
        return NOOP

    def _cancelled(self, node: NodeSpec, cancel: Event | None) -> PassResult | None:
        if cancel is not None and cancel.is_set():
            self.sink.warn("Reconcile pass cancelled", namespace=node.namespace, node=node.name)
            return _failed(ReconcileError(f"pass for {node.key} cancelled"))
        return None

    def _ensure_workload(self, node: NodeSpec, cancel: Event | None) -> PassResult | None:
        ns, name = node.namespace, node.name
        try:
            found = self.store.get_workload(node.key)
        except NotFound:
            found = None
        except StoreError as e:
            self.sink.error(f"Failed to get workload: {e}", namespace=ns, node=name)
            return _failed(e)

        if found is not None:
            self._report_drift(node, found)
            return None

        res = self._cancelled(node, cancel)
        if res is not None:
            return res

        try:
            unit = workload_from_node(node, lambda ref, namespace: self.resolver(ref, namespace, cancel), self.sink)
        except TranslationFailure as e:
            self.sink.error(f"Failed to build workload: {e}", namespace=ns, node=name)
            return _failed(e)

        res = self._cancelled(node, cancel)
        if res is not None:
            return res

        try:
            self.store.create_workload(unit)
        except AlreadyExists:
            self.sink.info("Workload already exists, created by a concurrent pass", namespace=ns, node=name)
            return None
        except StoreError as e:
            self.sink.error(f"Failed to create workload: {e}", namespace=ns, node=name)
            return _failed(e)

        self.sink.info(f"Created workload from image {unit.image}", namespace=ns, node=name)
        return PassResult(Outcome.REQUEUE, created=("workload",))

    def _ensure_exposure(self, node: NodeSpec, cancel: Event | None) -> PassResult | None:
        ns, name = node.namespace, node.name
        try:
            self.store.get_exposure(node.key)
            return None
        except NotFound:
            pass
        except StoreError as e:
            self.sink.error(f"Failed to get exposure: {e}", namespace=ns, node=name)
            return _failed(e)

        res = self._cancelled(node, cancel)
        if res is not None:
            return res

        try:
            unit = self.store.create_exposure(exposure_from_node(node))
        except AlreadyExists:
            self.sink.info("Exposure already exists, created by a concurrent pass", namespace=ns, node=name)
            return None
        except StoreError as e:
            self.sink.error(f"Failed to create exposure: {e}", namespace=ns, node=name)
            return _failed(e)

        self.sink.info(f"Created exposure at {unit.cluster_address}", namespace=ns, node=name)
        return PassResult(Outcome.REQUEUE, created=("exposure",))

    def _report_drift(self, node: NodeSpec, found: WorkloadUnit) -> None:
        # Detection only: existing workloads are never updated or replaced.
        stored = found.annotations.get(SPEC_HASH_ANNOTATION)
        if stored and stored != spec_hash(node):
            self.sink.warn(
                "Workload was built from an older node spec; drift is not corrected",
                namespace=node.namespace,
                node=node.name,
            )
