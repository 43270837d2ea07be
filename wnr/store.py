from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from threading import Lock

from .errors import AlreadyExists, NotFound
from .models import NetworkExposureUnit, NodeKey, NodeSpec, WorkloadUnit


def default_cluster_address(key: NodeKey) -> str:
    return f"{key.name}.{key.namespace}"


class ObjectStore(ABC):
    """Object store contract used by the engine and the resolver.

    ``get_*`` raise NotFound when the object is absent. ``create_*`` are
    create-if-absent and raise AlreadyExists when another writer got there first.
    Anything else surfaces as StoreError.
    """

    @abstractmethod
    def get_node(self, key: NodeKey) -> NodeSpec:
        raise NotImplementedError

    @abstractmethod
    def get_workload(self, key: NodeKey) -> WorkloadUnit:
        raise NotImplementedError

    @abstractmethod
    def create_workload(self, unit: WorkloadUnit) -> WorkloadUnit:
        raise NotImplementedError

    @abstractmethod
    def get_exposure(self, key: NodeKey) -> NetworkExposureUnit:
        raise NotImplementedError

    @abstractmethod
    def create_exposure(self, unit: NetworkExposureUnit) -> NetworkExposureUnit:
        """Persist the unit and return it with its cluster address assigned."""
        raise NotImplementedError


class MemoryStore(ObjectStore):
    def __init__(self) -> None:
        self._lock = Lock()
        self.nodes: dict[NodeKey, NodeSpec] = {}
        self.workloads: dict[NodeKey, WorkloadUnit] = {}
        self.exposures: dict[NodeKey, NetworkExposureUnit] = {}

    def put_node(self, node: NodeSpec) -> None:
        with self._lock:
            self.nodes[node.key] = node

    def delete_node(self, key: NodeKey) -> None:
        with self._lock:
            self.nodes.pop(key, None)

    def list_nodes(self) -> list[NodeSpec]:
        with self._lock:
            return [self.nodes[k] for k in sorted(self.nodes)]

    def get_node(self, key: NodeKey) -> NodeSpec:
        with self._lock:
            try:
                return self.nodes[key]
            except KeyError:
                raise NotFound(f"node {key} not found") from None

    def get_workload(self, key: NodeKey) -> WorkloadUnit:
        with self._lock:
            try:
                return self.workloads[key]
            except KeyError:
                raise NotFound(f"workload {key} not found") from None

    def create_workload(self, unit: WorkloadUnit) -> WorkloadUnit:
        with self._lock:
            if unit.key in self.workloads:
                raise AlreadyExists(f"workload {unit.key} already exists")
            self.workloads[unit.key] = unit
            return unit

    def get_exposure(self, key: NodeKey) -> NetworkExposureUnit:
        with self._lock:
            try:
                return self.exposures[key]
            except KeyError:
                raise NotFound(f"exposure {key} not found") from None

    def create_exposure(self, unit: NetworkExposureUnit) -> NetworkExposureUnit:
        with self._lock:
            if unit.key in self.exposures:
                raise AlreadyExists(f"exposure {unit.key} already exists")
            if not unit.cluster_address:
                unit = replace(unit, cluster_address=default_cluster_address(unit.key))
            self.exposures[unit.key] = unit
            return unit
