from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

APP_LABEL = "wakunode"
CONTAINER_NAME = "wakunode"

# Ports declared on the node container.
WORKLOAD_PORTS: dict[str, int] = {"rpc": 8548, "p2p": 60000}
# Ports exposed by the network endpoint. The info RPC is reached on 8545.
EXPOSURE_PORTS: dict[str, int] = {"p2p": 60000, "rpc": 8545}
INFO_RPC_PORT = EXPOSURE_PORTS["rpc"]

# Protocol tags in the order their flags are emitted.
PROTOCOLS: tuple[str, ...] = ("relay", "store", "lightpush")

SPEC_HASH_ANNOTATION = "wnr/spec-hash"


@dataclass(frozen=True, order=True)
class NodeKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class Discovery:
    enabled: bool = False
    enr_auto_update: bool = False
    bootstrap_node: str = ""
    udp_port: int = 0


@dataclass(frozen=True)
class NodeSpec:
    name: str
    namespace: str
    image: str
    metrics: bool = False
    discovery: Discovery = field(default_factory=Discovery)
    protocols: tuple[str, ...] = ()
    # Either a literal multiaddr or the name of a sibling exposure unit.
    static_node: str = ""

    @property
    def key(self) -> NodeKey:
        return NodeKey(self.namespace, self.name)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["protocols"] = list(self.protocols)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "NodeSpec":
        return cls(
            name=d["name"],
            namespace=d["namespace"],
            image=d.get("image", ""),
            metrics=bool(d.get("metrics", False)),
            discovery=Discovery(**(d.get("discovery") or {})),
            protocols=tuple(d.get("protocols") or ()),
            static_node=d.get("static_node") or "",
        )


def node_labels(name: str) -> dict[str, str]:
    return {"app": APP_LABEL, "node": name}


@dataclass(frozen=True)
class WorkloadUnit:
    name: str
    namespace: str
    image: str
    args: tuple[str, ...]
    ports: dict[str, int] = field(default_factory=lambda: dict(WORKLOAD_PORTS))
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> NodeKey:
        return NodeKey(self.namespace, self.name)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["args"] = list(self.args)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "WorkloadUnit":
        return cls(
            name=d["name"],
            namespace=d["namespace"],
            image=d["image"],
            args=tuple(d.get("args") or ()),
            ports=dict(d.get("ports") or WORKLOAD_PORTS),
            labels=dict(d.get("labels") or {}),
            annotations=dict(d.get("annotations") or {}),
        )


@dataclass(frozen=True)
class NetworkExposureUnit:
    name: str
    namespace: str
    selector: dict[str, str]
    ports: dict[str, int] = field(default_factory=lambda: dict(EXPOSURE_PORTS))
    # Internal routable address, assigned by the store on creation.
    cluster_address: str = ""

    @property
    def key(self) -> NodeKey:
        return NodeKey(self.namespace, self.name)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "NetworkExposureUnit":
        return cls(
            name=d["name"],
            namespace=d["namespace"],
            selector=dict(d.get("selector") or {}),
            ports=dict(d.get("ports") or EXPOSURE_PORTS),
            cluster_address=d.get("cluster_address") or "",
        )
