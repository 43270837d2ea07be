from __future__ import annotations

import hashlib
import json
from typing import Callable

from .errors import ResolutionFailure, TranslationFailure
from .events import EventSink
from .models import (
    EXPOSURE_PORTS,
    PROTOCOLS,
    SPEC_HASH_ANNOTATION,
    WORKLOAD_PORTS,
    NetworkExposureUnit,
    NodeSpec,
    WorkloadUnit,
    node_labels,
)

# (static-peer ref, namespace) -> multiaddr, raising ResolutionFailure.
ResolveFn = Callable[[str, str], str]

PROTOCOL_FLAGS: dict[str, str] = {
    "relay": "--relay=true",
    "store": "--store=true",
    "lightpush": "--lightpush=true",
}


def unknown_protocols(node: NodeSpec) -> list[str]:
    return [p for p in node.protocols if p not in PROTOCOL_FLAGS]


def build_args(node: NodeSpec, resolve: ResolveFn) -> list[str]:
    """Node process command line, always in the same order for the same spec.

    Raises ResolutionFailure if the static peer cannot be resolved.
    """
    args = ["--rpc=true", "--rpc-address=0.0.0.0"]
    args.append(f"--dns4-domain-name={node.name}")

    if node.metrics:
        args += ["--metrics-server=True", "--metrics-server-address=0.0.0.0"]

    d = node.discovery
    if d.enabled:
        args.append("--discv5-discovery=true")
    if d.enr_auto_update:
        args.append("--discv5-enr-auto-update=True")
    if d.bootstrap_node:
        # Passed through verbatim; only the static peer is resolved.
        args.append(f"--discv5-bootstrap-node={d.bootstrap_node}")
    if d.udp_port:
        args.append(f"--discv5-udp-port={int(d.udp_port)}")

    wanted = set(node.protocols)
    args += [PROTOCOL_FLAGS[p] for p in PROTOCOLS if p in wanted]

    if node.static_node:
        args.append(f"--staticnode={resolve(node.static_node, node.namespace)}")

    return args


def spec_hash(node: NodeSpec) -> str:
    raw = json.dumps(node.to_dict(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _check_complete(node: NodeSpec) -> None:
    missing = [f for f in ("name", "namespace", "image") if not getattr(node, f)]
    if missing:
        raise TranslationFailure(node.name or "?", f"missing {', '.join(missing)}")
    if node.discovery.udp_port < 0 or node.discovery.udp_port > 65535:
        raise TranslationFailure(node.name, f"invalid discovery udp port {node.discovery.udp_port}")


def workload_from_node(node: NodeSpec, resolve: ResolveFn, sink: EventSink | None = None) -> WorkloadUnit:
    """Build the workload unit for ``node``.

    Never returns a partial unit: any problem raises TranslationFailure.
    """
    _check_complete(node)

    if sink is not None:
        for p in unknown_protocols(node):
            sink.warn(f"Ignoring unknown protocol '{p}'", namespace=node.namespace, node=node.name)

    try:
        args = build_args(node, resolve)
    except ResolutionFailure as e:
        raise TranslationFailure(node.name, str(e), cause=e) from e

    return WorkloadUnit(
        name=node.name,
        namespace=node.namespace,
        image=node.image,
        args=tuple(args),
        ports=dict(WORKLOAD_PORTS),
        labels=node_labels(node.name),
        annotations={SPEC_HASH_ANNOTATION: spec_hash(node)},
    )


def exposure_from_node(node: NodeSpec) -> NetworkExposureUnit:
    return NetworkExposureUnit(
        name=node.name,
        namespace=node.namespace,
        selector=node_labels(node.name),
        ports=dict(EXPOSURE_PORTS),
    )
