from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def node_payload(args: argparse.Namespace) -> dict:
    return {
        "name": args.name,
        "namespace": args.namespace,
        "image": args.image,
        "metrics": args.metrics,
        "discovery": {
            "enabled": args.discovery,
            "enr_auto_update": args.enr_auto_update,
            "bootstrap_node": args.bootstrap_node,
            "udp_port": args.udp_port,
        },
        "protocols": args.protocol,
        "static_node": args.static_node,
    }


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Waku Node Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("nodes", help="List nodes")

    s_show = sub.add_parser("show", help="Show a node with its workload and exposure")
    s_show.add_argument("name")
    s_show.add_argument("--namespace", default="default")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)

    s_apply = sub.add_parser("apply", help="Create or update a node")
    s_apply.add_argument("--name", required=True)
    s_apply.add_argument("--namespace", default="default")
    s_apply.add_argument("--image", required=True)
    s_apply.add_argument("--metrics", action="store_true")
    s_apply.add_argument("--discovery", action="store_true", help="Enable discv5")
    s_apply.add_argument("--enr-auto-update", action="store_true")
    s_apply.add_argument("--bootstrap-node", default="")
    s_apply.add_argument("--udp-port", type=int, default=0)
    s_apply.add_argument(
        "--protocol",
        action="append",
        default=[],
        choices=["relay", "store", "lightpush"],
        help="Repeat for each protocol",
    )
    s_apply.add_argument("--static-node", default="", help="Multiaddr or sibling node name")

    s_rec = sub.add_parser("reconcile", help="Run one reconcile pass now")
    s_rec.add_argument("name")
    s_rec.add_argument("--namespace", default="default")

    s_del = sub.add_parser("delete", help="Delete a node record (created units are kept)")
    s_del.add_argument("name")
    s_del.add_argument("--namespace", default="default")

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    base = args.api.rstrip("/")

    if args.cmd == "nodes":
        _print(requests.get(f"{base}/nodes", timeout=10).json())
        return 0

    if args.cmd == "show":
        r = requests.get(f"{base}/nodes/{args.namespace}/{args.name}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "apply":
        r = requests.post(f"{base}/nodes", json=node_payload(args), timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reconcile":
        # A pass may wait on a sibling's info call, so allow for the resolver timeout.
        r = requests.post(f"{base}/nodes/{args.namespace}/{args.name}/reconcile", timeout=60)
        _print(r.json())
        return 0 if r.ok and r.json().get("outcome") != "requeue_error" else 1

    if args.cmd == "delete":
        r = requests.delete(f"{base}/nodes/{args.namespace}/{args.name}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
