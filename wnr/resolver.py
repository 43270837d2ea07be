from __future__ import annotations

from threading import Event

import httpx
from multiaddr import Multiaddr

from .errors import ResolutionFailure, StoreError
from .models import INFO_RPC_PORT, NodeKey
from .store import ObjectStore


def parse_multiaddr(ref: str) -> bool:
    """True if ``ref`` is a well-formed multiaddr, e.g. /ip4/10.0.0.5/tcp/60000/p2p/<id>."""
    if not ref:
        return False
    try:
        Multiaddr(ref)
    except Exception:
        return False
    return True


def info_url(address: str, port: int = INFO_RPC_PORT) -> str:
    return f"http://{address}:{int(port)}/"


class Resolver:
    """Turns a static-peer reference into a routable multiaddr.

    A literal multiaddr is returned unchanged. Anything else is taken as the name
    of a sibling exposure unit in the same namespace, whose node is asked for its
    listen addresses over HTTP.
    """

    def __init__(
        self,
        store: ObjectStore,
        timeout_s: float,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        self.store = store
        self.timeout_s = timeout_s
        self.transport = transport

    def __call__(self, ref: str, namespace: str, cancel: Event | None = None) -> str:
        return self.resolve(ref, namespace, cancel)

    def resolve(self, ref: str, namespace: str, cancel: Event | None = None) -> str:
        if parse_multiaddr(ref):
            return ref

        try:
            exposure = self.store.get_exposure(NodeKey(namespace, ref))
        except StoreError as e:
            raise ResolutionFailure(ref, "lookup", str(e)) from e
        if not exposure.cluster_address:
            raise ResolutionFailure(ref, "lookup", "exposure has no cluster address yet")

        return self.query_info(ref, exposure.cluster_address, cancel)

    def query_info(self, ref: str, address: str, cancel: Event | None = None) -> str:
        """POST an empty info request to the sibling node and return its first listen address."""
        if cancel is not None and cancel.is_set():
            raise ResolutionFailure(ref, "cancelled")

        url = info_url(address)
        try:
            with httpx.Client(timeout=self.timeout_s, follow_redirects=False, transport=self.transport) as client:
                resp = client.post(url, json={})
        except httpx.TimeoutException as e:
            raise ResolutionFailure(ref, "rpc", f"timeout after {self.timeout_s}s calling {url}") from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as e:
            raise ResolutionFailure(ref, "rpc", f"{type(e).__name__}: {e}") from e

        if cancel is not None and cancel.is_set():
            raise ResolutionFailure(ref, "cancelled")
        if not resp.is_success:
            raise ResolutionFailure(ref, "rpc", f"HTTP {resp.status_code} from {url}")

        try:
            data = resp.json()
        except ValueError as e:
            raise ResolutionFailure(ref, "decode", "info reply is not JSON") from e

        addrs = data.get("listenAddresses") if isinstance(data, dict) else None
        if not isinstance(addrs, list) or not addrs:
            raise ResolutionFailure(ref, "reply", f"no listen addresses in reply: {data!r}")
        first = addrs[0]
        if not isinstance(first, str) or not first:
            raise ResolutionFailure(ref, "reply", f"bad listen address: {first!r}")
        return first
