from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Query

from wnr.api_models import NodeRequest
from wnr.db import SqliteStore, latest_events
from wnr.dispatcher import Dispatcher
from wnr.docker_ops import DockerStore
from wnr.engine import Engine
from wnr.errors import NotFound, StoreError
from wnr.events import DbEventSink
from wnr.models import NodeKey
from wnr.resolver import Resolver
from wnr.settings import Settings, settings


def build_store(cfg: Settings = settings) -> SqliteStore:
    if cfg.workload_backend == "docker":
        return DockerStore(cfg.db_path, cfg.docker_network)
    if cfg.workload_backend != "records":
        raise ValueError(f"Unknown WNR_WORKLOAD_BACKEND '{cfg.workload_backend}' (records|docker)")
    return SqliteStore(cfg.db_path)


def build_dispatcher(store: SqliteStore, cfg: Settings = settings) -> Dispatcher:
    sink = DbEventSink(store.db_path)
    engine = Engine(store, Resolver(store, cfg.resolver_timeout_s), sink)
    return Dispatcher(
        engine,
        sink,
        workers=cfg.workers,
        requeue_delay_s=cfg.requeue_delay_s,
        backoff_base_s=cfg.backoff_base_s,
        backoff_max_s=cfg.backoff_max_s,
        resync_interval_s=cfg.resync_interval_s,
        list_keys=lambda: [n.key for n in store.list_nodes()],
    )


def _or_none(fn, key: NodeKey) -> dict[str, Any] | None:
    try:
        return fn(key).to_dict()
    except NotFound:
        return None


def create_app(
    store: SqliteStore | None = None,
    dispatcher: Dispatcher | None = None,
    start_workers: bool | None = None,
) -> FastAPI:
    store = store or build_store()
    dispatcher = dispatcher or build_dispatcher(store)
    if start_workers is None:
        start_workers = settings.start_workers

    app = FastAPI(title="Waku Node Reconciler")
    app.state.store = store
    app.state.dispatcher = dispatcher

    @app.on_event("startup")
    def startup() -> None:
        if start_workers:
            dispatcher.start()
            dispatcher.resync()

    @app.on_event("shutdown")
    def shutdown() -> None:
        if start_workers:
            dispatcher.stop()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post("/nodes")
    def apply_node(req: NodeRequest) -> dict[str, Any]:
        spec = req.to_spec()
        try:
            store.put_node(spec)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        dispatcher.enqueue(spec.key)
        return {"node": spec.to_dict(), "queued": True}

    @app.get("/nodes")
    def list_nodes() -> list[dict[str, Any]]:
        try:
            return [n.to_dict() for n in store.list_nodes()]
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))

    @app.get("/nodes/{namespace}/{name}")
    def show_node(namespace: str, name: str) -> dict[str, Any]:
        key = NodeKey(namespace, name)
        try:
            node = store.get_node(key)
            return {
                "node": node.to_dict(),
                "workload": _or_none(store.get_workload, key),
                "exposure": _or_none(store.get_exposure, key),
            }
        except NotFound:
            raise HTTPException(status_code=404, detail=f"Node '{key}' not found")
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))

    @app.delete("/nodes/{namespace}/{name}")
    def delete_node(namespace: str, name: str) -> dict[str, Any]:
        # Only the node record goes; created units are left in place.
        key = NodeKey(namespace, name)
        try:
            if not store.delete_node(key):
                raise HTTPException(status_code=404, detail=f"Node '{key}' not found")
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"deleted": str(key)}

    @app.post("/nodes/{namespace}/{name}/reconcile")
    def reconcile_node(namespace: str, name: str) -> dict[str, Any]:
        res = dispatcher.engine.reconcile(NodeKey(namespace, name))
        return {
            "outcome": res.outcome.value,
            "created": list(res.created),
            "error": str(res.error) if res.error else None,
        }

    @app.get("/events")
    def events(limit: int = Query(50, ge=1, le=1000)) -> list[dict[str, Any]]:
        return latest_events(store.db_path, limit)

    return app


app = create_app()
