from __future__ import annotations

import json
import os
import sqlite3
from dataclasses import replace
from typing import Any

from .errors import AlreadyExists, NotFound, StoreError
from .models import NetworkExposureUnit, NodeKey, NodeSpec, WorkloadUnit
from .runtime import utc_now
from .store import ObjectStore, default_cluster_address


def _resolve_db_path(db_path: str) -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (docker creates one for a missing
    bind-mounted file), the database file is placed inside it.
    """
    p = os.path.abspath(db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "wnr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(db_path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str) -> None:
    """Create tables if they do not exist."""
    with connect(db_path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS nodes (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              namespace TEXT NOT NULL,
              name TEXT NOT NULL,
              body TEXT NOT NULL,
              updated_at TEXT NOT NULL,
              UNIQUE(namespace, name)
            );

            CREATE TABLE IF NOT EXISTS workloads (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              namespace TEXT NOT NULL,
              name TEXT NOT NULL,
              body TEXT NOT NULL,
              created_at TEXT NOT NULL,
              UNIQUE(namespace, name)
            );

            CREATE TABLE IF NOT EXISTS exposures (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              namespace TEXT NOT NULL,
              name TEXT NOT NULL,
              body TEXT NOT NULL,
              created_at TEXT NOT NULL,
              UNIQUE(namespace, name)
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              namespace TEXT,
              node TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(db_path: str, level: str, message: str, namespace: str | None = None, node: str | None = None) -> None:
    with connect(db_path) as conn:
        conn.execute(
            "INSERT INTO events (ts, level, namespace, node, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), namespace, node, message),
        )


def latest_events(db_path: str, limit: int = 100) -> list[dict[str, Any]]:
    with connect(db_path) as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]


class SqliteStore(ObjectStore):
    """Object store persisted in sqlite. Bodies are stored as JSON."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        init_db(db_path)

    def _get(self, table: str, key: NodeKey) -> dict[str, Any]:
        try:
            with connect(self.db_path) as conn:
                row = conn.execute(
                    f"SELECT body FROM {table} WHERE namespace=? AND name=?", (key.namespace, key.name)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"{table}: {type(e).__name__}: {e}") from e
        if row is None:
            raise NotFound(f"{table[:-1]} {key} not found")
        return json.loads(row["body"])

    def _insert(self, table: str, key: NodeKey, body: dict[str, Any]) -> None:
        try:
            with connect(self.db_path) as conn:
                conn.execute(
                    f"INSERT INTO {table} (namespace, name, body, created_at) VALUES (?, ?, ?, ?)",
                    (key.namespace, key.name, json.dumps(body, sort_keys=True), utc_now()),
                )
        except sqlite3.IntegrityError as e:
            raise AlreadyExists(f"{table[:-1]} {key} already exists") from e
        except sqlite3.Error as e:
            raise StoreError(f"{table}: {type(e).__name__}: {e}") from e

    def _list(self, table: str) -> list[dict[str, Any]]:
        try:
            with connect(self.db_path) as conn:
                rows = conn.execute(f"SELECT body FROM {table} ORDER BY namespace, name").fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"{table}: {type(e).__name__}: {e}") from e
        return [json.loads(r["body"]) for r in rows]

    # Nodes are written by the API, never by the reconciler.

    def put_node(self, node: NodeSpec) -> None:
        try:
            with connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO nodes (namespace, name, body, updated_at) VALUES (?, ?, ?, ?)
                    ON CONFLICT(namespace, name) DO UPDATE SET
                      body=excluded.body,
                      updated_at=excluded.updated_at
                    """,
                    (node.namespace, node.name, json.dumps(node.to_dict(), sort_keys=True), utc_now()),
                )
        except sqlite3.Error as e:
            raise StoreError(f"nodes: {type(e).__name__}: {e}") from e

    def delete_node(self, key: NodeKey) -> bool:
        try:
            with connect(self.db_path) as conn:
                cur = conn.execute("DELETE FROM nodes WHERE namespace=? AND name=?", (key.namespace, key.name))
                return cur.rowcount > 0
        except sqlite3.Error as e:
            raise StoreError(f"nodes: {type(e).__name__}: {e}") from e

    def list_nodes(self) -> list[NodeSpec]:
        return [NodeSpec.from_dict(d) for d in self._list("nodes")]

    def get_node(self, key: NodeKey) -> NodeSpec:
        return NodeSpec.from_dict(self._get("nodes", key))

    def get_workload(self, key: NodeKey) -> WorkloadUnit:
        return WorkloadUnit.from_dict(self._get("workloads", key))

    def create_workload(self, unit: WorkloadUnit) -> WorkloadUnit:
        self._insert("workloads", unit.key, unit.to_dict())
        return unit

    def list_workloads(self) -> list[WorkloadUnit]:
        return [WorkloadUnit.from_dict(d) for d in self._list("workloads")]

    def get_exposure(self, key: NodeKey) -> NetworkExposureUnit:
        return NetworkExposureUnit.from_dict(self._get("exposures", key))

    def create_exposure(self, unit: NetworkExposureUnit) -> NetworkExposureUnit:
        if not unit.cluster_address:
            unit = replace(unit, cluster_address=default_cluster_address(unit.key))
        self._insert("exposures", unit.key, unit.to_dict())
        return unit

    def list_exposures(self) -> list[NetworkExposureUnit]:
        return [NetworkExposureUnit.from_dict(d) for d in self._list("exposures")]
