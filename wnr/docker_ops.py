from __future__ import annotations

import re
from dataclasses import replace

import docker
from docker.errors import APIError, DockerException, NotFound as DockerNotFound

from .db import SqliteStore
from .errors import AlreadyExists, NotFound, StoreError
from .models import (
    CONTAINER_NAME,
    SPEC_HASH_ANNOTATION,
    NetworkExposureUnit,
    NodeKey,
    WorkloadUnit,
)

LABEL_PREFIX = "wnr."
# Declared ports ride on labels: containers on the shared network reach each
# other directly, so nothing is published on the host.
PORT_LABEL_PREFIX = f"{LABEL_PREFIX}port."
NAME_RE = re.compile(r"[^a-zA-Z0-9_.-]")


def container_name(key: NodeKey) -> str:
    """Docker container name for a node's workload, e.g. wnr-default-n1."""
    return NAME_RE.sub("-", f"wnr-{key.namespace}-{key.name}")


def workload_labels(unit: WorkloadUnit) -> dict[str, str]:
    # Container labels are flat, so namespace and annotations are folded in.
    labels = dict(unit.labels)
    labels[f"{LABEL_PREFIX}namespace"] = unit.namespace
    labels[f"{LABEL_PREFIX}name"] = unit.name
    labels[f"{LABEL_PREFIX}container"] = CONTAINER_NAME
    for port_name, port in unit.ports.items():
        labels[f"{PORT_LABEL_PREFIX}{port_name}"] = str(port)
    for k, v in unit.annotations.items():
        labels[k] = v
    return labels


def workload_from_container(container) -> WorkloadUnit:
    labels = dict(container.labels or {})
    attrs = container.attrs or {}
    config = attrs.get("Config") or {}
    annotations = {SPEC_HASH_ANNOTATION: labels[SPEC_HASH_ANNOTATION]} if SPEC_HASH_ANNOTATION in labels else {}
    ports = {
        k[len(PORT_LABEL_PREFIX):]: int(v) for k, v in labels.items() if k.startswith(PORT_LABEL_PREFIX)
    }
    return WorkloadUnit(
        name=labels.get(f"{LABEL_PREFIX}name", ""),
        namespace=labels.get(f"{LABEL_PREFIX}namespace", ""),
        image=config.get("Image", ""),
        args=tuple(config.get("Cmd") or ()),
        ports=ports,
        labels={k: labels[k] for k in ("app", "node") if k in labels},
        annotations=annotations,
    )


class DockerStore(SqliteStore):
    """SqliteStore whose workloads run as docker containers.

    Containers join one bridge network and carry the node name as an alias, so
    the exposure's cluster address is resolvable from sibling nodes.
    """

    def __init__(self, db_path: str, network: str, client: docker.DockerClient | None = None) -> None:
        super().__init__(db_path)
        self.network = network
        self._docker = client

    def _client(self) -> docker.DockerClient:
        if self._docker is None:
            try:
                self._docker = docker.from_env()
            except DockerException as e:
                raise StoreError(f"docker not available: {e}") from e
        return self._docker

    def docker_available(self) -> bool:
        try:
            self._client().ping()
            return True
        except (DockerException, StoreError):
            return False

    def ensure_network(self) -> None:
        c = self._client()
        try:
            c.networks.get(self.network)
        except DockerNotFound:
            try:
                c.networks.create(self.network, driver="bridge")
            except APIError as e:
                # Another worker may have created it in between.
                if e.status_code != 409:
                    raise

    def get_workload(self, key: NodeKey) -> WorkloadUnit:
        try:
            container = self._client().containers.get(container_name(key))
        except DockerNotFound:
            raise NotFound(f"workload {key} not found") from None
        except DockerException as e:
            raise StoreError(f"docker: {type(e).__name__}: {e}") from e
        return workload_from_container(container)

    def create_workload(self, unit: WorkloadUnit) -> WorkloadUnit:
        try:
            self.ensure_network()
            c = self._client()
            container = c.containers.create(
                unit.image,
                command=list(unit.args),
                name=container_name(unit.key),
                labels=workload_labels(unit),
                hostname=unit.name,
                network=self.network,
                networking_config={
                    self.network: c.api.create_endpoint_config(aliases=[unit.name]),
                },
                restart_policy={"Name": "no"},
            )
        except APIError as e:
            if e.status_code == 409:
                raise AlreadyExists(f"workload {unit.key} already exists") from e
            raise StoreError(f"docker: {e.explanation or e}") from e
        except DockerException as e:
            raise StoreError(f"docker: {type(e).__name__}: {e}") from e

        try:
            container.start()
        except DockerException as e:
            # A container that never started must not count as the workload.
            self._discard(container)
            raise StoreError(f"docker: workload {unit.key} failed to start: {e}") from e
        return unit

    def _discard(self, container) -> None:
        try:
            container.remove(force=True)
        except DockerNotFound:
            pass
        except DockerException as e:
            raise StoreError(f"docker: could not remove unstarted container: {e}") from e

    def create_exposure(self, unit: NetworkExposureUnit) -> NetworkExposureUnit:
        # The node name is the container's alias on the shared network.
        if not unit.cluster_address:
            unit = replace(unit, cluster_address=unit.name)
        return super().create_exposure(unit)
