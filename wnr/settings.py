from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("WNR_DB_PATH", "wnr.db")
    workers: int = _env_int("WNR_WORKERS", 2)
    resync_interval_s: int = _env_int("WNR_RESYNC_INTERVAL_S", 30)

    # Requeue / backoff
    requeue_delay_s: float = _env_float("WNR_REQUEUE_DELAY_S", 1.0)
    backoff_base_s: float = _env_float("WNR_BACKOFF_BASE_S", 2.0)
    backoff_max_s: float = _env_float("WNR_BACKOFF_MAX_S", 60.0)

    # Peer resolution: the info call is blocking, so it is always bounded.
    resolver_timeout_s: float = _env_float("WNR_RESOLVER_TIMEOUT_S", 5.0)

    # Workloads: "records" keeps them in sqlite only, "docker" runs containers.
    workload_backend: str = os.getenv("WNR_WORKLOAD_BACKEND", "records")
    docker_network: str = os.getenv("WNR_DOCKER_NETWORK", "wnr")

    start_workers: bool = _env_bool("WNR_START_WORKERS", True)


settings = Settings()
