"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubesync.models.config import (
    ALL_REPORT_KINDS,
    APIConfig,
    CollectorConfig,
    KubeSyncConfig,
    LogConfig,
    TransportConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBESYNC_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str) -> list[str]:
    return [item.strip() for item in _env(key, "").split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_kinds(kinds: list[str]) -> list[str]:
    if not kinds:
        return list(ALL_REPORT_KINDS)
    unknown = [kind for kind in kinds if kind not in ALL_REPORT_KINDS]
    if unknown:
        raise ValueError(f"Unknown report kinds: {unknown}. Must be among {list(ALL_REPORT_KINDS)}")
    return kinds


def _validate_endpoint(value: str) -> str:
    if not value.strip():
        raise ValueError("Transport endpoint must not be empty")
    return value.strip()


def load_config() -> KubeSyncConfig:
    """Load configuration from KUBESYNC_* environment variables."""
    return KubeSyncConfig(
        cluster_id=_env("CLUSTER_ID", ""),
        cluster_name=_env("CLUSTER_NAME", ""),
        agent_id=_env("AGENT_ID", ""),
        transport=TransportConfig(
            endpoint=_validate_endpoint(_env("TRANSPORT_ENDPOINT", "localhost:8080")),
            timeout_seconds=_env_int("TRANSPORT_TIMEOUT", 10, min_val=3, max_val=60),
            compress=_env_bool("TRANSPORT_COMPRESS", False),
            heartbeat_period_seconds=_env_int("HEARTBEAT_PERIOD", 5, min_val=1, max_val=300),
        ),
        collector=CollectorConfig(
            namespaces=_env_list("NAMESPACES") or [""],
            report_period_seconds=_env_int("REPORT_PERIOD", 10, min_val=1, max_val=3600),
            kinds=_validate_kinds(_env_list("REPORT_KINDS")),
            service_wide=_env_bool("SERVICE_WIDE", True),
            agent_service_name=_env("AGENT_SERVICE_NAME", "kubesync-agent"),
            virtual_node_selector=_env("VIRTUAL_NODE_SELECTOR", "type=virtual-kubelet"),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 9090, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
