"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

ALL_REPORT_KINDS: tuple[str, ...] = (
    "namespaces",
    "services",
    "deployments",
    "replicasets",
    "daemonsets",
    "nodes",
    "pods",
    "ingresses",
    "virtualNodes",
)


@dataclass
class TransportConfig:
    """Control plane RPC configuration."""

    endpoint: str = "localhost:8080"
    timeout_seconds: int = 10
    compress: bool = False
    heartbeat_period_seconds: int = 5


@dataclass
class CollectorConfig:
    """Resource collector configuration."""

    # A single empty string means all namespaces.
    namespaces: list[str] = field(default_factory=lambda: [""])
    report_period_seconds: int = 10
    kinds: list[str] = field(default_factory=lambda: list(ALL_REPORT_KINDS))
    service_wide: bool = True
    agent_service_name: str = "kubesync-agent"
    virtual_node_selector: str = "type=virtual-kubelet"


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 9090


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeSyncConfig:
    """Top-level kubesync configuration."""

    cluster_id: str = ""
    cluster_name: str = ""
    agent_id: str = ""
    transport: TransportConfig = field(default_factory=TransportConfig)
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
