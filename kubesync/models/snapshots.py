"""Report snapshots: the projection of one cluster object sent upstream.

Every resource kind has its own snapshot dataclass. Fields carry their wire
name in ``metadata["json"]``; fields flagged ``omitempty`` are left out of
the payload when they hold an empty or zero value.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Self


class ResourceKind(StrEnum):
    """Resource collections reported to the control plane.

    The value doubles as the request parameter name of a report batch.
    """

    PODS = "pods"
    SERVICES = "services"
    DEPLOYMENTS = "deployments"
    DAEMONSETS = "daemonsets"
    NAMESPACES = "namespaces"
    REPLICASETS = "replicasets"
    NODES = "nodes"
    INGRESSES = "ingresses"
    VIRTUAL_NODES = "virtualNodes"


def _wire(name: str, default: Any = None, *, omitempty: bool = True, factory: Any = None) -> Any:
    metadata = {"json": name, "omitempty": omitempty}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def _is_empty(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    return False


def _encode(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return encode_payload(value)
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _encode(v) for k, v in value.items()}
    return value


def encode_payload(obj: Any, exclude: frozenset[str] = frozenset()) -> dict[str, Any]:
    """Serialize a wire dataclass into its JSON-ready dict."""
    out: dict[str, Any] = {}
    for f in dataclasses.fields(obj):
        name = f.metadata.get("json")
        if name is None or f.name in exclude:
            continue
        value = getattr(obj, f.name)
        # Nested structs are always emitted, mirroring the wire format.
        if f.metadata.get("omitempty") and not dataclasses.is_dataclass(value) and _is_empty(value):
            continue
        out[name] = _encode(value)
    return out


@dataclass
class Snapshot:
    """Fields common to every reported object."""

    kind: ClassVar[ResourceKind]

    uid: str = _wire("uid", "", omitempty=False)
    name: str = _wire("name", "", omitempty=False)
    created_time: str = _wire("createdTime", "", omitempty=False)
    labels: dict[str, str] = _wire("labels", factory=dict)
    exist: bool = _wire("exist", True, omitempty=False)
    cid: str = _wire("cid", "")

    def to_payload(self) -> dict[str, Any]:
        return encode_payload(self)

    def fingerprint_payload(self) -> dict[str, Any]:
        """Payload used for change detection; the cid is bookkeeping."""
        return encode_payload(self, exclude=frozenset({"cid"}))

    @classmethod
    def minimal(cls, uid: str, cid: str) -> Self:
        """Record telling the server an acknowledged object is unchanged."""
        return cls(uid=uid, exist=True, cid=cid)

    @classmethod
    def tombstone(cls, uid: str, cid: str) -> Self:
        """Record telling the server an acknowledged object is gone."""
        return cls(uid=uid, exist=False, cid=cid)


@dataclass
class PodInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.PODS

    namespace: str = _wire("namespace", "")
    ip: str = _wire("ip", "")
    restart_count: int = _wire("restartCount", 0)
    state: str = _wire("state", "")
    daemonset_uid: str = _wire("daemonsetUid", "")
    service_uid: str = _wire("serviceUid", "")
    deployment_uid: str = _wire("deploymentUid", "")
    replicaset_uid: str = _wire("replicasetUid", "")

    _LINK_FIELDS: ClassVar[dict[str, str]] = {
        "daemonsets": "daemonset_uid",
        "services": "service_uid",
        "deployments": "deployment_uid",
        "replicasets": "replicaset_uid",
    }

    def add_link(self, resource: str, uid: str) -> None:
        """Point this pod at the owning or selecting resource of ``resource`` kind."""
        attr = self._LINK_FIELDS.get(resource)
        if attr is None:
            raise ValueError(f"pods cannot be linked to {resource!r}")
        setattr(self, attr, uid)


@dataclass
class ServiceInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.SERVICES

    namespace: str = _wire("namespace", "")
    cluster_ip: str = _wire("clusterIp", "")
    external_ip: str = _wire("externalIp", "")
    ports: list[str] = _wire("ports", factory=list)
    type: str = _wire("type", "")
    selector: dict[str, str] = _wire("selector", factory=dict)


@dataclass
class DeploymentInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.DEPLOYMENTS

    namespace: str = _wire("namespace", "")
    available_replicas: int = _wire("availableReplicas", 0)
    replicas: int = _wire("replicas", 0)
    observed_generation: int = _wire("observedGeneration", 0)
    ready_replicas: int = _wire("readyReplicas", 0)
    updated_replicas: int = _wire("updatedReplicas", 0)
    strategy: str = _wire("strategy", "")
    unavailable_replicas: int = _wire("unavailableReplicas", 0)


@dataclass
class DaemonSetInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.DAEMONSETS

    namespace: str = _wire("namespace", "")
    current_number_scheduled: int = _wire("currentNumberScheduled", 0)
    desired_number_scheduled: int = _wire("desiredNumberScheduled", 0)
    number_available: int = _wire("numberAvailable", 0)
    number_misscheduled: int = _wire("numberMisscheduled", 0)
    number_ready: int = _wire("numberReady", 0)
    observed_generation: int = _wire("observedGeneration", 0)
    updated_number_scheduled: int = _wire("updatedNumberScheduled", 0)
    update_strategy: str = _wire("updateStrategy", "")


@dataclass
class ReplicaSetInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.REPLICASETS

    namespace: str = _wire("namespace", "")
    available_replicas: int = _wire("availableReplicas", 0)
    replicas: int = _wire("replicas", 0)
    observed_generation: int = _wire("observedGeneration", 0)
    ready_replicas: int = _wire("readyReplicas", 0)
    deployment_uid: str = _wire("deploymentUid", "")


@dataclass
class NamespaceInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.NAMESPACES


@dataclass
class NodeInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.NODES

    role: str = _wire("role", "", omitempty=False)
    cluster_id: str = _wire("clusterId", "", omitempty=False)
    cluster_name: str = _wire("clusterName", "", omitempty=False)


@dataclass
class IngressBackend:
    service_name: str = _wire("serviceName", "", omitempty=False)
    service_port: str = _wire("servicePort", "", omitempty=False)
    service_uid: str = _wire("serviceUid", "", omitempty=False)


@dataclass
class IngressPath:
    path: str = _wire("path", "")
    backend: IngressBackend = _wire("backend", factory=IngressBackend, omitempty=False)


@dataclass
class IngressHTTP:
    paths: list[IngressPath] = _wire("paths", factory=list, omitempty=False)


@dataclass
class IngressRule:
    host: str = _wire("host", "")
    http: IngressHTTP | None = _wire("http", None)


@dataclass
class IngressInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.INGRESSES

    namespace: str = _wire("namespace", "")
    address: str = _wire("address", "")
    annotations: dict[str, str] = _wire("annotations", factory=dict)
    tls: list[dict[str, Any]] = _wire("tls", factory=list)
    rules: list[IngressRule] = _wire("rules", factory=list)


@dataclass
class NodeCapacity:
    cpu: str = _wire("cpu", "")
    memory: str = _wire("memory", "")


@dataclass
class NodeAddress:
    address: str = _wire("address", "")
    type: str = _wire("type", "")


@dataclass
class VirtualNodeInfo(Snapshot):
    kind: ClassVar[ResourceKind] = ResourceKind.VIRTUAL_NODES

    role: str = _wire("role", "")
    cluster_id: str = _wire("clusterId", "")
    cluster_name: str = _wire("clusterName", "")
    node_info: dict[str, str] = _wire("nodeInfo", factory=dict, omitempty=False)
    capacity: NodeCapacity = _wire("capacity", factory=NodeCapacity, omitempty=False)
    addresses: list[NodeAddress] = _wire("addresses", factory=list)
    pods: list[PodInfo] = _wire("pods", factory=list)


SNAPSHOT_TYPES: dict[ResourceKind, type[Snapshot]] = {
    cls.kind: cls
    for cls in (
        PodInfo,
        ServiceInfo,
        DeploymentInfo,
        DaemonSetInfo,
        ReplicaSetInfo,
        NamespaceInfo,
        NodeInfo,
        IngressInfo,
        VirtualNodeInfo,
    )
}
