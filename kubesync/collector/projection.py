"""Projection of raw Kubernetes objects into report snapshots.

Each ``project_*`` function takes one raw API object (camelCase dict as
returned by the API server) and returns the snapshot reported for it. The
helpers reproduce the columns ``kubectl get`` prints: pod STATUS, service
EXTERNAL-IP and node ROLES.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from kubesync.models.agent import AgentInfo
from kubesync.models.snapshots import (
    DaemonSetInfo,
    DeploymentInfo,
    IngressBackend,
    IngressHTTP,
    IngressInfo,
    IngressPath,
    IngressRule,
    NamespaceInfo,
    NodeAddress,
    NodeCapacity,
    NodeInfo,
    PodInfo,
    ReplicaSetInfo,
    ServiceInfo,
    VirtualNodeInfo,
)

CONFIG_HASH_ANNOTATION = "kubernetes.io/config.hash"
NODE_UNREACHABLE_REASON = "NodeLost"
LABEL_NODE_ROLE_PREFIX = "node-role.kubernetes.io/"
NODE_LABEL_ROLE = "kubernetes.io/role"
NO_ROLE = "<none>"

LOAD_BALANCER_WIDTH = 16

EXTERNAL_IP_NONE = "<none>"
EXTERNAL_IP_PENDING = "<pending>"
EXTERNAL_IP_UNKNOWN = "<unknown>"
EXTERNAL_IP_PLACEHOLDERS = frozenset({EXTERNAL_IP_NONE, EXTERNAL_IP_PENDING, EXTERNAL_IP_UNKNOWN})

ServiceResolver = Callable[[str, str], str]


def _metadata(obj: Mapping[str, Any]) -> dict[str, Any]:
    return obj.get("metadata") or {}


def _spec(obj: Mapping[str, Any]) -> dict[str, Any]:
    return obj.get("spec") or {}


def _status(obj: Mapping[str, Any]) -> dict[str, Any]:
    return obj.get("status") or {}


def _common(obj: Mapping[str, Any]) -> dict[str, Any]:
    meta = _metadata(obj)
    return {
        "uid": str(meta.get("uid", "")),
        "name": str(meta.get("name", "")),
        "created_time": str(meta.get("creationTimestamp") or ""),
        "labels": dict(meta.get("labels") or {}),
        "exist": True,
    }


def owner_uid(obj: Mapping[str, Any], kind: str) -> str:
    """Uid of the last owner reference of ``kind``, or ""."""
    uid = ""
    for ref in _metadata(obj).get("ownerReferences") or []:
        if ref.get("kind") == kind:
            uid = str(ref.get("uid", ""))
    return uid


# ---------------------------------------------------------------------------
# Pods
# ---------------------------------------------------------------------------


def pod_uid(pod: Mapping[str, Any]) -> str:
    """Static pods are identified by their config hash rather than the mirror pod uid."""
    meta = _metadata(pod)
    config_hash = (meta.get("annotations") or {}).get(CONFIG_HASH_ANNOTATION)
    if config_hash:
        return str(config_hash)
    return str(meta.get("uid", ""))


def pod_restart_count(pod: Mapping[str, Any]) -> int:
    return sum(int(c.get("restartCount", 0) or 0) for c in _status(pod).get("containerStatuses") or [])


def _terminated_detail(terminated: Mapping[str, Any]) -> str:
    if terminated.get("signal"):
        return f"Signal:{terminated['signal']}"
    return f"ExitCode:{terminated.get('exitCode', 0)}"


def pod_state(pod: Mapping[str, Any]) -> str:
    """Human-readable pod status, as in the STATUS column of ``kubectl get pods``."""
    status = _status(pod)
    reason = status.get("reason") or status.get("phase") or ""

    initializing = False
    init_statuses = status.get("initContainerStatuses") or []
    for index, container in enumerate(init_statuses):
        state = container.get("state") or {}
        terminated = state.get("terminated")
        waiting = state.get("waiting")
        if terminated is not None and terminated.get("exitCode", 0) == 0:
            continue
        if terminated is not None:
            if terminated.get("reason"):
                reason = f"Init:{terminated['reason']}"
            else:
                reason = f"Init:{_terminated_detail(terminated)}"
        elif waiting and waiting.get("reason") and waiting["reason"] != "PodInitializing":
            reason = f"Init:{waiting['reason']}"
        else:
            reason = f"Init:{index}/{len(_spec(pod).get('initContainers') or [])}"
        initializing = True
        break

    if not initializing:
        has_running = False
        for container in reversed(status.get("containerStatuses") or []):
            state = container.get("state") or {}
            terminated = state.get("terminated")
            waiting = state.get("waiting")
            if waiting and waiting.get("reason"):
                reason = waiting["reason"]
            elif terminated is not None and terminated.get("reason"):
                reason = terminated["reason"]
            elif terminated is not None:
                reason = _terminated_detail(terminated)
            elif container.get("ready") and state.get("running") is not None:
                has_running = True
        if reason == "Completed" and has_running:
            reason = "Running"

    if _metadata(pod).get("deletionTimestamp"):
        reason = "Unknown" if status.get("reason") == NODE_UNREACHABLE_REASON else "Terminating"
    return str(reason)


def project_pod(pod: Mapping[str, Any]) -> PodInfo:
    info = PodInfo(
        **_common(pod),
        namespace=str(_metadata(pod).get("namespace", "")),
        ip=str(_status(pod).get("podIP") or ""),
        restart_count=pod_restart_count(pod),
        state=pod_state(pod),
    )
    info.uid = pod_uid(pod)
    info.replicaset_uid = owner_uid(pod, "ReplicaSet")
    info.daemonset_uid = owner_uid(pod, "DaemonSet")
    return info


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def load_balancer_status(status: Mapping[str, Any], wide: bool) -> str:
    """Sorted unique ingress IPs/hostnames, truncated to the column width unless ``wide``."""
    ingress = (status.get("loadBalancer") or {}).get("ingress") or []
    addresses = sorted({i.get("ip") or i.get("hostname") for i in ingress if i.get("ip") or i.get("hostname")})
    result = ",".join(addresses)
    if not wide and len(result) > LOAD_BALANCER_WIDTH:
        result = result[: LOAD_BALANCER_WIDTH - 3] + "..."
    return result


def service_external_ip(service: Mapping[str, Any], wide: bool = True) -> str:
    """EXTERNAL-IP column of ``kubectl get services``."""
    spec = _spec(service)
    svc_type = spec.get("type", "")
    external_ips = [ip for ip in spec.get("externalIPs") or [] if ip]

    if svc_type in ("ClusterIP", "NodePort"):
        return ",".join(external_ips) if external_ips else EXTERNAL_IP_NONE
    if svc_type == "LoadBalancer":
        lb_ips = load_balancer_status(_status(service), wide)
        if external_ips:
            results = [lb_ips] if lb_ips else []
            results.extend(external_ips)
            return ",".join(results)
        return lb_ips or EXTERNAL_IP_PENDING
    if svc_type == "ExternalName":
        return str(spec.get("externalName", ""))
    return EXTERNAL_IP_UNKNOWN


def service_ports(service: Mapping[str, Any]) -> list[str]:
    return [
        f"{p.get('nodePort', 0)}->{p.get('port', 0)}/{p.get('protocol', '')}/{p.get('name', '')}"
        for p in _spec(service).get("ports") or []
    ]


def first_external_ip(external_ip: str) -> str:
    """First usable address of an EXTERNAL-IP value, or "" for placeholders."""
    for candidate in external_ip.split(","):
        candidate = candidate.strip()
        if candidate and candidate not in EXTERNAL_IP_PLACEHOLDERS and not candidate.endswith("..."):
            return candidate
    return ""


def project_service(service: Mapping[str, Any], wide: bool = True) -> ServiceInfo:
    spec = _spec(service)
    return ServiceInfo(
        **_common(service),
        namespace=str(_metadata(service).get("namespace", "")),
        cluster_ip=str(spec.get("clusterIP") or ""),
        external_ip=service_external_ip(service, wide),
        ports=service_ports(service),
        type=str(spec.get("type", "")),
        selector=dict(spec.get("selector") or {}),
    )


# ---------------------------------------------------------------------------
# Workloads and namespaces
# ---------------------------------------------------------------------------


def project_deployment(deployment: Mapping[str, Any]) -> DeploymentInfo:
    status = _status(deployment)
    return DeploymentInfo(
        **_common(deployment),
        namespace=str(_metadata(deployment).get("namespace", "")),
        available_replicas=int(status.get("availableReplicas", 0) or 0),
        replicas=int(status.get("replicas", 0) or 0),
        observed_generation=int(status.get("observedGeneration", 0) or 0),
        ready_replicas=int(status.get("readyReplicas", 0) or 0),
        updated_replicas=int(status.get("updatedReplicas", 0) or 0),
        strategy=str((_spec(deployment).get("strategy") or {}).get("type", "")),
        unavailable_replicas=int(status.get("unavailableReplicas", 0) or 0),
    )


def project_daemonset(daemonset: Mapping[str, Any]) -> DaemonSetInfo:
    status = _status(daemonset)
    return DaemonSetInfo(
        **_common(daemonset),
        namespace=str(_metadata(daemonset).get("namespace", "")),
        current_number_scheduled=int(status.get("currentNumberScheduled", 0) or 0),
        desired_number_scheduled=int(status.get("desiredNumberScheduled", 0) or 0),
        number_available=int(status.get("numberAvailable", 0) or 0),
        number_misscheduled=int(status.get("numberMisscheduled", 0) or 0),
        number_ready=int(status.get("numberReady", 0) or 0),
        observed_generation=int(status.get("observedGeneration", 0) or 0),
        updated_number_scheduled=int(status.get("updatedNumberScheduled", 0) or 0),
        update_strategy=str((_spec(daemonset).get("updateStrategy") or {}).get("type", "")),
    )


def project_replicaset(replicaset: Mapping[str, Any]) -> ReplicaSetInfo:
    status = _status(replicaset)
    return ReplicaSetInfo(
        **_common(replicaset),
        namespace=str(_metadata(replicaset).get("namespace", "")),
        available_replicas=int(status.get("availableReplicas", 0) or 0),
        replicas=int(status.get("replicas", 0) or 0),
        observed_generation=int(status.get("observedGeneration", 0) or 0),
        ready_replicas=int(status.get("readyReplicas", 0) or 0),
        deployment_uid=owner_uid(replicaset, "Deployment"),
    )


def project_namespace(namespace: Mapping[str, Any]) -> NamespaceInfo:
    return NamespaceInfo(**_common(namespace))


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


def node_roles(labels: Mapping[str, str]) -> list[str]:
    roles = set()
    for key, value in labels.items():
        if key.startswith(LABEL_NODE_ROLE_PREFIX):
            role = key[len(LABEL_NODE_ROLE_PREFIX) :]
            if role:
                roles.add(role)
        elif key == NODE_LABEL_ROLE and value:
            roles.add(value)
    return sorted(roles)


def node_role(labels: Mapping[str, str]) -> str:
    """ROLES column of ``kubectl get nodes``."""
    return ",".join(node_roles(labels)) or NO_ROLE


def node_capacity(node: Mapping[str, Any]) -> NodeCapacity:
    allocatable = _status(node).get("allocatable") or {}
    return NodeCapacity(cpu=str(allocatable.get("cpu", "")), memory=str(allocatable.get("memory", "")))


def project_node(node: Mapping[str, Any], agent: AgentInfo) -> NodeInfo:
    common = _common(node)
    return NodeInfo(
        **common,
        role=node_role(common["labels"]),
        cluster_id=agent.cluster_id,
        cluster_name=agent.cluster_name,
    )


def project_virtual_node(node: Mapping[str, Any], agent: AgentInfo) -> VirtualNodeInfo:
    """Virtual node record without its pods; those are attached after fingerprinting."""
    common = _common(node)
    status = _status(node)
    return VirtualNodeInfo(
        **common,
        role=node_role(common["labels"]),
        cluster_id=agent.cluster_id,
        cluster_name=agent.cluster_name,
        node_info={str(k): str(v) for k, v in (status.get("nodeInfo") or {}).items()},
        capacity=node_capacity(node),
        addresses=[
            NodeAddress(address=str(a.get("address", "")), type=str(a.get("type", "")))
            for a in status.get("addresses") or []
        ],
    )


# ---------------------------------------------------------------------------
# Ingresses
# ---------------------------------------------------------------------------


def ingress_backend_service(backend: Mapping[str, Any]) -> tuple[str, str]:
    """Service name and port of a backend, for networking/v1 and legacy shapes."""
    service = backend.get("service")
    if isinstance(service, Mapping):
        port = service.get("port") or {}
        port_value = port.get("number") or port.get("name") or ""
        return str(service.get("name", "")), str(port_value)
    port_value = backend.get("servicePort", "")
    return str(backend.get("serviceName", "")), "" if port_value is None else str(port_value)


def ingress_rules(ingress: Mapping[str, Any], resolve_service: ServiceResolver) -> list[IngressRule]:
    namespace = str(_metadata(ingress).get("namespace", ""))
    rules = []
    for raw_rule in _spec(ingress).get("rules") or []:
        paths = []
        for raw_path in (raw_rule.get("http") or {}).get("paths") or []:
            name, port = ingress_backend_service(raw_path.get("backend") or {})
            uid = resolve_service(name, namespace) if name else ""
            paths.append(
                IngressPath(
                    path=str(raw_path.get("path", "")),
                    backend=IngressBackend(service_name=name, service_port=port, service_uid=uid),
                )
            )
        rules.append(IngressRule(host=str(raw_rule.get("host", "")), http=IngressHTTP(paths=paths)))
    return rules


def ingress_address(ingress: Mapping[str, Any]) -> str:
    ingress_points = (_status(ingress).get("loadBalancer") or {}).get("ingress") or []
    addresses = {i.get("ip") or i.get("hostname") for i in ingress_points if i.get("ip") or i.get("hostname")}
    return ",".join(sorted(addresses))


def project_ingress(ingress: Mapping[str, Any], resolve_service: ServiceResolver) -> IngressInfo:
    meta = _metadata(ingress)
    return IngressInfo(
        **_common(ingress),
        namespace=str(meta.get("namespace", "")),
        address=ingress_address(ingress),
        annotations=dict(meta.get("annotations") or {}),
        tls=[dict(tls) for tls in _spec(ingress).get("tls") or []],
        rules=ingress_rules(ingress, resolve_service),
    )
