"""Shared fakes and raw-object factories for kubesync tests.

Raw objects are plain dicts in the Kubernetes JSON encoding, exactly what a
watch source hands to the collectors.
"""

from __future__ import annotations

import json
from typing import Any

import pytest

from kubesync.collector.reporter import Reporter
from kubesync.models.agent import AgentInfo
from kubesync.models.snapshots import ResourceKind
from kubesync.transport.client import TransportError
from kubesync.transport.request import Handler, Request
from kubesync.transport.response import Response

_TS = "2024-03-01T12:00:00Z"


# ---------------------------------------------------------------------------
# Raw object factories
# ---------------------------------------------------------------------------


def _meta(
    name: str,
    uid: str,
    namespace: str | None = "default",
    labels: dict[str, str] | None = None,
    owners: list[tuple[str, str]] | None = None,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name, "uid": uid, "creationTimestamp": _TS, "resourceVersion": "1"}
    if namespace is not None:
        meta["namespace"] = namespace
    if labels:
        meta["labels"] = dict(labels)
    if annotations:
        meta["annotations"] = dict(annotations)
    if owners:
        meta["ownerReferences"] = [{"kind": kind, "uid": owner_uid, "name": owner_uid} for kind, owner_uid in owners]
    return meta


def make_pod(
    name: str = "web-1",
    uid: str = "pod-1",
    namespace: str = "default",
    labels: dict[str, str] | None = None,
    phase: str = "Running",
    ip: str = "10.0.0.1",
    restarts: int = 0,
    owners: list[tuple[str, str]] | None = None,
    node_name: str = "node-a",
) -> dict[str, Any]:
    return {
        "metadata": _meta(name, uid, namespace, labels, owners),
        "spec": {"nodeName": node_name, "containers": [{"name": "app"}]},
        "status": {
            "phase": phase,
            "podIP": ip,
            "containerStatuses": [
                {
                    "name": "app",
                    "ready": phase == "Running",
                    "restartCount": restarts,
                    "state": {"running": {"startedAt": _TS}} if phase == "Running" else {},
                }
            ],
        },
    }


def make_service(
    name: str = "web",
    uid: str = "svc-1",
    namespace: str = "default",
    selector: dict[str, str] | None = None,
    svc_type: str = "ClusterIP",
    cluster_ip: str = "10.96.0.10",
    external_ips: list[str] | None = None,
    lb_ingress: list[dict[str, str]] | None = None,
    ports: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "type": svc_type,
        "clusterIP": cluster_ip,
        "ports": ports if ports is not None else [{"name": "http", "port": 80, "protocol": "TCP"}],
    }
    if selector is not None:
        spec["selector"] = dict(selector)
    if external_ips:
        spec["externalIPs"] = list(external_ips)
    status: dict[str, Any] = {"loadBalancer": {"ingress": lb_ingress} if lb_ingress else {}}
    return {"metadata": _meta(name, uid, namespace), "spec": spec, "status": status}


def make_deployment(
    name: str = "web",
    uid: str = "deploy-1",
    namespace: str = "default",
    match_labels: dict[str, str] | None = None,
    replicas: int = 2,
) -> dict[str, Any]:
    return {
        "metadata": _meta(name, uid, namespace),
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": dict(match_labels)} if match_labels is not None else {},
            "strategy": {"type": "RollingUpdate"},
        },
        "status": {
            "replicas": replicas,
            "readyReplicas": replicas,
            "availableReplicas": replicas,
            "updatedReplicas": replicas,
            "observedGeneration": 1,
        },
    }


def make_replicaset(
    name: str = "web-abc",
    uid: str = "rs-1",
    namespace: str = "default",
    deployment_uid: str = "deploy-1",
) -> dict[str, Any]:
    return {
        "metadata": _meta(name, uid, namespace, owners=[("Deployment", deployment_uid)]),
        "spec": {"replicas": 2},
        "status": {"replicas": 2, "readyReplicas": 2, "availableReplicas": 2, "observedGeneration": 3},
    }


def make_daemonset(name: str = "agent", uid: str = "ds-1", namespace: str = "kube-system") -> dict[str, Any]:
    return {
        "metadata": _meta(name, uid, namespace),
        "spec": {"updateStrategy": {"type": "RollingUpdate"}},
        "status": {
            "currentNumberScheduled": 3,
            "desiredNumberScheduled": 3,
            "numberAvailable": 3,
            "numberMisscheduled": 0,
            "numberReady": 3,
            "observedGeneration": 1,
            "updatedNumberScheduled": 3,
        },
    }


def make_namespace(name: str = "default", uid: str = "ns-1") -> dict[str, Any]:
    return {"metadata": _meta(name, uid, namespace=None), "status": {"phase": "Active"}}


def make_node(
    name: str = "node-a",
    uid: str = "node-1",
    labels: dict[str, str] | None = None,
    cpu: str = "4",
    memory: str = "16Gi",
) -> dict[str, Any]:
    return {
        "metadata": _meta(name, uid, namespace=None, labels=labels),
        "status": {
            "allocatable": {"cpu": cpu, "memory": memory, "pods": "110"},
            "addresses": [{"type": "InternalIP", "address": "192.168.1.10"}],
            "nodeInfo": {"kubeletVersion": "v1.29.0", "osImage": "Ubuntu 22.04", "architecture": "amd64"},
        },
    }


def make_ingress(
    name: str = "web",
    uid: str = "ing-1",
    namespace: str = "default",
    service_name: str = "web",
    service_port: int | str = 80,
    host: str = "web.example.com",
    lb_ingress: list[dict[str, str]] | None = None,
) -> dict[str, Any]:
    port = {"number": service_port} if isinstance(service_port, int) else {"name": service_port}
    return {
        "metadata": _meta(name, uid, namespace, annotations={"kubernetes.io/ingress.class": "nginx"}),
        "spec": {
            "rules": [
                {
                    "host": host,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {"service": {"name": service_name, "port": port}},
                            }
                        ]
                    },
                }
            ]
        },
        "status": {"loadBalancer": {"ingress": lb_ingress or []}},
    }


# ---------------------------------------------------------------------------
# Watch source fakes
# ---------------------------------------------------------------------------


class FakeSource:
    """Watch source whose contents tests set directly."""

    def __init__(self, objects: list[dict[str, Any]] | None = None) -> None:
        self.objects = list(objects or [])
        self.started = 0
        self.stopped = 0

    def list(self) -> list[dict[str, Any]]:
        return list(self.objects)

    async def start(self) -> None:
        self.started += 1

    async def stop(self) -> None:
        self.stopped += 1


class FakeSources:
    """Source provider handing out one FakeSource per (kind, selectors)."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.created: list[tuple[ResourceKind, str, str]] = []
        self._sources: dict[tuple[ResourceKind, str, str], FakeSource] = {}

    def source(self, kind: ResourceKind, field_selector: str = "", label_selector: str = "") -> FakeSource:
        key = (kind, field_selector, label_selector)
        if key not in self._sources:
            self._sources[key] = FakeSource()
        return self._sources[key]

    def create(
        self,
        kind: ResourceKind,
        *,
        field_selector: str = "",
        label_selector: str = "",
        namespaces: Any = None,
    ) -> FakeSource | None:
        if not self.enabled:
            return None
        self.created.append((kind, field_selector, label_selector))
        return self.source(kind, field_selector, label_selector)


# ---------------------------------------------------------------------------
# Control plane fake
# ---------------------------------------------------------------------------


def batch_of(body: dict[str, str]) -> tuple[str, list[dict[str, Any]]]:
    """Kind parameter name and decoded records of a request body."""
    for kind in ResourceKind:
        if str(kind) in body:
            return str(kind), json.loads(body[str(kind)])
    raise AssertionError(f"no batch parameter in body keys {sorted(body)}")


def auto_acks(kind: str, records: list[dict[str, Any]]) -> dict[str, Any]:
    """Assign ``cid-<uid>`` to every live record, the way the control plane does."""

    def _acks(items: list[dict[str, Any]]) -> dict[str, str]:
        return {r["uid"]: r.get("cid") or f"cid-{r['uid']}" for r in items if r.get("exist", True)}

    if kind == str(ResourceKind.VIRTUAL_NODES):
        pods = [pod for record in records for pod in record.get("pods", [])]
        return {"virtualNodes": _acks(records), "pods": _acks(pods)}
    return _acks(records)


class FakeControlPlane:
    """Transport stand-in recording every invocation.

    ``failures`` is a queue of failure modes applied to the next calls:
    "error" raises TransportError, "reject" answers success=false,
    "garbage" answers a non-map result and "noack" answers no result.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.failures: list[str] = []

    async def invoke(self, handler: str, request: Request) -> Response:
        body = request.body()
        self.calls.append((handler, body))
        if self.failures:
            mode = self.failures.pop(0)
            if mode == "error":
                raise TransportError(handler, "connection refused")
            if mode == "reject":
                return Response(code=500, success=False, error="server error")
            if mode == "garbage":
                return Response(code=200, success=True, result="not-a-map")
            if mode == "noack":
                return Response(code=200, success=True)
        kind, records = batch_of(body)
        return Response(code=200, success=True, result=auto_acks(kind, records))

    def batches(self, handler: Handler | str | None = None) -> list[list[dict[str, Any]]]:
        return [batch_of(body)[1] for h, body in self.calls if handler is None or h == str(handler)]

    def reset_calls(self) -> None:
        self.calls.clear()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def agent() -> AgentInfo:
    return AgentInfo(agent_id="agent-1", cluster_id="cluster-1", cluster_name="prod", port="9090", version="0.1.0")


@pytest.fixture()
def sources() -> FakeSources:
    return FakeSources()


@pytest.fixture()
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture()
def reporter(control_plane: FakeControlPlane, agent: AgentInfo) -> Reporter:
    return Reporter(control_plane, agent)  # type: ignore[arg-type]
