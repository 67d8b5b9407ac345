"""Request envelope sent to control plane handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from kubesync.models.agent import AgentInfo

FROM_HEADER = "FR"
CLIENT = "C"
CID_HEADER = "cid"
PID_HEADER = "pid"
UID_HEADER = "uid"
TYPE_HEADER = "type"
VERSION_HEADER = "v"
PORT_PARAM = "port"
TIMESTAMP_PARAM = "ts"

PROGRAM_NAME = "kubesync"


class Handler(StrEnum):
    """Control plane handlers receiving resource reports."""

    K8S_VIRTUAL_NODE = "k8sVirtualNode"
    K8S_POD = "k8sPod"
    K8S_NODE = "k8sNode"
    K8S_NAMESPACE = "k8sNamespace"
    K8S_SERVICE = "k8sService"
    K8S_DEPLOYMENT = "k8sDeployment"
    K8S_REPLICASET = "k8sReplicaSet"
    K8S_INGRESS = "k8sIngress"
    K8S_DAEMONSET = "k8sDaemonset"


class SessionHandler(StrEnum):
    """Control plane handlers managing the agent's own registration."""

    REGISTRY = "registry"
    HEARTBEAT = "heartbeat"
    CLOSE = "close"


@dataclass
class Request:
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)

    def add_header(self, key: str, value: str) -> Request:
        if key:
            self.headers[key] = value
        return self

    def add_param(self, key: str, value: str) -> Request:
        if key:
            self.params[key] = value
        return self

    def body(self) -> dict[str, str]:
        """Flat body: params, overridden by headers on key collisions."""
        return {**self.params, **self.headers}


def new_request(agent: AgentInfo) -> Request:
    """Request pre-filled with the agent identity headers."""
    request = Request()
    request.add_header(FROM_HEADER, CLIENT)
    request.add_header(PID_HEADER, agent.pid)
    request.add_header(UID_HEADER, agent.agent_id)
    if agent.cid:
        request.add_header(CID_HEADER, agent.cid)
    request.add_header(TYPE_HEADER, PROGRAM_NAME)
    request.add_header(VERSION_HEADER, agent.version)
    request.add_param(PORT_PARAM, agent.port)
    return request
