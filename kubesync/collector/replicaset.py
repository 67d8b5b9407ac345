"""ReplicaSet collector."""

from __future__ import annotations

from typing import Any

from kubesync.collector.base import ResourceCollector
from kubesync.collector.projection import project_replicaset
from kubesync.models.snapshots import ReplicaSetInfo, ResourceKind
from kubesync.transport.request import Handler


class ReplicaSetCollector(ResourceCollector):
    kind = ResourceKind.REPLICASETS
    handler = Handler.K8S_REPLICASET

    def project(self, obj: dict[str, Any]) -> ReplicaSetInfo:
        return project_replicaset(obj)
