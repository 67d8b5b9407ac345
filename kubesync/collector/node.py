"""Node collector.

Only the first listed node is reported; the control plane uses it to
register the cluster itself.
"""

from __future__ import annotations

from typing import Any

from kubesync.collector.base import ResourceCollector
from kubesync.collector.projection import project_node
from kubesync.models.snapshots import NodeInfo, ResourceKind, Snapshot
from kubesync.transport.request import Handler


class NodeCollector(ResourceCollector):
    kind = ResourceKind.NODES
    handler = Handler.K8S_NODE

    def project(self, obj: dict[str, Any]) -> NodeInfo:
        return project_node(obj, self.agent)

    def collect(self, objects: list[dict[str, Any]]) -> list[Snapshot]:
        # TODO: report every node once the control plane accepts more than one per cluster.
        return super().collect(objects[:1])
