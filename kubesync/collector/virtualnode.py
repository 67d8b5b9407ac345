"""Virtual node collector.

Virtual nodes (virtual-kubelet and friends) are reported together with the
pods scheduled on them. Nodes and pods are diffed through two separate
identifier caches; pod entries remember the uid of their node so pod
tombstones can be delivered under the right parent record.

Pods reported here are plain projections: selector links (service,
deployment) are not applied to them, only owner-reference uids.

Each node gets its own field-selected pod source, created the first time
the node is seen and stopped once the node is gone.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Mapping
from typing import Any

from kubesync.cache.identifiers import IdentifierCache
from kubesync.collector.base import ResourceCollector, SourceProvider
from kubesync.collector.listwatch import ALL_NAMESPACES, WatchSource
from kubesync.collector.projection import project_pod, project_virtual_node
from kubesync.collector.reporter import Reporter
from kubesync.models.snapshots import PodInfo, ResourceKind, Snapshot, VirtualNodeInfo
from kubesync.observability.metrics import tombstones_total
from kubesync.transport.request import Handler

DEFAULT_VIRTUAL_NODE_SELECTOR = "type=virtual-kubelet"

NODES_ACK_KEY = "virtualNodes"
PODS_ACK_KEY = "pods"


class VirtualNodeCollector(ResourceCollector):
    kind = ResourceKind.VIRTUAL_NODES
    handler = Handler.K8S_VIRTUAL_NODE

    def __init__(
        self,
        sources: SourceProvider,
        reporter: Reporter,
        *,
        label_selector: str = DEFAULT_VIRTUAL_NODE_SELECTOR,
    ) -> None:
        super().__init__(sources, reporter)
        self._label_selector = label_selector
        self._pod_identifiers = IdentifierCache(f"{self.kind}.pods")
        self._pod_sources: dict[str, WatchSource] = {}
        self._pod_sources_lock = asyncio.Lock()

    @property
    def pod_identifiers(self) -> IdentifierCache:
        return self._pod_identifiers

    @property
    def cache_size(self) -> int:
        return len(self._identifiers) + len(self._pod_identifiers)

    def _create_source(self) -> WatchSource | None:
        return self._sources.create(ResourceKind.NODES, label_selector=self._label_selector)

    def project(self, obj: dict[str, Any]) -> VirtualNodeInfo:
        return project_virtual_node(obj, self.agent)

    async def report(self) -> None:
        source = await self.ensure_source()
        if source is None:
            self._log.warning("k8s_client_not_enabled", kind=str(self.kind))
            return

        nodes = source.list()
        batch: list[Snapshot] = []
        live_nodes: set[str] = set()
        for node in nodes:
            name = str((node.get("metadata") or {}).get("name", ""))
            try:
                snapshot = self.project(node)
            except (KeyError, TypeError, ValueError) as exc:
                self._log.warning("projection_failed", kind=str(self.kind), name=name, error=str(exc))
                continue
            live_nodes.add(name)
            # Pods are attached after the node fingerprint is taken.
            record = self._identifiers.observe(snapshot)
            pods = await self._node_pods(name)
            if pods is None:
                self._log.error("virtual_node_pods_unavailable", node=name)
            else:
                record.pods = self._collect_pods(pods, parent=snapshot.uid)  # type: ignore[attr-defined]
            batch.append(record)

        await self._prune_pod_sources(live_nodes)
        await self.send(batch, exists=True)
        await self.report_tombstones()

    def _collect_pods(self, pods: list[dict[str, Any]], parent: str) -> list[PodInfo]:
        records = []
        for pod in pods:
            try:
                snapshot = project_pod(pod)
            except (KeyError, TypeError, ValueError) as exc:
                self._log.warning(
                    "projection_failed",
                    kind=str(ResourceKind.PODS),
                    name=(pod.get("metadata") or {}).get("name", ""),
                    error=str(exc),
                )
                continue
            records.append(self._pod_identifiers.observe(snapshot, parent=parent))
        return records  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Per-node pod sources
    # ------------------------------------------------------------------

    async def _node_pods(self, node_name: str) -> list[dict[str, Any]] | None:
        async with self._pod_sources_lock:
            source = self._pod_sources.get(node_name)
            if source is None:
                source = self._sources.create(
                    ResourceKind.PODS,
                    field_selector=f"spec.nodeName={node_name}",
                    namespaces=[ALL_NAMESPACES],
                )
                if source is None:
                    return None
                await source.start()
                self._pod_sources[node_name] = source
        return source.list()

    async def _prune_pod_sources(self, live_nodes: set[str]) -> None:
        async with self._pod_sources_lock:
            gone = [name for name in self._pod_sources if name not in live_nodes]
            stale = [self._pod_sources.pop(name) for name in gone]
        for name, source in zip(gone, stale, strict=True):
            self._log.info("virtual_node_pod_source_stopped", node=name)
            await source.stop()

    async def stop(self) -> None:
        async with self._pod_sources_lock:
            sources = list(self._pod_sources.values())
            self._pod_sources.clear()
        for source in sources:
            await source.stop()
        await super().stop()

    # ------------------------------------------------------------------
    # Acks, reset and tombstones across both caches
    # ------------------------------------------------------------------

    def apply_acks(self, result: Any) -> bool:
        """Acks arrive as ``{"virtualNodes": {uid: cid}, "pods": {uid: cid}}``."""
        if result is None:
            return True
        if not isinstance(result, Mapping):
            self._log.warning("malformed_ack_result", kind=str(self.kind), result_type=type(result).__name__)
            return False
        node_acks = result.get(NODES_ACK_KEY) or {}
        pod_acks = result.get(PODS_ACK_KEY) or {}
        if not isinstance(node_acks, Mapping) or not isinstance(pod_acks, Mapping):
            self._log.warning("malformed_ack_result", kind=str(self.kind), result_type="nested")
            return False
        self._identifiers.apply_acks(node_acks)
        self._pod_identifiers.apply_acks(pod_acks)
        return True

    def reset(self) -> None:
        self._pod_identifiers.reset()
        super().reset()

    async def report_tombstones(self) -> None:
        pods_by_parent: dict[str, list[PodInfo]] = defaultdict(list)
        for entry in self._pod_identifiers.sweep():
            pods_by_parent[entry.parent].append(PodInfo.tombstone(entry.uid, entry.cid))

        batch: list[VirtualNodeInfo] = []
        for entry in self._identifiers.sweep():
            record = VirtualNodeInfo.tombstone(entry.uid, entry.cid)
            record.pods = pods_by_parent.pop(entry.uid, [])
            batch.append(record)
        # Pods that left a node which is still alive ride on a minimal node record.
        for parent_uid, pods in pods_by_parent.items():
            parent = self._identifiers.get(parent_uid)
            record = VirtualNodeInfo.minimal(parent_uid, parent.cid if parent is not None else "")
            record.pods = pods
            batch.append(record)

        if not batch:
            return
        count = sum(1 for record in batch if not record.exist) + sum(len(record.pods) for record in batch)
        tombstones_total.labels(kind=str(self.kind)).inc(count)
        await self.send(batch, exists=False)
