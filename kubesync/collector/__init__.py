"""Resource collectors and the watch machinery feeding them.

Submodules:
    listwatch   -- list/watch protocols and the kubernetes-asyncio adapter.
    multiwatch  -- fan-in of per-namespace list/watches.
    reflector   -- local store kept current by list + watch.
    source      -- factory creating reflectors per resource kind.
    projection  -- raw object -> snapshot functions.
    links       -- label selectors and pod link matchers.
    reporter    -- batch encoding and report RPC.
    base        -- shared report cycle.
"""

from __future__ import annotations

from kubesync.collector.base import ResourceCollector, SourceProvider
from kubesync.collector.daemonset import DaemonSetCollector
from kubesync.collector.deployment import DeploymentCollector
from kubesync.collector.ingress import IngressCollector
from kubesync.collector.namespace import NamespaceCollector
from kubesync.collector.node import NodeCollector
from kubesync.collector.pod import PodCollector
from kubesync.collector.replicaset import ReplicaSetCollector
from kubesync.collector.reporter import Reporter
from kubesync.collector.service import ServiceCollector
from kubesync.collector.virtualnode import VirtualNodeCollector
from kubesync.models.config import CollectorConfig


def build_collectors(sources: SourceProvider, reporter: Reporter, config: CollectorConfig) -> list[ResourceCollector]:
    """Create one collector per kind in the fixed start order.

    Every kind is built, including disabled ones, because pods and
    ingresses read the service and deployment collectors' state.
    """
    services = ServiceCollector(
        sources,
        reporter,
        wide=config.service_wide,
        agent_service_name=config.agent_service_name,
    )
    deployments = DeploymentCollector(sources, reporter)
    return [
        NamespaceCollector(sources, reporter),
        services,
        deployments,
        ReplicaSetCollector(sources, reporter),
        DaemonSetCollector(sources, reporter),
        NodeCollector(sources, reporter),
        PodCollector(sources, reporter, link_providers=[services, deployments]),
        IngressCollector(sources, reporter, services),
        VirtualNodeCollector(sources, reporter, label_selector=config.virtual_node_selector),
    ]


__all__ = ["ResourceCollector", "build_collectors"]
