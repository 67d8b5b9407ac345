"""Namespace collector."""

from __future__ import annotations

from typing import Any

from kubesync.collector.base import ResourceCollector
from kubesync.collector.projection import project_namespace
from kubesync.models.snapshots import NamespaceInfo, ResourceKind
from kubesync.transport.request import Handler


class NamespaceCollector(ResourceCollector):
    kind = ResourceKind.NAMESPACES
    handler = Handler.K8S_NAMESPACE

    def project(self, obj: dict[str, Any]) -> NamespaceInfo:
        return project_namespace(obj)
