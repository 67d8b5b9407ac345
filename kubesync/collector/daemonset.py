"""DaemonSet collector."""

from __future__ import annotations

from typing import Any

from kubesync.collector.base import ResourceCollector
from kubesync.collector.projection import project_daemonset
from kubesync.models.snapshots import DaemonSetInfo, ResourceKind
from kubesync.transport.request import Handler


class DaemonSetCollector(ResourceCollector):
    kind = ResourceKind.DAEMONSETS
    handler = Handler.K8S_DAEMONSET

    def project(self, obj: dict[str, Any]) -> DaemonSetInfo:
        return project_daemonset(obj)
