"""Ingress collector.

Backends are linked to services through the service collector's cache, so
an ingress reported before its service carries an empty ``serviceUid``
until a later cycle.
"""

from __future__ import annotations

from typing import Any

from kubesync.collector.base import ResourceCollector, SourceProvider
from kubesync.collector.projection import project_ingress
from kubesync.collector.reporter import Reporter
from kubesync.collector.service import ServiceCollector
from kubesync.models.snapshots import IngressInfo, ResourceKind
from kubesync.transport.request import Handler


class IngressCollector(ResourceCollector):
    kind = ResourceKind.INGRESSES
    handler = Handler.K8S_INGRESS

    def __init__(self, sources: SourceProvider, reporter: Reporter, services: ServiceCollector) -> None:
        super().__init__(sources, reporter)
        self._services = services

    def _resolve_service(self, name: str, namespace: str) -> str:
        uid = self._services.service_uid(name, namespace)
        if not uid:
            self._log.warning("ingress_service_not_found", service=name, namespace=namespace)
        return uid

    def project(self, obj: dict[str, Any]) -> IngressInfo:
        return project_ingress(obj, self._resolve_service)
