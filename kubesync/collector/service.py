"""Service collector.

Publishes each service's selector for pod linking and discovers the agent's
own externally reachable IP from the service named after the agent.
"""

from __future__ import annotations

from typing import Any

from kubesync.collector.base import SelectorPublishingCollector, SourceProvider
from kubesync.collector.links import LabelSelector
from kubesync.collector.projection import first_external_ip, project_service, service_external_ip
from kubesync.collector.reporter import Reporter
from kubesync.models.snapshots import ResourceKind, ServiceInfo
from kubesync.transport.request import Handler

DEFAULT_AGENT_SERVICE_NAME = "kubesync-agent"


class ServiceCollector(SelectorPublishingCollector):
    kind = ResourceKind.SERVICES
    handler = Handler.K8S_SERVICE

    def __init__(
        self,
        sources: SourceProvider,
        reporter: Reporter,
        *,
        wide: bool = True,
        agent_service_name: str = DEFAULT_AGENT_SERVICE_NAME,
    ) -> None:
        super().__init__(sources, reporter)
        self._wide = wide
        self._agent_service_name = agent_service_name

    def project(self, obj: dict[str, Any]) -> ServiceInfo:
        return project_service(obj, self._wide)

    def selector_of(self, obj: dict[str, Any]) -> LabelSelector | None:
        selector = (obj.get("spec") or {}).get("selector")
        if not selector:
            return None
        return LabelSelector.from_set(selector)

    def publish(self, objects: list[dict[str, Any]]) -> None:
        super().publish(objects)
        self._discover_agent_ip(objects)

    def _discover_agent_ip(self, objects: list[dict[str, Any]]) -> None:
        if self.agent.ip:
            return
        for obj in objects:
            if (obj.get("metadata") or {}).get("name") != self._agent_service_name:
                continue
            ip = first_external_ip(service_external_ip(obj, wide=True))
            if ip and self.agent.set_ip_if_absent(ip):
                self._log.info("agent_external_ip_discovered", service=self._agent_service_name, ip=ip)
                return

    def service_uid(self, name: str, namespace: str = "") -> str:
        """Uid of a reported service, or "" when it is not cached."""
        return self._identifiers.uid_by_name(name, namespace)
