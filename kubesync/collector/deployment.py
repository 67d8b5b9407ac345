"""Deployment collector.

Besides reporting deployments it publishes their ``spec.selector`` so pods
can be linked to the deployment managing them.
"""

from __future__ import annotations

from typing import Any

from kubesync.collector.base import SelectorPublishingCollector
from kubesync.collector.links import LabelSelector
from kubesync.collector.projection import project_deployment
from kubesync.models.snapshots import DeploymentInfo, ResourceKind
from kubesync.transport.request import Handler


class DeploymentCollector(SelectorPublishingCollector):
    kind = ResourceKind.DEPLOYMENTS
    handler = Handler.K8S_DEPLOYMENT

    def project(self, obj: dict[str, Any]) -> DeploymentInfo:
        return project_deployment(obj)

    def selector_of(self, obj: dict[str, Any]) -> LabelSelector | None:
        selector = (obj.get("spec") or {}).get("selector")
        if not selector:
            return None
        return LabelSelector.from_spec(selector)
