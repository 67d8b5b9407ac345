"""Pod collector.

Before each cycle the selector-publishing collectors refresh their matchers
and every pod is linked to the services and deployments selecting it. Links
are applied before fingerprinting so a changed link is reported as a change.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from kubesync.collector.base import ResourceCollector, SelectorPublishingCollector, SourceProvider
from kubesync.collector.links import Matcher, apply_links
from kubesync.collector.projection import project_pod
from kubesync.collector.reporter import Reporter
from kubesync.models.snapshots import PodInfo, ResourceKind
from kubesync.transport.request import Handler


class PodCollector(ResourceCollector):
    kind = ResourceKind.PODS
    handler = Handler.K8S_POD

    def __init__(
        self,
        sources: SourceProvider,
        reporter: Reporter,
        link_providers: Sequence[SelectorPublishingCollector] = (),
    ) -> None:
        super().__init__(sources, reporter)
        self._link_providers = list(link_providers)
        self._matchers: list[Matcher] = []

    async def report(self) -> None:
        for provider in self._link_providers:
            await provider.refresh_selectors()
        self._matchers = [m for provider in self._link_providers for m in provider.selectors.snapshot()]
        await super().report()

    def project(self, obj: dict[str, Any]) -> PodInfo:
        return apply_links(project_pod(obj), self._matchers)
