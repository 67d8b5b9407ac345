"""Shared report cycle for resource collectors.

A collector owns one watch source and one identifier cache. Each call to
:meth:`ResourceCollector.report` lists the source, projects and diffs every
object, sends the live batch, then sweeps the cache and sends tombstones for
objects that disappeared. Report failures reset the cache so the next cycle
re-sends everything in full.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar, Protocol

from kubesync.cache.identifiers import IdentifierCache
from kubesync.collector.links import LabelSelector, Matcher, SelectorRegistry, build_link
from kubesync.collector.listwatch import WatchSource
from kubesync.collector.reporter import Reporter, ReportError
from kubesync.models.agent import AgentInfo
from kubesync.models.snapshots import SNAPSHOT_TYPES, ResourceKind, Snapshot
from kubesync.observability.logging import get_logger
from kubesync.observability.metrics import cache_resets_total, tombstones_total
from kubesync.transport.request import Handler


class SourceProvider(Protocol):
    def create(
        self,
        kind: ResourceKind,
        *,
        field_selector: str = "",
        label_selector: str = "",
        namespaces: Sequence[str] | None = None,
    ) -> WatchSource | None: ...


class ResourceCollector(ABC):
    """Incremental reporter for one resource kind."""

    kind: ClassVar[ResourceKind]
    handler: ClassVar[Handler]

    def __init__(self, sources: SourceProvider, reporter: Reporter) -> None:
        self._sources = sources
        self._reporter = reporter
        self._identifiers = IdentifierCache(str(self.kind))
        self._source: WatchSource | None = None
        self._source_lock = asyncio.Lock()
        self._log = get_logger(f"collector.{self.kind}")

    @property
    def agent(self) -> AgentInfo:
        return self._reporter.agent

    @property
    def identifiers(self) -> IdentifierCache:
        return self._identifiers

    @property
    def cache_size(self) -> int:
        return len(self._identifiers)

    # ------------------------------------------------------------------
    # Watch source
    # ------------------------------------------------------------------

    def _create_source(self) -> WatchSource | None:
        return self._sources.create(self.kind)

    async def ensure_source(self) -> WatchSource | None:
        """Create and start the watch source on first use; None when the cluster client is disabled."""
        async with self._source_lock:
            if self._source is None:
                source = self._create_source()
                if source is None:
                    return None
                await source.start()
                self._source = source
            return self._source

    async def stop(self) -> None:
        async with self._source_lock:
            source, self._source = self._source, None
        if source is not None:
            await source.stop()

    # ------------------------------------------------------------------
    # Report cycle
    # ------------------------------------------------------------------

    async def report(self) -> None:
        source = await self.ensure_source()
        if source is None:
            self._log.warning("k8s_client_not_enabled", kind=str(self.kind))
            return
        objects = source.list()
        self._before_collect(objects)
        batch = self.collect(objects)
        self._log.debug("collected", kind=str(self.kind), listed=len(objects), size=len(batch))
        await self.send(batch, exists=True)
        await self.report_tombstones()

    def _before_collect(self, objects: list[dict[str, Any]]) -> None:
        """Hook run on the listed objects before projection."""

    @abstractmethod
    def project(self, obj: dict[str, Any]) -> Snapshot:
        """Project one raw object into its snapshot."""

    def collect(self, objects: list[dict[str, Any]]) -> list[Snapshot]:
        batch = []
        for obj in objects:
            try:
                snapshot = self.project(obj)
            except (KeyError, TypeError, ValueError) as exc:
                self._log.warning(
                    "projection_failed",
                    kind=str(self.kind),
                    name=(obj.get("metadata") or {}).get("name", ""),
                    error=str(exc),
                )
                continue
            batch.append(self._identifiers.observe(snapshot))
        return batch

    async def send(self, batch: Sequence[Snapshot], *, exists: bool) -> bool:
        """Report a non-empty batch and record the acknowledgements.

        Only live batches carry acks; the result of a tombstone batch is
        ignored. Returns False when the report failed and the caches were
        reset.
        """
        if not batch:
            return True
        try:
            result = await self._reporter.report(self.kind, self.handler, batch, exists=exists)
        except ReportError as exc:
            self._log.warning(
                "report_failed",
                kind=str(self.kind),
                size=len(batch),
                exists=exists,
                error=str(exc),
            )
            self.reset()
            return False
        if exists and not self.apply_acks(result):
            self.reset()
            return False
        self._log.debug("reported", kind=str(self.kind), size=len(batch), exists=exists)
        return True

    def apply_acks(self, result: Any) -> bool:
        """Store the ``{uid: cid}`` acks of a successful report; False if malformed."""
        if result is None:
            return True
        if not isinstance(result, Mapping):
            self._log.warning("malformed_ack_result", kind=str(self.kind), result_type=type(result).__name__)
            return False
        self._identifiers.apply_acks(result)
        return True

    def reset(self) -> None:
        """Discard the identifier cache(s); the next cycle reports every object in full."""
        self._identifiers.reset()
        cache_resets_total.labels(kind=str(self.kind)).inc()
        self._log.info("identifier_cache_reset", kind=str(self.kind))

    async def report_tombstones(self) -> None:
        snapshot_type = SNAPSHOT_TYPES[self.kind]
        tombstones = [snapshot_type.tombstone(entry.uid, entry.cid) for entry in self._identifiers.sweep()]
        if not tombstones:
            return
        tombstones_total.labels(kind=str(self.kind)).inc(len(tombstones))
        await self.send(tombstones, exists=False)


class SelectorPublishingCollector(ResourceCollector):
    """Collector whose objects select pods; publishes one link matcher per object."""

    def __init__(self, sources: SourceProvider, reporter: Reporter) -> None:
        super().__init__(sources, reporter)
        self.selectors = SelectorRegistry()

    @abstractmethod
    def selector_of(self, obj: dict[str, Any]) -> LabelSelector | None:
        """Pod selector of a raw object, or None when it selects nothing."""

    async def refresh_selectors(self) -> None:
        """Rebuild the matchers from the current source contents."""
        source = await self.ensure_source()
        if source is None:
            return
        self.publish(source.list())

    def _before_collect(self, objects: list[dict[str, Any]]) -> None:
        self.publish(objects)

    def publish(self, objects: list[dict[str, Any]]) -> None:
        matchers: list[Matcher] = []
        for obj in objects:
            meta = obj.get("metadata") or {}
            try:
                selector = self.selector_of(obj)
            except ValueError as exc:
                self._log.warning("selector_invalid", kind=str(self.kind), name=meta.get("name", ""), error=str(exc))
                continue
            if selector is None or selector.empty():
                continue
            matchers.append(build_link(str(meta.get("namespace", "")), selector, str(self.kind), str(meta.get("uid", ""))))
        self.selectors.replace(matchers)
