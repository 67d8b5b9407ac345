"""Periodic report scheduling.

One asyncio task per enabled collector runs ``report()`` every period.
Expected failures are handled inside the collectors; anything else raised
by a cycle is logged and counted here so one kind never stops the others.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from kubesync.collector.base import ResourceCollector
from kubesync.observability.metrics import cycle_errors_total

_log = structlog.get_logger(component="scheduler")


@dataclass
class CollectorStatus:
    kind: str
    enabled: bool
    cache_entries: int
    last_started: datetime | None = None
    last_finished: datetime | None = None
    last_error: str = ""


class ReportScheduler:
    """Drives the collectors' report cycles."""

    def __init__(
        self,
        collectors: Sequence[ResourceCollector],
        period_seconds: float = 10.0,
        enabled: Iterable[str] | None = None,
    ) -> None:
        self._collectors = {str(c.kind): c for c in collectors}
        self._period = period_seconds
        self._enabled = set(self._collectors) if enabled is None else set(enabled) & set(self._collectors)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._last_started: dict[str, datetime] = {}
        self._last_finished: dict[str, datetime] = {}
        self._last_error: dict[str, str] = {}
        self._running = False

    @property
    def kinds(self) -> list[str]:
        return list(self._collectors)

    @property
    def running(self) -> bool:
        return self._running

    def collector(self, kind: str) -> ResourceCollector:
        """Raises KeyError for an unknown kind."""
        return self._collectors[kind]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start one loop per enabled kind, in collector order."""
        self._running = True
        for kind in self._collectors:
            if kind in self._enabled:
                self._spawn(kind)
        _log.info("scheduler started", kinds=sorted(self._enabled), period=self._period)

    def _spawn(self, kind: str) -> None:
        task = self._tasks.get(kind)
        if task is not None and not task.done():
            return
        self._tasks[kind] = asyncio.create_task(self._loop(kind), name=f"report-{kind}")

    async def stop(self) -> None:
        """Cancel the loops, then stop every collector's watch sources."""
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for collector in reversed(list(self._collectors.values())):
            try:
                await collector.stop()
            except Exception as exc:
                _log.error("collector stop raised an error", kind=str(collector.kind), error=str(exc))

    def enable(self, kind: str) -> None:
        self.collector(kind)
        self._enabled.add(kind)
        if self._running:
            self._spawn(kind)

    def disable(self, kind: str) -> None:
        self.collector(kind)
        self._enabled.discard(kind)
        task = self._tasks.pop(kind, None)
        if task is not None:
            task.cancel()

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def _loop(self, kind: str) -> None:
        while self._running:
            await self.trigger(kind)
            await asyncio.sleep(self._period)

    async def trigger(self, kind: str) -> None:
        """Run one report cycle for ``kind`` now; may overlap a scheduled one."""
        collector = self.collector(kind)
        self._last_started[kind] = datetime.now(tz=UTC)
        try:
            await collector.report()
        except Exception as exc:
            self._last_error[kind] = str(exc)
            cycle_errors_total.labels(kind=kind).inc()
            _log.error("report cycle failed", kind=kind, error=str(exc), exc_info=True)
        else:
            self._last_error[kind] = ""
        finally:
            self._last_finished[kind] = datetime.now(tz=UTC)

    async def run_once(self) -> None:
        """Run one cycle of every enabled kind sequentially, in collector order."""
        for kind in self._collectors:
            if kind in self._enabled:
                await self.trigger(kind)

    def status(self) -> list[CollectorStatus]:
        return [
            CollectorStatus(
                kind=kind,
                enabled=kind in self._enabled,
                cache_entries=collector.cache_size,
                last_started=self._last_started.get(kind),
                last_finished=self._last_finished.get(kind),
                last_error=self._last_error.get(kind, ""),
            )
            for kind, collector in self._collectors.items()
        ]
