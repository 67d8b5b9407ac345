"""Reflector: keeps a local store of objects current via list + watch.

The run loop lists the collection, replaces the store, then applies watch
events until the stream ends or the server reports an error, after which it
relists. Failures back off exponentially up to ``_MAX_BACKOFF_S``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from kubesync.collector.listwatch import ListWatch, WatchEvent, object_key
from kubesync.observability.logging import get_logger

_INITIAL_BACKOFF_S = 1.0
_MAX_BACKOFF_S = 60.0
# A watch that ends sooner than this counts as a failure for backoff purposes.
_MIN_WATCH_DURATION_S = 1.0
_SYNC_TIMEOUT_S = 30.0


class Reflector:
    """Watch Source backed by a :class:`ListWatch`."""

    def __init__(
        self,
        list_watch: ListWatch,
        *,
        name: str,
        key_func: Callable[[dict[str, Any]], str] = object_key,
    ) -> None:
        self._list_watch = list_watch
        self._name = name
        self._key_func = key_func
        self._store: dict[str, dict[str, Any]] = {}
        self._resource_version = ""
        self._synced = asyncio.Event()
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._backoff = _INITIAL_BACKOFF_S
        self._log = get_logger("collector.reflector")

    @property
    def name(self) -> str:
        return self._name

    @property
    def has_synced(self) -> bool:
        """True once the first list has been stored."""
        return self._synced.is_set()

    @property
    def resource_version(self) -> str:
        return self._resource_version

    def list(self) -> list[dict[str, Any]]:
        return list(self._store.values())

    async def start(self) -> None:
        """Start the background loop and wait, bounded, for the first list to land."""
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"reflector-{self._name}")
        if not await self.wait_synced(timeout=_SYNC_TIMEOUT_S):
            self._log.warning("initial_list_pending", source=self._name, timeout=_SYNC_TIMEOUT_S)

    async def wait_synced(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def stop(self) -> None:
        self._running = False
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while self._running:
            try:
                await self._list_and_watch()
            except asyncio.CancelledError:
                return
            except Exception as exc:
                if not self._running:
                    return
                self._log.warning(
                    "list_watch_failed",
                    source=self._name,
                    error=str(exc),
                    retry_in=self._backoff,
                )
                await self._sleep_backoff()

    async def _list_and_watch(self) -> None:
        result = await self._list_watch.list()
        self.replace(result.items, result.resource_version)

        started = time.monotonic()
        watch = await self._list_watch.watch(self._resource_version)
        try:
            async for event in watch:
                if not self._running:
                    return
                if not self.apply(event):
                    break
        finally:
            watch.stop()

        if time.monotonic() - started < _MIN_WATCH_DURATION_S:
            await self._sleep_backoff()
        else:
            self._backoff = _INITIAL_BACKOFF_S

    async def _sleep_backoff(self) -> None:
        await asyncio.sleep(self._backoff)
        self._backoff = min(self._backoff * 2, _MAX_BACKOFF_S)

    # ------------------------------------------------------------------
    # Store maintenance
    # ------------------------------------------------------------------

    def replace(self, items: list[dict[str, Any]], resource_version: str) -> None:
        """Swap the store for a fresh list result."""
        self._store = {self._key_func(item): item for item in items}
        self._resource_version = resource_version
        self._synced.set()
        self._log.debug("store_replaced", source=self._name, size=len(self._store))

    def apply(self, event: WatchEvent) -> bool:
        """Apply one watch event; returns False when a relist is required."""
        if event.type == "ERROR":
            self._log.info(
                "watch_error_event",
                source=self._name,
                reason=event.object.get("reason", ""),
                message=event.object.get("message", ""),
            )
            return False

        version = (event.object.get("metadata") or {}).get("resourceVersion")
        if version:
            self._resource_version = str(version)
        if event.type == "BOOKMARK":
            return True

        key = self._key_func(event.object)
        if event.type in ("ADDED", "MODIFIED"):
            self._store[key] = event.object
        elif event.type == "DELETED":
            self._store.pop(key, None)
        return True
