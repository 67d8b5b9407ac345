"""Fan-in of several list/watch sources into one.

Used when the agent is restricted to a set of namespaces: each namespace is
listed and watched separately and the results are merged so the rest of the
pipeline sees a single collection.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

import structlog

from kubesync.collector.listwatch import ALL_NAMESPACES, ListResult, ListWatch, Watch, WatchEvent

_log = structlog.get_logger(component="collector.multiwatch")

RESOURCE_VERSION_DELIMITER = "/"

_CLOSED = object()


class MultiWatch:
    """Merge the events of several watches into one stream.

    One forwarding task per source copies events into a shared queue. The
    stream ends once every forwarder has exited, either because its source
    finished or because :meth:`stop` was called.
    """

    def __init__(self, watches: Sequence[Watch]) -> None:
        self._watches = list(watches)
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._stopped = False
        self._runner = asyncio.create_task(self._run(), name="multiwatch")
        # Also fires when the runner is cancelled before it ever ran.
        self._runner.add_done_callback(lambda _: self._queue.put_nowait(_CLOSED))

    async def _run(self) -> None:
        async with asyncio.TaskGroup() as group:
            for index, watch in enumerate(self._watches):
                group.create_task(self._forward(index, watch), name=f"multiwatch-forward-{index}")

    async def _forward(self, index: int, watch: Watch) -> None:
        try:
            async for event in watch:
                await self._queue.put(event)
        except Exception as exc:
            # The failed source simply ends; the others keep streaming.
            _log.warning("watch_source_failed", source=index, error=str(exc))

    def __aiter__(self) -> MultiWatch:
        return self

    async def __anext__(self) -> WatchEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def stop(self) -> None:
        """Stop every underlying watch exactly once; later calls do nothing."""
        if self._stopped:
            return
        self._stopped = True
        for watch in self._watches:
            watch.stop()
        self._runner.cancel()

    async def wait_closed(self) -> None:
        """Wait until all forwarding tasks have exited."""
        await asyncio.wait([self._runner])


class MultiListWatch:
    """List/watch over several sources with a composite resource version.

    The composite version is the per-source versions joined with ``/`` in
    source order.
    """

    def __init__(self, list_watches: Sequence[ListWatch]) -> None:
        self._list_watches = list(list_watches)

    async def list(self) -> ListResult:
        items = []
        versions = []
        for list_watch in self._list_watches:
            result = await list_watch.list()
            items.extend(result.items)
            versions.append(result.resource_version)
        return ListResult(items=items, resource_version=RESOURCE_VERSION_DELIMITER.join(versions))

    async def watch(self, resource_version: str = "") -> MultiWatch:
        versions = [""] * len(self._list_watches)
        if resource_version:
            versions = resource_version.split(RESOURCE_VERSION_DELIMITER)
            if len(versions) != len(self._list_watches):
                raise ValueError(
                    f"resource version {resource_version!r} has {len(versions)} parts, "
                    f"expected {len(self._list_watches)}"
                )

        watches: list[Watch] = []
        try:
            for list_watch, version in zip(self._list_watches, versions, strict=True):
                watches.append(await list_watch.watch(version))
        except Exception:
            for watch in watches:
                watch.stop()
            raise
        return MultiWatch(watches)


def is_all_namespaces(namespaces: Sequence[str]) -> bool:
    return len(namespaces) == 1 and namespaces[0] == ALL_NAMESPACES


def multi_namespace_list_watch(
    namespaces: Sequence[str],
    factory: Callable[[str], ListWatch],
) -> ListWatch:
    """Build a list/watch over ``namespaces``, skipping the fan-in for one namespace."""
    if not namespaces:
        namespaces = [ALL_NAMESPACES]
    if len(namespaces) == 1:
        return factory(namespaces[0])
    return MultiListWatch([factory(namespace) for namespace in namespaces])
