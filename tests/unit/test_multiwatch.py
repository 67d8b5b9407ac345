"""Unit tests for kubesync.collector.multiwatch."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence

import pytest

from kubesync.collector.listwatch import ListResult, WatchEvent
from kubesync.collector.multiwatch import (
    MultiListWatch,
    MultiWatch,
    is_all_namespaces,
    multi_namespace_list_watch,
)


def _event(name: str, kind: str = "ADDED") -> WatchEvent:
    return WatchEvent(type=kind, object={"metadata": {"name": name, "namespace": "default"}})


class _FakeWatch:
    """Yields its events, then optionally fails or blocks until stopped."""

    def __init__(
        self,
        events: Sequence[WatchEvent] = (),
        *,
        hold: bool = False,
        fail: Exception | None = None,
    ) -> None:
        self.events = list(events)
        self.hold = hold
        self.fail = fail
        self.stops = 0
        self._stopped = asyncio.Event()

    async def __aiter__(self) -> AsyncIterator[WatchEvent]:
        for event in self.events:
            yield event
        if self.fail is not None:
            raise self.fail
        if self.hold:
            await self._stopped.wait()

    def stop(self) -> None:
        self.stops += 1
        self._stopped.set()


class _FakeListWatch:
    def __init__(self, items: list[str], version: str, *, watch_error: Exception | None = None) -> None:
        self.items = items
        self.version = version
        self.watch_error = watch_error
        self.watched_from: list[str] = []
        self.watches: list[_FakeWatch] = []

    async def list(self) -> ListResult:
        return ListResult(items=[{"metadata": {"name": n}} for n in self.items], resource_version=self.version)

    async def watch(self, resource_version: str = "") -> _FakeWatch:
        if self.watch_error is not None:
            raise self.watch_error
        self.watched_from.append(resource_version)
        watch = _FakeWatch(hold=True)
        self.watches.append(watch)
        return watch


async def _drain(stream: MultiWatch) -> list[str]:
    return [event.object["metadata"]["name"] async for event in stream]


# ---------------------------------------------------------------------------
# MultiWatch
# ---------------------------------------------------------------------------


class TestMultiWatch:
    async def test_merges_all_events(self) -> None:
        first = _FakeWatch([_event("a"), _event("b")])
        second = _FakeWatch([_event("c")])
        stream = MultiWatch([first, second])
        names = await asyncio.wait_for(_drain(stream), timeout=2)
        assert sorted(names) == ["a", "b", "c"]

    async def test_per_source_order_preserved(self) -> None:
        stream = MultiWatch([_FakeWatch([_event(str(i)) for i in range(20)])])
        names = await asyncio.wait_for(_drain(stream), timeout=2)
        assert names == [str(i) for i in range(20)]

    async def test_failed_source_does_not_end_others(self) -> None:
        broken = _FakeWatch([_event("x")], fail=RuntimeError("stream reset"))
        healthy = _FakeWatch([_event("y"), _event("z")])
        names = await asyncio.wait_for(_drain(MultiWatch([broken, healthy])), timeout=2)
        assert sorted(names) == ["x", "y", "z"]

    async def test_stop_ends_stream(self) -> None:
        watches = [_FakeWatch([_event("a")], hold=True), _FakeWatch(hold=True)]
        stream = MultiWatch(watches)
        first = await asyncio.wait_for(stream.__anext__(), timeout=2)
        assert first.object["metadata"]["name"] == "a"

        stream.stop()
        await asyncio.wait_for(stream.wait_closed(), timeout=2)
        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(stream.__anext__(), timeout=2)

    async def test_stop_is_idempotent(self) -> None:
        watches = [_FakeWatch(hold=True), _FakeWatch(hold=True)]
        stream = MultiWatch(watches)
        stream.stop()
        stream.stop()
        await asyncio.wait_for(stream.wait_closed(), timeout=2)
        assert [w.stops for w in watches] == [1, 1]

    async def test_end_of_stream_is_sticky(self) -> None:
        stream = MultiWatch([_FakeWatch()])
        assert await asyncio.wait_for(_drain(stream), timeout=2) == []
        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(stream.__anext__(), timeout=2)


# ---------------------------------------------------------------------------
# MultiListWatch
# ---------------------------------------------------------------------------


class TestMultiListWatch:
    async def test_list_concatenates_and_joins_versions(self) -> None:
        combined = MultiListWatch([_FakeListWatch(["a"], "10"), _FakeListWatch(["b", "c"], "20")])
        result = await combined.list()
        assert [i["metadata"]["name"] for i in result.items] == ["a", "b", "c"]
        assert result.resource_version == "10/20"

    async def test_watch_splits_version(self) -> None:
        sources = [_FakeListWatch([], "1"), _FakeListWatch([], "2")]
        stream = await MultiListWatch(sources).watch("10/20")
        assert [s.watched_from for s in sources] == [["10"], ["20"]]
        stream.stop()
        await stream.wait_closed()

    async def test_watch_without_version(self) -> None:
        sources = [_FakeListWatch([], "1"), _FakeListWatch([], "2")]
        stream = await MultiListWatch(sources).watch()
        assert [s.watched_from for s in sources] == [[""], [""]]
        stream.stop()
        await stream.wait_closed()

    async def test_version_count_mismatch(self) -> None:
        combined = MultiListWatch([_FakeListWatch([], "1"), _FakeListWatch([], "2")])
        with pytest.raises(ValueError):
            await combined.watch("10")

    async def test_failed_watch_stops_started_ones(self) -> None:
        ok = _FakeListWatch([], "1")
        broken = _FakeListWatch([], "2", watch_error=RuntimeError("forbidden"))
        with pytest.raises(RuntimeError):
            await MultiListWatch([ok, broken]).watch()
        assert [w.stops for w in ok.watches] == [1]


class TestNamespaceFanIn:
    def test_is_all_namespaces(self) -> None:
        assert is_all_namespaces([""])
        assert not is_all_namespaces(["default"])
        assert not is_all_namespaces(["", "default"])

    def test_single_namespace_bypasses_fan_in(self) -> None:
        built: list[str] = []

        def factory(namespace: str) -> _FakeListWatch:
            built.append(namespace)
            return _FakeListWatch([], "1")

        result = multi_namespace_list_watch(["default"], factory)
        assert isinstance(result, _FakeListWatch)
        assert built == ["default"]

    def test_empty_means_all_namespaces(self) -> None:
        built: list[str] = []
        multi_namespace_list_watch([], lambda ns: built.append(ns) or _FakeListWatch([], "1"))
        assert built == [""]

    def test_several_namespaces_fan_in(self) -> None:
        result = multi_namespace_list_watch(["a", "b"], lambda ns: _FakeListWatch([], ns))
        assert isinstance(result, MultiListWatch)
