"""Unit tests for kubesync.collector.reflector."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

import kubesync.collector.reflector as reflector_module
from kubesync.collector.listwatch import ListResult, WatchEvent
from kubesync.collector.reflector import Reflector


def _obj(name: str, version: str = "1", namespace: str = "default") -> dict[str, Any]:
    return {"metadata": {"name": name, "namespace": namespace, "resourceVersion": version}}


class _ScriptedWatch:
    def __init__(self, events: list[WatchEvent]) -> None:
        self.events = events
        self.stopped = asyncio.Event()

    async def __aiter__(self) -> AsyncIterator[WatchEvent]:
        for event in self.events:
            yield event
        await self.stopped.wait()

    def stop(self) -> None:
        self.stopped.set()


class _ScriptedListWatch:
    """Returns list results and watch scripts in order; the last one repeats."""

    def __init__(self, lists: list[ListResult], watches: list[list[WatchEvent]]) -> None:
        self.lists = lists
        self.watches = watches
        self.list_calls = 0
        self.watch_versions: list[str] = []

    async def list(self) -> ListResult:
        result = self.lists[min(self.list_calls, len(self.lists) - 1)]
        self.list_calls += 1
        return result

    async def watch(self, resource_version: str = "") -> _ScriptedWatch:
        index = min(len(self.watch_versions), len(self.watches) - 1)
        self.watch_versions.append(resource_version)
        return _ScriptedWatch(list(self.watches[index]))


async def _until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.fixture(autouse=True)
def _fast_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(reflector_module, "_INITIAL_BACKOFF_S", 0.01)
    monkeypatch.setattr(reflector_module, "_MIN_WATCH_DURATION_S", 0.0)


# ---------------------------------------------------------------------------
# Store maintenance
# ---------------------------------------------------------------------------


class TestStore:
    def test_replace_marks_synced(self) -> None:
        reflector = Reflector(_ScriptedListWatch([], []), name="pods")
        assert not reflector.has_synced
        reflector.replace([_obj("a"), _obj("b")], "42")
        assert reflector.has_synced
        assert reflector.resource_version == "42"
        assert len(reflector.list()) == 2

    def test_events_update_store(self) -> None:
        reflector = Reflector(_ScriptedListWatch([], []), name="pods")
        reflector.replace([_obj("a")], "1")
        assert reflector.apply(WatchEvent("ADDED", _obj("b", "2")))
        assert reflector.apply(WatchEvent("MODIFIED", _obj("a", "3")))
        assert reflector.apply(WatchEvent("DELETED", _obj("b", "4")))
        names = [o["metadata"]["name"] for o in reflector.list()]
        assert names == ["a"]
        assert reflector.list()[0]["metadata"]["resourceVersion"] == "3"
        assert reflector.resource_version == "4"

    def test_bookmark_only_moves_version(self) -> None:
        reflector = Reflector(_ScriptedListWatch([], []), name="pods")
        reflector.replace([_obj("a")], "1")
        assert reflector.apply(WatchEvent("BOOKMARK", {"metadata": {"resourceVersion": "9"}}))
        assert reflector.resource_version == "9"
        assert len(reflector.list()) == 1

    def test_error_event_requests_relist(self) -> None:
        reflector = Reflector(_ScriptedListWatch([], []), name="pods")
        assert not reflector.apply(WatchEvent("ERROR", {"reason": "Expired", "code": 410}))

    def test_same_name_in_different_namespaces(self) -> None:
        reflector = Reflector(_ScriptedListWatch([], []), name="pods")
        reflector.replace([_obj("a", namespace="x"), _obj("a", namespace="y")], "1")
        assert len(reflector.list()) == 2


# ---------------------------------------------------------------------------
# Run loop
# ---------------------------------------------------------------------------


class TestRunLoop:
    async def test_start_waits_for_first_list(self) -> None:
        list_watch = _ScriptedListWatch([ListResult([_obj("a")], "5")], [[]])
        reflector = Reflector(list_watch, name="pods")
        await reflector.start()
        try:
            assert reflector.has_synced
            assert [o["metadata"]["name"] for o in reflector.list()] == ["a"]
            await _until(lambda: list_watch.watch_versions == ["5"])
        finally:
            await reflector.stop()

    async def test_watch_events_reach_store(self) -> None:
        list_watch = _ScriptedListWatch([ListResult([], "1")], [[WatchEvent("ADDED", _obj("b", "2"))]])
        reflector = Reflector(list_watch, name="pods")
        await reflector.start()
        try:
            await _until(lambda: len(reflector.list()) == 1)
        finally:
            await reflector.stop()

    async def test_error_event_triggers_relist(self) -> None:
        list_watch = _ScriptedListWatch(
            [ListResult([_obj("a")], "1"), ListResult([_obj("a"), _obj("c")], "7")],
            [[WatchEvent("ERROR", {"reason": "Expired"})], []],
        )
        reflector = Reflector(list_watch, name="pods")
        await reflector.start()
        try:
            await _until(lambda: list_watch.list_calls >= 2 and len(reflector.list()) == 2)
            await _until(lambda: "7" in list_watch.watch_versions)
        finally:
            await reflector.stop()

    async def test_list_failure_retries(self) -> None:
        class _Flaky(_ScriptedListWatch):
            async def list(self) -> ListResult:
                self.list_calls += 1
                if self.list_calls == 1:
                    raise ConnectionError("apiserver unavailable")
                return ListResult([_obj("a")], "3")

        list_watch = _Flaky([], [[]])
        reflector = Reflector(list_watch, name="pods")
        await reflector.start()
        try:
            assert reflector.has_synced
            assert list_watch.list_calls == 2
        finally:
            await reflector.stop()

    async def test_stop_is_safe_twice(self) -> None:
        reflector = Reflector(_ScriptedListWatch([ListResult([], "1")], [[]]), name="pods")
        await reflector.start()
        await reflector.stop()
        await reflector.stop()
