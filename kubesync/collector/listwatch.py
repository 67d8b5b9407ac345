"""List/watch primitives and their kubernetes-asyncio implementation.

Everything above this module works on raw API objects: plain dicts with the
camelCase field names of the Kubernetes JSON encoding.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]

ALL_NAMESPACES = ""

_DEFAULT_WATCH_TIMEOUT_S = 300


@dataclass(frozen=True)
class WatchEvent:
    """One change notification. ``type`` is ADDED, MODIFIED, DELETED, BOOKMARK or ERROR."""

    type: str
    object: dict[str, Any]


@dataclass
class ListResult:
    items: list[dict[str, Any]] = field(default_factory=list)
    resource_version: str = ""


class Watch(Protocol):
    def __aiter__(self) -> AsyncIterator[WatchEvent]: ...

    def stop(self) -> None: ...


class ListWatch(Protocol):
    async def list(self) -> ListResult: ...

    async def watch(self, resource_version: str = "") -> Watch: ...


class WatchSource(Protocol):
    """A started list/watch keeping a local store of current objects."""

    def list(self) -> list[dict[str, Any]]: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


def object_key(obj: dict[str, Any]) -> str:
    """``namespace/name`` for namespaced objects, ``name`` otherwise."""
    metadata = obj.get("metadata") or {}
    namespace = metadata.get("namespace") or ""
    name = metadata.get("name") or ""
    return f"{namespace}/{name}" if namespace else name


class KubeWatch:
    """Adapts a kubernetes-asyncio watch stream to :class:`Watch`."""

    def __init__(self, func: Callable[..., Any], **kwargs: Any) -> None:
        self._func = func
        self._kwargs = kwargs
        self._watch = k8s_watch.Watch()

    async def __aiter__(self) -> AsyncIterator[WatchEvent]:
        async with self._watch.stream(self._func, **self._kwargs) as stream:
            async for event in stream:
                raw = event.get("raw_object")
                if not isinstance(raw, dict):
                    continue
                yield WatchEvent(type=str(event.get("type", "")), object=raw)

    def stop(self) -> None:
        self._watch.stop()


class KubeListWatch:
    """List and watch one resource collection through a kubernetes-asyncio list call.

    ``func`` is a bound API method such as ``CoreV1Api.list_namespaced_pod``;
    ``namespace`` is passed through only for namespaced list calls.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        *,
        namespace: str | None = None,
        field_selector: str = "",
        label_selector: str = "",
        timeout_seconds: int = _DEFAULT_WATCH_TIMEOUT_S,
    ) -> None:
        self._func = func
        self._namespace = namespace
        self._field_selector = field_selector
        self._label_selector = label_selector
        self._timeout_seconds = timeout_seconds

    def _kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self._namespace is not None:
            kwargs["namespace"] = self._namespace
        if self._field_selector:
            kwargs["field_selector"] = self._field_selector
        if self._label_selector:
            kwargs["label_selector"] = self._label_selector
        return kwargs

    async def list(self) -> ListResult:
        # Raw JSON keeps the wire field names and timestamp strings intact.
        response = await self._func(_preload_content=False, **self._kwargs())
        data = await response.json()
        items = [item for item in data.get("items") or [] if isinstance(item, dict)]
        resource_version = str((data.get("metadata") or {}).get("resourceVersion", ""))
        return ListResult(items=items, resource_version=resource_version)

    async def watch(self, resource_version: str = "") -> KubeWatch:
        kwargs = self._kwargs()
        kwargs["timeout_seconds"] = self._timeout_seconds
        kwargs["allow_watch_bookmarks"] = True
        if resource_version:
            kwargs["resource_version"] = resource_version
        return KubeWatch(self._func, **kwargs)
