"""Relationship builder: links pods to the services and workloads selecting them.

Selector-bearing collectors publish one matcher per object; the pod
collector applies every matcher to every pod before fingerprinting it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from kubesync.models.snapshots import PodInfo

Matcher = Callable[[PodInfo], None]

_OPERATORS = frozenset({"In", "NotIn", "Exists", "DoesNotExist"})


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str
    values: frozenset[str] = frozenset()

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == "Exists":
            return self.key in labels
        if self.operator == "DoesNotExist":
            return self.key not in labels
        if self.operator == "In":
            return self.key in labels and labels[self.key] in self.values
        # NotIn also matches objects without the key.
        return self.key not in labels or labels[self.key] not in self.values


@dataclass(frozen=True)
class LabelSelector:
    """Kubernetes label selector: ``matchLabels`` AND ``matchExpressions``."""

    match_labels: Mapping[str, str] = field(default_factory=dict)
    requirements: tuple[Requirement, ...] = ()

    @classmethod
    def from_set(cls, labels: Mapping[str, str] | None) -> LabelSelector:
        """Equality-only selector, as carried by ``Service.spec.selector``."""
        return cls(match_labels=dict(labels or {}))

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any] | None) -> LabelSelector:
        """Parse a ``metav1.LabelSelector`` dict; unknown operators raise ValueError."""
        spec = spec or {}
        requirements = []
        for expr in spec.get("matchExpressions") or []:
            operator = expr.get("operator", "")
            if operator not in _OPERATORS:
                raise ValueError(f"unsupported selector operator: {operator!r}")
            requirements.append(
                Requirement(key=expr.get("key", ""), operator=operator, values=frozenset(expr.get("values") or []))
            )
        return cls(match_labels=dict(spec.get("matchLabels") or {}), requirements=tuple(requirements))

    def empty(self) -> bool:
        return not self.match_labels and not self.requirements

    def matches(self, labels: Mapping[str, str]) -> bool:
        for key, value in self.match_labels.items():
            if labels.get(key) != value:
                return False
        return all(req.matches(labels) for req in self.requirements)


def build_link(namespace: str, selector: LabelSelector, resource: str, uid: str) -> Matcher:
    """Matcher setting the ``resource`` link of pods in ``namespace`` selected by ``selector``."""

    def link(pod: PodInfo) -> None:
        if pod.namespace == namespace and selector.matches(pod.labels):
            pod.add_link(resource, uid)

    return link


def apply_links(pod: PodInfo, matchers: Iterable[Matcher]) -> PodInfo:
    for matcher in matchers:
        matcher(pod)
    return pod


class SelectorRegistry:
    """Latest matchers published by one collector."""

    def __init__(self) -> None:
        self._matchers: list[Matcher] = []
        self._lock = threading.Lock()

    def replace(self, matchers: Iterable[Matcher]) -> None:
        new = list(matchers)
        with self._lock:
            self._matchers = new

    def snapshot(self) -> list[Matcher]:
        with self._lock:
            return list(self._matchers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._matchers)
