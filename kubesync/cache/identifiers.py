"""Identifier cache: per-kind record of what the control plane already knows.

Each entry maps an object uid to the fingerprint of its last reported
payload and the correlation id (cid) the server assigned to it. A report
cycle works in three steps:

observe
    Fingerprint every listed snapshot. New or changed objects are reported
    in full; unchanged, acknowledged objects shrink to a minimal record.
apply_acks
    After a successful live report, store the cids returned by the server.
sweep
    Objects not observed this cycle are removed. Acknowledged ones come back
    as tombstones; unacknowledged ones are dropped without a report.

When a report fails the server's view is unknown, so the owning collector
calls :meth:`IdentifierCache.reset` and the next cycle re-reports everything.

The diff and sweep rules are pure functions over entries so they can be
tested without a cache or a lock.
"""

from __future__ import annotations

import hashlib
import json
import threading
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, TypeVar

from kubesync.models.snapshots import Snapshot
from kubesync.observability.logging import get_logger
from kubesync.observability.metrics import identifier_entries

S = TypeVar("S", bound=Snapshot)


@dataclass
class ResourceIdentifier:
    """Cache entry for one live object."""

    uid: str
    fingerprint: str
    name: str = ""
    namespace: str = ""
    cid: str = ""
    curr: bool = True
    # Uid of the owning object; set only in nested caches.
    parent: str = ""


@dataclass(frozen=True)
class DiffResult:
    entry: ResourceIdentifier
    unchanged: bool


@dataclass(frozen=True)
class SweepResult:
    survivors: dict[str, ResourceIdentifier]
    tombstones: list[ResourceIdentifier]
    dropped: list[str]


def fingerprint(snapshot: Snapshot) -> str:
    """MD5 of the canonical JSON encoding of a snapshot, cid excluded.

    Raises TypeError or ValueError when the payload is not serializable.
    """
    data = json.dumps(
        snapshot.fingerprint_payload(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return hashlib.md5(data.encode("utf-8"), usedforsecurity=False).hexdigest()


def diff_entry(
    old: ResourceIdentifier | None,
    uid: str,
    name: str,
    digest: str,
    *,
    namespace: str = "",
    parent: str = "",
) -> DiffResult:
    """Compute the new cache entry for an observed object."""
    if old is None:
        entry = ResourceIdentifier(uid=uid, fingerprint=digest, name=name, namespace=namespace, parent=parent)
        return DiffResult(entry=entry, unchanged=False)
    if old.fingerprint == digest and old.cid:
        return DiffResult(entry=replace(old, curr=True), unchanged=True)
    entry = replace(
        old,
        fingerprint=digest,
        name=name or old.name,
        namespace=namespace or old.namespace,
        parent=parent or old.parent,
        curr=True,
    )
    return DiffResult(entry=entry, unchanged=False)


def sweep_entries(entries: Mapping[str, ResourceIdentifier]) -> SweepResult:
    """Split entries into survivors for the next cycle and vanished objects."""
    survivors: dict[str, ResourceIdentifier] = {}
    tombstones: list[ResourceIdentifier] = []
    dropped: list[str] = []
    for uid, entry in entries.items():
        if entry.curr:
            survivors[uid] = replace(entry, curr=False)
        elif entry.cid:
            tombstones.append(entry)
        else:
            dropped.append(uid)
    return SweepResult(survivors=survivors, tombstones=tombstones, dropped=dropped)


class IdentifierCache:
    """Lock-guarded map of uid to :class:`ResourceIdentifier` for one kind."""

    def __init__(self, kind: str) -> None:
        self._kind = kind
        self._entries: dict[str, ResourceIdentifier] = {}
        self._lock = threading.Lock()
        self._log = get_logger("cache.identifiers")

    @property
    def kind(self) -> str:
        return self._kind

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, uid: object) -> bool:
        with self._lock:
            return uid in self._entries

    def get(self, uid: str) -> ResourceIdentifier | None:
        with self._lock:
            entry = self._entries.get(uid)
            return replace(entry) if entry is not None else None

    def entries(self) -> list[ResourceIdentifier]:
        with self._lock:
            return [replace(entry) for entry in self._entries.values()]

    def observe(self, snapshot: S, *, parent: str = "") -> S | Snapshot:
        """Record a listed object and return what should be reported for it.

        Returns the snapshot itself when it is new or changed, otherwise a
        minimal record carrying only uid and cid. A snapshot that cannot be
        fingerprinted is returned in full; its entry stays current with an
        empty fingerprint, so it is not swept and never matches later.
        """
        namespace = getattr(snapshot, "namespace", "")
        try:
            digest = fingerprint(snapshot)
        except (TypeError, ValueError) as exc:
            self._log.warning(
                "fingerprint_failed",
                kind=self._kind,
                uid=snapshot.uid,
                error=str(exc),
            )
            with self._lock:
                old = self._entries.get(snapshot.uid)
                if old is None:
                    self._entries[snapshot.uid] = ResourceIdentifier(
                        uid=snapshot.uid,
                        fingerprint="",
                        name=snapshot.name,
                        namespace=namespace,
                        parent=parent,
                    )
                else:
                    self._entries[snapshot.uid] = replace(old, fingerprint="", curr=True)
            return snapshot

        with self._lock:
            result = diff_entry(
                self._entries.get(snapshot.uid),
                snapshot.uid,
                snapshot.name,
                digest,
                namespace=namespace,
                parent=parent,
            )
            self._entries[snapshot.uid] = result.entry
        if result.unchanged:
            return type(snapshot).minimal(result.entry.uid, result.entry.cid)
        return snapshot

    def apply_acks(self, acks: Mapping[str, Any]) -> int:
        """Store server-assigned cids; returns how many entries were updated.

        Acks for uids no longer cached are ignored and an existing cid is
        never replaced.
        """
        updated = 0
        with self._lock:
            for uid, cid in acks.items():
                if not isinstance(cid, str) or not cid:
                    continue
                entry = self._entries.get(uid)
                if entry is None or entry.cid:
                    continue
                entry.cid = cid
                updated += 1
        return updated

    def sweep(self) -> list[ResourceIdentifier]:
        """Remove entries not observed since the last sweep.

        Returns the removed entries that carry a cid, which must be reported
        as tombstones.
        """
        with self._lock:
            result = sweep_entries(self._entries)
            self._entries = result.survivors
            size = len(self._entries)
        identifier_entries.labels(kind=self._kind).set(size)
        if result.dropped:
            self._log.debug("unacknowledged_entries_dropped", kind=self._kind, count=len(result.dropped))
        return result.tombstones

    def reset(self) -> None:
        """Forget everything; the next cycle reports every object in full."""
        with self._lock:
            self._entries = {}
        identifier_entries.labels(kind=self._kind).set(0)

    def uid_by_name(self, name: str, namespace: str = "") -> str:
        """Look up the uid of a cached object by name, or "" when absent."""
        with self._lock:
            for entry in self._entries.values():
                if entry.name != name:
                    continue
                if namespace and entry.namespace and entry.namespace != namespace:
                    continue
                return entry.uid
        return ""
