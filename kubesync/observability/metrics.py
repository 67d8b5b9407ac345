"""Prometheus metrics for the synchronization engine.

All metrics live in the default registry and are exposed by the REST API
on ``GET /metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

reports_total = Counter(
    "kubesync_reports_total",
    "Report batches sent to the control plane.",
    ["kind", "batch", "outcome"],
)

report_duration_seconds = Histogram(
    "kubesync_report_duration_seconds",
    "Round-trip time of a report RPC.",
    ["kind"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

cache_resets_total = Counter(
    "kubesync_cache_resets_total",
    "Identifier caches discarded after a failed report.",
    ["kind"],
)

tombstones_total = Counter(
    "kubesync_tombstones_total",
    "Tombstone records emitted by the sweep.",
    ["kind"],
)

identifier_entries = Gauge(
    "kubesync_identifier_entries",
    "Entries currently held by an identifier cache.",
    ["kind"],
)

cycle_errors_total = Counter(
    "kubesync_cycle_errors_total",
    "Report cycles that raised an unexpected exception.",
    ["kind"],
)

session_requests_total = Counter(
    "kubesync_session_requests_total",
    "Registration, heartbeat and close requests sent to the control plane.",
    ["request", "outcome"],
)
