"""Reporter: sends snapshot batches to the control plane."""

from __future__ import annotations

import json
import time
from collections.abc import Sequence
from typing import Any

from kubesync.models.agent import AgentInfo
from kubesync.models.snapshots import ResourceKind, Snapshot
from kubesync.observability.metrics import report_duration_seconds, reports_total
from kubesync.transport.client import TransportClient, TransportError
from kubesync.transport.request import new_request


class ReportError(Exception):
    """Raised when a batch was not accepted; the server's view is unknown."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"report {kind} failed: {message}")
        self.kind = kind


class Reporter:
    """Encodes a batch under the kind's parameter name and invokes its handler."""

    def __init__(self, transport: TransportClient, agent: AgentInfo) -> None:
        self._transport = transport
        self._agent = agent

    @property
    def agent(self) -> AgentInfo:
        return self._agent

    async def report(
        self,
        kind: ResourceKind,
        handler: str,
        batch: Sequence[Snapshot],
        *,
        exists: bool = True,
    ) -> Any:
        """Send ``batch`` and return the response result.

        ``exists`` tells live batches from tombstone batches.

        Raises ReportError on transport failure or an unsuccessful response.
        """
        try:
            data = json.dumps([snapshot.to_payload() for snapshot in batch], ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise ReportError(kind, f"encode batch: {exc}") from exc

        request = new_request(self._agent)
        request.add_param(str(kind), data)

        batch_label = "live" if exists else "tombstone"
        started = time.monotonic()
        try:
            response = await self._transport.invoke(handler, request)
        except TransportError as exc:
            reports_total.labels(kind=str(kind), batch=batch_label, outcome="error").inc()
            raise ReportError(kind, str(exc)) from exc
        finally:
            report_duration_seconds.labels(kind=str(kind)).observe(time.monotonic() - started)

        if not response.success:
            reports_total.labels(kind=str(kind), batch=batch_label, outcome="rejected").inc()
            raise ReportError(kind, f"code {response.code}: {response.error}")
        reports_total.labels(kind=str(kind), batch=batch_label, outcome="success").inc()
        return response.result
