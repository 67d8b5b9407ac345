"""Unit tests for kubesync.collector.reporter."""

from __future__ import annotations

import pytest

from kubesync.collector.reporter import Reporter, ReportError
from kubesync.models.snapshots import PodInfo, ResourceKind
from kubesync.transport.request import Handler
from tests.conftest import FakeControlPlane, batch_of


class TestReporter:
    async def test_batch_sent_under_kind_param(self, reporter: Reporter, control_plane: FakeControlPlane) -> None:
        result = await reporter.report(ResourceKind.PODS, Handler.K8S_POD, [PodInfo(uid="p1", namespace="ns")])

        assert result == {"p1": "cid-p1"}
        handler, body = control_plane.calls[0]
        assert handler == "k8sPod"
        kind, records = batch_of(body)
        assert kind == "pods"
        assert records == [{"uid": "p1", "name": "", "createdTime": "", "exist": True, "namespace": "ns"}]
        assert body["uid"] == "agent-1"

    async def test_tombstone_batch(self, reporter: Reporter, control_plane: FakeControlPlane) -> None:
        await reporter.report(
            ResourceKind.SERVICES,
            Handler.K8S_SERVICE,
            [PodInfo.tombstone("s1", "c1")],
            exists=False,
        )
        _, records = batch_of(control_plane.calls[0][1])
        assert records[0]["exist"] is False

    async def test_transport_error_becomes_report_error(
        self, reporter: Reporter, control_plane: FakeControlPlane
    ) -> None:
        control_plane.failures.append("error")
        with pytest.raises(ReportError) as excinfo:
            await reporter.report(ResourceKind.PODS, Handler.K8S_POD, [PodInfo(uid="p1")])
        assert excinfo.value.kind == ResourceKind.PODS

    async def test_rejected_response_raises(self, reporter: Reporter, control_plane: FakeControlPlane) -> None:
        control_plane.failures.append("reject")
        with pytest.raises(ReportError, match="server error"):
            await reporter.report(ResourceKind.PODS, Handler.K8S_POD, [PodInfo(uid="p1")])

    async def test_unencodable_batch_raises_before_sending(
        self, reporter: Reporter, control_plane: FakeControlPlane
    ) -> None:
        bad = PodInfo(uid="p1", labels={"x": object()})  # type: ignore[dict-item]
        with pytest.raises(ReportError):
            await reporter.report(ResourceKind.PODS, Handler.K8S_POD, [bad])
        assert control_plane.calls == []
