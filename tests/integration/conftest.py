"""Shared fixtures for kubesync integration tests.

Wires the real collectors, reporter, scheduler and httpx transport together
against an in-memory control plane served through ``httpx.MockTransport``,
so full report cycles run without a cluster or a network.
"""

from __future__ import annotations

import gzip
import itertools
import json
from collections import defaultdict
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from kubesync.collector import build_collectors
from kubesync.collector.base import ResourceCollector
from kubesync.collector.reporter import Reporter
from kubesync.models.agent import AgentInfo
from kubesync.models.config import CollectorConfig
from kubesync.models.snapshots import ResourceKind
from kubesync.scheduler import ReportScheduler
from kubesync.transport import TransportClient
from tests.conftest import FakeSources, batch_of

VIRTUAL_NODE_PODS = "virtualNodes.pods"


# ---------------------------------------------------------------------------
# In-memory control plane
# ---------------------------------------------------------------------------


class ControlPlaneServer:
    """Keeps the mirrored view per kind and answers with ``{uid: cid}`` acks.

    Full records replace the stored object, minimal records only confirm
    it and tombstones delete it. Minimal records for unknown uids are
    collected in ``orphans``; a correct agent never produces one.
    """

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.orphans: list[str] = []
        self.fail_next = 0
        self._cids = itertools.count(1)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        handler = request.url.path.rsplit("/", 1)[-1]
        raw = request.content
        if request.headers.get("Content-Encoding") == "gzip":
            raw = gzip.decompress(raw)
        body = json.loads(raw)
        self.requests.append((handler, body))

        if self.fail_next:
            self.fail_next -= 1
            return httpx.Response(503, text="control plane unavailable")

        kind, records = batch_of(body)
        if kind == str(ResourceKind.VIRTUAL_NODES):
            pods = [pod for record in records for pod in record.get("pods") or []]
            result: dict[str, Any] = {
                "virtualNodes": self._apply(kind, records),
                "pods": self._apply(VIRTUAL_NODE_PODS, pods),
            }
        else:
            result = self._apply(kind, records)
        return httpx.Response(200, json={"code": 200, "success": True, "result": result})

    def _apply(self, kind: str, records: list[dict[str, Any]]) -> dict[str, str]:
        store = self.objects[kind]
        acks: dict[str, str] = {}
        for record in records:
            uid = record["uid"]
            if not record.get("exist", True):
                store.pop(uid, None)
                continue
            if not record.get("name"):
                if uid not in store:
                    self.orphans.append(uid)
                    continue
                acks[uid] = store[uid]["cid"]
                continue
            cid = record.get("cid") or (store.get(uid) or {}).get("cid") or f"cid-{next(self._cids)}"
            stored = {k: v for k, v in record.items() if k != "pods"}
            stored["cid"] = cid
            store[uid] = stored
            acks[uid] = cid
        return acks

    def uids(self, kind: str) -> set[str]:
        return set(self.objects[kind])

    def batches(self, handler: str) -> list[list[dict[str, Any]]]:
        return [batch_of(body)[1] for h, body in self.requests if h == handler]

    def reset_requests(self) -> None:
        self.requests.clear()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def server() -> ControlPlaneServer:
    return ControlPlaneServer()


@pytest.fixture()
async def transport(server: ControlPlaneServer) -> AsyncIterator[TransportClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(server))
    yield TransportClient("control-plane:8080", client=http)
    await http.aclose()


@pytest.fixture()
def reporter(transport: TransportClient, agent: AgentInfo) -> Reporter:
    return Reporter(transport, agent)


@pytest.fixture()
def collectors(sources: FakeSources, reporter: Reporter) -> list[ResourceCollector]:
    return build_collectors(sources, reporter, CollectorConfig())


@pytest.fixture()
async def scheduler(collectors: list[ResourceCollector]) -> AsyncIterator[ReportScheduler]:
    scheduler = ReportScheduler(collectors, period_seconds=60)
    yield scheduler
    await scheduler.stop()
