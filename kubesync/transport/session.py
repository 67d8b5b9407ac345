"""Agent session with the control plane.

Before it reports anything the agent registers itself; the control plane
answers with a cid that every later request carries in its ``cid`` header.
While the agent runs, a heartbeat task pings the control plane periodically
and retries the registration if it has not succeeded yet. On shutdown a
close notice tells the control plane the agent is going away.

Registration failures are not fatal: resource reports work without a cid,
and the heartbeat loop keeps trying to register.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from datetime import UTC, datetime

import structlog

from kubesync.models.agent import AgentInfo
from kubesync.observability.metrics import session_requests_total
from kubesync.transport.client import TransportClient, TransportError
from kubesync.transport.request import SessionHandler, new_request

_log = structlog.get_logger(component="transport.session")

DEFAULT_HEARTBEAT_PERIOD_S = 5.0


class RegistrationError(Exception):
    """Raised when the control plane did not accept the agent."""


class AgentSession:
    """Registration, heartbeat and close notice for one agent.

    Args:
        transport:      client used for every session request.
        agent:          shared agent identity; receives the assigned cid.
        period_seconds: delay between heartbeats.
    """

    def __init__(
        self,
        transport: TransportClient,
        agent: AgentInfo,
        *,
        period_seconds: float = DEFAULT_HEARTBEAT_PERIOD_S,
    ) -> None:
        self._transport = transport
        self._agent = agent
        self._period = period_seconds
        self._task: asyncio.Task[None] | None = None
        self.last_heartbeat: datetime | None = None
        self.last_heartbeat_ok: bool | None = None

    @property
    def registered(self) -> bool:
        return self._agent.registered

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Register the agent and store the cid the control plane assigns.

        Raises RegistrationError when the request fails, is rejected, or the
        answer carries no cid.
        """
        request = new_request(self._agent)
        request.add_param("ip", self._agent.ip)
        request.add_param("clusterId", self._agent.cluster_id)
        request.add_param("clusterName", self._agent.cluster_name)
        request.add_param("cpuNum", str(os.cpu_count() or 1))

        try:
            response = await self._transport.invoke(SessionHandler.REGISTRY, request)
        except TransportError as exc:
            session_requests_total.labels(request="registry", outcome="error").inc()
            raise RegistrationError(str(exc)) from exc
        if not response.success:
            session_requests_total.labels(request="registry", outcome="rejected").inc()
            raise RegistrationError(f"code {response.code}: {response.error}")

        result = response.result if isinstance(response.result, Mapping) else {}
        cid = result.get("cid")
        if not isinstance(cid, str) or not cid:
            session_requests_total.labels(request="registry", outcome="malformed").inc()
            raise RegistrationError("registration answer carries no cid")
        uid = result.get("uid")
        self._agent.register(cid, uid if isinstance(uid, str) else "")
        session_requests_total.labels(request="registry", outcome="success").inc()
        _log.info("agent_registered", cid=cid, agent_id=self._agent.agent_id)

    async def heartbeat(self) -> bool:
        """Send one heartbeat; returns whether the control plane accepted it."""
        request = new_request(self._agent)
        if self._agent.ip:
            request.add_param("ip", self._agent.ip)
        try:
            response = await self._transport.invoke(SessionHandler.HEARTBEAT, request)
        except TransportError as exc:
            ok, error = False, str(exc)
        else:
            ok, error = response.success, response.error

        self.last_heartbeat = datetime.now(tz=UTC)
        self.last_heartbeat_ok = ok
        session_requests_total.labels(request="heartbeat", outcome="success" if ok else "error").inc()
        if ok:
            _log.debug("heartbeat_sent")
        else:
            _log.error("heartbeat_failed", error=error)
        return ok

    async def close(self) -> None:
        """Tell the control plane this agent is shutting down."""
        if not self.registered:
            return
        try:
            response = await self._transport.invoke(SessionHandler.CLOSE, new_request(self._agent))
        except TransportError as exc:
            session_requests_total.labels(request="close", outcome="error").inc()
            _log.warning("close_notice_failed", error=str(exc))
            return
        if not response.success:
            session_requests_total.labels(request="close", outcome="rejected").inc()
            _log.warning("close_notice_rejected", code=response.code, error=response.error)
            return
        session_requests_total.labels(request="close", outcome="success").inc()
        _log.info("close_notice_sent")

    # ------------------------------------------------------------------
    # Heartbeat loop
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the heartbeat task; calling it again is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="heartbeat")
        _log.info("heartbeat_started", period=self._period)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._period)
            if not self.registered:
                try:
                    await self.connect()
                except RegistrationError as exc:
                    _log.warning("registration_failed", error=str(exc))
                continue
            await self.heartbeat()

    async def stop(self) -> None:
        """Stop the heartbeat task, then send the close notice."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self.close()
