"""Route handlers mounted under /api/v1."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from kubesync.api.schemas import (
    CollectorStatusResponse,
    ErrorResponse,
    PingResponse,
    ReportTriggerResponse,
    StatusResponse,
)

router = APIRouter()


@router.get("/ping", response_model=PingResponse)
async def ping(request: Request) -> PingResponse:
    from kubesync import __version__

    agent = request.app.state.agent
    return PingResponse(version=__version__, cluster_id=agent.cluster_id if agent is not None else "")


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    scheduler = request.app.state.scheduler
    agent = request.app.state.agent
    session = request.app.state.session
    return StatusResponse(
        agent_id=agent.agent_id if agent is not None else "",
        cluster_id=agent.cluster_id if agent is not None else "",
        cluster_name=agent.cluster_name if agent is not None else "",
        agent_ip=agent.ip if agent is not None else "",
        registered=agent.registered if agent is not None else False,
        last_heartbeat=session.last_heartbeat if session is not None else None,
        last_heartbeat_ok=session.last_heartbeat_ok if session is not None else None,
        scheduler_running=scheduler.running,
        collectors=[CollectorStatusResponse(**asdict(s)) for s in scheduler.status()],
    )


@router.post(
    "/report/{kind}",
    response_model=ReportTriggerResponse,
    responses={404: {"model": ErrorResponse}},
)
async def trigger_report(kind: str, request: Request) -> ReportTriggerResponse | JSONResponse:
    """Run one out-of-band report cycle for ``kind``."""
    scheduler = request.app.state.scheduler
    if kind not in scheduler.kinds:
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(error="UNKNOWN_KIND", detail=f"Unknown resource kind: {kind}").model_dump(),
        )
    await scheduler.trigger(kind)
    current = next(s for s in scheduler.status() if s.kind == kind)
    return ReportTriggerResponse(kind=kind, cache_entries=current.cache_entries, last_error=current.last_error)
