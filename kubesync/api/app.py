"""FastAPI application factory for kubesync.

Usage::

    from kubesync.api.app import create_app

    app = create_app(scheduler=scheduler, agent=agent)

Used by both the production bootstrap (``kubesync.app``) and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kubesync.api.routes import router
from kubesync.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(scheduler: Any, agent: Any = None, session: Any = None) -> FastAPI:
    """Create and configure the kubesync FastAPI application.

    Args:
        scheduler: ReportScheduler driving the collectors.
        agent:     AgentInfo shared with the reporters.
        session:   AgentSession holding registration and heartbeat state.
    """
    from kubesync import __version__

    app = FastAPI(
        title="kubesync",
        summary="Kubernetes resource synchronization agent",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )

    app.state.scheduler = scheduler
    app.state.agent = agent
    app.state.session = session

    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
