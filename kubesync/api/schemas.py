"""Pydantic response models for the REST API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    detail: str = ""


class PingResponse(BaseModel):
    status: str = "ok"
    version: str
    cluster_id: str = ""


class CollectorStatusResponse(BaseModel):
    kind: str
    enabled: bool
    cache_entries: int
    last_started: datetime | None = None
    last_finished: datetime | None = None
    last_error: str = ""


class StatusResponse(BaseModel):
    agent_id: str = ""
    cluster_id: str = ""
    cluster_name: str = ""
    agent_ip: str = ""
    registered: bool = False
    last_heartbeat: datetime | None = None
    last_heartbeat_ok: bool | None = None
    scheduler_running: bool
    collectors: list[CollectorStatusResponse]


class ReportTriggerResponse(BaseModel):
    kind: str
    triggered: bool = True
    cache_entries: int
    last_error: str = ""
