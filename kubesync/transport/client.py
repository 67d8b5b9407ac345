"""HTTP client invoking control plane handlers.

Each call POSTs the flattened request body as JSON to
``http://<endpoint>/<handler>`` and parses the response envelope. Anything
short of an HTTP 200 with a JSON object body raises :class:`TransportError`;
interpreting ``success`` is left to the caller.
"""

from __future__ import annotations

import gzip
import json
import time

import httpx
import structlog

from kubesync.transport.request import TIMESTAMP_PARAM, Request
from kubesync.transport.response import Response

_log = structlog.get_logger(component="transport.client")


class TransportError(Exception):
    """Raised when a handler could not be invoked or answered garbage."""

    def __init__(self, handler: str, message: str) -> None:
        super().__init__(f"invoke {handler} failed: {message}")
        self.handler = handler


def _base_url(endpoint: str) -> str:
    if not endpoint:
        raise ValueError("Transport endpoint must not be empty")
    if "://" in endpoint:
        return endpoint.rstrip("/")
    return f"http://{endpoint}"


class TransportClient:
    """Async client for the control plane's handler endpoints.

    Args:
        endpoint: ``host:port`` or a full base URL.
        timeout:  per-request timeout in seconds.
        compress: gzip request bodies.
        client:   pre-built ``httpx.AsyncClient``; used by tests to inject
                  a mock transport.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        compress: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = _base_url(endpoint)
        self._compress = compress
        self._client = client or httpx.AsyncClient(base_url=self._base_url, timeout=timeout, verify=False)
        self._owns_client = client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def invoke(self, handler: str, request: Request) -> Response:
        request.add_param(TIMESTAMP_PARAM, str(int(time.time() * 1000)))
        content = json.dumps(request.body(), ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._compress:
            content = gzip.compress(content)
            headers["Content-Encoding"] = "gzip"

        url = f"{self._base_url}/{handler}"
        try:
            response = await self._client.post(url, content=content, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransportError(handler, f"timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(handler, str(exc)) from exc

        if response.status_code != httpx.codes.OK:
            raise TransportError(handler, f"status {response.status_code}, body: {response.text[:200]}")
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError(handler, f"undecodable response: {exc}") from exc
        if not isinstance(data, dict):
            raise TransportError(handler, f"unexpected response type {type(data).__name__}")

        _log.debug("handler_invoked", handler=handler, status=response.status_code, size=len(content))
        return Response.from_dict(data)

    async def stop(self) -> None:
        """Close the underlying connection pool if this client created it."""
        if self._owns_client:
            await self._client.aclose()
