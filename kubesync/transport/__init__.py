"""RPC transport to the control plane.

Submodules:
    request  -- request envelope (headers + params) and handler names.
    response -- response envelope and result codes.
    client   -- httpx-based client posting requests to handlers.
    session  -- agent registration, heartbeat and close notice.
"""

from kubesync.transport.client import TransportClient, TransportError
from kubesync.transport.request import Handler, Request, SessionHandler, new_request
from kubesync.transport.response import Response
from kubesync.transport.session import AgentSession, RegistrationError

__all__ = [
    "AgentSession",
    "Handler",
    "RegistrationError",
    "Request",
    "Response",
    "SessionHandler",
    "TransportClient",
    "TransportError",
    "new_request",
]
