"""
Request context middleware.

Generates or propagates X-Request-ID headers and stores request context
(request_id, acting principal) in ContextVars so log lines emitted anywhere
downstream can be tied to the request and the actor behind it.
"""

import time
import logging
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_actor_var: ContextVar[str] = ContextVar("actor", default="")


def get_request_id() -> str:
    """Get the current request ID from context."""
    return _request_id_var.get()


def get_actor() -> str:
    """Get the authenticated actor ("role:id") of the current request, if any."""
    return _actor_var.get()


def set_actor(actor: str) -> None:
    _actor_var.set(actor)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        token = _request_id_var.set(request_id)
        actor_token = _actor_var.set("")

        start_time = time.time()
        try:
            response = await call_next(request)
            duration_ms = round((time.time() - start_time) * 1000, 2)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "%s %s %s %.0fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={"duration_ms": duration_ms},
            )
        finally:
            _actor_var.reset(actor_token)
            _request_id_var.reset(token)

        return response
