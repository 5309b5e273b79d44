"""HTTP middleware for request correlation.

Bind a request ID (plus method and path) to the structlog context for the
duration of each request, so the health check log line and any error logged
while serving it can be correlated with the caller's probe.
"""

import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import bind_contextvars, clear_contextvars

REQUEST_ID_HEADER = "X-Request-ID"


class RequestCorrelationMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID to every request and response.

    Reuse the ``X-Request-ID`` supplied by the load balancer or orchestrator
    when present, otherwise generate a UUID4.
    """

    async def dispatch(self, request: Request, call_next):
        # Context may survive across tasks; start every request clean.
        clear_contextvars()

        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
