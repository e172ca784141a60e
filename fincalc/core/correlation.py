"""
Correlation ID Middleware

Assigns every request a correlation id (taken from the incoming header when
present and well formed), binds it into the structlog context for the
duration of the request, tags the active span with it and echoes it back in
the response headers.
"""

import re
import uuid
from typing import Awaitable, Callable

import structlog
from fastapi import Request
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

logger = structlog.get_logger()

_CORRELATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,128}$")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Propagates x-correlation-id through logs, spans and responses."""

    def __init__(self, app: ASGIApp, header_name: str = "x-correlation-id"):
        super().__init__(app)
        self.header_name = header_name.lower()

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = self._extract_or_generate(request)

        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
        trace.get_current_span().set_attribute("correlation_id", correlation_id)

        try:
            logger.debug("Request started", method=request.method, path=request.url.path)
            response = await call_next(request)
            response.headers[self.header_name] = correlation_id
            logger.debug("Request completed", status_code=response.status_code)
            return response
        finally:
            structlog.contextvars.unbind_contextvars("correlation_id")

    def _extract_or_generate(self, request: Request) -> str:
        incoming = request.headers.get(self.header_name)
        if incoming and _CORRELATION_ID_PATTERN.match(incoming):
            return incoming
        if incoming:
            logger.warning("Ignoring malformed correlation id", header=self.header_name)
        return str(uuid.uuid4())
