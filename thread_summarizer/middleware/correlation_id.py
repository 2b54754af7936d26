"""Correlation ID middleware so one summary request can be traced end to end."""

import uuid
from typing import Callable

import logfire
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with a correlation ID.

    An incoming ``X-Correlation-ID`` header is reused; otherwise a new UUID is
    generated. The ID is stored on ``request.state``, attached to a Logfire
    span wrapping the request, and echoed on the response. Page fetches and
    provider calls logged during the request inherit the span.
    """

    def __init__(self, app: ASGIApp, header_name: str = CORRELATION_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(self.header_name.lower()) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        with logfire.span(
            "summary request {method} {path}",
            method=request.method,
            path=request.url.path,
            correlation_id=correlation_id,
        ):
            response = await call_next(request)
        response.headers[self.header_name] = correlation_id
        return response
