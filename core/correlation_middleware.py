"""
Correlation ID Middleware

Tags every request to the trigger API with a correlation ID so the log
lines of a manual rescore or match evaluation can be followed end to end.
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.logging import get_logger, new_correlation_id, set_correlation_id

log = get_logger("http")


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Reuses an incoming X-Correlation-ID or mints a "req-" one, echoes it in
    the response headers, and logs one line per completed request.
    """

    HEADER_NAME = "X-Correlation-ID"

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(self.HEADER_NAME)
        if correlation_id:
            set_correlation_id(correlation_id)
        else:
            correlation_id = new_correlation_id("req-")

        started = time.perf_counter()
        response = await call_next(request)
        response.headers[self.HEADER_NAME] = correlation_id

        log.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response
