"""
FastAPI middleware for request logging and error handling.
"""

import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.error_handling import register_exception_handlers
from app.core.logging import (
    performance_event_logger,
    generate_request_id,
    get_client_ip
)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request tracing and performance logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        response_time = time.time() - start_time

        performance_event_logger.log_request(
            method=request.method,
            endpoint=request.url.path,
            status_code=response.status_code,
            response_time=response_time,
            user_id=getattr(request.state, "user_id", None),
            client_ip=get_client_ip(request),
            request_id=request_id
        )

        response.headers["X-Request-ID"] = request_id
        return response


def setup_middleware(app: FastAPI):
    """Setup all middleware for the application."""

    register_exception_handlers(app)

    app.add_middleware(RequestLoggingMiddleware)
