"""Custom middleware for the API."""

import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from pushdeploy.utils.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
DEPLOYMENT_ID_HEADER = "X-Deployment-Id"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and tag its log lines with a request id."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        start = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            logger.debug(
                "request.started",
                method=request.method,
                path=request.url.path,
            )

            response = await call_next(request)

            # Streamed deploy responses are measured to the first byte
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.info(
                "request.completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                deployment_id=response.headers.get(DEPLOYMENT_ID_HEADER),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
