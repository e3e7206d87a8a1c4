"""
HTTP middleware components for request/response processing.

This module provides middleware for unexpected-error handling and for
request ids, timing and access logging.
"""

import logging
import time
import uuid
from typing import Awaitable, Callable, Dict

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turn exceptions that escaped every handler into a logged 500."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        try:
            return await call_next(request)

        except Exception as e:
            logger.exception(
                f"Unhandled error in {request.method} {request.url.path}: {e}")

            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "message": str(e) if request.app.debug else "An unexpected error occurred",
                    "request_id": getattr(request.state, "request_id", None)
                }
            )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign request ids, time requests and write access log records."""

    def __init__(self, app: Callable[..., Awaitable[None]], slow_request_threshold: float = 5.0) -> None:
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold
        self.metrics: Dict[str, float] = {
            "request_count": 0,
            "total_time": 0.0,
            "slow_requests": 0,
        }

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        self.metrics["request_count"] += 1
        self.metrics["total_time"] += duration
        if duration > self.slow_request_threshold:
            self.metrics["slow_requests"] += 1
            logger.warning(f"Slow request {request.method} {request.url.path}: {duration:.3f}s")

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        self._log_access(request, response, duration, request_id)
        return response

    def _log_access(self, request: Request, response: Response, duration: float, request_id: str) -> None:
        from ...infrastructure.logging.setup import LoggingManager

        container = getattr(request.app.state, "container", None)
        logging_manager = container.try_resolve(LoggingManager) if container else None
        if logging_manager is None:
            return

        logging_manager.log_access(
            f"{request.method} {request.url.path} {response.status_code}",
            duration=duration,
            status_code=response.status_code,
            request_id=request_id,
            sequence=request.headers.get("Moteve-Sequence"),
        )
