"""Request/response logging middleware"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request with status and duration; flag slow ones"""

    def __init__(self, app, slow_request_seconds: float = 2.0, skip_paths: tuple[str, ...] = ("/health/live",)):
        super().__init__(app)
        self.slow_request_seconds = slow_request_seconds
        self.skip_paths = frozenset(skip_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed = round(time.perf_counter() - started, 4)

        response.headers["X-Process-Time"] = str(elapsed)
        if request.url.path in self.skip_paths:
            return response

        fields = {
            "request_id": getattr(request.state, "request_id", None),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration": elapsed,
            "client_host": request.client.host if request.client else None,
        }
        if elapsed > self.slow_request_seconds:
            logger.warning(f"Slow request {request.method} {request.url.path} took {elapsed}s", extra=fields)
        else:
            logger.info(f"{request.method} {request.url.path} -> {response.status_code}", extra=fields)
        return response
