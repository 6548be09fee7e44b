"""
API Middleware

Production middleware for:
- Request logging with a bound request context
- Rate limiting, with a tighter limit for the dashboard
"""

import asyncio
import time
import uuid
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from backoffice.config import get_settings
from backoffice.config.logging import bind_request_context, clear_request_context

logger = structlog.get_logger(__name__)

STORE_HEADER = "X-Store-ID"
DASHBOARD_PATH = "/api/v1/analytics/dashboard"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with timing; bind request id and store id for every log line."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        clear_request_context()
        bind_request_context(
            request_id=request_id,
            store_id=request.headers.get(STORE_HEADER) or get_settings().analytics.default_store_id,
        )

        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        response.headers["X-Request-ID"] = request_id
        clear_request_context()
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Every client gets ``max_requests`` per window across the API, and
    ``dashboard_max_requests`` per window on the dashboard route.
    """

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        dashboard_max_requests: Optional[int] = None,
    ):
        super().__init__(app)
        security = get_settings().security
        self.max_requests = max_requests or security.rate_limit_requests
        self.window_seconds = window_seconds or security.rate_limit_window_seconds
        self.dashboard_max_requests = dashboard_max_requests or security.dashboard_rate_limit
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def _bucket(self, request: Request) -> tuple:
        client_id = request.client.host if request.client else "unknown"
        if request.url.path.rstrip("/") == DASHBOARD_PATH:
            return f"{client_id}:dashboard", self.dashboard_max_requests
        return client_id, self.max_requests

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        bucket, limit = self._bucket(request)
        current_time = time.monotonic()

        async with self._lock:
            self._requests[bucket] = [
                t for t in self._requests[bucket]
                if current_time - t < self.window_seconds
            ]

            if len(self._requests[bucket]) >= limit:
                logger.warning(
                    "Rate limit exceeded",
                    bucket=bucket,
                    requests=len(self._requests[bucket]),
                )
                return JSONResponse(
                    {"success": False, "message": "Too many requests, please try again later."},
                    status_code=429,
                    headers={
                        "Retry-After": str(self.window_seconds),
                        "X-RateLimit-Limit": str(limit),
                        "X-RateLimit-Remaining": "0",
                    },
                )

            self._requests[bucket].append(current_time)
            remaining = limit - len(self._requests[bucket])

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
