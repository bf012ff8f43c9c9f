"""HTTP middleware for the Vivero API."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

# Probes and the status ping are never throttled.
HEALTH_PATHS = frozenset({"/health", "/health/ready", "/health/live", "/api/status"})

WINDOW_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client sliding-window request limiter.

    Field devices and dashboards share one budget per source address. State is
    process-local; behind several instances each one enforces its own window.
    """

    _MAX_TRACKED_CLIENTS = 10_000

    def __init__(self, app: ASGIApp, *, requests_per_minute: int = 120) -> None:
        super().__init__(app)
        self._limit = requests_per_minute
        self._hits: dict[str, deque[float]] = {}

    def _evict_idle(self) -> None:
        by_last_seen = sorted(self._hits, key=lambda c: self._hits[c][-1] if self._hits[c] else 0)
        for client in by_last_seen[: len(by_last_seen) // 2]:
            del self._hits[client]

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path in HEALTH_PATHS:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        now = time.monotonic()

        hits = self._hits.get(client)
        if hits is None:
            if len(self._hits) >= self._MAX_TRACKED_CLIENTS:
                self._evict_idle()
            hits = self._hits[client] = deque()
        while hits and hits[0] <= now - WINDOW_SECONDS:
            hits.popleft()

        if len(hits) >= self._limit:
            logger.warning("Rate limit exceeded for %s on %s", client, request.url.path)
            return JSONResponse(
                {"detail": "Rate limit exceeded. Try again later."},
                status_code=429,
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

        hits.append(now)
        return await call_next(request)


__all__ = ["HEALTH_PATHS", "RateLimitMiddleware"]
