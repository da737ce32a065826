# sso/core/middleware.py
"""HTTP middleware: fixed-window rate limiting and security headers."""
import math
import time
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sso.core.errors import RateLimitError


class FixedWindowCounter:
    """
    Per-key request counter reset at fixed window boundaries.

    Windows are anchored to the first request seen for a key.
    """

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window = window_seconds
        self._clock = clock
        self._hits: dict[str, tuple[float, int]] = {}

    def hit(self, key: str) -> tuple[bool, int, int]:
        """
        Record one request for ``key``.

        Returns:
            (allowed, remaining, seconds until the window resets)
        """
        now = self._clock()
        start, count = self._hits.get(key, (now, 0))
        if now - start >= self.window:
            start, count = now, 0
        count += 1
        self._hits[key] = (start, count)

        # Drop stale windows so the map does not grow without bound
        if len(self._hits) > 10_000:
            self._hits = {k: v for k, v in self._hits.items() if now - v[0] < self.window}

        reset = max(0, math.ceil(start + self.window - now))
        return count <= self.limit, max(0, self.limit - count), reset


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies one fixed window per client address ahead of every route."""

    def __init__(self, app, limit: int = 100, window_seconds: int = 15 * 60):
        super().__init__(app)
        self.counter = FixedWindowCounter(limit, window_seconds)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client = request.client.host if request.client else "unknown"
        allowed, remaining, reset = self.counter.hit(client)
        headers = {
            "RateLimit-Limit": str(self.counter.limit),
            "RateLimit-Remaining": str(remaining),
            "RateLimit-Reset": str(reset),
        }
        if not allowed:
            err = RateLimitError()
            return JSONResponse(err.to_body(), status_code=err.status_code, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Locks the API down for browsers: no framing, no inline content."""

    HEADERS = {
        "Content-Security-Policy": (
            "default-src 'none'; connect-src 'self'; frame-ancestors 'none'; "
            "base-uri 'none'; form-action 'none'"
        ),
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "no-referrer",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self.HEADERS.items():
            response.headers.setdefault(name, value)
        return response
