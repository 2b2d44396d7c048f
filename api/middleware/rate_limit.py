"""
Rate limiting middleware for CarBot API.

Sliding-window counter per client (API key or IP). Request timestamps
are kept in an injected CacheStore rather than a module-level dict.
"""

import logging
import time
from typing import Callable, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..cache import CacheStore, LocalCacheStore

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiter."""

    EXEMPT_PATHS = ("/health", "/metrics", "/docs", "/openapi.json")

    def __init__(
        self,
        app,
        requests_per_minute: int = 100,
        store: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = 60
        self.store = store if store is not None else LocalCacheStore(default_ttl=self.window_seconds)
        self._clock = clock

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        client_id = self._get_client_id(request)
        key = f"ratelimit:{client_id}"
        now = self._clock()

        # Drop timestamps outside the window
        window_start = now - self.window_seconds
        hits: List[float] = [t for t in (self.store.get(key) or []) if t > window_start]

        if len(hits) >= self.requests_per_minute:
            logger.warning(f"Rate limit exceeded for {client_id}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": str(self.window_seconds)},
            )

        hits.append(now)
        self.store.set(key, hits, ttl=self.window_seconds)
        response = await call_next(request)

        remaining = self.requests_per_minute - len(hits)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))

        return response

    def _get_client_id(self, request: Request) -> str:
        """Identify client by API key, auth token, or IP."""
        api_key = request.headers.get("X-API-Key")
        if api_key:
            return f"key:{api_key[:8]}"

        auth = request.headers.get("Authorization")
        if auth and auth.startswith("Bearer "):
            return f"token:{auth[7:15]}"

        return f"ip:{request.client.host}" if request.client else "ip:unknown"
