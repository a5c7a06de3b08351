"""
Rate limiting middleware for inbound API requests.

- N requests per minute per API key (API_REQUESTS_PER_MINUTE)
- Counters live in the shared cache, one key per key and minute
- Returns 429 Too Many Requests with Retry-After when the limit is hit
"""

import logging
from typing import Callable, Optional, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from supplier_catalog.core.cache import CacheBackend
from supplier_catalog.models import utcnow

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/", "/health", "/docs", "/openapi.json", "/redoc"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed one-minute window per API key.

    Requests without a key are rejected with 401 when `require_key` is set,
    otherwise counted under the client address.
    """

    def __init__(
        self,
        app,
        cache_provider: Callable[[], CacheBackend],
        requests_per_minute: int = 60,
        require_key: bool = True,
    ):
        super().__init__(app)
        self.cache_provider = cache_provider
        self.requests_per_minute = requests_per_minute
        self.require_key = require_key
        self.window_seconds = 60
        logger.info(f"Rate limiter initialized: {requests_per_minute} requests per minute")

    @staticmethod
    def _get_api_key(request: Request) -> Optional[str]:
        return request.headers.get("x-api-key")

    @staticmethod
    def _get_rate_limit_key(client_id: str) -> str:
        current_minute = utcnow().strftime("%Y-%m-%d-%H-%M")
        return f"rate_limit:{client_id}:{current_minute}"

    async def _check_rate_limit(self, client_id: str) -> Tuple[bool, int]:
        """
        Count this request against `client_id`.

        Returns:
            (allowed, count including this request)
        """
        cache = self.cache_provider()
        key = self._get_rate_limit_key(client_id)
        current_count = int(await cache.get(key) or 0)

        if current_count >= self.requests_per_minute:
            logger.warning(
                f"Rate limit exceeded for {client_id[:8]}***: {current_count}/{self.requests_per_minute}"
            )
            return False, current_count

        new_count = current_count + 1
        await cache.set(key, new_count, ttl=self.window_seconds)
        logger.debug(f"Rate limit check for {client_id[:8]}***: {new_count}/{self.requests_per_minute}")
        return True, new_count

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        api_key = self._get_api_key(request)
        if not api_key and self.require_key:
            host = request.client.host if request.client else "unknown"
            logger.warning(f"Request without API key from {host}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={
                    "error": "Missing API Key",
                    "detail": "x-api-key header is required",
                    "timestamp": utcnow().isoformat()
                }
            )

        client_id = api_key or (request.client.host if request.client else "anonymous")
        allowed, current_count = await self._check_rate_limit(client_id)
        limit = self.requests_per_minute

        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Rate Limit Exceeded",
                    "detail": f"Maximum {limit} requests per minute allowed",
                    "current_count": current_count,
                    "limit": limit,
                    "retry_after": self.window_seconds,
                    "timestamp": utcnow().isoformat()
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(self.window_seconds),
                    "Retry-After": str(self.window_seconds)
                }
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(limit - current_count)
        response.headers["X-RateLimit-Reset"] = str(self.window_seconds)
        return response
