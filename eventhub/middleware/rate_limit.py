from __future__ import annotations

import time

from fastapi import Request
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from eventhub.core.config import settings
from eventhub.redis_client import get_redis

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def _parse_rate(rate: str) -> tuple[int, int]:
    """
    Parse formats like:
      - "30/minute"
      - "120/hour"
      - "10/second"
    Returns: (limit, window_seconds)
    """
    raw = rate.strip().lower()
    if "/" not in raw:
        raise ValueError(f"Invalid rate format: {rate}")

    limit_str, window_str = raw.split("/", 1)
    limit = int(limit_str)

    window_str = window_str.strip()
    if window_str in {"sec", "second", "seconds"}:
        return limit, 1
    if window_str in {"min", "minute", "minutes"}:
        return limit, 60
    if window_str in {"hour", "hours"}:
        return limit, 3600
    if window_str in {"day", "days"}:
        return limit, 86400

    raise ValueError(f"Invalid rate window: {window_str}")


def _client_identity(request: Request) -> str:
    # Bearer tokens identify a caller better than a shared NAT address.
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer ") and len(auth) > len("Bearer "):
        return f"token:{auth.removeprefix('Bearer ').strip()[-32:]}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window limit on write requests; reads and the push socket are never limited."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if not settings.rate_limit_enabled or request.method not in WRITE_METHODS:
            return await call_next(request)

        path = request.url.path
        if path in set(settings.rate_limit_exempt_paths):
            return await call_next(request)

        try:
            limit, window_seconds = _parse_rate(settings.rate_limit_default)
        except ValueError:
            # Misconfigured rate => fail open
            return await call_next(request)

        now = int(time.time())
        bucket = now // window_seconds
        key = f"rl:{_client_identity(request)}:{window_seconds}:{bucket}"

        try:
            r = get_redis()
            pipe = r.pipeline()
            pipe.incr(key)
            pipe.expire(key, window_seconds)
            count, _ = pipe.execute()
        except RedisError:
            # Fail open if Redis is unavailable
            return await call_next(request)

        remaining = max(0, limit - int(count))
        reset = (bucket + 1) * window_seconds

        if count > limit:
            return JSONResponse(
                status_code=429,
                content={"detail": {"code": "RATE_LIMITED", "message": "rate limit exceeded"}},
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset),
                    "Retry-After": str(max(0, reset - now)),
                },
            )

        response = await call_next(request)
        response.headers.setdefault("X-RateLimit-Limit", str(limit))
        response.headers.setdefault("X-RateLimit-Remaining", str(remaining))
        response.headers.setdefault("X-RateLimit-Reset", str(reset))
        return response
