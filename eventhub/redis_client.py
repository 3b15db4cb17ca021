from __future__ import annotations

from redis import Redis
from redis.connection import ConnectionPool

from eventhub.core.config import settings

_pool: ConnectionPool | None = None


def get_redis() -> Redis:
    global _pool
    if _pool is None:
        # Short timeouts: the rate limiter fails open rather than stalling requests.
        _pool = ConnectionPool.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=0.5,
            socket_timeout=0.5,
        )
    return Redis(connection_pool=_pool)


def close_redis() -> None:
    global _pool
    if _pool is not None:
        _pool.disconnect()
        _pool = None
