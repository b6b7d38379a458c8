"""
Redis connection wrapper

Backs the shared MFA pending-token store for multi-instance deployments and
the health check.
"""

import json
from typing import Any, Optional
from redis import Redis, ConnectionPool

from admin_auth.core.config import settings


class RedisClient:
    """Redis client wrapper for pending-token storage"""

    def __init__(self, url: Optional[str] = None):
        self.pool = ConnectionPool.from_url(
            url or settings.REDIS_URL,
            max_connections=settings.REDIS_POOL_SIZE,
            decode_responses=True
        )
        self.client = Redis(connection_pool=self.pool)

    def get(self, key: str) -> Optional[str]:
        """Get value by key"""
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set value with optional TTL (seconds)"""
        return self.client.set(key, value, ex=ttl)

    def delete(self, key: str) -> int:
        """Delete key"""
        return self.client.delete(key)

    def getdel(self, key: str) -> Optional[str]:
        """Atomically read and delete a key"""
        return self.client.getdel(key)

    def ttl(self, key: str) -> int:
        """Get remaining TTL"""
        return self.client.ttl(key)

    def ping(self) -> bool:
        return bool(self.client.ping())

    # JSON helpers
    def get_json(self, key: str) -> Optional[dict]:
        raw = self.get(key)
        return json.loads(raw) if raw else None

    def set_json(self, key: str, data: Any, ttl: Optional[int] = None) -> bool:
        return self.set(key, json.dumps(data), ttl=ttl)

    def close(self):
        """Close Redis connection"""
        self.client.close()
        self.pool.disconnect()


_redis_client: Optional[RedisClient] = None


def get_redis() -> RedisClient:
    """Return the lazily created process-wide Redis client"""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client


def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
