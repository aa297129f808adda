"""
config/redis_client.py
Async Redis client for the JWT deny-list and the unauthenticated
rate limiter. Both uses fail open: a Redis outage never blocks a request.
"""

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config.settings import settings

logger = logging.getLogger(__name__)

# ── Global client (initialized on startup) ───────────────────
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    """Initialize the Redis connection pool."""
    global redis_client
    redis_client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    # Test connection
    await redis_client.ping()


async def close_redis() -> None:
    """Close Redis connection pool."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
    redis_client = None


def get_redis() -> Optional[aioredis.Redis]:
    """FastAPI dependency. None when Redis could not be reached at startup."""
    return redis_client


# ── Helpers ───────────────────────────────────────────────────
class RedisCache:
    """Helper class for the few Redis patterns the API relies on."""

    def __init__(self, client: Optional[aioredis.Redis]):
        self.client = client

    # ── JWT Deny List ─────────────────────────────────────────
    async def revoke_token(self, jti: str, ttl_seconds: int) -> bool:
        """Add JWT ID to deny list until it expires. Returns False if Redis is down."""
        if self.client is None:
            return False
        try:
            await self.client.setex(f"jwt_revoked:{jti}", ttl_seconds, "1")
        except RedisError as e:
            logger.warning("Could not deny-list token %s: %s", jti, e)
            return False
        return True

    async def is_token_revoked(self, jti: str) -> bool:
        if self.client is None:
            return False
        try:
            return await self.client.exists(f"jwt_revoked:{jti}") == 1
        except RedisError as e:
            logger.warning("Deny-list lookup failed, allowing token: %s", e)
            return False

    # ── Rate Limiting ─────────────────────────────────────────
    async def check_rate_limit(self, key: str, limit: int, window_seconds: int = 60) -> bool:
        """
        Fixed window rate limiter.
        Returns True if request is allowed, False if rate limited.
        """
        if self.client is None:
            return True
        try:
            current_count = await self.client.incr(key)
            if current_count == 1:
                await self.client.expire(key, window_seconds)
        except RedisError as e:
            logger.warning("Rate limiter unavailable, allowing request: %s", e)
            return True
        return current_count <= limit
