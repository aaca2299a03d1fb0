import json
import logging
from typing import Any, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request

from quizzer.core.config import Settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Thin JSON cache over a redis client. Failures are logged and read as misses."""

    def __init__(self, client: redis.Redis, default_ttl: int = 3600):
        self.redis = client
        self.default_ttl = default_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCache":
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=settings.REDIS_DECODE_RESPONSES,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        return cls(client, default_ttl=settings.CACHE_TTL)

    async def close(self) -> None:
        """Close Redis connection."""
        await self.redis.aclose()

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def get(self, key: str, default: Any = None) -> Any:
        """Get value from cache."""
        try:
            value = await self.redis.get(key)
            if value is None:
                return default
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value
        except redis.RedisError as e:
            logger.error(f"Cache get error: {e}")
            return default

    async def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        """Set value in cache with expiration."""
        try:
            if isinstance(value, (dict, list)):
                value = json.dumps(value, default=str)
            return bool(await self.redis.set(key, value, ex=expire or self.default_ttl))
        except redis.RedisError as e:
            logger.error(f"Cache set error: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        """Delete keys from cache."""
        try:
            return await self.redis.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Cache delete error: {e}")
            return 0

    async def exists(self, *keys: str) -> int:
        try:
            return await self.redis.exists(*keys)
        except redis.RedisError as e:
            logger.error(f"Cache exists error: {e}")
            return 0

    # User profiles
    @staticmethod
    def user_key(user_id: Any) -> str:
        return f"user:{user_id}"

    async def get_user(self, user_id: Any) -> Optional[dict]:
        return await self.get(self.user_key(user_id))

    async def set_user(self, user_id: Any, profile: dict, expire: int) -> bool:
        return await self.set(self.user_key(user_id), profile, expire=expire)

    async def drop_user(self, user_id: Any) -> int:
        return await self.delete(self.user_key(user_id))

    # Token blacklist
    @staticmethod
    def blacklist_key(jti: str) -> str:
        return f"blacklist:token:{jti}"

    async def blacklist_token(self, jti: str, ttl: int) -> bool:
        if ttl <= 0:
            return False
        return await self.set(self.blacklist_key(jti), "blacklisted", expire=ttl)

    async def is_blacklisted(self, jti: str) -> bool:
        return await self.exists(self.blacklist_key(jti)) > 0

    # Rate limiting
    async def check_rate_limit(self, identifier: str, limit: int, window: int) -> Tuple[bool, int]:
        """Fixed-window counter. Returns (allowed, current count); fails open when redis is down."""
        key = f"rate_limit:{identifier}"
        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.ttl(key)
            current_count, ttl = await pipe.execute()
            if ttl < 0:
                await self.redis.expire(key, window)
            return current_count <= limit, current_count
        except redis.RedisError as e:
            logger.error(f"Rate limit check error: {e}")
            return True, 0


def get_cache(request: Request) -> RedisCache:
    return request.app.state.cache
