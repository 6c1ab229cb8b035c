import logging

from redis import RedisError
from redis.asyncio import Redis as AsyncRedis

from ..config import settings

logger = logging.getLogger("peak1031.redis")


def get_async_redis_client() -> AsyncRedis:
    redis_url = settings.redis_url
    if not redis_url:
        raise ValueError("REDIS_URL must be set")
    return AsyncRedis.from_url(redis_url, decode_responses=True)


class DistributedLock:
    """
    Cluster-wide lock built on Redis ``SET NX EX``.

    The TTL releases the lock if the holder dies; a live holder keeps it by
    calling :meth:`extend` before the TTL runs out.
    """

    def __init__(self, redis_client: AsyncRedis, lock_key: str, ttl_seconds: int = 30):
        self._redis = redis_client
        self._lock_key = f"lock:{lock_key}"
        self._ttl = ttl_seconds
        self._acquired = False

    @property
    def key(self) -> str:
        return self._lock_key

    @property
    def acquired(self) -> bool:
        return self._acquired

    async def acquire(self) -> bool:
        try:
            result = await self._redis.set(self._lock_key, "1", nx=True, ex=self._ttl)
        except RedisError as exc:
            logger.error("Redis operation failed operation=SET key=%s error=%s", self._lock_key, exc)
            return False
        self._acquired = bool(result)
        if self._acquired:
            logger.debug("Acquired lock: %s (TTL=%ds)", self._lock_key, self._ttl)
        return self._acquired

    async def release(self) -> bool:
        if not self._acquired:
            return False
        try:
            deleted = await self._redis.delete(self._lock_key)
        except RedisError as exc:
            logger.error("Redis operation failed operation=DEL key=%s error=%s", self._lock_key, exc)
            return False
        self._acquired = False
        return bool(deleted)

    async def extend(self) -> bool:
        if not self._acquired:
            return False
        try:
            result = await self._redis.expire(self._lock_key, self._ttl)
        except RedisError as exc:
            logger.error(
                "Redis operation failed operation=EXPIRE key=%s error=%s", self._lock_key, exc
            )
            return False
        return bool(result)
