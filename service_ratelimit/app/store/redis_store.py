"""
Redis backed counter store.
"""

import asyncio
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.config import BaseConfig, get_config
from shared.errors import StoreUnavailable
from shared.logging import get_logger
from .base import CounterStore


# Failures that mean the store could not answer
STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisStore(CounterStore):
    """Counter store on top of a shared Redis instance."""

    # KEYS[1]=key ARGV[1]=expected ARGV[2]=expect-absent flag ARGV[3]=new value ARGV[4]=ttl
    COMPARE_AND_SET_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if ARGV[2] == '1' then
  if current then
    return 0
  end
elseif current ~= ARGV[1] then
  return 0
end
redis.call('SET', KEYS[1], ARGV[3], 'EX', tonumber(ARGV[4]))
return 1
"""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None,
                 config: Optional[BaseConfig] = None):
        self.config = config or get_config()
        self.redis_url = redis_url or self.config.redis_url
        self.logger = get_logger("ratelimit.store.redis")
        self._redis: Optional[redis.Redis] = client
        self._cas_script = None

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.config.redis_connect_timeout,
                socket_timeout=self.config.redis_socket_timeout,
                health_check_interval=self.config.redis_health_check_interval
            )
        return self._redis

    def _get_cas_script(self):
        """Register the compare-and-set script once per client."""
        if self._cas_script is None:
            self._cas_script = self._get_redis().register_script(self.COMPARE_AND_SET_SCRIPT)
        return self._cas_script

    def _unavailable(self, operation: str, key: str, error: Exception) -> StoreUnavailable:
        self.logger.error("Redis operation failed", operation=operation, key=key, error=str(error))
        return StoreUnavailable(
            f"Redis {operation} failed: {error}",
            details={"operation": operation, "key": key}
        )

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._get_redis().get(key)
        except STORE_ERRORS as e:
            raise self._unavailable("get", key, e) from e

        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def compare_and_set(self, key: str, expected: Optional[str], new_value: str, ttl: int) -> bool:
        script = self._get_cas_script()
        args = [
            "" if expected is None else expected,
            "1" if expected is None else "0",
            new_value,
            int(ttl),
        ]
        try:
            result = await script(keys=[key], args=args)
        except STORE_ERRORS as e:
            raise self._unavailable("compare_and_set", key, e) from e

        return int(result) == 1

    async def initialize_if_absent(self, key: str, initial_value: str, ttl: int) -> bool:
        try:
            created = await self._get_redis().set(key, initial_value, ex=int(ttl), nx=True)
        except STORE_ERRORS as e:
            raise self._unavailable("initialize_if_absent", key, e) from e

        return bool(created)

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._get_redis().delete(key)
        except STORE_ERRORS as e:
            raise self._unavailable("delete", key, e) from e

        return int(removed) > 0

    async def ttl(self, key: str) -> Optional[float]:
        try:
            remaining = await self._get_redis().ttl(key)
        except STORE_ERRORS as e:
            raise self._unavailable("ttl", key, e) from e

        # -2: key absent, -1: no expiry
        if remaining is None or remaining < 0:
            return None
        return float(remaining)

    async def ping(self) -> bool:
        """Check Redis health."""
        try:
            await self._get_redis().ping()
            return True
        except STORE_ERRORS:
            return False

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self._cas_script = None
            self.logger.info("Redis store closed")


_default_store: Optional[RedisStore] = None


def get_default_store() -> RedisStore:
    """Process-wide store built from REDIS_URL, or the local default endpoint."""
    global _default_store
    if _default_store is None:
        _default_store = RedisStore()
    return _default_store


async def close_default_store() -> None:
    """Close and forget the process-wide store."""
    global _default_store
    if _default_store is not None:
        await _default_store.close()
        _default_store = None
