"""Response cache and real-time counters.

Redis when it is configured and reachable at startup, otherwise an
in-process store with the same semantics. The choice is made once in
`ResponseCache.open()` and never revisited per request.
"""

import fnmatch
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import redis.asyncio as redis_async
from redis.exceptions import RedisError

from chat_relay.logging_config import get_logger

logger = get_logger("cache_service")


class CacheBackend(ABC):
    name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def flush_all(self) -> None:
        ...

    @abstractmethod
    async def increment(self, key: str) -> int:
        ...

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> None:
        ...

    @abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryCacheBackend(CacheBackend):
    """Dict-backed store; expiry is checked lazily on read."""

    name = "memory"

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[tuple[str, Optional[float]]]:
        item = self._store.get(key)
        if item is None:
            return None
        _, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            self._store.pop(key, None)
            return None
        return item

    async def get(self, key: str) -> Optional[str]:
        item = self._live(key)
        return item[0] if item else None

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._store[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def flush_all(self) -> None:
        self._store.clear()

    async def increment(self, key: str) -> int:
        item = self._live(key)
        current = int(item[0]) if item else 0
        expires_at = item[1] if item else None
        value = current + 1
        # Like Redis INCR, the remaining TTL is kept.
        self._store[key] = (str(value), expires_at)
        return value

    async def expire(self, key: str, seconds: int) -> None:
        item = self._live(key)
        if item is not None:
            self._store[key] = (item[0], self._clock() + seconds)

    async def keys(self, pattern: str) -> list[str]:
        return [key for key in list(self._store) if self._live(key) and fnmatch.fnmatchcase(key, pattern)]


class RedisCacheBackend(CacheBackend):
    name = "redis"

    def __init__(self, client: redis_async.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout_seconds: float = 2.0) -> "RedisCacheBackend":
        client = redis_async.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout_seconds,
            socket_connect_timeout=socket_timeout_seconds,
        )
        return cls(client)

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            await self._client.setex(key, ttl_seconds, value)
        else:
            await self._client.set(key, value)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def flush_all(self) -> None:
        await self._client.flushall()

    async def increment(self, key: str) -> int:
        return int(await self._client.incr(key))

    async def expire(self, key: str, seconds: int) -> None:
        await self._client.expire(key, seconds)

    async def keys(self, pattern: str) -> list[str]:
        return [key async for key in self._client.scan_iter(match=pattern)]

    async def close(self) -> None:
        await self._client.aclose()


class ResponseCache:
    """JSON-valued cache facade. Backend errors are logged and read as misses."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        socket_timeout_seconds: float = 2.0,
        backend: Optional[CacheBackend] = None,
    ) -> None:
        self.redis_url = redis_url
        self.socket_timeout_seconds = socket_timeout_seconds
        self.backend: Optional[CacheBackend] = backend

    async def open(self) -> None:
        if self.backend is not None:
            return
        if not self.redis_url:
            logger.warning("REDIS_URL not configured - using in-memory cache")
            self.backend = MemoryCacheBackend()
            return

        candidate = RedisCacheBackend.from_url(self.redis_url, socket_timeout_seconds=self.socket_timeout_seconds)
        try:
            await candidate.ping()
        except (RedisError, OSError) as exc:
            logger.warning("Redis unreachable - falling back to in-memory cache", extra={"context": {"error": str(exc)}})
            await candidate.close()
            self.backend = MemoryCacheBackend()
            return
        self.backend = candidate
        logger.info("Connected to Redis")

    @property
    def backend_name(self) -> str:
        return self.backend.name if self.backend else "closed"

    @property
    def is_redis(self) -> bool:
        return isinstance(self.backend, RedisCacheBackend)

    def _require_backend(self) -> CacheBackend:
        if self.backend is None:
            raise RuntimeError("ResponseCache is not open")
        return self.backend

    async def get(self, key: str) -> Optional[Any]:
        backend = self._require_backend()
        try:
            raw = await backend.get(key)
        except (RedisError, OSError) as exc:
            logger.warning("Cache read failed", extra={"context": {"key": key, "error": str(exc)}})
            return None
        if raw is None:
            logger.debug("Cache MISS", extra={"context": {"key": key}})
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Cache value is not JSON - evicting", extra={"context": {"key": key}})
            await self.delete(key)
            return None
        logger.debug("Cache HIT", extra={"context": {"key": key}})
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = 3600) -> bool:
        backend = self._require_backend()
        try:
            await backend.set(key, json.dumps(value, ensure_ascii=False), ttl_seconds)
        except (RedisError, OSError) as exc:
            logger.warning("Cache write failed", extra={"context": {"key": key, "error": str(exc)}})
            return False
        return True

    async def delete(self, key: str) -> bool:
        backend = self._require_backend()
        try:
            await backend.delete(key)
        except (RedisError, OSError) as exc:
            logger.warning("Cache delete failed", extra={"context": {"key": key, "error": str(exc)}})
            return False
        return True

    async def flush_all(self) -> bool:
        backend = self._require_backend()
        try:
            await backend.flush_all()
        except (RedisError, OSError) as exc:
            logger.warning("Cache flush failed", extra={"context": {"error": str(exc)}})
            return False
        logger.info("Cache flushed")
        return True

    async def increment(self, counter_key: str) -> Optional[int]:
        backend = self._require_backend()
        try:
            return await backend.increment(counter_key)
        except (RedisError, OSError, ValueError) as exc:
            logger.warning("Counter increment failed", extra={"context": {"key": counter_key, "error": str(exc)}})
            return None

    async def expire(self, counter_key: str, seconds: int) -> bool:
        backend = self._require_backend()
        try:
            await backend.expire(counter_key, seconds)
        except (RedisError, OSError) as exc:
            logger.warning("Counter expire failed", extra={"context": {"key": counter_key, "error": str(exc)}})
            return False
        return True

    async def get_counter(self, counter_key: str) -> int:
        backend = self._require_backend()
        try:
            raw = await backend.get(counter_key)
        except (RedisError, OSError):
            return 0
        try:
            return int(raw) if raw is not None else 0
        except ValueError:
            return 0

    async def scan_counters(self, pattern: str) -> list[str]:
        backend = self._require_backend()
        try:
            return await backend.keys(pattern)
        except (RedisError, OSError) as exc:
            logger.warning("Counter scan failed", extra={"context": {"pattern": pattern, "error": str(exc)}})
            return []

    async def ping(self) -> bool:
        if self.backend is None:
            return False
        try:
            return await self.backend.ping()
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        if self.backend is not None:
            await self.backend.close()
            self.backend = None
