"""
Cache backends for supplier data.

Two TTL classes are used by callers:
- catalog/style data (hours)
- inventory snapshots (minutes)

Values are JSON-compatible dicts. A failed lookup is never written, so a miss
always means "go upstream". Both backends share the same narrow interface,
so adapters and the sync pipeline never know which one they were given.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple
import json
import logging
import time

from redis import asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from supplier_catalog.core.config import Settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Key/value store with per-call TTL."""

    default_ttl: int = 600

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    def get_cache_key(self, prefix: str, *parts: Any) -> str:
        """
        Generate standardized cache key.

        Args:
            prefix: Operation name (e.g., "inv", "search")
            *parts: Parameters; strings are lower-cased and stripped

        Returns:
            Formatted cache key (e.g., "search:gildan:1")
        """
        normalized = [str(p).strip().lower() if isinstance(p, str) else str(p) for p in parts]
        return ":".join([prefix, *normalized])


class MemoryCache(CacheBackend):
    """
    In-process cache for a single worker.

    Expiry uses a monotonic clock which tests can replace. Expired entries
    are dropped when read, and swept from the whole map on writes at most
    once per `sweep_interval` seconds.
    """

    def __init__(
        self,
        default_ttl: int = 600,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, Tuple[float, str]] = {}
        self._next_sweep = 0.0

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache MISS: {key}")
            return None

        expires_at, payload = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            logger.debug(f"Cache EXPIRED: {key}")
            return None

        logger.debug(f"Cache HIT: {key}")
        # Every read returns a fresh copy.
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl_seconds = ttl if ttl is not None else self.default_ttl
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"JSON serialization error for key '{key}': {str(e)}")
            return False
        now = self._clock()
        self._sweep(now)
        self._entries[key] = (now + ttl_seconds, payload)
        logger.debug(f"Cache SET: {key} (TTL={ttl_seconds}s)")
        return True

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Cache swept {len(expired)} expired entries")
        self._next_sweep = now + self.sweep_interval

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache(CacheBackend):
    """
    Redis-backed cache shared by API workers and Celery workers.

    Redis errors are logged and treated as a miss; they never reach callers.
    """

    def __init__(self, settings: Settings, client: Optional[Redis] = None):
        self.host = settings.redis_host
        self.port = settings.redis_port
        self.db = settings.redis_db
        self.password = settings.redis_password
        self.default_ttl = settings.inventory_ttl_seconds
        self._redis_client: Optional[Redis] = client
        logger.info(f"Redis cache configured: {self.host}:{self.port}, DB={self.db}")

    async def connect(self) -> None:
        """
        Establish async connection to Redis.

        Raises:
            RedisError: If connection fails
        """
        if self._redis_client is None:
            try:
                self._redis_client = aioredis.from_url(
                    f"redis://{self.host}:{self.port}/{self.db}",
                    password=self.password if self.password else None,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=10,
                )
                await self._redis_client.ping()
                logger.info("✅ Redis connection established successfully")
            except RedisError as e:
                logger.error(f"❌ Failed to connect to Redis: {str(e)}")
                self._redis_client = None
                raise

    async def disconnect(self) -> None:
        if self._redis_client:
            await self._redis_client.aclose()
            self._redis_client = None
            logger.info("Redis connection closed")

    async def get(self, key: str) -> Optional[Any]:
        if not self._redis_client:
            logger.warning("Redis client not connected, skipping cache get")
            return None

        try:
            value = await self._redis_client.get(key)
        except RedisError as e:
            logger.error(f"Redis GET error for key '{key}': {str(e)}")
            return None

        if not value:
            logger.debug(f"Cache MISS: {key}")
            return None

        try:
            logger.debug(f"Cache HIT: {key}")
            return json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"JSON decode error for key '{key}': {str(e)}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._redis_client:
            logger.warning("Redis client not connected, skipping cache set")
            return False

        ttl_seconds = ttl if ttl is not None else self.default_ttl
        try:
            await self._redis_client.setex(key, ttl_seconds, json.dumps(value))
            logger.debug(f"Cache SET: {key} (TTL={ttl_seconds}s)")
            return True
        except RedisError as e:
            logger.error(f"Redis SET error for key '{key}': {str(e)}")
            return False
        except (TypeError, ValueError) as e:
            logger.error(f"JSON serialization error for key '{key}': {str(e)}")
            return False

    async def delete(self, key: str) -> bool:
        if not self._redis_client:
            return False

        try:
            result = await self._redis_client.delete(key)
            return result > 0
        except RedisError as e:
            logger.error(f"Redis DELETE error for key '{key}': {str(e)}")
            return False


def build_cache(settings: Settings) -> CacheBackend:
    """Pick the backend named by CACHE_BACKEND."""
    if settings.cache_backend == "redis":
        return RedisCache(settings)
    return MemoryCache(default_ttl=settings.inventory_ttl_seconds)
