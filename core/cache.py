"""
Redis client manager and result cache for the Landing Page Grader
Handles connection pooling, report caching by URL, and report storage by id
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import redis

from analyzer.report import AnalysisReport, ValidatedURL
from config import settings
from core.errors import CacheUnavailableError

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:analysis:"
REPORT_PREFIX = "analysis:"
LEAD_PREFIX = "lead:"


class RedisClient:
    """
    Redis connection manager with connection pooling.

    Unlike a best-effort helper, every operation raises CacheUnavailableError
    when Redis cannot be reached so callers can decide how to degrade.
    """

    def __init__(self, redis_url: Optional[str] = None):
        redis_url = redis_url or settings.REDIS_URL

        try:
            self.pool = redis.ConnectionPool.from_url(
                redis_url,
                max_connections=20,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)
            self.client.ping()
            logger.info(f"✅ Redis connected successfully: {redis_url}")
        except redis.RedisError as e:
            logger.error(f"❌ Redis connection failed: {str(e)}")
            raise CacheUnavailableError(f"Failed to connect to Redis: {str(e)}")

    def ping(self) -> bool:
        """Check if Redis is available"""
        try:
            return self.client.ping()
        except redis.RedisError:
            return False

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Store a value with optional TTL (Time To Live).

        Args:
            key: Redis key
            value: Value to store (JSON-encoded if not a string)
            ttl: Time to live in seconds (None or 0 = no expiration)
        """
        if not isinstance(value, str):
            value = json.dumps(value)

        try:
            if ttl:
                return bool(self.client.setex(key, ttl, value))
            return bool(self.client.set(key, value))
        except redis.RedisError as e:
            logger.error(f"Redis SET failed for key '{key}': {str(e)}")
            raise CacheUnavailableError(str(e))

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis GET failed for key '{key}': {str(e)}")
            raise CacheUnavailableError(str(e))

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except redis.RedisError as e:
            logger.error(f"Redis DELETE failed for key '{key}': {str(e)}")
            raise CacheUnavailableError(str(e))

    def push(self, key: str, value: Any, ttl: Optional[int] = None) -> int:
        """Append a JSON value to a list"""
        try:
            length = self.client.rpush(key, json.dumps(value))
            if ttl:
                self.client.expire(key, ttl)
            return length
        except redis.RedisError as e:
            logger.error(f"Redis RPUSH failed for key '{key}': {str(e)}")
            raise CacheUnavailableError(str(e))

    def clear_pattern(self, pattern: str) -> int:
        """Delete keys matching a pattern"""
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                return self.client.delete(*keys)
            return 0
        except redis.RedisError as e:
            logger.error(f"Redis clear failed for pattern '{pattern}': {str(e)}")
            raise CacheUnavailableError(str(e))

    def get_stats(self) -> dict:
        try:
            info = self.client.info()
            return {
                "connected_clients": info.get("connected_clients", 0),
                "used_memory_human": info.get("used_memory_human", "unknown"),
                "keyspace": info.get("keyspace", {}),
            }
        except redis.RedisError as e:
            logger.error(f"Failed to get Redis stats: {str(e)}")
            return {"error": str(e)}

    def close(self):
        """Close Redis connection pool"""
        try:
            self.pool.disconnect()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {str(e)}")


# Global Redis client instance
redis_client: Optional[RedisClient] = None


def get_redis_client() -> RedisClient:
    """Get or create the global Redis client instance"""
    global redis_client

    if redis_client is None:
        redis_client = RedisClient()

    return redis_client


def close_redis_client():
    """Close the global Redis client"""
    global redis_client

    if redis_client is not None:
        redis_client.close()
        redis_client = None


# ======================
# Cache backends
# ======================

class CacheBackend(ABC):
    """
    Key/value store of serialized values.

    A value is published with a single write, so readers see either the
    previous value or the complete new one.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def push(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def clear(self, prefix: str) -> int:
        ...

    async def ping(self) -> bool:
        return True


class RedisCacheBackend(CacheBackend):
    """Redis-backed store; sync redis-py calls run in a worker thread"""

    def __init__(self, client: Optional[RedisClient] = None):
        self._client = client

    def _redis(self) -> RedisClient:
        if self._client is None:
            self._client = get_redis_client()
        return self._client

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(lambda: self._redis().get(key))

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await asyncio.to_thread(lambda: self._redis().set(key, value, ttl=ttl))

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(lambda: self._redis().delete(key))

    async def push(self, key: str, value: Any) -> None:
        await asyncio.to_thread(lambda: self._redis().push(key, value, ttl=settings.REPORT_TTL))

    async def clear(self, prefix: str) -> int:
        return await asyncio.to_thread(lambda: self._redis().clear_pattern(f"{prefix}*"))

    async def ping(self) -> bool:
        try:
            return await asyncio.to_thread(lambda: self._redis().ping())
        except CacheUnavailableError:
            return False


class MemoryCacheBackend(CacheBackend):
    """In-process store for local runs and tests; expiry is not applied"""

    def __init__(self):
        self._values: Dict[str, str] = {}
        self._lists: Dict[str, List[Any]] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> bool:
        return self._values.pop(key, None) is not None

    async def push(self, key: str, value: Any) -> None:
        self._lists.setdefault(key, []).append(value)

    async def clear(self, prefix: str) -> int:
        keys = [k for k in self._values if k.startswith(prefix)]
        for key in keys:
            del self._values[key]
        return len(keys)

    def items(self, key: str) -> List[Any]:
        return list(self._lists.get(key, []))


def create_cache_backend(kind: Optional[str] = None) -> CacheBackend:
    kind = (kind or settings.CACHE_BACKEND).lower()
    if kind == "memory":
        return MemoryCacheBackend()
    if kind == "redis":
        return RedisCacheBackend()
    raise ValueError(f"Unknown cache backend: {kind}")


# ======================
# Result cache and report store
# ======================

class ResultCache:
    """
    Reports keyed by normalized URL.

    An unreachable store behaves as a miss on read and a skipped write on put;
    it never fails the run. Concurrent puts for one key are last-write-wins.
    """

    def __init__(self, backend: CacheBackend, ttl: Optional[int] = None):
        self.backend = backend
        self.ttl = settings.CACHE_TTL if ttl is None else ttl

    @staticmethod
    def key_for(url: ValidatedURL) -> str:
        return f"{CACHE_PREFIX}{url.cache_key}"

    async def get(self, url: ValidatedURL) -> Optional[AnalysisReport]:
        try:
            payload = await self.backend.get(self.key_for(url))
        except CacheUnavailableError as e:
            logger.warning(f"⚠️  Cache unavailable on read, treating as miss: {e}")
            return None

        if payload is None:
            return None

        try:
            return AnalysisReport.from_json(payload)
        except ValueError as e:
            logger.warning(f"⚠️  Discarding unreadable cache entry for {url}: {e}")
            return None

    async def put(self, url: ValidatedURL, report: AnalysisReport) -> bool:
        try:
            await self.backend.set(self.key_for(url), report.to_json(), ttl=self.ttl or None)
            logger.info(f"💾 Cached report {report.analysis_id} for {url}")
            return True
        except CacheUnavailableError as e:
            logger.warning(f"⚠️  Cache unavailable on write, result not cached: {e}")
            return False

    async def invalidate(self, url: ValidatedURL) -> bool:
        try:
            return await self.backend.delete(self.key_for(url))
        except CacheUnavailableError as e:
            logger.warning(f"⚠️  Cache unavailable on invalidate: {e}")
            return False

    async def clear(self) -> int:
        return await self.backend.clear(CACHE_PREFIX)


class ReportStore:
    """Reports keyed by analysis id, plus the email leads captured for them"""

    def __init__(self, backend: CacheBackend, ttl: Optional[int] = None):
        self.backend = backend
        self.ttl = settings.REPORT_TTL if ttl is None else ttl

    async def save(self, report: AnalysisReport) -> bool:
        try:
            await self.backend.set(f"{REPORT_PREFIX}{report.analysis_id}", report.to_json(), ttl=self.ttl or None)
            return True
        except CacheUnavailableError as e:
            logger.warning(f"⚠️  Report {report.analysis_id} not stored: {e}")
            return False

    async def get(self, analysis_id: str) -> Optional[AnalysisReport]:
        payload = await self.backend.get(f"{REPORT_PREFIX}{analysis_id}")
        if payload is None:
            return None
        return AnalysisReport.from_json(payload)

    async def add_lead(self, analysis_id: str, email: str) -> None:
        await self.backend.push(f"{LEAD_PREFIX}{analysis_id}", {"email": email})


# Global cache instances (shared across concurrent runs in one process)
_backend: Optional[CacheBackend] = None


def get_cache_backend() -> CacheBackend:
    global _backend

    if _backend is None:
        _backend = create_cache_backend()

    return _backend


def get_result_cache() -> ResultCache:
    return ResultCache(get_cache_backend())


def get_report_store() -> ReportStore:
    return ReportStore(get_cache_backend())
