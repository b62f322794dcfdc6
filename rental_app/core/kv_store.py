import asyncio
import logging
import time
from typing import Optional

from redis.asyncio import from_url
from tenacity import retry, stop_after_attempt, wait_exponential

from .settings import settings

logger = logging.getLogger(__name__)


_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class KeyValueStore:
    """TTL key-value capability used for booking holds and property mutexes."""

    async def connect(self):
        return None

    async def close(self):
        return None

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str, ttl: int) -> None:
        raise NotImplementedError

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def delete_if_equals(self, key: str, value: str) -> bool:
        raise NotImplementedError


class InMemoryKVStore(KeyValueStore):
    def __init__(self, clock=time.monotonic):
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _alive(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            self._data.pop(key, None)
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._alive(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        async with self._lock:
            self._data[key] = (value, self._clock() + ttl)

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        async with self._lock:
            if self._alive(key) is not None:
                return False
            self._data[key] = (value, self._clock() + ttl)
            return True

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        async with self._lock:
            if self._alive(key) != value:
                return False
            self._data.pop(key, None)
            return True


class RedisKVStore(KeyValueStore):
    def __init__(self, url: str, namespace: str = "rental"):
        self.url = url
        self.namespace = namespace
        self.redis = None

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @retry(
        stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=10)
    )
    async def connect(self):
        if self.redis is None:
            logger.info("Connecting to Redis key-value store...")
            self.redis = from_url(self.url, encoding="utf-8", decode_responses=True)
        await self.redis.ping()
        logger.info("Redis key-value store connected.")

    async def close(self):
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None

    async def _client(self):
        if self.redis is None:
            await self.connect()
        return self.redis

    async def get(self, key: str) -> Optional[str]:
        client = await self._client()
        return await client.get(self._key(key))

    async def set(self, key: str, value: str, ttl: int) -> None:
        client = await self._client()
        await client.set(self._key(key), value, ex=ttl)

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        client = await self._client()
        return bool(await client.set(self._key(key), value, ex=ttl, nx=True))

    async def delete(self, key: str) -> None:
        client = await self._client()
        await client.delete(self._key(key))

    async def delete_if_equals(self, key: str, value: str) -> bool:
        client = await self._client()
        return bool(await client.eval(_RELEASE_SCRIPT, 1, self._key(key), value))


def build_kv_store(url: Optional[str] = None) -> KeyValueStore:
    url = url if url is not None else settings.REDIS_URL
    if url:
        return RedisKVStore(url)
    logger.warning("REDIS_URL not set, booking holds use the in-process store.")
    return InMemoryKVStore()


kv_store = build_kv_store()
