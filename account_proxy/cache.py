import asyncio
import hashlib
import json
import logging
import math
import time
from typing import Any, Awaitable, Callable

import redis.asyncio as redis

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class MemoryStore:
    """
    In-process stand-in for the Redis commands the cache uses.

    Selected with a ``memory://`` URL; suited to single-process development
    and tests.  Expiry is lazy: keys are only reclaimed when read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}
        self._clock = clock

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, px: int | None = None) -> bool:
        expires_at = self._clock() + px / 1000 if px else None
        self._data[key] = (value, expires_at)
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._data.pop(key, None) is not None)

    async def aclose(self) -> None:
        self._data.clear()


class CacheManager:
    """
    Connection owner for the response cache.

    Holds the store client (Redis, or :class:`MemoryStore` for ``memory://``
    URLs), the global key prefix and the counters shared by every segment.
    Store failures are logged and reported as misses, so a broken Redis
    degrades to live fetches instead of failing requests.
    """

    def __init__(self, url: str, prefix: str = "cache:") -> None:
        self.url = url
        self.prefix = prefix
        self._redis: redis.Redis | MemoryStore | None = None
        self._counts: dict[str, int] = dict.fromkeys(
            ("hits", "stale_hits", "misses", "refreshes", "abandoned_refreshes"), 0
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the store connection.  Called once at application startup."""
        if self.url.startswith("memory://"):
            self._redis = MemoryStore()
            logger.info("Using in-process cache store")
            return
        self._redis = redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", self.url)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, serving live data: %s", exc)

    async def disconnect(self) -> None:
        """Close the store connection.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def segment(
        self,
        name: str,
        ttl: float,
        stale_in: float = 0,
        stale_timeout: float = 1.0,
        vary_headers: tuple[str, ...] = (),
        clock: Callable[[], float] = time.time,
    ) -> "CacheSegment":
        return CacheSegment(
            self,
            name,
            ttl=ttl,
            stale_in=stale_in,
            stale_timeout=stale_timeout,
            vary_headers=vary_headers,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Raw entry access
    # ------------------------------------------------------------------

    async def read(self, key: str) -> dict | None:
        """Return the stored envelope for *key*, or None on a miss / error."""
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None
        if data is None:
            return None
        try:
            return json.loads(data)
        except ValueError:
            logger.debug("Discarding undecodable cache entry key=%r", key)
            return None

    async def write(self, key: str, envelope: dict, expire_ms: int | None = None) -> None:
        """
        Persist *envelope* under *key*.

        Serialisation errors and store failures are logged but never
        propagated; the caller already holds the value it fetched.
        """
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(envelope, default=str), px=expire_ms)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete(self, key: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(key)
        except Exception as exc:
            logger.warning("Cache DELETE error for key=%r: %s", key, exc)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def count(self, event: str) -> None:
        self._counts[event] += 1

    @property
    def stats(self) -> dict:
        """Return a snapshot of the counters for the metrics endpoint."""
        served = self._counts["hits"] + self._counts["stale_hits"]
        total = served + self._counts["misses"]
        return {
            **self._counts,
            "hit_rate": round(served / total * 100, 1) if total > 0 else 0.0,
        }


class CacheSegment:
    """
    Read-through cache for one resource type with stale-while-revalidate.

    An entry is fresh for ``ttl`` seconds after it was stored and then
    stale-but-usable for a further ``stale_in`` seconds.  Stale reads
    return immediately and start at most one background refresh per key,
    which is cancelled once it runs longer than ``stale_timeout`` seconds.
    Anything older is fetched synchronously.

    Keys hash the request URL and query parameters; request headers only
    take part when named in ``vary_headers``.
    """

    def __init__(
        self,
        manager: CacheManager,
        name: str,
        ttl: float,
        stale_in: float = 0,
        stale_timeout: float = 1.0,
        vary_headers: tuple[str, ...] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.manager = manager
        self.name = name
        self.ttl = ttl
        self.stale_in = stale_in
        self.stale_timeout = stale_timeout
        self.vary_headers = tuple(h.lower() for h in vary_headers)
        self._clock = clock
        self._refreshing: dict[str, asyncio.Task] = {}

    def key(self, descriptor) -> str:
        parts: dict[str, Any] = {
            "url": descriptor.url,
            "params": sorted((str(k), str(v)) for k, v in descriptor.params.items()),
        }
        if self.vary_headers:
            parts["headers"] = sorted(
                (k.lower(), str(v))
                for k, v in descriptor.headers.items()
                if k.lower() in self.vary_headers
            )
        digest = hashlib.sha256(json.dumps(parts, sort_keys=True).encode()).hexdigest()
        return f"{self.manager.prefix}{self.name}:{digest}"

    async def get(self, descriptor, fetch: Fetcher) -> Any:
        """
        Return the value for *descriptor*, calling *fetch* when needed.

        Errors raised by *fetch* on the synchronous path propagate and
        leave the cache untouched.
        """
        key = self.key(descriptor)
        envelope = await self.manager.read(key)
        if envelope is not None:
            age = self._clock() - envelope["stored_at"]
            if age < envelope["ttl"]:
                self.manager.count("hits")
                return envelope["value"]
            if age < envelope["ttl"] + envelope["stale_in"]:
                self.manager.count("stale_hits")
                self._schedule_refresh(key, fetch)
                return envelope["value"]

        self.manager.count("misses")
        value = await fetch()
        await self._store(key, value)
        return value

    async def drop(self, descriptor) -> None:
        """Remove the entry for *descriptor*; a missing key is not an error."""
        key = self.key(descriptor)
        task = self._refreshing.pop(key, None)
        if task is not None:
            task.cancel()
        await self.manager.delete(key)

    async def drain(self) -> None:
        """Wait for every in-flight background refresh to settle."""
        tasks = list(self._refreshing.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _store(self, key: str, value: Any) -> None:
        envelope = {
            "value": value,
            "stored_at": self._clock(),
            "ttl": self.ttl,
            "stale_in": self.stale_in,
        }
        # The store's own expiry only reclaims space; freshness is decided
        # by comparing stored_at on read.
        expire_ms = math.ceil((self.ttl + self.stale_in) * 1000) or None
        await self.manager.write(key, envelope, expire_ms)

    def _schedule_refresh(self, key: str, fetch: Fetcher) -> None:
        if key in self._refreshing:
            return
        task = asyncio.create_task(self._refresh(key, fetch))
        self._refreshing[key] = task

        def _forget(done: asyncio.Task) -> None:
            if self._refreshing.get(key) is done:
                del self._refreshing[key]

        task.add_done_callback(_forget)

    async def _refresh(self, key: str, fetch: Fetcher) -> None:
        self.manager.count("refreshes")
        try:
            value = await asyncio.wait_for(fetch(), timeout=self.stale_timeout)
        except asyncio.TimeoutError:
            self.manager.count("abandoned_refreshes")
            logger.info(
                "Abandoned refresh of %s after %.2fs; stale value kept", key, self.stale_timeout
            )
            return
        except Exception as exc:
            logger.warning("Background refresh of %s failed: %s", key, exc)
            return
        await self._store(key, value)
