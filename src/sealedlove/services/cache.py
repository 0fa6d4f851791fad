"""Redis-backed ephemeral key-value store.

Every server instance talks to the same Redis so that a code issued by one
process can be verified by another. Values are JSON encoded; anything that
fails to decode reads back as missing.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from sealedlove.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreUnavailable(Exception):
    """The ephemeral store could not be reached."""

    pass


class EphemeralStore:
    """Namespaced JSON store with per-key TTL."""

    def __init__(
        self,
        redis: Redis,
        prefix: str | None = None,
        timeout: float | None = None,
    ):
        self.redis = redis
        self.prefix = settings.cache_key_prefix if prefix is None else prefix
        self.timeout = settings.cache_timeout_seconds if timeout is None else timeout

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @staticmethod
    def _dumps(value: Any) -> str:
        return json.dumps(value)

    @staticmethod
    def _loads(raw: str | bytes | None) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Discarding undecodable cache value")
            return None

    async def _run(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(operation(), timeout=self.timeout)
        except TimeoutError as e:
            raise StoreUnavailable("Ephemeral store timed out") from e
        except RedisError as e:
            raise StoreUnavailable(f"Ephemeral store error: {e}") from e

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
        *,
        only_if_absent: bool = False,
    ) -> bool:
        """Store a value. Returns False when only_if_absent and the key exists."""
        full_key = self._key(key)
        payload = self._dumps(value)

        async def op() -> bool:
            result = await self.redis.set(
                full_key, payload, ex=ttl_seconds or None, nx=only_if_absent
            )
            return bool(result)

        return await self._run(op)

    async def get(self, key: str) -> Any:
        raw = await self._run(lambda: self.redis.get(self._key(key)))
        return self._loads(raw)

    async def delete(self, key: str) -> None:
        await self._run(lambda: self.redis.delete(self._key(key)))

    async def exists(self, key: str) -> bool:
        result = await self._run(lambda: self.redis.exists(self._key(key)))
        return result == 1

    async def ttl(self, key: str) -> int | None:
        """Remaining lifetime in seconds, or None if the key is missing or persistent."""
        result = await self._run(lambda: self.redis.ttl(self._key(key)))
        return result if result and result > 0 else None

    async def increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        """Increment a fixed-window counter.

        The window starts with the first increment. Returns the new count and
        the seconds left in the window.
        """
        full_key = self._key(key)

        async def op() -> tuple[int, int]:
            async with self.redis.pipeline(transaction=True) as pipe:
                # Only the first hit of a window creates the key and its expiry
                pipe.set(full_key, 0, ex=window_seconds, nx=True)
                pipe.incr(full_key)
                pipe.ttl(full_key)
                _, count, remaining = await pipe.execute()
            return int(count), int(remaining) if remaining > 0 else window_seconds

        return await self._run(op)

    async def compare_and_delete(self, key: str, predicate: Callable[[Any], bool]) -> bool:
        """Delete the key only if its current value satisfies predicate.

        Runs as an optimistic transaction, so two callers racing on the same
        key cannot both succeed.
        """
        full_key = self._key(key)

        async def op() -> bool:
            async with self.redis.pipeline(transaction=True) as pipe:
                await pipe.watch(full_key)
                value = self._loads(await pipe.get(full_key))
                if value is None or not predicate(value):
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.delete(full_key)
                try:
                    await pipe.execute()
                except WatchError:
                    logger.info(f"Concurrent modification of {full_key}, not consumed")
                    return False
                return True

        return await self._run(op)

    async def ping(self) -> bool:
        return bool(await self._run(lambda: self.redis.ping()))

    async def close(self) -> None:
        await self.redis.aclose()


_store: EphemeralStore | None = None


def get_store() -> EphemeralStore:
    """Get the process-wide store, connecting lazily."""
    global _store
    if _store is None:
        redis = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.cache_timeout_seconds,
            socket_connect_timeout=settings.cache_timeout_seconds,
        )
        _store = EphemeralStore(redis)
    return _store


async def close_store() -> None:
    global _store
    if _store is not None:
        await _store.close()
        _store = None
