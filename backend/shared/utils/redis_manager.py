"""
Redis connection manager for Score Alerts.
Provides the async connection pool, key namespaces, set/TTL helpers,
compare-and-set updates and owner-checked locks.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from shared.config import Settings, get_settings
from shared.errors import StoreError, StoreUnavailableError
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
SUBSCRIPTION_KEY = "sub:{subscription_id}"
GAME_STATE_KEY = "game:{game_id}"
GAME_SUBSCRIBERS_KEY = "game:{game_id}:subs"
GAME_META_KEY = "game:{game_id}:meta"
ACTIVE_GAMES_KEY = "active_games"
LOCK_KEY = "lock:notify:{name}"
DEDUP_KEY = "dedup:{key}"

CAS_MAX_ATTEMPTS = 5


def format_key(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages the async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=self._settings.store_timeout_s,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_safe_log)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    @asynccontextmanager
    async def _guard(self, key: str) -> AsyncIterator[None]:
        """Translate driver failures into StoreError for the given key."""
        try:
            yield
        except RedisError as exc:
            raise StoreError(key, str(exc) or exc.__class__.__name__) from exc

    # ── JSON values ─────────────────────────────────────────────────────
    async def get_json(self, key: str) -> Optional[str]:
        async with self._guard(key):
            return await self.client.get(key)

    async def set_json(self, key: str, data: str, ttl_s: int) -> None:
        async with self._guard(key):
            await self.client.set(key, data, ex=ttl_s)

    async def update_json(
        self,
        key: str,
        mutate: Callable[[Optional[str]], Optional[str]],
        ttl_s: int,
    ) -> Optional[str]:
        """
        Optimistic read-modify-write of a single key.

        `mutate` receives the current raw value (or None) and returns the new
        raw value, or None to delete the key. The write is retried when
        another client modifies the key between WATCH and EXEC.
        """
        async with self._guard(key):
            for attempt in range(1, CAS_MAX_ATTEMPTS + 1):
                async with self.client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        current = await pipe.get(key)
                        updated = mutate(current)
                        pipe.multi()
                        if updated is None:
                            pipe.delete(key)
                        else:
                            pipe.set(key, updated, ex=ttl_s)
                        await pipe.execute()
                        return updated
                    except WatchError:
                        logger.debug("store_cas_conflict", key=key, attempt=attempt)
                        continue
        raise StoreError(key, f"compare-and-set gave up after {CAS_MAX_ATTEMPTS} attempts")

    # ── Working set ─────────────────────────────────────────────────────
    async def get_active_games(self) -> list[str]:
        try:
            members = await self.client.smembers(ACTIVE_GAMES_KEY)
        except RedisError as exc:
            raise StoreUnavailableError(ACTIVE_GAMES_KEY, str(exc)) from exc
        return sorted(members)

    async def get_game_subscribers(self, game_id: str) -> list[str]:
        key = format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id)
        async with self._guard(key):
            return sorted(await self.client.smembers(key))

    async def attach_subscriber(
        self, game_id: str, subscription_id: str, meta: str, meta_ttl_s: int
    ) -> None:
        """Add to GameSubscribers and Active-Games in one transaction."""
        subs_key = format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id)
        async with self._guard(subs_key):
            pipe = self.client.pipeline(transaction=True)
            pipe.sadd(subs_key, subscription_id)
            pipe.sadd(ACTIVE_GAMES_KEY, game_id)
            pipe.set(format_key(GAME_META_KEY, game_id=game_id), meta, ex=meta_ttl_s)
            await pipe.execute()

    # Lua script: remove one subscriber; when the set empties, drop the game
    # from the working set together with its state and meta keys.
    _DETACH_SUBSCRIBER_SCRIPT = """
redis.call("srem", KEYS[1], ARGV[1])
local remaining = redis.call("scard", KEYS[1])
if remaining == 0 then
    redis.call("srem", KEYS[2], ARGV[2])
    redis.call("del", KEYS[1], KEYS[3], KEYS[4])
end
return remaining
"""

    async def detach_subscriber(self, game_id: str, subscription_id: str) -> int:
        """Atomically remove a subscriber from a game. Returns remaining count."""
        subs_key = format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id)
        async with self._guard(subs_key):
            remaining = await self.client.eval(
                self._DETACH_SUBSCRIBER_SCRIPT,
                4,
                subs_key,
                ACTIVE_GAMES_KEY,
                format_key(GAME_STATE_KEY, game_id=game_id),
                format_key(GAME_META_KEY, game_id=game_id),
                subscription_id,
                game_id,
            )
        return int(remaining)

    async def purge_game(self, game_id: str) -> None:
        """Delete every key of a game and drop it from the working set."""
        subs_key = format_key(GAME_SUBSCRIBERS_KEY, game_id=game_id)
        async with self._guard(subs_key):
            pipe = self.client.pipeline(transaction=True)
            pipe.delete(
                subs_key,
                format_key(GAME_STATE_KEY, game_id=game_id),
                format_key(GAME_META_KEY, game_id=game_id),
            )
            pipe.srem(ACTIVE_GAMES_KEY, game_id)
            await pipe.execute()

    # ── Locks ───────────────────────────────────────────────────────────

    # Lua script: atomically delete only if we hold the lock
    _RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    redis.call("del", KEYS[1])
    return 1
end
return 0
"""

    async def try_acquire_lock(self, name: str, owner: str, ttl_s: int) -> bool:
        """Attempt to take a named lock using SET NX."""
        key = format_key(LOCK_KEY, name=name)
        async with self._guard(key):
            return bool(await self.client.set(key, owner, nx=True, ex=ttl_s))

    async def release_lock(self, name: str, owner: str) -> bool:
        """Atomically release a lock only if we hold it."""
        key = format_key(LOCK_KEY, name=name)
        async with self._guard(key):
            result = await self.client.eval(self._RELEASE_LOCK_SCRIPT, 1, key, owner)
        return bool(result)

    # ── Idempotency markers ─────────────────────────────────────────────
    async def mark_once(self, marker: str, ttl_s: int) -> bool:
        """Record a marker. Returns False when it already existed."""
        key = format_key(DEDUP_KEY, key=marker)
        async with self._guard(key):
            return bool(await self.client.set(key, "1", nx=True, ex=ttl_s))
