"""Redis session backend."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable
from typing import Any, TypeVar

from mcp_http.server.exceptions import SessionStoreError
from mcp_http.server.session_store.base import SessionStore
from mcp_http.server.utilities.logging import get_logger

try:
    import redis.asyncio as redis
    from redis.exceptions import RedisError
except ImportError:
    raise ImportError(
        "Redis session storage requires the 'redis' package. Install it with: 'pip install redis'"
    )

logger = get_logger(__name__)

T = TypeVar("T")


class RedisSessionStore(SessionStore):
    """Stores each session under ``<prefix><id>`` with the TTL as key expiry.

    Every write refreshes the expiry, so Redis reaps idle sessions on its
    own; ``cleanup_expired`` still sweeps records whose ``last_activity`` is
    older than the TTL.
    """

    backend_name = "redis"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        client: redis.Redis | None = None,
        prefix: str = "mcp:session:",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._redis = client if client is not None else redis.from_url(redis_url, decode_responses=True)
        self._prefix = prefix
        logger.debug(f"Redis session store initialized: {redis_url}")

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisError as e:
            logger.error(f"Redis {operation} failed: {e}")
            raise SessionStoreError(f"Redis {operation} failed: {e}") from e

    async def _load(self, session_id: str) -> str | None:
        return await self._call("get", self._redis.get(self._key(session_id)))

    async def _save(self, session_id: str, raw: str) -> None:
        await self._call("setex", self._redis.setex(self._key(session_id), self.ttl, raw))

    async def _remove(self, session_id: str) -> bool:
        return await self._call("delete", self._redis.delete(self._key(session_id))) > 0

    async def _iter_records(self) -> AsyncIterator[tuple[str, str]]:
        keys: list[str] = []
        try:
            async for key in self._redis.scan_iter(match=f"{self._prefix}*"):
                keys.append(key)
        except RedisError as e:
            logger.error(f"Redis scan failed: {e}")
            raise SessionStoreError(f"Redis scan failed: {e}") from e

        for key in keys:
            raw = await self._call("get", self._redis.get(key))
            if raw is not None:
                yield key[len(self._prefix) :], raw

    async def aclose(self) -> None:
        await self._redis.aclose()
