"""
Session registry — the single active token per username, kept in Redis.

Handles:
- Recording the active token at login (`put` — last writer wins, which
  is what enforces one session per user)
- Looking it up for registry-consistent validation (`get`)
- Sliding expiry on reuse (`refresh`)
- Logout / forced revocation (`remove` — a missing key is not an error)

Every command is bounded by a deadline; Redis failures surface as
`CacheError` and are never retried here.
"""

import asyncio
import logging
from datetime import timedelta

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from account_service.core.config import settings
from account_service.core.errors import CacheError

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        client: aioredis.Redis,
        *,
        ttl: timedelta | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self.ttl = ttl or timedelta(hours=settings.SESSION_TTL_HOURS)
        self.timeout = timeout if timeout is not None else settings.CACHE_TIMEOUT_SECONDS

    async def _run(self, op: str, username: str, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Session registry %s timed out for %s", op, username)
            raise CacheError("Session store timed out")
        except RedisError as exc:
            logger.error("Session registry %s failed for %s: %s", op, username, exc)
            raise CacheError("Session store unavailable")

    def _seconds(self, ttl: timedelta | None) -> int:
        return max(1, int((ttl or self.ttl).total_seconds()))

    async def put(self, username: str, token: str, ttl: timedelta | None = None) -> None:
        await self._run("put", username, self._client.set(username, token, ex=self._seconds(ttl)))

    async def get(self, username: str) -> str | None:
        return await self._run("get", username, self._client.get(username))

    async def refresh(self, username: str, ttl: timedelta | None = None) -> bool:
        """Extend the TTL without touching the value.  False if nothing is stored."""
        return bool(
            await self._run("refresh", username, self._client.expire(username, self._seconds(ttl)))
        )

    async def remove(self, username: str) -> bool:
        """Delete the entry.  Returns whether anything was there."""
        return bool(await self._run("remove", username, self._client.delete(username)))
