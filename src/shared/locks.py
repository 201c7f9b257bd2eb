"""Keyed locks serialising engine entry points.

Two engine calls for the same (subject, user, subtopic) must not interleave
their read-then-write sequences, otherwise both may decide to open the same
learning gap. ``KeyedLock`` covers a single process; ``RedisKeyedLock`` covers
a fleet of workers sharing one Redis.
"""

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncGenerator, Protocol
from uuid import uuid4

import redis.asyncio as redis

from src.shared.constants import (
    DISTRIBUTED_LOCK_MAX_RETRIES,
    DISTRIBUTED_LOCK_RETRY_DELAY_SECONDS,
    DISTRIBUTED_LOCK_TTL_SECONDS,
)
from src.shared.database import get_redis
from src.shared.exceptions import LockAcquisitionError

logger = logging.getLogger(__name__)


class IKeyedLock(Protocol):
    """Interface for entry-point locks."""

    def acquire(self, key: str) -> AbstractAsyncContextManager[None]:
        """Hold the lock for ``key`` for the duration of the context."""
        ...


class KeyedLock:
    """In-process lock table, one ``asyncio.Lock`` per key."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncGenerator[None, None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Drop idle entries so the table does not grow per user forever
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class RedisKeyedLock:
    """Distributed lock using Redis ``SET NX EX``.

    The lock value is a per-acquisition token so that a holder whose TTL ran
    out never deletes a lock re-acquired by someone else.
    """

    LOCK_PREFIX = "practice:lock:"

    def __init__(
        self,
        client: redis.Redis | None = None,
        ttl_seconds: int = DISTRIBUTED_LOCK_TTL_SECONDS,
        retry_delay: float = DISTRIBUTED_LOCK_RETRY_DELAY_SECONDS,
        max_retries: int = DISTRIBUTED_LOCK_MAX_RETRIES,
    ) -> None:
        self._client = client
        self._ttl = ttl_seconds
        self._retry_delay = retry_delay
        self._max_retries = max_retries

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncGenerator[None, None]:
        client = await self._get_client()
        lock_key = f"{self.LOCK_PREFIX}{key}"
        token = uuid4().hex
        acquired = False

        try:
            for _ in range(self._max_retries):
                acquired = bool(await client.set(lock_key, token, nx=True, ex=self._ttl))
                if acquired:
                    break
                await asyncio.sleep(self._retry_delay)

            if not acquired:
                logger.warning(f"Failed to acquire lock {lock_key} after {self._max_retries} retries")
                raise LockAcquisitionError(lock_key, self._max_retries)

            yield
        finally:
            if acquired:
                try:
                    if await client.get(lock_key) == token:
                        await client.delete(lock_key)
                except Exception as e:
                    logger.warning(f"Error releasing lock {lock_key}: {e}")


def lock_key(subject: str, user_id: str, subtopic_id: int | None) -> str:
    """Build the key guarding one user's work on one subtopic."""
    return f"{subject}:{user_id}:{subtopic_id if subtopic_id is not None else '*'}"
