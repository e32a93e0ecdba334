"""
Distributed lock.

Redis-backed mutual exclusion for periodic jobs, so only one worker runs
a given recompute or budget run at a time.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import LockError


class LockNotAcquiredError(Exception):
    """Another worker holds the lock."""


class DistributedLock:
    """
    Lock factory over a Redis client.

    Without a client the lock degrades to a no-op; the work itself stays
    idempotent, so this only loses the duplicate-run protection.
    """

    def __init__(self, redis_client: Redis | None = None, prefix: str = "lock:") -> None:
        """
        Initialize distributed lock.

        Args:
            redis_client: Redis client or None
            prefix: Key prefix
        """
        self.redis_client = redis_client
        self.prefix = prefix

    @asynccontextmanager
    async def lock(
        self, key: str, timeout: int = 60, blocking_timeout: float = 0
    ) -> AsyncIterator[None]:
        """
        Hold the lock for the duration of the block.

        Args:
            key: Lock name
            timeout: Lock expiry in seconds
            blocking_timeout: Seconds to wait for the lock

        Raises:
            LockNotAcquiredError: Lock held elsewhere
        """
        if self.redis_client is None:
            logger.debug("No Redis client, running without lock", extra={"key": key})
            yield
            return

        redis_lock = self.redis_client.lock(
            f"{self.prefix}{key}",
            timeout=timeout,
            blocking_timeout=blocking_timeout,
        )
        if not await redis_lock.acquire():
            raise LockNotAcquiredError(key)
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError:
                # Expired while running
                logger.warning("Lock expired before release", extra={"key": key})
