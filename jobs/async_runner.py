"""
Async runner for dramatiq actors.

Runs the async services inside synchronous actors. Each worker thread
keeps one event loop, and sessions come from a per-call NullPool engine
so no pooled connection crosses loops.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.config.settings import settings

T = TypeVar("T")

_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """
    Get or create the event loop of the current worker thread.

    Reusing the loop prevents "Future attached to a different loop" errors.
    """
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(
            "Created event loop for worker thread",
            extra={"thread": threading.current_thread().name},
        )
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine to completion in the thread's event loop.

    Args:
        coro: Coroutine to run

    Returns:
        Result of the coroutine
    """
    return get_event_loop().run_until_complete(coro)


@asynccontextmanager
async def create_local_session() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """
    Session factory bound to an engine owned by the current call.

    Yields:
        async_sessionmaker usable for one or more sessions
    """
    local_engine = create_async_engine(
        settings.database_url,
        echo=False,
        poolclass=NullPool,
    )
    try:
        yield async_sessionmaker(
            local_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    finally:
        await local_engine.dispose()


def create_redis_client() -> Redis | None:
    """Redis client for distributed locks, or None in the test environment."""
    if settings.is_test:
        return None
    return Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
    )
