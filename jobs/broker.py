"""
Dramatiq broker configuration.

Redis-based message broker for the rewards task queue. The test
environment uses an in-memory StubBroker.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import (
    AgeLimit,
    Callbacks,
    CurrentMessage,
    Pipelines,
    Retries,
    ShutdownNotifications,
    TimeLimit,
)
from loguru import logger

from app.config.settings import settings
from app.utils.exceptions import is_validation_error

MAX_RETRIES = 5


def should_retry(retries_so_far: int, exception: Exception) -> bool:
    """
    Retry conflicts and infrastructure failures, never caller mistakes.

    Args:
        retries_so_far: Attempts already retried
        exception: Failure of the last attempt

    Returns:
        True to schedule another attempt
    """
    return retries_so_far < MAX_RETRIES and not is_validation_error(exception)


def never_retry(retries_so_far: int, exception: Exception) -> bool:
    """Periodic runs are not retried; the next scheduled run picks up."""
    return False


def build_middleware() -> list[dramatiq.Middleware]:
    """
    Middleware stack shared by all environments.

    ShutdownNotifications: lets long recompute/budget runs stop cooperatively
    CurrentMessage: gives actors access to the message being processed
    Retries: exponential backoff for conflict and transient errors
    """
    return [
        AgeLimit(),
        TimeLimit(time_limit=settings.job_time_limit_ms),
        ShutdownNotifications(),
        Callbacks(),
        Pipelines(),
        CurrentMessage(),
        Retries(
            min_backoff=1000,  # 1 second
            max_backoff=60000,  # 1 minute
            retry_when=should_retry,
        ),
    ]


def create_broker() -> dramatiq.Broker:
    """Build the broker for the current environment."""
    if settings.is_test:
        stub = StubBroker(middleware=build_middleware())
        stub.emit_after("process_boot")
        return stub

    return RedisBroker(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password if settings.redis_password else None,
        db=settings.redis_db,
        middleware=build_middleware(),
    )


broker = create_broker()
dramatiq.set_broker(broker)

logger.info(
    "Dramatiq broker initialized",
    extra={
        "broker": type(broker).__name__,
        "redis": f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}",
    },
)
