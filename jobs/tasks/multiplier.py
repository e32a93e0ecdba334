"""
Activity multiplier tasks.

Single-user recalculation (enqueued after level-ups and commission
payouts) and the daily recompute of every open profile.
"""

from datetime import timedelta

import dramatiq
from loguru import logger

from app.config.settings import settings
from app.services.multiplier import MultiplierService, RecomputeSummary
from app.utils.datetime_utils import utc_now
from app.utils.distributed_lock import DistributedLock, LockNotAcquiredError
from jobs.async_runner import create_local_session, create_redis_client, run_async
from jobs.broker import never_retry

# Stop the bulk run this long before the actor time limit
DEADLINE_MARGIN_SECONDS = 30


@dramatiq.actor(queue_name="multiplier", time_limit=60_000)
def recalculate_multiplier(user_id: int) -> None:
    """
    Recompute the multiplier of one user.

    Conflicts raise and are retried by the Retries middleware.

    Args:
        user_id: Volunteer user ID
    """
    try:
        multiplier = run_async(_recalculate_async(user_id))
    except Exception as e:
        logger.exception(f"Multiplier recalculation failed: {e}", extra={"user_id": user_id})
        raise
    logger.debug(
        "Multiplier recalculated",
        extra={"user_id": user_id, "multiplier": multiplier},
    )


async def _recalculate_async(user_id: int) -> float:
    async with create_local_session() as session_maker:
        async with session_maker() as session:
            return await MultiplierService(session).recompute(user_id)


@dramatiq.actor(
    queue_name="multiplier",
    retry_when=never_retry,
    time_limit=settings.job_time_limit_ms,
    notify_shutdown=True,
)
def recalculate_all_multipliers(organization_id: int | None = None) -> None:
    """
    Daily recompute of every open profile.

    Runs under a distributed lock; a second concurrent run is skipped.
    Per-profile failures are counted, not raised.

    Args:
        organization_id: Optional organization scope
    """
    logger.info(
        "Starting multiplier recompute",
        extra={"organization_id": organization_id},
    )
    try:
        summary = run_async(_recalculate_all_async(organization_id))
    except LockNotAcquiredError:
        logger.warning("Multiplier recompute already running, skipped")
        return
    except Exception as e:
        logger.exception(f"Multiplier recompute failed: {e}")
        raise

    logger.info(
        "Multiplier recompute finished",
        extra={
            "processed": summary.processed,
            "updated": summary.updated,
            "failed": summary.failed,
            "cancelled": summary.cancelled,
        },
    )


async def _recalculate_all_async(organization_id: int | None) -> RecomputeSummary:
    deadline = utc_now() + timedelta(
        milliseconds=settings.job_time_limit_ms
    ) - timedelta(seconds=DEADLINE_MARGIN_SECONDS)
    lock_key = f"multiplier_recompute:{organization_id or 'all'}"
    redis_client = create_redis_client()

    try:
        async with DistributedLock(redis_client).lock(
            lock_key, timeout=settings.job_time_limit_ms // 1000
        ):
            async with create_local_session() as session_maker:
                async with session_maker() as session:
                    return await MultiplierService(session).recompute_all(
                        organization_id, deadline=deadline
                    )
    finally:
        if redis_client is not None:
            await redis_client.aclose()
