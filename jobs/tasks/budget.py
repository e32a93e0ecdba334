"""
Budget distribution task.

Scheduled daily, weekly and monthly. Each run is keyed by period start
and organization, so a re-sent message resumes or replays the same run.
"""

from datetime import timedelta
from decimal import Decimal

import dramatiq
from loguru import logger

from app.config.settings import settings
from app.models.ledger_entry import LedgerEntry
from app.services.budget import BudgetAllocator
from app.utils.datetime_utils import utc_now
from app.utils.distributed_lock import DistributedLock, LockNotAcquiredError
from jobs import broker  # noqa: F401
from jobs.async_runner import create_local_session, create_redis_client, run_async
from jobs.tasks.multiplier import DEADLINE_MARGIN_SECONDS


@dramatiq.actor(
    queue_name="budget",
    time_limit=settings.job_time_limit_ms,
    notify_shutdown=True,
)
def distribute_budget_pool(
    period_type: str,
    organization_id: int | None = None,
    pool_amount: str | None = None,
) -> None:
    """
    Distribute the budget pool of the current period.

    Args:
        period_type: daily | weekly | monthly
        organization_id: Organization (defaults to settings.default_organization_id)
        pool_amount: Pool as decimal string (defaults to the configured pool)
    """
    organization_id = organization_id or settings.default_organization_id
    pool = Decimal(pool_amount) if pool_amount is not None else settings.budget_pool_for(period_type)

    if pool <= 0:
        logger.info(
            "Budget pool not configured, skipped",
            extra={"period_type": period_type, "organization_id": organization_id},
        )
        return

    try:
        entries = run_async(_distribute_async(period_type, organization_id, pool))
    except LockNotAcquiredError:
        logger.warning(
            "Budget run already in progress, skipped",
            extra={"period_type": period_type, "organization_id": organization_id},
        )
        return
    except Exception as e:
        logger.exception(f"Budget run failed: {e}", extra={"period_type": period_type})
        raise

    logger.info(
        "Budget task finished",
        extra={
            "period_type": period_type,
            "organization_id": organization_id,
            "recipients": len(entries),
            "distributed": str(sum((e.amount for e in entries), Decimal("0"))),
        },
    )


async def _distribute_async(
    period_type: str, organization_id: int, pool: Decimal
) -> list[LedgerEntry]:
    deadline = utc_now() + timedelta(
        milliseconds=settings.job_time_limit_ms
    ) - timedelta(seconds=DEADLINE_MARGIN_SECONDS)
    redis_client = create_redis_client()

    try:
        async with DistributedLock(redis_client).lock(
            f"budget:{period_type}:{organization_id}",
            timeout=settings.job_time_limit_ms // 1000,
        ):
            async with create_local_session() as session_maker:
                async with session_maker() as session:
                    return await BudgetAllocator(session).distribute(
                        period_type, pool, organization_id, deadline=deadline
                    )
    finally:
        if redis_client is not None:
            await redis_client.aclose()
