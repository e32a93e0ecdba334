"""
Commission distribution task.

Consumes sale events accepted by the webhook handler and failed inline
distributions re-queued after task approval. Distribution is idempotent
per trigger, so redelivery and retries pay nothing twice.
"""

import dramatiq
from loguru import logger

from app.services.commission import CommissionDistributor, DistributionResult
from app.services.work_queue import DramatiqWorkEnqueuer
from jobs import broker  # noqa: F401
from jobs.async_runner import create_local_session, run_async


@dramatiq.actor(queue_name="commission", time_limit=60_000)
def distribute_sale_commission(trigger_id: str, earning_user_id: int, amount: str) -> None:
    """
    Distribute commission for one trigger.

    Args:
        trigger_id: Idempotency root (e.g. sale:<transaction_id>)
        earning_user_id: User whose earning triggers the commission
        amount: Earned amount as decimal string
    """
    try:
        result = run_async(_distribute_async(trigger_id, earning_user_id, amount))
    except Exception as e:
        logger.exception(
            f"Commission distribution failed: {e}",
            extra={"trigger_id": trigger_id, "user_id": earning_user_id},
        )
        raise
    logger.info(
        "Commission task finished",
        extra={
            "trigger_id": trigger_id,
            "recipients": result.recipients,
            "total": str(result.total_amount),
            "replayed": result.replayed,
        },
    )


async def _distribute_async(
    trigger_id: str, earning_user_id: int, amount: str
) -> DistributionResult:
    async with create_local_session() as session_maker:
        async with session_maker() as session:
            distributor = CommissionDistributor(session, enqueuer=DramatiqWorkEnqueuer())
            return await distributor.distribute_commission(
                trigger_id, earning_user_id, amount
            )
