"""
Background work enqueuing.

Services depend on the WorkEnqueuer protocol only; the dramatiq-backed
implementation is the one wired in production.
"""

from typing import Protocol

from loguru import logger


class WorkEnqueuer(Protocol):
    """Queue for deferred work triggered by the rewards services."""

    def enqueue_multiplier_recalculation(
        self, user_id: int, delay_seconds: float = 0
    ) -> None:
        """Schedule a multiplier recomputation for one user."""
        ...

    def enqueue_commission_distribution(
        self, trigger_id: str, earning_user_id: int, amount: str
    ) -> None:
        """Schedule a commission distribution (amount as decimal string)."""
        ...


class NullWorkEnqueuer:
    """Enqueuer that drops work (used where no queue is configured)."""

    def enqueue_multiplier_recalculation(
        self, user_id: int, delay_seconds: float = 0
    ) -> None:
        logger.debug(
            "Multiplier recalculation dropped (no queue)",
            extra={"user_id": user_id},
        )

    def enqueue_commission_distribution(
        self, trigger_id: str, earning_user_id: int, amount: str
    ) -> None:
        logger.warning(
            "Commission distribution dropped (no queue)",
            extra={"trigger_id": trigger_id, "user_id": earning_user_id, "amount": amount},
        )


class DramatiqWorkEnqueuer:
    """Enqueuer that sends messages to dramatiq actors."""

    def enqueue_multiplier_recalculation(
        self, user_id: int, delay_seconds: float = 0
    ) -> None:
        # Lazy import: actors import services
        from jobs.tasks.multiplier import recalculate_multiplier

        recalculate_multiplier.send_with_options(
            args=(user_id,),
            delay=int(delay_seconds * 1000) or None,
        )
        logger.debug(
            "Multiplier recalculation enqueued",
            extra={"user_id": user_id, "delay_seconds": delay_seconds},
        )

    def enqueue_commission_distribution(
        self, trigger_id: str, earning_user_id: int, amount: str
    ) -> None:
        from jobs.tasks.commission import distribute_sale_commission

        distribute_sale_commission.send(trigger_id, earning_user_id, amount)
        logger.debug(
            "Commission distribution enqueued",
            extra={"trigger_id": trigger_id, "user_id": earning_user_id},
        )


def enqueue_staggered_recalculations(
    enqueuer: WorkEnqueuer, user_ids: list[int], stagger_seconds: float
) -> None:
    """
    Enqueue recalculations with increasing delay (i * stagger).

    Duplicate user IDs are enqueued once, at their first position.

    Args:
        enqueuer: Target queue
        user_ids: Users in chain order
        stagger_seconds: Delay step between successive users
    """
    seen: set[int] = set()
    position = 0
    for user_id in user_ids:
        if user_id in seen:
            continue
        seen.add(user_id)
        enqueuer.enqueue_multiplier_recalculation(
            user_id, delay_seconds=position * stagger_seconds
        )
        position += 1
