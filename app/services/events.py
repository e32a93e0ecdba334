"""
Domain events.

The rewards core only signals that something happened; delivery
(notifications, webhooks) belongs to an injected EventPublisher.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from loguru import logger


@dataclass(frozen=True)
class LevelChanged:
    """Volunteer moved to a higher level."""

    user_id: int
    old_level: int
    new_level: int
    new_capabilities: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class CommissionPaid:
    """Referral commission paid for a trigger."""

    trigger_id: str
    earning_user_id: int
    recipients: tuple[int, ...]
    total_amount: Decimal


@dataclass(frozen=True)
class PerformanceBonusAwarded:
    """Budget allocation payout."""

    user_id: int
    period_type: str
    rank: int
    amount: Decimal


class EventPublisher(Protocol):
    """Sink for domain events."""

    def publish(self, event: object) -> None:
        """Deliver one event. Must not raise into the caller."""
        ...


class LoggingEventPublisher:
    """Publisher that writes events to the log."""

    def publish(self, event: object) -> None:
        logger.info(
            f"Event {type(event).__name__}",
            extra={"event": repr(event)},
        )


def publish_safely(publisher: EventPublisher, event: object) -> None:
    """
    Publish an event after commit.

    Delivery failures are logged; state is already committed and must
    not be reported as failed.
    """
    try:
        publisher.publish(event)
    except Exception as e:
        logger.error(
            "Event delivery failed",
            extra={"event": type(event).__name__, "error": str(e)},
        )
