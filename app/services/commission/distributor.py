"""
Commission distributor.

Pays referral commission up the ancestor chain of an earning user exactly
once per trigger id. All entries for one trigger are written in a single
transaction; a retry with the same trigger id returns the prior result.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import StrEnum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import RewardPolicy
from app.models.enums import LedgerEntryStatus, LedgerEntryType
from app.models.ledger_entry import LedgerEntry
from app.models.source_reference import ReferralEdgeRef, to_columns
from app.repositories.ledger_repository import LedgerRepository
from app.repositories.referral_repository import ReferralEdgeRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService
from app.services.commission.calculator import PlannedPayout, plan_payouts
from app.services.events import (
    CommissionPaid,
    EventPublisher,
    LoggingEventPublisher,
    publish_safely,
)
from app.services.referral.query_manager import ReferralQueryManager
from app.services.work_queue import (
    NullWorkEnqueuer,
    WorkEnqueuer,
    enqueue_staggered_recalculations,
)
from app.utils.exceptions import InvalidAmountError, ValidationError


class DistributionState(StrEnum):
    """Lifecycle of one distribution attempt."""

    RECEIVED = "received"
    VALIDATED = "validated"
    COMPUTED = "computed"
    WRITTEN = "written"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class DistributionResult:
    """Outcome of distribute_commission."""

    trigger_id: str
    entries: list[LedgerEntry] = field(default_factory=list)
    state: DistributionState = DistributionState.RECEIVED
    replayed: bool = False

    @property
    def total_amount(self) -> Decimal:
        """Sum of all commission entries."""
        return sum((entry.amount for entry in self.entries), Decimal("0"))

    @property
    def recipients(self) -> list[int]:
        """Paid referrers in level order."""
        return [entry.user_id for entry in self.entries]


def commission_key(trigger_id: str, level: int, referrer_id: int) -> str:
    """Idempotency key of one commission entry."""
    return f"commission:{trigger_id}:L{level}:{referrer_id}"


class CommissionDistributor(BaseService):
    """
    Distributes referral commission for sale and reward events.

    Flow: received -> validated -> computed -> written -> completed.
    Any failure leaves no entry for the trigger and marks the attempt
    failed; the caller retries with the same trigger id.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: RewardPolicy | None = None,
        enqueuer: WorkEnqueuer | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        """
        Initialize commission distributor.

        Args:
            session: Async database session
            policy: Reward policy
            enqueuer: Queue for follow-up multiplier recalculations
            publisher: Domain event sink
        """
        super().__init__(session, policy)
        self.enqueuer = enqueuer or NullWorkEnqueuer()
        self.publisher = publisher or LoggingEventPublisher()
        self.ledger_repo = LedgerRepository(session)
        self.edge_repo = ReferralEdgeRepository(session)
        self.profile_repo = VolunteerProfileRepository(session)
        self.query_manager = ReferralQueryManager(session, self.policy)

    async def distribute_commission(
        self,
        trigger_id: str,
        earning_user_id: int,
        sale_amount: Decimal | str | int,
    ) -> DistributionResult:
        """
        Pay commission to the active ancestors of earning_user_id.

        Args:
            trigger_id: Caller-supplied idempotency anchor
            earning_user_id: User whose sale or reward generates commission
            sale_amount: Base amount (> 0)

        Returns:
            DistributionResult with the entries for this trigger

        Raises:
            ValidationError: Blank trigger id
            InvalidAmountError: sale_amount <= 0 or not a number
            ReferralInvariantError: Stored chain is corrupt
        """
        result = DistributionResult(trigger_id=trigger_id)
        log_ctx = {"trigger_id": trigger_id, "user_id": earning_user_id}

        try:
            amount = self._validate(trigger_id, sale_amount)
        except ValidationError:
            result.state = DistributionState.FAILED
            raise
        result.state = DistributionState.VALIDATED
        log_ctx["sale_amount"] = str(amount)

        existing = await self.ledger_repo.get_by_trigger(
            trigger_id, entry_type=LedgerEntryType.REFERRAL_COMMISSION
        )
        if existing and all(entry.is_completed for entry in existing):
            self.logger.info("Commission already distributed", extra=log_ctx)
            return self._replayed(result, existing)

        try:
            ancestors = await self.query_manager.ancestors_of(
                earning_user_id, active_only=True
            )
            multipliers = await self.profile_repo.get_multipliers(
                [ancestor.referrer_id for ancestor in ancestors]
            )
            payouts = plan_payouts(amount, ancestors, multipliers, self.policy)
            result.state = DistributionState.COMPUTED

            if not payouts:
                self.logger.debug(
                    "No commission payable",
                    extra={**log_ctx, "ancestors": len(ancestors)},
                )
                result.state = DistributionState.COMPLETED
                return result

            entries = await self._write_entries(trigger_id, earning_user_id, amount, payouts)
            result.state = DistributionState.WRITTEN

            await self.session.commit()
        except IntegrityError:
            # Concurrent duplicate of this trigger committed first
            await self.rollback()
            existing = await self.ledger_repo.get_by_trigger(
                trigger_id, entry_type=LedgerEntryType.REFERRAL_COMMISSION
            )
            self.logger.info("Commission written concurrently, re-read", extra=log_ctx)
            return self._replayed(result, existing)
        except Exception as e:
            await self.rollback()
            result.state = DistributionState.FAILED
            self.logger.error(
                "Commission distribution failed",
                extra={**log_ctx, "error": str(e), "state": result.state},
            )
            raise

        result.entries = entries
        result.state = DistributionState.COMPLETED

        self.logger.info(
            "Commission distributed",
            extra={
                **log_ctx,
                "levels_paid": len(entries),
                "total_amount": str(result.total_amount),
            },
        )

        enqueue_staggered_recalculations(
            self.enqueuer,
            result.recipients,
            self.policy.recalculation_stagger_seconds,
        )
        publish_safely(
            self.publisher,
            CommissionPaid(
                trigger_id=trigger_id,
                earning_user_id=earning_user_id,
                recipients=tuple(result.recipients),
                total_amount=result.total_amount,
            ),
        )
        return result

    def _validate(self, trigger_id: str, sale_amount: Decimal | str | int) -> Decimal:
        if not trigger_id or not str(trigger_id).strip():
            raise ValidationError("trigger_id must not be blank")
        try:
            amount = Decimal(str(sale_amount))
        except InvalidOperation as e:
            raise InvalidAmountError(sale_amount=str(sale_amount)) from e
        if not amount.is_finite() or amount <= 0:
            raise InvalidAmountError(sale_amount=str(sale_amount))
        return amount

    async def _write_entries(
        self,
        trigger_id: str,
        earning_user_id: int,
        sale_amount: Decimal,
        payouts: list[PlannedPayout],
    ) -> list[LedgerEntry]:
        entries: list[LedgerEntry] = []
        for payout in payouts:
            source_kind, source_id = to_columns(ReferralEdgeRef(payout.edge_id))
            entry = LedgerEntry(
                idempotency_key=commission_key(trigger_id, payout.level, payout.referrer_id),
                trigger_id=trigger_id,
                user_id=payout.referrer_id,
                entry_type=LedgerEntryType.REFERRAL_COMMISSION,
                amount=payout.amount,
                status=LedgerEntryStatus.COMPLETED,
                source_kind=source_kind,
                source_id=source_id,
                description=f"Level {payout.level} referral commission",
                extra_data={
                    "level": payout.level,
                    "rate": str(payout.rate),
                    "sale_amount": str(sale_amount),
                    "multiplier_applied": payout.multiplier,
                    "earning_user_id": earning_user_id,
                },
            )
            self.session.add(entry)
            entries.append(entry)

        await self.session.flush()

        for payout in payouts:
            await self.edge_repo.increment_commission_paid(payout.edge_id, payout.amount)

        return entries

    def _replayed(
        self, result: DistributionResult, entries: list[LedgerEntry]
    ) -> DistributionResult:
        result.entries = entries
        result.replayed = True
        result.state = DistributionState.COMPLETED
        return result
