"""
Budget allocator.

Periodic distribution of a token pool to the best performers of a period.
A run is identified by (period_type, period_start, organization_id);
replaying a completed run returns its entries, and an interrupted run
resumes without paying anyone twice or exceeding the pool.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import PeriodType
from app.config.reward_policy import RewardPolicy
from app.models.budget_run import BudgetRun
from app.models.enums import BudgetRunStatus, LedgerEntryStatus, LedgerEntryType
from app.models.ledger_entry import LedgerEntry
from app.models.source_reference import BudgetRunRef, to_columns
from app.repositories.budget_run_repository import BudgetRunRepository
from app.repositories.ledger_repository import LedgerRepository
from app.repositories.referral_repository import ReferralEdgeRepository
from app.repositories.task_assignment_repository import (
    ApprovedTaskRow,
    TaskAssignmentRepository,
)
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService
from app.services.budget.scoring import (
    PlannedBonus,
    VolunteerPerformance,
    plan_bonuses,
    rank_volunteers,
)
from app.services.events import (
    EventPublisher,
    LoggingEventPublisher,
    PerformanceBonusAwarded,
    publish_safely,
)
from app.utils.datetime_utils import as_utc, period_start, utc_now
from app.utils.exceptions import InvalidAmountError, InvalidPeriodError


def budget_run_key(period_type: str, start: datetime, organization_id: int) -> str:
    """Idempotency key of a budget run."""
    return f"{period_type}:{as_utc(start).date().isoformat()}:{organization_id}"


class BudgetAllocator(BaseService):
    """Distributes periodic budget pools to top performers."""

    def __init__(
        self,
        session: AsyncSession,
        policy: RewardPolicy | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        """Initialize budget allocator."""
        super().__init__(session, policy)
        self.publisher = publisher or LoggingEventPublisher()
        self.run_repo = BudgetRunRepository(session)
        self.ledger_repo = LedgerRepository(session)
        self.task_repo = TaskAssignmentRepository(session)
        self.edge_repo = ReferralEdgeRepository(session)
        self.profile_repo = VolunteerProfileRepository(session)

    async def distribute(
        self,
        period_type: str,
        pool_amount: Decimal | str | int,
        organization_id: int,
        now: datetime | None = None,
        stop_event: asyncio.Event | None = None,
        deadline: datetime | None = None,
    ) -> list[LedgerEntry]:
        """
        Distribute a pool for the period containing now.

        Args:
            period_type: daily | weekly | monthly
            pool_amount: Pool to distribute (<= 0 is a no-op)
            organization_id: Organization scope
            now: Evaluation time (defaults to current UTC time)
            stop_event: Set to request cancellation between recipients
            deadline: Stop between recipients after this time

        Returns:
            performance_bonus entries of this run

        Raises:
            InvalidPeriodError: Unknown period type
            InvalidAmountError: pool_amount is not a number
        """
        if period_type not in PeriodType.ALL:
            raise InvalidPeriodError(period_type=period_type)
        try:
            pool = Decimal(str(pool_amount))
        except ArithmeticError as e:
            raise InvalidAmountError(pool_amount=str(pool_amount)) from e

        now = as_utc(now) if now else utc_now()
        start = period_start(period_type, now)
        run_key = budget_run_key(period_type, start, organization_id)
        log_ctx = {"run_key": run_key, "pool_amount": str(pool)}

        if not pool.is_finite() or pool <= 0:
            self.logger.info("Budget pool empty, nothing to distribute", extra=log_ctx)
            return []

        run = await self._get_or_create_run(run_key, period_type, start, organization_id, pool)
        trigger_id = f"budget:{run_key}"

        if run.status == BudgetRunStatus.COMPLETED:
            self.logger.info("Budget run already completed", extra=log_ctx)
            return await self.ledger_repo.get_by_trigger(
                trigger_id, entry_type=LedgerEntryType.PERFORMANCE_BONUS
            )

        # Plain values: a rolled back payout expires the ORM instance
        run_id = run.id
        run_pool = run.pool_amount
        distributed = run.distributed_amount

        bonuses = await self._plan(period_type, run_pool, start, now, organization_id)
        if not bonuses:
            self.logger.info("No eligible volunteers for budget run", extra=log_ctx)

        paid = await self.ledger_repo.get_paid_user_ids(trigger_id)
        cancelled = False

        for bonus in bonuses:
            if (stop_event and stop_event.is_set()) or (deadline and utc_now() >= deadline):
                cancelled = True
                self.logger.warning(
                    "Budget run cancelled",
                    extra={**log_ctx, "paid": len(paid)},
                )
                break
            if bonus.user_id in paid:
                continue

            amount = min(bonus.amount, run_pool - distributed)
            if amount < self.policy.minimum_payout:
                continue

            await self._pay(run_id, trigger_id, period_type, bonus, amount)
            distributed += amount
            paid.add(bonus.user_id)

        if not cancelled:
            await self._complete(run_id)
            self.logger.info(
                "Budget run completed",
                extra={**log_ctx, "recipients": len(paid), "distributed": str(distributed)},
            )

        return await self.ledger_repo.get_by_trigger(
            trigger_id, entry_type=LedgerEntryType.PERFORMANCE_BONUS
        )

    async def _get_or_create_run(
        self,
        run_key: str,
        period_type: str,
        start: datetime,
        organization_id: int,
        pool: Decimal,
    ) -> BudgetRun:
        run = await self.run_repo.get_by_key(run_key)
        if run:
            return run
        try:
            run = await self.run_repo.create(
                run_key=run_key,
                period_type=period_type,
                period_start=start,
                organization_id=organization_id,
                status=BudgetRunStatus.PENDING,
                pool_amount=pool,
                distributed_amount=Decimal("0"),
            )
            await self.commit()
        except IntegrityError:
            await self.rollback()
            run = await self.run_repo.get_by_key(run_key)
            if not run:
                raise
        return run

    async def gather_performances(
        self,
        period_type: str,
        start: datetime,
        now: datetime,
        organization_id: int,
    ) -> list[VolunteerPerformance]:
        """
        Collect in-period activity of eligible volunteers.

        Eligible: at least min_tasks_per_period approved tasks in [start, now).
        """
        rows = await self.task_repo.get_approved_in_period(start, now, organization_id)
        by_user: dict[int, list[ApprovedTaskRow]] = defaultdict(list)
        for row in rows:
            by_user[row.assignee_id].append(row)

        minimum = self.policy.min_tasks_per_period.get(period_type, 1)
        eligible = sorted(uid for uid, tasks in by_user.items() if len(tasks) >= minimum)
        if not eligible:
            return []

        contributors = set(by_user)
        multipliers = await self.profile_repo.get_multipliers(eligible)
        rejected = await self.task_repo.count_rejected_in_period(eligible, start, now)
        overdue = await self.task_repo.count_overdue(
            eligible, now - timedelta(days=self.policy.overdue_after_days)
        )

        performances = []
        for user_id in eligible:
            referred = await self.edge_repo.get_active_referred_ids(user_id)
            tasks = by_user[user_id]
            performances.append(
                VolunteerPerformance(
                    user_id=user_id,
                    multiplier=multipliers.get(user_id, self.policy.base_multiplier),
                    approved_tasks=[(t.xp_reward, t.level_required) for t in tasks],
                    active_referrals=len(contributors.intersection(referred)),
                    rejected_tasks=rejected.get(user_id, 0),
                    overdue_tasks=overdue.get(user_id, 0),
                    earliest_assigned_at=min(as_utc(t.assigned_at) for t in tasks),
                )
            )
        return performances

    async def _plan(
        self,
        period_type: str,
        pool: Decimal,
        start: datetime,
        now: datetime,
        organization_id: int,
    ) -> list[PlannedBonus]:
        performances = await self.gather_performances(period_type, start, now, organization_id)
        if not performances:
            return []
        ranked = rank_volunteers(performances, self.policy)
        return plan_bonuses(period_type, pool, ranked, self.policy)

    async def _pay(
        self,
        run_id: int,
        trigger_id: str,
        period_type: str,
        bonus: PlannedBonus,
        amount: Decimal,
    ) -> None:
        source_kind, source_id = to_columns(BudgetRunRef(run_id))
        entry = LedgerEntry(
            idempotency_key=f"{trigger_id}:{bonus.user_id}",
            trigger_id=trigger_id,
            user_id=bonus.user_id,
            entry_type=LedgerEntryType.PERFORMANCE_BONUS,
            amount=amount,
            status=LedgerEntryStatus.COMPLETED,
            source_kind=source_kind,
            source_id=source_id,
            description=f"{period_type.capitalize()} performance bonus - Rank #{bonus.rank}",
            extra_data={
                "period_type": period_type,
                "performance_score": bonus.score,
                "rank": bonus.rank,
                "share": str(bonus.share),
            },
        )
        try:
            self.session.add(entry)
            await self.session.flush()
            await self.run_repo.add_distributed(run_id, amount)
            await self.commit()
        except IntegrityError:
            # Another worker paid this recipient first
            await self.rollback()
            self.logger.info(
                "Budget payout already written",
                extra={"trigger_id": trigger_id, "user_id": bonus.user_id},
            )
            return
        except Exception:
            await self.rollback()
            raise

        self.logger.info(
            "Performance bonus awarded",
            extra={
                "trigger_id": trigger_id,
                "user_id": bonus.user_id,
                "rank": bonus.rank,
                "score": bonus.score,
                "amount": str(amount),
            },
        )
        publish_safely(
            self.publisher,
            PerformanceBonusAwarded(
                user_id=bonus.user_id,
                period_type=period_type,
                rank=bonus.rank,
                amount=amount,
            ),
        )

    async def _complete(self, run_id: int) -> None:
        run = await self.run_repo.get_by_id(run_id, for_update=True)
        run.status = BudgetRunStatus.COMPLETED
        run.completed_at = utc_now()
        await self.session.flush()
        await self.commit()
