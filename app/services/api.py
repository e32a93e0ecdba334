"""
Service-level API.

One entry point per external operation; each call runs in its own
session. Web, admin and scheduler layers call this facade instead of
wiring services themselves.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.reward_policy import DEFAULT_POLICY, RewardPolicy
from app.models.ledger_entry import LedgerEntry
from app.models.referral import ReferralEdge
from app.models.task import TaskAssignment
from app.models.volunteer_profile import VolunteerProfile
from app.services.budget import BudgetAllocator
from app.services.commission import CommissionDistributor, DistributionResult
from app.services.events import EventPublisher, LoggingEventPublisher
from app.services.leaderboard_service import (
    LeaderboardEntry,
    LeaderboardService,
    VolunteerRank,
)
from app.services.leveling_service import LevelChangeResult, LevelingService
from app.services.multiplier import MultiplierService, RecomputeSummary
from app.services.profile_service import ProfileService
from app.services.referral import Ancestor, ReferralChainManager, ReferralQueryManager
from app.services.task_approval_service import ApprovalResult, TaskApprovalService
from app.services.work_queue import WorkEnqueuer


class RewardsFacade:
    """External operations of the rewards engine."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        enqueuer: WorkEnqueuer,
        policy: RewardPolicy | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        """
        Initialize facade.

        Args:
            session_maker: Session factory
            enqueuer: Work queue
            policy: Reward policy
            publisher: Domain event sink
        """
        self.session_maker = session_maker
        self.enqueuer = enqueuer
        self.policy = policy or DEFAULT_POLICY
        self.publisher = publisher or LoggingEventPublisher()

    async def register_volunteer(
        self,
        user_id: int,
        organization_id: int,
        referral_code: str | None = None,
    ) -> VolunteerProfile:
        """
        Create the profile, then the referral chain if a code is given.

        Two explicit steps: a failing chain (unknown code, self referral)
        does not undo the profile.
        """
        async with self.session_maker() as session:
            profile = await ProfileService(session, self.policy).get_or_create_profile(
                user_id, organization_id
            )
            if referral_code:
                await ReferralChainManager(session, self.policy).create_referral_chain_by_code(
                    referral_code, user_id
                )
            return profile

    async def create_referral_chain(
        self, referrer_id: int, referred_id: int
    ) -> list[ReferralEdge]:
        """Create the ancestor chain of a referred user."""
        async with self.session_maker() as session:
            return await ReferralChainManager(session, self.policy).create_referral_chain(
                referrer_id, referred_id
            )

    async def award_experience(self, user_id: int, amount: int) -> LevelChangeResult:
        """Award experience points."""
        async with self.session_maker() as session:
            service = LevelingService(session, self.policy, self.enqueuer, self.publisher)
            return await service.award_experience(user_id, amount)

    async def distribute_commission(
        self, trigger_id: str, earning_user_id: int, sale_amount: Decimal | str
    ) -> DistributionResult:
        """Distribute commission for one trigger (idempotent)."""
        async with self.session_maker() as session:
            distributor = CommissionDistributor(
                session, self.policy, self.enqueuer, self.publisher
            )
            return await distributor.distribute_commission(
                trigger_id, earning_user_id, sale_amount
            )

    async def assign_task(self, template_id: int, assignee_id: int) -> TaskAssignment:
        """Give a task to a volunteer whose level allows it."""
        async with self.session_maker() as session:
            service = TaskApprovalService(
                session, self.policy, self.enqueuer, self.publisher
            )
            return await service.assign(template_id, assignee_id)

    async def approve_task(
        self, assignment_id: int, reviewer_id: int, notes: str | None = None
    ) -> ApprovalResult:
        """Approve submitted task work."""
        async with self.session_maker() as session:
            service = TaskApprovalService(
                session, self.policy, self.enqueuer, self.publisher
            )
            return await service.approve(assignment_id, reviewer_id, notes)

    async def ancestors_of(self, user_id: int) -> list[Ancestor]:
        """Ordered ancestors for referral tree rendering."""
        async with self.session_maker() as session:
            return await ReferralQueryManager(session, self.policy).ancestors_of(user_id)

    async def current_multiplier(self, user_id: int) -> float:
        """Stored activity multiplier."""
        async with self.session_maker() as session:
            return await MultiplierService(session, self.policy).current_multiplier(user_id)

    async def recompute_all_multipliers(
        self, organization_id: int | None = None, **kwargs
    ) -> RecomputeSummary:
        """Periodic multiplier recompute (accepts stop_event / deadline)."""
        async with self.session_maker() as session:
            return await MultiplierService(session, self.policy).recompute_all(
                organization_id, **kwargs
            )

    async def distribute_budget(
        self,
        period_type: str,
        organization_id: int,
        pool_amount: Decimal | str,
        **kwargs,
    ) -> list[LedgerEntry]:
        """Periodic budget distribution (accepts now / stop_event / deadline)."""
        async with self.session_maker() as session:
            allocator = BudgetAllocator(session, self.policy, self.publisher)
            return await allocator.distribute(
                period_type, pool_amount, organization_id, **kwargs
            )

    async def top_performers(
        self, period_type: str, limit: int = 10, organization_id: int | None = None
    ) -> list[LeaderboardEntry]:
        """Leaderboard for a daily, weekly or monthly window."""
        async with self.session_maker() as session:
            return await LeaderboardService(session, self.policy).top_performers(
                period_type, limit, organization_id
            )

    async def volunteer_rank(
        self, user_id: int, period_type: str, organization_id: int | None = None
    ) -> VolunteerRank:
        """Rank, board size and percentile of one volunteer."""
        async with self.session_maker() as session:
            return await LeaderboardService(session, self.policy).volunteer_rank(
                user_id, period_type, organization_id
            )
