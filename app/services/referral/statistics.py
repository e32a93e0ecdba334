"""
Referral statistics module.

Per-level network counts and commission totals for a referrer, and the
upward chain summary for a referred user.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import DEFAULT_POLICY, RewardPolicy
from app.repositories.referral_repository import ReferralEdgeRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.referral.query_manager import ReferralQueryManager

CENT = Decimal("0.01")


@dataclass
class LevelStats:
    """Network size and payouts at one level."""

    count: int = 0
    active: int = 0
    total_paid: Decimal = Decimal("0")


@dataclass
class ChainMember:
    """Ancestor as shown in a chain summary."""

    user_id: int
    level: int
    commission_rate: Decimal
    activity_multiplier: float
    active: bool


@dataclass
class ChainStatistics:
    """Upward referral chain of one user."""

    user_id: int
    depth: int
    referrers: list[ChainMember] = field(default_factory=list)
    has_full_chain: bool = False


class ReferralStatisticsManager:
    """Manages referral statistics and analytics."""

    def __init__(
        self, session: AsyncSession, policy: RewardPolicy | None = None
    ) -> None:
        """Initialize statistics manager."""
        self.session = session
        self.policy = policy or DEFAULT_POLICY
        self.edge_repo = ReferralEdgeRepository(session)
        self.profile_repo = VolunteerProfileRepository(session)
        self.query_manager = ReferralQueryManager(session, self.policy)

    async def get_referral_stats(self, user_id: int) -> dict:
        """
        Get referral statistics for a referrer.

        Args:
            user_id: Referrer user ID

        Returns:
            Dict with per-level stats and totals
        """
        raw = await self.edge_repo.get_level_stats(
            user_id, self.policy.max_referral_depth
        )
        levels = {
            level: LevelStats(
                count=int(values["count"]),
                active=int(values["active"]),
                total_paid=Decimal(values["total_paid"]),
            )
            for level, values in raw.items()
        }
        return {
            "levels": levels,
            "total_referrals": sum(stats.count for stats in levels.values()),
            "active_referrals": sum(stats.active for stats in levels.values()),
            "total_commission": sum(
                (stats.total_paid for stats in levels.values()), Decimal("0")
            ),
        }

    async def get_chain_statistics(self, user_id: int) -> ChainStatistics:
        """
        Summarize the ancestors of a user.

        Args:
            user_id: Referred user ID

        Returns:
            Chain depth, ancestors with their current multipliers
        """
        ancestors = await self.query_manager.ancestors_of(user_id)
        multipliers = await self.profile_repo.get_multipliers(
            [ancestor.referrer_id for ancestor in ancestors]
        )
        referrers = [
            ChainMember(
                user_id=ancestor.referrer_id,
                level=ancestor.level,
                commission_rate=ancestor.commission_rate,
                activity_multiplier=multipliers.get(
                    ancestor.referrer_id, self.policy.base_multiplier
                ),
                active=ancestor.active,
            )
            for ancestor in ancestors
        ]
        return ChainStatistics(
            user_id=user_id,
            depth=len(referrers),
            referrers=referrers,
            has_full_chain=len(referrers) == self.policy.max_referral_depth,
        )

    def maximum_possible_commission(self, sale_amount: Decimal) -> Decimal:
        """
        Upper bound of total commission on a sale.

        Assumes a full chain with every referrer at the maximum multiplier.
        """
        total_rate = sum(
            (
                self.policy.rate_for_level(level)
                for level in range(1, self.policy.max_referral_depth + 1)
            ),
            Decimal("0"),
        )
        bound = Decimal(sale_amount) * total_rate * Decimal(str(self.policy.max_multiplier))
        return bound.quantize(CENT, rounding=ROUND_HALF_UP)
