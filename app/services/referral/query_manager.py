"""
Referral query management module.

Read-side queries over the referral graph: ancestors (upward, for payouts)
and active descendants (downward, for the multiplier).
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import DEFAULT_POLICY, RewardPolicy
from app.models.referral import ReferralEdge
from app.repositories.referral_repository import ReferralEdgeRepository
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import ReferralInvariantError


@dataclass(frozen=True)
class Ancestor:
    """One ancestor of a user, as seen from the referred side."""

    referrer_id: int
    level: int
    commission_rate: Decimal
    active: bool
    edge_id: int

    @classmethod
    def from_edge(cls, edge: ReferralEdge) -> "Ancestor":
        return cls(
            referrer_id=edge.referrer_id,
            level=edge.level,
            commission_rate=edge.commission_rate,
            active=edge.active,
            edge_id=edge.id,
        )


class ReferralQueryManager:
    """Manages referral query operations."""

    def __init__(
        self, session: AsyncSession, policy: RewardPolicy | None = None
    ) -> None:
        """Initialize query manager."""
        self.session = session
        self.policy = policy or DEFAULT_POLICY
        self.edge_repo = ReferralEdgeRepository(session)

    async def ancestor_edges(
        self, user_id: int, active_only: bool = False
    ) -> list[ReferralEdge]:
        """
        Get the user's ancestor edges, direct referrer first.

        Raises:
            ReferralInvariantError: If the stored chain breaks the depth or
                one-edge-per-level invariant
        """
        edges = await self.edge_repo.get_by_referred(user_id)
        self._check_chain(user_id, edges)
        if active_only:
            edges = [edge for edge in edges if edge.active]
        return edges

    async def ancestors_of(
        self,
        user_id: int,
        max_depth: int | None = None,
        active_only: bool = False,
    ) -> list[Ancestor]:
        """
        Get ancestors of a user in ascending level order.

        Ordering is significant: commission payout walks this exact sequence.

        Args:
            user_id: Referred user ID
            max_depth: Deepest level to return (defaults to policy depth)
            active_only: Skip deactivated edges

        Returns:
            Ancestors from level 1 upward

        Raises:
            ReferralInvariantError: If stored edges violate the chain invariants
        """
        depth = max_depth or self.policy.max_referral_depth
        edges = await self.ancestor_edges(user_id, active_only=active_only)
        return [Ancestor.from_edge(edge) for edge in edges if edge.level <= depth]

    async def active_descendant_count(
        self, user_id: int, within_days: int
    ) -> int:
        """
        Count direct and indirect referred users active within the window.

        Only active edges count, and each descendant counts once.

        Args:
            user_id: Ancestor user ID
            within_days: Activity window in days

        Returns:
            Number of active descendants
        """
        since = utc_now() - timedelta(days=within_days)
        return await self.edge_repo.count_active_descendants(user_id, since)

    def _check_chain(self, user_id: int, edges: list[ReferralEdge]) -> None:
        levels = [edge.level for edge in edges]
        if (
            len(edges) > self.policy.max_referral_depth
            or len(set(levels)) != len(levels)
        ):
            logger.error(
                "Referral chain invariant violated",
                extra={
                    "user_id": user_id,
                    "edge_count": len(edges),
                    "levels": levels,
                    "edge_ids": [edge.id for edge in edges],
                },
            )
            raise ReferralInvariantError(
                f"User {user_id} has {len(edges)} ancestor edges",
                user_id=user_id,
                edge_count=len(edges),
            )
