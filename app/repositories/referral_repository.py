"""
Referral repository.

Data access layer for ReferralEdge model.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.referral import ReferralEdge
from app.models.volunteer_profile import VolunteerProfile
from app.repositories.base import BaseRepository


class ReferralEdgeRepository(BaseRepository[ReferralEdge]):
    """Referral edge repository with graph queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral edge repository."""
        super().__init__(ReferralEdge, session)

    async def get_by_referred(
        self,
        referred_id: int,
        active_only: bool = False,
        max_depth: int | None = None,
    ) -> list[ReferralEdge]:
        """
        Get ancestor edges of a referred user in ascending level order.

        Args:
            referred_id: Referred user ID
            active_only: Only return active edges
            max_depth: Optional maximum level

        Returns:
            Edges ordered by level (direct referrer first)
        """
        stmt = (
            select(ReferralEdge)
            .where(ReferralEdge.referred_id == referred_id)
            .order_by(ReferralEdge.level)
        )
        if active_only:
            stmt = stmt.where(ReferralEdge.active.is_(True))
        if max_depth is not None:
            stmt = stmt.where(ReferralEdge.level <= max_depth)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def has_edges_for(self, referred_id: int) -> bool:
        """Check whether the user has ever been chained."""
        return await self.exists(referred_id=referred_id)

    async def get_by_referrer(
        self, referrer_id: int, level: int | None = None
    ) -> list[ReferralEdge]:
        """
        Get edges by referrer.

        Args:
            referrer_id: Referrer user ID
            level: Optional level filter (1-5)

        Returns:
            List of edges
        """
        filters: dict[str, int] = {"referrer_id": referrer_id}
        if level:
            filters["level"] = level

        return await self.find_by(**filters)

    async def count_by_level(
        self, referrer_id: int, level: int
    ) -> int:
        """
        Count edges by level.

        Args:
            referrer_id: Referrer user ID
            level: Referral level (1-5)

        Returns:
            Count of edges
        """
        return await self.count(referrer_id=referrer_id, level=level)

    async def get_level_stats(
        self, referrer_id: int, max_depth: int
    ) -> dict[int, dict[str, int | Decimal]]:
        """
        Get referral statistics grouped by level in a single query.

        Args:
            referrer_id: Referrer user ID
            max_depth: Number of levels to report

        Returns:
            Dict mapping level to stats {
                1: {"count": 5, "active": 4, "total_paid": Decimal("10.50")},
                ...
            }
        """
        stmt = (
            select(
                ReferralEdge.level,
                func.count(ReferralEdge.id).label("edge_count"),
                func.count(ReferralEdge.id)
                .filter(ReferralEdge.active.is_(True))
                .label("active_count"),
                func.coalesce(
                    func.sum(ReferralEdge.total_commission_paid),
                    Decimal("0"),
                ).label("total_paid"),
            )
            .where(ReferralEdge.referrer_id == referrer_id)
            .group_by(ReferralEdge.level)
        )

        result = await self.session.execute(stmt)

        # Build result dict with all levels (default to 0)
        stats: dict[int, dict[str, int | Decimal]] = {
            level: {"count": 0, "active": 0, "total_paid": Decimal("0")}
            for level in range(1, max_depth + 1)
        }
        for row in result.all():
            stats[row.level] = {
                "count": row.edge_count,
                "active": row.active_count,
                "total_paid": Decimal(str(row.total_paid)),
            }

        return stats

    async def count_active_descendants(
        self, referrer_id: int, active_since: datetime
    ) -> int:
        """
        Count distinct descendants with recent activity.

        Only active edges are followed; a descendant counts once even if
        reachable at several levels.

        Args:
            referrer_id: Ancestor user ID
            active_since: Lower bound for last_activity_at

        Returns:
            Number of distinct referred users
        """
        stmt = (
            select(func.count(func.distinct(ReferralEdge.referred_id)))
            .join(
                VolunteerProfile,
                VolunteerProfile.user_id == ReferralEdge.referred_id,
            )
            .where(
                ReferralEdge.referrer_id == referrer_id,
                ReferralEdge.active.is_(True),
                VolunteerProfile.last_activity_at >= active_since,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_active_referred_ids(self, referrer_id: int) -> list[int]:
        """
        Get distinct user IDs reachable through active edges.

        Args:
            referrer_id: Ancestor user ID

        Returns:
            List of referred user IDs
        """
        stmt = (
            select(ReferralEdge.referred_id)
            .where(
                ReferralEdge.referrer_id == referrer_id,
                ReferralEdge.active.is_(True),
            )
            .distinct()
        )
        result = await self.session.execute(stmt)
        return [row[0] for row in result.all()]

    async def increment_commission_paid(
        self, edge_id: int, amount: Decimal
    ) -> None:
        """
        Atomically add to total_commission_paid.

        Args:
            edge_id: Edge ID
            amount: Non-negative amount to add
        """
        # Atomic SQL increment, no read-modify-write
        stmt = (
            update(ReferralEdge)
            .where(ReferralEdge.id == edge_id)
            .values(
                total_commission_paid=ReferralEdge.total_commission_paid + amount
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def deactivate_all_for_user(self, user_id: int) -> int:
        """
        Deactivate every edge touching a user (as referrer or referred).

        Args:
            user_id: User ID

        Returns:
            Number of edges deactivated
        """
        stmt = (
            update(ReferralEdge)
            .where(
                or_(
                    ReferralEdge.referrer_id == user_id,
                    ReferralEdge.referred_id == user_id,
                ),
                ReferralEdge.active.is_(True),
            )
            .values(active=False)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
