"""
VolunteerProfile repository.

Data access layer for VolunteerProfile model.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.volunteer_profile import VolunteerProfile
from app.repositories.base import BaseRepository


class VolunteerProfileRepository(BaseRepository[VolunteerProfile]):
    """Volunteer profile repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize volunteer profile repository."""
        super().__init__(VolunteerProfile, session)

    async def get_by_referral_code(
        self, referral_code: str
    ) -> VolunteerProfile | None:
        """
        Get profile by referral code.

        Args:
            referral_code: Referral code (case-insensitive)

        Returns:
            Profile or None
        """
        return await self.get_by(referral_code=referral_code.strip().upper())

    async def get_referrer_ids(
        self, user_ids: list[int]
    ) -> dict[int, int | None]:
        """
        Map user IDs to their direct referrer.

        Args:
            user_ids: Profiles to look up

        Returns:
            Dict of user_id -> referrer_id (missing profiles are omitted)
        """
        if not user_ids:
            return {}
        stmt = select(
            VolunteerProfile.user_id, VolunteerProfile.referrer_id
        ).where(VolunteerProfile.user_id.in_(user_ids))
        result = await self.session.execute(stmt)
        return {row.user_id: row.referrer_id for row in result.all()}

    async def get_multipliers(
        self, user_ids: list[int]
    ) -> dict[int, float]:
        """
        Get current activity multipliers for several users in one query.

        Args:
            user_ids: Profiles to look up

        Returns:
            Dict of user_id -> activity_multiplier
        """
        if not user_ids:
            return {}
        stmt = select(
            VolunteerProfile.user_id, VolunteerProfile.activity_multiplier
        ).where(VolunteerProfile.user_id.in_(user_ids))
        result = await self.session.execute(stmt)
        return {row.user_id: row.activity_multiplier for row in result.all()}

    async def get_many(self, user_ids: list[int]) -> dict[int, VolunteerProfile]:
        """Profiles for several users in one query, keyed by user_id."""
        if not user_ids:
            return {}
        stmt = select(VolunteerProfile).where(VolunteerProfile.user_id.in_(user_ids))
        result = await self.session.execute(stmt)
        return {profile.user_id: profile for profile in result.scalars().all()}

    async def get_active_user_ids(
        self, organization_id: int | None = None
    ) -> list[int]:
        """
        Get IDs of all open profiles.

        Args:
            organization_id: Optional organization scope

        Returns:
            User IDs in ascending order
        """
        stmt = (
            select(VolunteerProfile.user_id)
            .where(VolunteerProfile.is_active.is_(True))
            .order_by(VolunteerProfile.user_id)
        )
        if organization_id is not None:
            stmt = stmt.where(VolunteerProfile.organization_id == organization_id)
        result = await self.session.execute(stmt)
        return [row[0] for row in result.all()]

    async def get_inactive_since(
        self, cutoff: datetime, organization_id: int | None = None
    ) -> list[VolunteerProfile]:
        """
        Get open profiles with no activity since cutoff.

        Args:
            cutoff: Last activity threshold
            organization_id: Optional organization scope

        Returns:
            List of profiles
        """
        stmt = select(VolunteerProfile).where(
            VolunteerProfile.is_active.is_(True),
            VolunteerProfile.last_activity_at < cutoff,
        )
        if organization_id is not None:
            stmt = stmt.where(VolunteerProfile.organization_id == organization_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
