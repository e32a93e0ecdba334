"""
Profile service.

Explicit profile lifecycle: creation on first interaction, activity
tracking and account closure. No persistence hooks create profiles or
referral chains implicitly; callers sequence those steps.
"""

import secrets
import string
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import RewardPolicy
from app.models.volunteer_profile import VolunteerProfile
from app.repositories.referral_repository import ReferralEdgeRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService, transaction
from app.utils.datetime_utils import as_utc, utc_now
from app.utils.exceptions import ProfileNotFoundError

REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 10


def generate_referral_code(length: int) -> str:
    """Random upper-case alphanumeric code."""
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length))


class ProfileService(BaseService):
    """Volunteer profile lifecycle."""

    def __init__(
        self, session: AsyncSession, policy: RewardPolicy | None = None
    ) -> None:
        """Initialize profile service."""
        super().__init__(session, policy)
        self.profile_repo = VolunteerProfileRepository(session)
        self.edge_repo = ReferralEdgeRepository(session)

    async def get_profile(self, user_id: int) -> VolunteerProfile:
        """
        Get profile by user ID.

        Raises:
            ProfileNotFoundError: If the user has no profile
        """
        profile = await self.profile_repo.get_by_id(user_id)
        if not profile:
            raise ProfileNotFoundError(user_id=user_id)
        return profile

    async def get_by_referral_code(
        self, referral_code: str
    ) -> VolunteerProfile | None:
        """Get profile owning a referral code."""
        if not referral_code or not referral_code.strip():
            return None
        return await self.profile_repo.get_by_referral_code(referral_code)

    async def get_or_create_profile(
        self, user_id: int, organization_id: int
    ) -> VolunteerProfile:
        """
        Get existing profile or create a new one.

        The referral code is generated once here and never changes.
        A concurrent creation for the same user resolves to the winner's row.

        Args:
            user_id: External user ID
            organization_id: Organization scope

        Returns:
            Profile
        """
        existing = await self.profile_repo.get_by_id(user_id)
        if existing:
            return existing

        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_referral_code(self.policy.referral_code_length)
            # Collision is unlikely but checked before insert
            if not await self.profile_repo.get_by_referral_code(code):
                break
        else:
            raise RuntimeError("Could not generate a unique referral code")

        try:
            profile = await self.profile_repo.create(
                user_id=user_id,
                organization_id=organization_id,
                referral_code=code,
                last_activity_at=utc_now(),
            )
            await self.commit()
        except IntegrityError:
            await self.rollback()
            profile = await self.profile_repo.get_by_id(user_id)
            if not profile:
                raise
            return profile

        self.logger.info(
            "Volunteer profile created",
            extra={
                "user_id": user_id,
                "organization_id": organization_id,
                "referral_code": code,
            },
        )
        return profile

    @transaction
    async def touch_activity(
        self, user_id: int, at: datetime | None = None
    ) -> VolunteerProfile:
        """
        Record qualifying activity.

        last_activity_at only moves forward.

        Raises:
            ProfileNotFoundError: If the user has no profile
        """
        profile = await self.profile_repo.get_by_id(user_id, for_update=True)
        if not profile:
            raise ProfileNotFoundError(user_id=user_id)
        mark_activity(profile, at or utc_now())
        await self.session.flush()
        return profile

    @transaction
    async def close_profile(self, user_id: int) -> int:
        """
        Close a profile on account deletion.

        Edges touching the user are deactivated, never deleted, so the
        commission history stays intact.

        Returns:
            Number of edges deactivated

        Raises:
            ProfileNotFoundError: If the user has no profile
        """
        profile = await self.profile_repo.get_by_id(user_id, for_update=True)
        if not profile:
            raise ProfileNotFoundError(user_id=user_id)

        profile.is_active = False
        await self.session.flush()
        deactivated = await self.edge_repo.deactivate_all_for_user(user_id)

        self.logger.info(
            "Volunteer profile closed",
            extra={"user_id": user_id, "edges_deactivated": deactivated},
        )
        return deactivated


def mark_activity(profile: VolunteerProfile, at: datetime) -> None:
    """Move last_activity_at forward to at (never backwards)."""
    current = as_utc(profile.last_activity_at)
    if current is None or as_utc(at) > current:
        profile.last_activity_at = at
