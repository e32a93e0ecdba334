"""
Multiplier service.

Gathers multiplier inputs, computes the value and persists it when it
moved by more than the tolerance. Never cascades to other users.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.business_constants import Capability
from app.config.reward_policy import RewardPolicy
from app.models.volunteer_profile import VolunteerProfile
from app.repositories.task_assignment_repository import TaskAssignmentRepository
from app.repositories.team_repository import TeamRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService, log_operation, transaction
from app.services.leveling_service import capabilities_of
from app.services.multiplier.calculator import (
    MultiplierBreakdown,
    MultiplierInputs,
    calculate_multiplier,
    needs_update,
)
from app.services.referral.query_manager import ReferralQueryManager
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import ProfileNotFoundError


@dataclass
class RecomputeSummary:
    """Result of a periodic recompute run."""

    processed: int = 0
    updated: int = 0
    failed: int = 0
    cancelled: bool = False


class MultiplierService(BaseService):
    """Activity multiplier recomputation."""

    def __init__(
        self, session: AsyncSession, policy: RewardPolicy | None = None
    ) -> None:
        """Initialize multiplier service."""
        super().__init__(session, policy)
        self.profile_repo = VolunteerProfileRepository(session)
        self.task_repo = TaskAssignmentRepository(session)
        self.team_repo = TeamRepository(session)
        self.query_manager = ReferralQueryManager(session, self.policy)

    async def current_multiplier(self, user_id: int) -> float:
        """
        Stored multiplier of a user.

        Raises:
            ProfileNotFoundError: If the user has no profile
        """
        profile = await self.profile_repo.get_by_id(user_id)
        if not profile:
            raise ProfileNotFoundError(user_id=user_id)
        return profile.activity_multiplier

    async def gather_inputs(
        self, profile: VolunteerProfile, now: datetime
    ) -> MultiplierInputs:
        """Read task, referral and team data for one volunteer."""
        window_start = now - timedelta(days=self.policy.activity_window_days)
        capabilities = capabilities_of(profile.level, self.policy)

        tasks = await self.task_repo.count_approved_since(profile.user_id, window_start)
        descendants = await self.query_manager.active_descendant_count(
            profile.user_id, self.policy.activity_window_days
        )

        led_teams = 0
        team_members = 0
        if Capability.TEAM_LEADERSHIP in capabilities:
            led_teams = await self.team_repo.count_led_teams(profile.user_id)
            if led_teams:
                team_members = await self.team_repo.count_active_members(
                    profile.user_id, window_start
                )

        return MultiplierInputs(
            level=profile.level,
            tasks_completed_in_window=tasks,
            active_descendants=descendants,
            capabilities=capabilities,
            led_teams=led_teams,
            active_team_members=team_members,
            last_activity_at=profile.last_activity_at,
        )

    async def recompute(self, user_id: int) -> float:
        """
        Recompute and persist the multiplier of one user.

        Inputs are read before the profile row is locked; the locked part
        only compares and writes.

        Args:
            user_id: Volunteer user ID

        Returns:
            Multiplier in [base, max] now in effect

        Raises:
            ProfileNotFoundError: If the user has no profile
            ProfileConflictError: Concurrent profile update; retry
        """
        now = utc_now()
        profile = await self.profile_repo.get_by_id(user_id)
        if not profile:
            raise ProfileNotFoundError(user_id=user_id)

        inputs = await self.gather_inputs(profile, now)
        breakdown = calculate_multiplier(inputs, now, self.policy)
        return await self._store(user_id, breakdown, now)

    @transaction
    async def _store(
        self, user_id: int, breakdown: MultiplierBreakdown, now: datetime
    ) -> float:
        profile = await self.profile_repo.get_by_id(user_id, for_update=True)
        if not profile:
            raise ProfileNotFoundError(user_id=user_id)

        if not needs_update(
            profile.activity_multiplier,
            breakdown.multiplier,
            self.policy.multiplier_tolerance,
        ):
            self.logger.debug(
                "Multiplier unchanged",
                extra={"user_id": user_id, "multiplier": profile.activity_multiplier},
            )
            return profile.activity_multiplier

        old = profile.activity_multiplier
        profile.activity_multiplier = breakdown.multiplier
        profile.multiplier_calculated_at = now
        await self.session.flush()

        self.logger.info(
            "Multiplier updated",
            extra={
                "user_id": user_id,
                "old_multiplier": old,
                "new_multiplier": breakdown.multiplier,
                "level_bonus": breakdown.level_bonus,
                "activity_bonus": breakdown.activity_bonus,
                "referral_bonus": breakdown.referral_bonus,
                "leadership_bonus": breakdown.leadership_bonus,
                "inactive_weeks": breakdown.inactive_weeks,
            },
        )
        return breakdown.multiplier

    @log_operation
    async def recompute_all(
        self,
        organization_id: int | None = None,
        stop_event: asyncio.Event | None = None,
        deadline: datetime | None = None,
    ) -> RecomputeSummary:
        """
        Recompute every open profile, one transaction per profile.

        Cancellation is cooperative: the run stops between profiles when
        stop_event is set or the deadline passes; already written profiles
        stay written.

        Args:
            organization_id: Optional organization scope
            stop_event: Set to request cancellation
            deadline: Stop after this time

        Returns:
            RecomputeSummary
        """
        summary = RecomputeSummary()
        user_ids = await self.profile_repo.get_active_user_ids(organization_id)

        for user_id in user_ids:
            if (stop_event and stop_event.is_set()) or (deadline and utc_now() >= deadline):
                summary.cancelled = True
                self.logger.warning(
                    "Multiplier recompute cancelled",
                    extra={
                        "processed": summary.processed,
                        "remaining": len(user_ids) - summary.processed,
                    },
                )
                break

            stored = await self.profile_repo.get_by_id(user_id)
            before = stored.activity_multiplier if stored else None
            try:
                after = await self.recompute(user_id)
            except ProfileNotFoundError:
                summary.processed += 1
                continue
            except Exception as e:
                summary.processed += 1
                summary.failed += 1
                self.logger.error(
                    "Failed to calculate multiplier for profile",
                    extra={"user_id": user_id, "error": str(e)},
                )
                continue

            summary.processed += 1
            if before is not None and after != before:
                summary.updated += 1

        self.logger.info(
            "Multiplier recompute finished",
            extra={
                "organization_id": organization_id,
                "processed": summary.processed,
                "updated": summary.updated,
                "failed": summary.failed,
            },
        )
        return summary
