"""
Leveling service.

Experience accumulation, level derivation from fixed thresholds and the
cumulative capability set per level.
"""

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import RewardPolicy
from app.models.volunteer_profile import VolunteerProfile
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService, transaction
from app.services.events import (
    EventPublisher,
    LevelChanged,
    LoggingEventPublisher,
    publish_safely,
)
from app.services.profile_service import mark_activity
from app.services.work_queue import NullWorkEnqueuer, WorkEnqueuer
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import ProfileNotFoundError


@dataclass(frozen=True)
class LevelChangeResult:
    """Outcome of an experience award."""

    user_id: int
    leveled_up: bool
    previous_level: int
    new_level: int
    total_experience: int
    unlocked_capabilities: frozenset[str] = field(default_factory=frozenset)
    capabilities: frozenset[str] = field(default_factory=frozenset)


def level_for_experience(total_experience: int, thresholds: dict[int, int]) -> int:
    """
    Highest level whose threshold is reached.

    Examples:
        >>> level_for_experience(110, {1: 0, 2: 100, 3: 500})
        2
    """
    level = 1
    for candidate, threshold in sorted(thresholds.items()):
        if total_experience >= threshold:
            level = candidate
    return level


def capabilities_of(level: int, policy: RewardPolicy) -> frozenset[str]:
    """Cumulative capability set for a level (pure)."""
    capabilities: set[str] = set()
    for unlock_level, unlocked in policy.level_unlocks.items():
        if unlock_level <= level:
            capabilities.update(unlocked)
    return frozenset(capabilities)


def xp_to_next_level(
    total_experience: int, level: int, policy: RewardPolicy
) -> int | None:
    """Experience still needed for the next level, None at max level."""
    next_threshold = policy.level_thresholds.get(level + 1)
    if next_threshold is None:
        return None
    return max(next_threshold - total_experience, 0)


def progress_to_next_level(
    total_experience: int, level: int, policy: RewardPolicy
) -> int:
    """Percent progress from the current to the next threshold (100 at max)."""
    next_threshold = policy.level_thresholds.get(level + 1)
    if next_threshold is None:
        return 100
    current_threshold = policy.level_thresholds.get(level, 0)
    if next_threshold <= current_threshold:
        return 100
    progress = (total_experience - current_threshold) / (next_threshold - current_threshold)
    return max(0, min(round(progress * 100), 100))


class LevelingService(BaseService):
    """Experience and level management."""

    def __init__(
        self,
        session: AsyncSession,
        policy: RewardPolicy | None = None,
        enqueuer: WorkEnqueuer | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        """Initialize leveling service."""
        super().__init__(session, policy)
        self.enqueuer = enqueuer or NullWorkEnqueuer()
        self.publisher = publisher or LoggingEventPublisher()
        self.profile_repo = VolunteerProfileRepository(session)

    def capabilities_of(self, level: int) -> frozenset[str]:
        """Cumulative capability set for a level."""
        return capabilities_of(level, self.policy)

    def apply_experience(
        self, profile: VolunteerProfile, amount: int
    ) -> LevelChangeResult:
        """
        Add experience to a locked profile without committing.

        Level is never lowered, even if thresholds changed since it was set.
        """
        previous_level = profile.level
        if amount > 0:
            profile.total_experience += amount
            profile.level = max(
                profile.level,
                level_for_experience(profile.total_experience, self.policy.level_thresholds),
            )
            mark_activity(profile, utc_now())

        capabilities = self.capabilities_of(profile.level)
        leveled_up = profile.level > previous_level
        unlocked = (
            capabilities - self.capabilities_of(previous_level)
            if leveled_up
            else frozenset()
        )
        return LevelChangeResult(
            user_id=profile.user_id,
            leveled_up=leveled_up,
            previous_level=previous_level,
            new_level=profile.level,
            total_experience=profile.total_experience,
            unlocked_capabilities=unlocked,
            capabilities=capabilities,
        )

    async def award_experience(self, user_id: int, amount: int) -> LevelChangeResult:
        """
        Award experience and derive the new level.

        A non-positive amount is a no-op that reports the current state.

        Args:
            user_id: Volunteer user ID
            amount: Experience points to add

        Returns:
            LevelChangeResult

        Raises:
            ProfileNotFoundError: If the user has no profile
            ProfileConflictError: Concurrent profile update; retry
        """
        if amount <= 0:
            profile = await self.profile_repo.get_by_id(user_id)
            if not profile:
                raise ProfileNotFoundError(user_id=user_id)
            self.logger.debug(
                "Ignoring non-positive experience award",
                extra={"user_id": user_id, "amount": amount},
            )
            return self.apply_experience(profile, 0)

        result = await self._award(user_id, amount)
        self.after_commit(result)
        return result

    @transaction
    async def _award(self, user_id: int, amount: int) -> LevelChangeResult:
        profile = await self.profile_repo.get_by_id(user_id, for_update=True)
        if not profile:
            raise ProfileNotFoundError(user_id=user_id)
        result = self.apply_experience(profile, amount)
        await self.session.flush()

        self.logger.info(
            "Experience awarded",
            extra={
                "user_id": user_id,
                "amount": amount,
                "total_experience": result.total_experience,
                "level": result.new_level,
            },
        )
        return result

    def after_commit(self, result: LevelChangeResult) -> None:
        """Signal a level change and schedule the multiplier update."""
        if not result.leveled_up:
            return
        self.logger.info(
            "Volunteer leveled up",
            extra={
                "user_id": result.user_id,
                "old_level": result.previous_level,
                "new_level": result.new_level,
            },
        )
        publish_safely(
            self.publisher,
            LevelChanged(
                user_id=result.user_id,
                old_level=result.previous_level,
                new_level=result.new_level,
                new_capabilities=result.unlocked_capabilities,
            ),
        )
        self.enqueuer.enqueue_multiplier_recalculation(result.user_id)
