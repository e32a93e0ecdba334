"""
Leaderboard service.

Read-only standings over tasks approved in a rolling daily, weekly or
monthly window. Period XP is the template XP of approved tasks scaled by
the volunteer's current activity multiplier.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from app.repositories.task_assignment_repository import TaskAssignmentRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import InvalidPeriodError, ProfileNotFoundError


@dataclass(frozen=True)
class LeaderboardEntry:
    """One volunteer's standing in a window."""

    rank: int
    user_id: int
    period_xp: Decimal
    tasks_completed: int
    total_experience: int
    level: int


@dataclass(frozen=True)
class VolunteerRank:
    """Where one volunteer stands among everyone active in a window."""

    rank: int
    total_volunteers: int
    percentile: Decimal


def percentile_of(rank: int, total: int) -> Decimal:
    """Share of volunteers at or below rank, in percent (100 when empty)."""
    if total == 0:
        return Decimal("100")
    value = Decimal(total - rank + 1) * 100 / Decimal(total)
    return max(value, Decimal("0")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class LeaderboardService(BaseService):
    """Top performers and individual rank per period."""

    async def standings(
        self,
        period_type: str,
        organization_id: int | None = None,
        now: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """
        Every volunteer with an approved task in the window, best first.

        Order: period XP, then lifetime experience (both descending), then
        lower user id.

        Raises:
            InvalidPeriodError: Unknown period type
        """
        window_days = self.policy.leaderboard_window_days.get(period_type)
        if window_days is None:
            raise InvalidPeriodError(period_type=period_type)

        now = now or utc_now()
        rows = await TaskAssignmentRepository(self.session).get_approved_in_period(
            now - timedelta(days=window_days), now, organization_id
        )

        base_xp: dict[int, int] = defaultdict(int)
        tasks: dict[int, int] = defaultdict(int)
        for row in rows:
            base_xp[row.assignee_id] += row.xp_reward
            tasks[row.assignee_id] += 1

        profiles = await VolunteerProfileRepository(self.session).get_many(list(base_xp))
        scored = []
        for user_id, xp in base_xp.items():
            profile = profiles[user_id]
            period_xp = (Decimal(xp) * Decimal(str(profile.activity_multiplier))).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
            scored.append((period_xp, profile))

        scored.sort(key=lambda item: (-item[0], -item[1].total_experience, item[1].user_id))
        return [
            LeaderboardEntry(
                rank=index + 1,
                user_id=profile.user_id,
                period_xp=period_xp,
                tasks_completed=tasks[profile.user_id],
                total_experience=profile.total_experience,
                level=profile.level,
            )
            for index, (period_xp, profile) in enumerate(scored)
        ]

    async def top_performers(
        self,
        period_type: str,
        limit: int = 10,
        organization_id: int | None = None,
        now: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """First `limit` standings (never more than leaderboard_limit)."""
        limit = min(limit, self.policy.leaderboard_limit)
        entries = await self.standings(period_type, organization_id, now)
        return entries[:limit]

    async def volunteer_rank(
        self,
        user_id: int,
        period_type: str,
        organization_id: int | None = None,
        now: datetime | None = None,
    ) -> VolunteerRank:
        """
        Rank of one volunteer in the window.

        A volunteer with no approved task in the window ranks after
        everyone on the board.

        Raises:
            ProfileNotFoundError: Unknown user
            InvalidPeriodError: Unknown period type
        """
        if not await VolunteerProfileRepository(self.session).get_by_id(user_id):
            raise ProfileNotFoundError(user_id=user_id)

        entries = await self.standings(period_type, organization_id, now)
        total = len(entries)
        rank = next(
            (entry.rank for entry in entries if entry.user_id == user_id),
            total + 1,
        )
        return VolunteerRank(
            rank=rank,
            total_volunteers=total,
            percentile=percentile_of(rank, total),
        )
