"""
Team repository.

Read-only queries over team data for the leadership bonus.
"""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.team import Team, TeamMembership
from app.models.volunteer_profile import VolunteerProfile
from app.repositories.base import BaseRepository


class TeamRepository(BaseRepository[Team]):
    """Team repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize team repository."""
        super().__init__(Team, session)

    async def count_led_teams(self, leader_id: int) -> int:
        """Count active teams led by a user."""
        return await self.count(leader_id=leader_id, is_active=True)

    async def count_active_members(
        self, leader_id: int, active_since: datetime
    ) -> int:
        """
        Count distinct recently active members across a leader's teams.

        Args:
            leader_id: Team leader user ID
            active_since: Lower bound for member last_activity_at

        Returns:
            Number of distinct members
        """
        stmt = (
            select(func.count(func.distinct(TeamMembership.user_id)))
            .join(Team, Team.id == TeamMembership.team_id)
            .join(VolunteerProfile, VolunteerProfile.user_id == TeamMembership.user_id)
            .where(
                Team.leader_id == leader_id,
                Team.is_active.is_(True),
                TeamMembership.is_active.is_(True),
                TeamMembership.user_id != leader_id,
                VolunteerProfile.last_activity_at >= active_since,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0
