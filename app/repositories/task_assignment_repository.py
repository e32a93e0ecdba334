"""
TaskAssignment repository.

Data access layer for TaskAssignment model: the task history read by
the multiplier calculator and the budget allocator.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import TaskAssignmentStatus
from app.models.task import TaskAssignment, TaskTemplate
from app.models.volunteer_profile import VolunteerProfile
from app.repositories.base import BaseRepository


@dataclass(frozen=True)
class ApprovedTaskRow:
    """Approved assignment joined with its template."""

    assignment_id: int
    assignee_id: int
    xp_reward: int
    level_required: int
    assigned_at: datetime


class TaskAssignmentRepository(BaseRepository[TaskAssignment]):
    """Task assignment repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize task assignment repository."""
        super().__init__(TaskAssignment, session)

    async def count_approved_since(
        self, assignee_id: int, since: datetime
    ) -> int:
        """
        Count tasks approved for a user since a point in time.

        Args:
            assignee_id: Volunteer user ID
            since: Lower bound on reviewed_at

        Returns:
            Number of approved assignments
        """
        stmt = select(func.count(TaskAssignment.id)).where(
            TaskAssignment.assignee_id == assignee_id,
            TaskAssignment.status == TaskAssignmentStatus.APPROVED,
            TaskAssignment.reviewed_at >= since,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def count_unfinished_assigned_since(
        self, assignee_id: int, since: datetime
    ) -> int:
        """Count assignments taken since a point in time and not yet reviewed."""
        stmt = select(func.count(TaskAssignment.id)).where(
            TaskAssignment.assignee_id == assignee_id,
            TaskAssignment.status.in_(TaskAssignmentStatus.unfinished_statuses()),
            TaskAssignment.assigned_at >= since,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_approved_in_period(
        self,
        start: datetime,
        end: datetime,
        organization_id: int | None = None,
    ) -> list[ApprovedTaskRow]:
        """
        Get assignments approved in [start, end) with template data.

        Args:
            start: Period start
            end: Period end
            organization_id: Optional organization scope (by volunteer)

        Returns:
            Rows ordered by assignment id
        """
        stmt = (
            select(
                TaskAssignment.id,
                TaskAssignment.assignee_id,
                TaskTemplate.xp_reward,
                TaskTemplate.level_required,
                TaskAssignment.assigned_at,
            )
            .join(TaskTemplate, TaskTemplate.id == TaskAssignment.task_template_id)
            .join(
                VolunteerProfile,
                VolunteerProfile.user_id == TaskAssignment.assignee_id,
            )
            .where(
                TaskAssignment.status == TaskAssignmentStatus.APPROVED,
                TaskAssignment.reviewed_at >= start,
                TaskAssignment.reviewed_at < end,
                VolunteerProfile.is_active.is_(True),
            )
            .order_by(TaskAssignment.id)
        )
        if organization_id is not None:
            stmt = stmt.where(VolunteerProfile.organization_id == organization_id)

        result = await self.session.execute(stmt)
        return [
            ApprovedTaskRow(
                assignment_id=row[0],
                assignee_id=row[1],
                xp_reward=row[2],
                level_required=row[3],
                assigned_at=row[4],
            )
            for row in result.all()
        ]

    async def count_rejected_in_period(
        self, user_ids: list[int], start: datetime, end: datetime
    ) -> dict[int, int]:
        """
        Count assignments rejected in [start, end) per user.

        Args:
            user_ids: Users to count for
            start: Period start
            end: Period end

        Returns:
            Dict of user_id -> rejected count (only non-zero users)
        """
        if not user_ids:
            return {}
        stmt = (
            select(TaskAssignment.assignee_id, func.count(TaskAssignment.id))
            .where(
                TaskAssignment.assignee_id.in_(user_ids),
                TaskAssignment.status == TaskAssignmentStatus.REJECTED,
                TaskAssignment.reviewed_at >= start,
                TaskAssignment.reviewed_at < end,
            )
            .group_by(TaskAssignment.assignee_id)
        )
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    async def count_overdue(
        self, user_ids: list[int], assigned_before: datetime
    ) -> dict[int, int]:
        """
        Count open assignments taken before a cutoff, per user.

        Args:
            user_ids: Users to count for
            assigned_before: Assignments older than this are overdue

        Returns:
            Dict of user_id -> overdue count (only non-zero users)
        """
        if not user_ids:
            return {}
        stmt = (
            select(TaskAssignment.assignee_id, func.count(TaskAssignment.id))
            .where(
                TaskAssignment.assignee_id.in_(user_ids),
                TaskAssignment.status.in_(TaskAssignmentStatus.open_statuses()),
                TaskAssignment.assigned_at < assigned_before,
            )
            .group_by(TaskAssignment.assignee_id)
        )
        result = await self.session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}
