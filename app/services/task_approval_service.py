"""
Task approval service.

Assigns tasks to volunteers whose level allows them and drives
assignments through pending -> in_progress -> submitted ->
approved | rejected. Approval awards experience, records the task reward
and cascades referral commission exactly once.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import RewardPolicy
from app.config.settings import settings
from app.models.enums import LedgerEntryStatus, LedgerEntryType, TaskAssignmentStatus
from app.models.ledger_entry import LedgerEntry
from app.models.source_reference import TaskAssignmentRef, to_columns
from app.models.task import TaskAssignment, TaskTemplate
from app.repositories.task_assignment_repository import TaskAssignmentRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService, transaction
from app.services.commission.distributor import (
    CommissionDistributor,
    DistributionResult,
)
from app.services.events import EventPublisher
from app.services.leveling_service import LevelChangeResult, LevelingService
from app.services.profile_service import mark_activity
from app.services.work_queue import NullWorkEnqueuer, WorkEnqueuer
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import (
    InvalidTaskStateError,
    LevelInsufficientError,
    MaxTasksReachedError,
    ProfileNotFoundError,
    TaskTemplateNotFoundError,
)


@dataclass
class ApprovalResult:
    """Outcome of a task approval."""

    assignment: TaskAssignment
    xp_awarded: int
    level_change: LevelChangeResult
    commission: DistributionResult | None = None


def task_trigger_id(assignment_id: int) -> str:
    """Trigger id shared by the task reward and its commission."""
    return f"task:{assignment_id}"


def experience_for_task(xp_reward: int, multiplier: float) -> int:
    """Base XP scaled by the multiplier, rounded half-up."""
    scaled = Decimal(xp_reward) * Decimal(str(multiplier))
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class TaskApprovalService(BaseService):
    """Task assignment transitions and approval rewards."""

    def __init__(
        self,
        session: AsyncSession,
        policy: RewardPolicy | None = None,
        enqueuer: WorkEnqueuer | None = None,
        publisher: EventPublisher | None = None,
        referral_rewards_enabled: bool | None = None,
    ) -> None:
        """
        Initialize task approval service.

        Args:
            session: Async database session
            policy: Reward policy
            enqueuer: Work queue
            publisher: Domain event sink
            referral_rewards_enabled: Cascade commission on approval
                (defaults to settings.referral_rewards_enabled)
        """
        super().__init__(session, policy)
        self.enqueuer = enqueuer or NullWorkEnqueuer()
        self.referral_rewards_enabled = (
            settings.referral_rewards_enabled
            if referral_rewards_enabled is None
            else referral_rewards_enabled
        )
        self.task_repo = TaskAssignmentRepository(session)
        self.profile_repo = VolunteerProfileRepository(session)
        self.leveling = LevelingService(session, self.policy, self.enqueuer, publisher)
        self.distributor = CommissionDistributor(session, self.policy, self.enqueuer, publisher)

    async def _load(self, assignment_id: int, *allowed: str) -> TaskAssignment:
        assignment = await self.task_repo.get_by_id(assignment_id, for_update=True)
        if not assignment:
            raise InvalidTaskStateError(
                "Task assignment not found", assignment_id=assignment_id
            )
        if assignment.status not in allowed:
            raise InvalidTaskStateError(
                assignment_id=assignment_id, status=assignment.status
            )
        return assignment

    @transaction
    async def assign(
        self, template_id: int, assignee_id: int, now: datetime | None = None
    ) -> TaskAssignment:
        """
        Give a task to a volunteer.

        The volunteer's level must reach the template's level_required, and
        at most max_daily_assignments unfinished tasks may have been taken
        in the last 24 hours.

        Args:
            template_id: Task template ID
            assignee_id: Volunteer user ID
            now: Assignment time (defaults to now)

        Returns:
            New pending assignment

        Raises:
            TaskTemplateNotFoundError: Unknown template
            ProfileNotFoundError: Volunteer has no active profile
            LevelInsufficientError: Level below level_required
            MaxTasksReachedError: Daily assignment limit reached
        """
        now = now or utc_now()
        template = await self.session.get(TaskTemplate, template_id)
        if not template:
            raise TaskTemplateNotFoundError(template_id=template_id)

        # Row lock serializes concurrent assignments for one volunteer
        profile = await self.profile_repo.get_by_id(assignee_id, for_update=True)
        if not profile or not profile.is_active:
            raise ProfileNotFoundError(user_id=assignee_id)

        if profile.level < template.level_required:
            raise LevelInsufficientError(
                user_id=assignee_id,
                level=profile.level,
                level_required=template.level_required,
            )

        recent = await self.task_repo.count_unfinished_assigned_since(
            assignee_id, now - timedelta(hours=24)
        )
        if recent >= self.policy.max_daily_assignments:
            raise MaxTasksReachedError(
                user_id=assignee_id,
                open_assignments=recent,
                limit=self.policy.max_daily_assignments,
            )

        assignment = await self.task_repo.create(
            task_template_id=template.id,
            assignee_id=assignee_id,
            status=TaskAssignmentStatus.PENDING,
            assigned_at=now,
        )

        self.logger.info(
            "Task assigned",
            extra={
                "assignment_id": assignment.id,
                "template_id": template_id,
                "user_id": assignee_id,
            },
        )
        return assignment

    @transaction
    async def start(self, assignment_id: int) -> TaskAssignment:
        """Volunteer starts working (pending -> in_progress)."""
        assignment = await self._load(assignment_id, TaskAssignmentStatus.PENDING)
        assignment.status = TaskAssignmentStatus.IN_PROGRESS
        await self.session.flush()
        return assignment

    @transaction
    async def submit(self, assignment_id: int) -> TaskAssignment:
        """Volunteer submits work for review."""
        assignment = await self._load(
            assignment_id, TaskAssignmentStatus.PENDING, TaskAssignmentStatus.IN_PROGRESS
        )
        assignment.status = TaskAssignmentStatus.SUBMITTED
        assignment.submitted_at = utc_now()
        await self.session.flush()
        return assignment

    @transaction
    async def reject(
        self, assignment_id: int, reviewer_id: int, notes: str | None = None
    ) -> TaskAssignment:
        """
        Reject submitted work.

        Raises:
            InvalidTaskStateError: Assignment is not submitted
        """
        assignment = await self._load(assignment_id, TaskAssignmentStatus.SUBMITTED)
        assignment.status = TaskAssignmentStatus.REJECTED
        assignment.reviewed_at = utc_now()
        assignment.reviewer_id = reviewer_id
        assignment.review_notes = notes
        await self.session.flush()

        self.logger.info(
            "Task assignment rejected",
            extra={"assignment_id": assignment_id, "reviewer_id": reviewer_id},
        )
        return assignment

    async def approve(
        self, assignment_id: int, reviewer_id: int, notes: str | None = None
    ) -> ApprovalResult:
        """
        Approve submitted work and reward the volunteer.

        Approval, experience, the task_reward entry and the completed-task
        counter commit together. Commission then runs under trigger
        task:{id}; if it fails it is queued for retry.

        Args:
            assignment_id: Assignment ID
            reviewer_id: Reviewing user ID
            notes: Optional review notes

        Returns:
            ApprovalResult

        Raises:
            InvalidTaskStateError: Assignment is not submitted (also on a
                second approval)
            ProfileNotFoundError: Assignee has no profile
        """
        result = await self._approve(assignment_id, reviewer_id, notes)
        self.leveling.after_commit(result.level_change)

        if self.referral_rewards_enabled and result.xp_awarded > 0:
            trigger_id = task_trigger_id(assignment_id)
            assignee_id = result.assignment.assignee_id
            try:
                result.commission = await self.distributor.distribute_commission(
                    trigger_id, assignee_id, result.xp_awarded
                )
            except Exception as e:
                self.logger.error(
                    "Commission for approved task failed, queued for retry",
                    extra={"trigger_id": trigger_id, "error": str(e)},
                )
                self.enqueuer.enqueue_commission_distribution(
                    trigger_id, assignee_id, str(result.xp_awarded)
                )
                # Rollback of the commission attempt expired the assignment
                await self.refresh(result.assignment)

        return result

    @transaction
    async def _approve(
        self, assignment_id: int, reviewer_id: int, notes: str | None
    ) -> ApprovalResult:
        assignment = await self._load(assignment_id, TaskAssignmentStatus.SUBMITTED)
        profile = await self.profile_repo.get_by_id(assignment.assignee_id, for_update=True)
        if not profile:
            raise ProfileNotFoundError(user_id=assignment.assignee_id)

        now = utc_now()
        assignment.status = TaskAssignmentStatus.APPROVED
        assignment.reviewed_at = now
        assignment.reviewer_id = reviewer_id
        assignment.review_notes = notes

        base_xp = assignment.task_template.xp_reward
        multiplier = profile.activity_multiplier
        xp_amount = experience_for_task(base_xp, multiplier)

        level_change = self.leveling.apply_experience(profile, xp_amount)
        profile.tasks_completed_count += 1
        mark_activity(profile, now)

        source_kind, source_id = to_columns(TaskAssignmentRef(assignment.id))
        self.session.add(
            LedgerEntry(
                idempotency_key=task_trigger_id(assignment.id),
                trigger_id=task_trigger_id(assignment.id),
                user_id=profile.user_id,
                entry_type=LedgerEntryType.TASK_REWARD,
                amount=Decimal(xp_amount),
                status=LedgerEntryStatus.COMPLETED,
                source_kind=source_kind,
                source_id=source_id,
                description=f"Task completed: {assignment.task_template.title}",
                extra_data={
                    "task_id": assignment.id,
                    "base_xp": base_xp,
                    "multiplier": multiplier,
                },
            )
        )
        await self.session.flush()

        self.logger.info(
            "Task assignment approved",
            extra={
                "assignment_id": assignment_id,
                "user_id": profile.user_id,
                "xp_awarded": xp_amount,
                "level": level_change.new_level,
            },
        )
        return ApprovalResult(
            assignment=assignment,
            xp_awarded=xp_amount,
            level_change=level_change,
        )
