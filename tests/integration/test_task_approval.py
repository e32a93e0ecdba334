"""Integration tests for task transitions and approval rewards."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from loguru import logger

from app.config.reward_policy import RewardPolicy
from app.models import LedgerEntryType, TaskAssignmentStatus, TaskTemplate, VolunteerProfile
from app.services.ledger_service import LedgerService
from app.services.referral import ReferralChainManager
from app.services.task_approval_service import (
    TaskApprovalService,
    experience_for_task,
    task_trigger_id,
)
from app.utils.datetime_utils import as_utc, utc_now
from app.utils.exceptions import (
    InvalidTaskStateError,
    LevelInsufficientError,
    MaxTasksReachedError,
    ProfileNotFoundError,
    TaskTemplateNotFoundError,
    TransientError,
)


@pytest.fixture
async def referred_volunteer(session, make_profile):
    """User 1 refers user 2, who works at a 1.5 multiplier."""
    await make_profile(1)
    await make_profile(2, activity_multiplier=1.5)
    await ReferralChainManager(session).create_referral_chain(1, 2)


@pytest.fixture
def service(session, enqueuer, publisher):
    """Approval service with referral rewards on."""
    return TaskApprovalService(
        session, enqueuer=enqueuer, publisher=publisher, referral_rewards_enabled=True
    )


class TestExperienceForTask:
    """Test XP scaling."""

    @pytest.mark.parametrize(
        "xp,multiplier,expected",
        [(20, 1.0, 20), (20, 1.5, 30), (15, 1.1, 17), (5, 1.3, 7), (10, 1.25, 13)],
    )
    def test_rounded_half_up(self, xp, multiplier, expected):
        """XP is scaled and rounded half-up."""
        assert experience_for_task(xp, multiplier) == expected


class TestApprove:
    """Integration tests for TaskApprovalService.approve."""

    @pytest.mark.asyncio
    async def test_approval_rewards(self, session, referred_volunteer, make_task, service):
        """20 XP at 1.5 gives 30 XP, a task reward and 3.00 commission."""
        task = await make_task(2, xp_reward=20)

        result = await service.approve(task.id, reviewer_id=99, notes="Great work")

        assert result.xp_awarded == 30
        assert result.assignment.status == TaskAssignmentStatus.APPROVED
        assert result.assignment.reviewer_id == 99
        assert result.commission.recipients == [1]
        assert result.commission.entries[0].amount == Decimal("3.00")
        assert result.commission.trigger_id == task_trigger_id(task.id)

        profile = await session.get(VolunteerProfile, 2, populate_existing=True)
        assert profile.total_experience == 30
        assert profile.tasks_completed_count == 1

    @pytest.mark.asyncio
    async def test_task_reward_entry(self, session, referred_volunteer, make_task, service):
        """The task reward shares the trigger id with its commission."""
        task = await make_task(2)
        await service.approve(task.id, reviewer_id=99)

        entries = await LedgerService(session).entries_for_trigger(task_trigger_id(task.id))

        assert sorted(e.entry_type for e in entries) == [
            LedgerEntryType.REFERRAL_COMMISSION,
            LedgerEntryType.TASK_REWARD,
        ]

    @pytest.mark.asyncio
    async def test_double_approval_rejected(self, referred_volunteer, make_task, service):
        """Approving twice fails and pays nothing more."""
        task = await make_task(2)
        await service.approve(task.id, reviewer_id=99)

        with pytest.raises(InvalidTaskStateError):
            await service.approve(task.id, reviewer_id=99)

    @pytest.mark.asyncio
    async def test_level_up_schedules_recalculation(
        self, session, make_profile, make_task, service, enqueuer
    ):
        """Crossing a threshold queues the volunteer's recompute."""
        await make_profile(2, total_experience=90)
        task = await make_task(2, xp_reward=20)

        result = await service.approve(task.id, reviewer_id=99)

        assert result.level_change.leveled_up is True
        assert (2, 0) in enqueuer.recalculations

    @pytest.mark.asyncio
    async def test_commission_disabled(
        self, session, referred_volunteer, make_task, enqueuer, publisher
    ):
        """With referral rewards off only the volunteer is rewarded."""
        service = TaskApprovalService(
            session, enqueuer=enqueuer, publisher=publisher, referral_rewards_enabled=False
        )
        task = await make_task(2)

        result = await service.approve(task.id, reviewer_id=99)

        assert result.commission is None
        assert result.xp_awarded == 30

    @pytest.mark.asyncio
    async def test_failed_commission_queued(
        self, referred_volunteer, make_task, service, enqueuer
    ):
        """A failing commission is retried from the queue, approval stands."""
        task = await make_task(2)
        service.distributor.distribute_commission = AsyncMock(side_effect=TransientError())

        result = await service.approve(task.id, reviewer_id=99)

        assert result.commission is None
        assert result.assignment.status == TaskAssignmentStatus.APPROVED
        assert enqueuer.distributions == [(task_trigger_id(task.id), 2, "30")]

    @pytest.mark.asyncio
    async def test_unsubmitted_task_rejected(self, referred_volunteer, make_task, service):
        """Only submitted work can be approved."""
        task = await make_task(2, status=TaskAssignmentStatus.IN_PROGRESS)

        with pytest.raises(InvalidTaskStateError):
            await service.approve(task.id, reviewer_id=99)

    @pytest.mark.asyncio
    async def test_unknown_assignment(self, service):
        """Missing assignments are reported as invalid state."""
        with pytest.raises(InvalidTaskStateError):
            await service.approve(12345, reviewer_id=99)


class TestTransitions:
    """Integration tests for the assignment state machine."""

    @pytest.mark.asyncio
    async def test_start_and_submit(self, make_profile, make_task, service):
        """pending -> in_progress -> submitted."""
        await make_profile(2)
        task = await make_task(2, status=TaskAssignmentStatus.PENDING)

        started = await service.start(task.id)
        assert started.status == TaskAssignmentStatus.IN_PROGRESS

        submitted = await service.submit(task.id)
        assert submitted.status == TaskAssignmentStatus.SUBMITTED
        assert submitted.submitted_at is not None

    @pytest.mark.asyncio
    async def test_start_twice(self, make_profile, make_task, service):
        """An in-progress task cannot be started again."""
        await make_profile(2)
        task = await make_task(2, status=TaskAssignmentStatus.IN_PROGRESS)

        with pytest.raises(InvalidTaskStateError):
            await service.start(task.id)

    @pytest.mark.asyncio
    async def test_reject(self, session, make_profile, make_task, service):
        """Rejection records the reviewer and awards nothing."""
        await make_profile(2)
        task = await make_task(2)

        rejected = await service.reject(task.id, reviewer_id=7, notes="Incomplete")

        assert rejected.status == TaskAssignmentStatus.REJECTED
        assert rejected.reviewer_id == 7
        assert rejected.reviewed_at is not None
        profile = await session.get(VolunteerProfile, 2, populate_existing=True)
        assert profile.total_experience == 0


async def make_template(session, level_required=1, xp_reward=20):
    """Task template with no assignments."""
    template = TaskTemplate(
        organization_id=1,
        title=f"Level {level_required} task",
        xp_reward=xp_reward,
        level_required=level_required,
    )
    session.add(template)
    await session.commit()
    return template


class TestAssign:
    """Integration tests for TaskApprovalService.assign."""

    @pytest.mark.asyncio
    async def test_assign_creates_pending(self, session, make_profile, service):
        """A level 1 volunteer takes a level 1 task."""
        await make_profile(2)
        template = await make_template(session)
        now = utc_now()

        assignment = await service.assign(template.id, 2, now=now)

        assert assignment.status == TaskAssignmentStatus.PENDING
        assert assignment.assignee_id == 2
        assert assignment.task_template_id == template.id
        assert as_utc(assignment.assigned_at) == now

    @pytest.mark.asyncio
    async def test_level_too_low(self, session, make_profile, service):
        """Level 1 cannot take a level 2 task; nothing is created."""
        await make_profile(2, level=1)
        template = await make_template(session, level_required=2)

        with pytest.raises(LevelInsufficientError) as exc_info:
            await service.assign(template.id, 2)

        assert exc_info.value.context["level_required"] == 2
        assert await service.task_repo.count(assignee_id=2) == 0

    @pytest.mark.asyncio
    async def test_higher_level_allowed(self, session, make_profile, service):
        """Level 3 can take any task."""
        await make_profile(2, level=3, total_experience=600)
        template = await make_template(session, level_required=2)

        assignment = await service.assign(template.id, 2)

        assert assignment.status == TaskAssignmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_daily_limit(self, session, make_profile, service):
        """The sixth task within 24 hours is refused."""
        await make_profile(2)
        template = await make_template(session)
        for _ in range(5):
            await service.assign(template.id, 2)

        with pytest.raises(MaxTasksReachedError) as exc_info:
            await service.assign(template.id, 2)

        assert exc_info.value.context["limit"] == 5
        assert await service.task_repo.count(assignee_id=2) == 5

    @pytest.mark.asyncio
    async def test_limit_ignores_old_and_reviewed(
        self, session, make_profile, make_task, service
    ):
        """Tasks taken over a day ago or already reviewed do not count."""
        await make_profile(2)
        for _ in range(5):
            await make_task(
                2,
                status=TaskAssignmentStatus.PENDING,
                assigned_at=utc_now() - timedelta(hours=25),
            )
        for _ in range(5):
            await make_task(2, status=TaskAssignmentStatus.APPROVED)
        template = await make_template(session)

        assignment = await service.assign(template.id, 2)

        assert assignment.status == TaskAssignmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_custom_limit(self, session, make_profile, enqueuer):
        """The limit comes from the policy."""
        await make_profile(2)
        template = await make_template(session)
        service = TaskApprovalService(
            session, RewardPolicy(max_daily_assignments=1), enqueuer=enqueuer
        )
        await service.assign(template.id, 2)

        with pytest.raises(MaxTasksReachedError):
            await service.assign(template.id, 2)

    @pytest.mark.asyncio
    async def test_unknown_template(self, make_profile, service):
        """Unknown templates are rejected."""
        await make_profile(2)

        with pytest.raises(TaskTemplateNotFoundError):
            await service.assign(999, 2)

    @pytest.mark.asyncio
    async def test_closed_profile(self, session, make_profile, service):
        """Closed profiles cannot take tasks."""
        await make_profile(2, is_active=False)
        template = await make_template(session)

        with pytest.raises(ProfileNotFoundError):
            await service.assign(template.id, 2)


class TestUnqueuedRetry:
    """Approval without a configured work queue."""

    @pytest.mark.asyncio
    async def test_dropped_commission_logged_as_warning(
        self, session, referred_volunteer, make_task
    ):
        """A commission that cannot be queued is reported at WARNING."""
        service = TaskApprovalService(session, referral_rewards_enabled=True)
        service.distributor.distribute_commission = AsyncMock(side_effect=TransientError())
        task = await make_task(2)
        messages = []
        sink_id = logger.add(messages.append, level="WARNING")
        try:
            result = await service.approve(task.id, reviewer_id=99)
        finally:
            logger.remove(sink_id)

        assert result.assignment.status == TaskAssignmentStatus.APPROVED
        dropped = [m for m in messages if "Commission distribution dropped" in m]
        assert len(dropped) == 1
        assert dropped[0].record["level"].name == "WARNING"
        assert dropped[0].record["extra"]["extra"]["trigger_id"] == task_trigger_id(task.id)
