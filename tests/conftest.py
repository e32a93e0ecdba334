"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Environment must be set before app.config.settings is imported
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SALE_WEBHOOK_SECRET", "test_webhook_secret")
os.environ.setdefault("REFERRAL_REWARDS_ENABLED", "true")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.config.reward_policy import DEFAULT_POLICY
from app.models import Base, TaskAssignment, TaskTemplate, VolunteerProfile
from app.models.enums import TaskAssignmentStatus
from app.services.referral import ReferralChainManager
from app.utils.datetime_utils import utc_now

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingEnqueuer:
    """WorkEnqueuer that remembers what was queued."""

    def __init__(self):
        self.recalculations: list[tuple[int, float]] = []
        self.distributions: list[tuple[str, int, str]] = []

    def enqueue_multiplier_recalculation(self, user_id: int, delay_seconds: float = 0) -> None:
        self.recalculations.append((user_id, delay_seconds))

    def enqueue_commission_distribution(
        self, trigger_id: str, earning_user_id: int, amount: str
    ) -> None:
        self.distributions.append((trigger_id, earning_user_id, amount))


class RecordingPublisher:
    """EventPublisher that keeps events in memory."""

    def __init__(self):
        self.events: list[object] = []

    def publish(self, event: object) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]


@pytest.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_maker):
    """Async session for one test."""
    async with session_maker() as db_session:
        yield db_session


@pytest.fixture
def policy():
    """Default reward policy."""
    return DEFAULT_POLICY


@pytest.fixture
def enqueuer():
    """Recording work enqueuer."""
    return RecordingEnqueuer()


@pytest.fixture
def publisher():
    """Recording event publisher."""
    return RecordingPublisher()


@pytest.fixture
def make_profile(session):
    """
    Factory for volunteer profiles.

    Profiles are committed immediately; referral code defaults to
    "CODE<user_id>".
    """
    async def _make(
        user_id: int,
        organization_id: int = 1,
        level: int = 1,
        total_experience: int = 0,
        activity_multiplier: float = 1.0,
        last_activity_at: datetime | None = None,
        referral_code: str | None = None,
        is_active: bool = True,
    ) -> VolunteerProfile:
        profile = VolunteerProfile(
            user_id=user_id,
            organization_id=organization_id,
            level=level,
            total_experience=total_experience,
            activity_multiplier=activity_multiplier,
            last_activity_at=last_activity_at or utc_now(),
            referral_code=referral_code or f"CODE{user_id}",
            is_active=is_active,
        )
        session.add(profile)
        await session.commit()
        return profile

    return _make


@pytest.fixture
def make_task(session):
    """Factory for a task template plus one assignment."""
    async def _make(
        assignee_id: int,
        status: str = TaskAssignmentStatus.SUBMITTED,
        xp_reward: int = 20,
        level_required: int = 1,
        assigned_at: datetime | None = None,
        reviewed_at: datetime | None = None,
        organization_id: int = 1,
    ) -> TaskAssignment:
        template = TaskTemplate(
            organization_id=organization_id,
            title=f"Task for {assignee_id}",
            xp_reward=xp_reward,
            level_required=level_required,
        )
        session.add(template)
        await session.flush()

        assignment = TaskAssignment(
            task_template_id=template.id,
            assignee_id=assignee_id,
            status=status,
            assigned_at=assigned_at or utc_now() - timedelta(hours=2),
            reviewed_at=reviewed_at,
        )
        session.add(assignment)
        await session.commit()
        return assignment

    return _make


@pytest.fixture
def build_chain(session, make_profile):
    """
    Create profiles and link them root first.

    build_chain(1, 2, 3) makes 1 refer 2 and 2 refer 3.
    """
    async def _build(*user_ids: int) -> None:
        for user_id in user_ids:
            await make_profile(user_id)
        manager = ReferralChainManager(session)
        for referrer_id, referred_id in zip(user_ids, user_ids[1:]):
            await manager.create_referral_chain(referrer_id, referred_id)

    return _build


@pytest.fixture
def sample_sale_amount():
    """Sale amount used by the end-to-end commission scenarios."""
    return Decimal("100")
