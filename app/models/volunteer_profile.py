"""
VolunteerProfile model.

Per-user rewards state: experience, level, activity multiplier and the
referral code / referrer link.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class VolunteerProfile(Base):
    """
    VolunteerProfile entity.

    One profile per external user id. The user itself lives outside this
    service and is referenced only by its opaque integer id.

    Attributes:
        user_id: External user id (primary key)
        organization_id: Organization scope
        level: Current level (1..3), never decreases
        total_experience: Accumulated experience points, never decreases
        activity_multiplier: Cached multiplier in [1.0, 3.0]
        referral_code: Unique code generated once at creation
        referrer_id: Direct referrer (set at most once)
        tasks_completed_count: Approved tasks counter
        last_activity_at: Last qualifying activity
        multiplier_calculated_at: Last multiplier recomputation
        is_active: False once the account is closed
        version_id: Optimistic lock counter
    """

    __tablename__ = "volunteer_profiles"
    __table_args__ = (
        CheckConstraint("level >= 1", name="level_positive"),
        CheckConstraint("total_experience >= 0", name="experience_non_negative"),
        CheckConstraint(
            "activity_multiplier >= 1.0 AND activity_multiplier <= 3.0",
            name="multiplier_bounds",
        ),
        CheckConstraint("referrer_id IS NULL OR referrer_id <> user_id", name="no_self_referrer"),
        Index("idx_volunteer_profiles_org_active", "organization_id", "is_active"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=False
    )
    organization_id: Mapped[int] = mapped_column(
        Integer, nullable=False, index=True
    )

    # Leveling
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    total_experience: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )

    # Multiplier
    activity_multiplier: Mapped[float] = mapped_column(
        Float, default=1.0, nullable=False
    )
    multiplier_calculated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Referral
    referral_code: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False
    )
    referrer_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )

    # Activity
    tasks_completed_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    last_activity_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<VolunteerProfile(user_id={self.user_id}, "
            f"level={self.level}, xp={self.total_experience}, "
            f"multiplier={self.activity_multiplier})>"
        )
