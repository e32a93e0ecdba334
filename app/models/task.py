"""
Task models.

TaskTemplate describes a unit of volunteer work and its XP reward;
TaskAssignment tracks one volunteer working on it.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import TaskAssignmentStatus


class TaskTemplate(Base):
    """
    TaskTemplate entity.

    Attributes:
        id: Primary key
        organization_id: Organization scope
        title: Task title
        xp_reward: Base experience awarded on approval
        level_required: Minimum volunteer level
    """

    __tablename__ = "task_templates"
    __table_args__ = (
        CheckConstraint("xp_reward >= 0", name="xp_reward_non_negative"),
        CheckConstraint("level_required >= 1", name="level_required_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, default=20, nullable=False)
    level_required: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<TaskTemplate(id={self.id}, title={self.title!r}, xp={self.xp_reward})>"


class TaskAssignment(Base):
    """
    TaskAssignment entity.

    State machine: pending -> in_progress -> submitted -> approved | rejected.

    Attributes:
        id: Primary key
        task_template_id: Template being worked on
        assignee_id: Volunteer user id
        status: TaskAssignmentStatus value
        assigned_at: When the volunteer took the task
        submitted_at: When work was submitted for review
        reviewed_at: When the review happened
        reviewer_id: Reviewer user id
        review_notes: Reviewer comment
    """

    __tablename__ = "task_assignments"
    __table_args__ = (
        Index("idx_task_assignments_assignee_status", "assignee_id", "status"),
        Index("idx_task_assignments_reviewed_at", "reviewed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    task_template_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("task_templates.id"),
        nullable=False,
    )
    assignee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("volunteer_profiles.user_id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(16), default=TaskAssignmentStatus.PENDING, nullable=False
    )

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reviewer_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    task_template: Mapped[TaskTemplate] = relationship(
        "TaskTemplate", lazy="selectin"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<TaskAssignment(id={self.id}, assignee={self.assignee_id}, "
            f"status={self.status})>"
        )
