"""
ReferralEdge model.

One (referrer, referred, level) triple of the bounded-depth referral graph.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.types import MoneyType, RateType


class ReferralEdge(Base):
    """
    ReferralEdge entity.

    Edges for one referred user are created together as a chain, one per
    ancestor level, and are never deleted (only deactivated).

    Attributes:
        id: Primary key
        referrer_id: Ancestor receiving commission
        referred_id: User whose activity generates commission
        level: Ancestor distance (1 = direct referrer)
        commission_rate: Rate fixed at creation from the level
        active: Whether commission is currently paid on this edge
        total_commission_paid: Accumulated payouts, never reset
    """

    __tablename__ = "referral_edges"
    __table_args__ = (
        UniqueConstraint("referred_id", "level", name="uq_referral_edges_referred_level"),
        UniqueConstraint("referrer_id", "referred_id", name="uq_referral_edges_pair"),
        CheckConstraint("level >= 1 AND level <= 5", name="level_range"),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate < 1", name="rate_range"
        ),
        CheckConstraint("referrer_id <> referred_id", name="no_self_edge"),
        CheckConstraint("total_commission_paid >= 0", name="paid_non_negative"),
        Index("idx_referral_edges_referrer_active", "referrer_id", "active"),
        Index("idx_referral_edges_referred", "referred_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    referrer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("volunteer_profiles.user_id"),
        nullable=False,
    )
    referred_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("volunteer_profiles.user_id"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)

    commission_rate: Mapped[Decimal] = mapped_column(
        RateType, nullable=False, comment="Fraction of the base amount (0.10 = 10%)"
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    total_commission_paid: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

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

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralEdge(id={self.id}, referrer={self.referrer_id}, "
            f"referred={self.referred_id}, level={self.level}, "
            f"active={self.active})>"
        )
