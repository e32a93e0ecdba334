"""
BudgetRun model.

Idempotency anchor for one periodic budget allocation.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import BudgetRunStatus
from app.models.types import MoneyType


class BudgetRun(Base):
    """
    BudgetRun entity.

    Attributes:
        id: Primary key
        run_key: Unique "{period_type}:{period_start}:{organization_id}"
        period_type: daily | weekly | monthly
        period_start: Start of the allocated period
        organization_id: Organization scope
        status: BudgetRunStatus value
        pool_amount: Pool being distributed
        distributed_amount: Sum of payouts written so far
        completed_at: When the run finished
    """

    __tablename__ = "budget_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    period_type: Mapped[str] = mapped_column(String(16), nullable=False)
    period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), default=BudgetRunStatus.PENDING, nullable=False
    )
    pool_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    distributed_amount: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def remaining(self) -> Decimal:
        """Pool not yet paid out."""
        return self.pool_amount - self.distributed_amount

    def __repr__(self) -> str:
        """String representation."""
        return f"<BudgetRun(run_key={self.run_key!r}, status={self.status})>"
