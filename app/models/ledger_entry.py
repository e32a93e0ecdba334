"""
LedgerEntry model.

Append-only record of every token movement. Completed entries are never
updated; corrections are written as new reversal entries.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base
from app.models.enums import LedgerEntryStatus, LedgerEntryType
from app.models.source_reference import SourceReference, from_columns
from app.models.types import JSONType, MoneyType


class LedgerEntry(Base):
    """
    LedgerEntry entity.

    Attributes:
        id: Primary key
        idempotency_key: Unique key, one entry per key ever
        trigger_id: Caller-supplied id of the event that produced the entry
        user_id: Recipient
        entry_type: LedgerEntryType value
        amount: Non-negative amount
        status: LedgerEntryStatus value
        source_kind: SourceKind value of the source reference
        source_id: Id of the source object (string to fit sale ids)
        reverses_entry_id: Entry corrected by this reversal
        description: Human readable note
        extra_data: Audit metadata (rate, level, base amount, ...)
        created_at: Creation time
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="amount_non_negative"),
        Index("idx_ledger_entries_user_type", "user_id", "entry_type"),
        Index("idx_ledger_entries_source", "source_kind", "source_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    idempotency_key: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False
    )
    trigger_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("volunteer_profiles.user_id"),
        nullable=False,
    )
    entry_type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), default=LedgerEntryStatus.COMPLETED, nullable=False
    )

    # Typed source reference
    source_kind: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False)

    reverses_entry_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("ledger_entries.id"),
        nullable=True,
        unique=True,
        comment="Entry corrected by this reversal (one reversal per entry)",
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    extra_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType, default=dict, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )

    @property
    def is_completed(self) -> bool:
        """Check if entry is completed."""
        return self.status == LedgerEntryStatus.COMPLETED

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it contributes to a balance."""
        if self.entry_type == LedgerEntryType.REVERSAL:
            return -self.amount
        return self.amount

    @property
    def source(self) -> SourceReference:
        """Typed source reference."""
        return from_columns(self.source_kind, self.source_id)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<LedgerEntry(id={self.id}, key={self.idempotency_key!r}, "
            f"user_id={self.user_id}, type={self.entry_type}, "
            f"amount={self.amount})>"
        )

