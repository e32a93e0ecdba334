"""
Ledger repository.

Data access layer for LedgerEntry model. Append-only: there is no update
or delete path for entries.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import LedgerEntryStatus, LedgerEntryType
from app.models.ledger_entry import LedgerEntry
from app.repositories.base import BaseRepository


class LedgerRepository(BaseRepository[LedgerEntry]):
    """Ledger entry repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger repository."""
        super().__init__(LedgerEntry, session)

    async def get_by_idempotency_key(
        self, idempotency_key: str
    ) -> LedgerEntry | None:
        """
        Get entry by idempotency key.

        Args:
            idempotency_key: Unique key

        Returns:
            Entry or None
        """
        return await self.get_by(idempotency_key=idempotency_key)

    async def get_by_trigger(
        self,
        trigger_id: str,
        entry_type: str | None = None,
        status: str | None = None,
    ) -> list[LedgerEntry]:
        """
        Get entries produced by one trigger, in creation order.

        Args:
            trigger_id: Trigger ID
            entry_type: Optional LedgerEntryType filter
            status: Optional LedgerEntryStatus filter

        Returns:
            List of entries
        """
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.trigger_id == trigger_id)
            .order_by(LedgerEntry.id)
        )
        if entry_type:
            stmt = stmt.where(LedgerEntry.entry_type == entry_type)
        if status:
            stmt = stmt.where(LedgerEntry.status == status)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_reversal_of(self, entry_id: int) -> LedgerEntry | None:
        """Get the reversal entry of an entry, if any."""
        return await self.get_by(reverses_entry_id=entry_id)

    async def get_balance(self, user_id: int) -> Decimal:
        """
        Sum completed entries for a user; reversals subtract.

        Args:
            user_id: User ID

        Returns:
            Balance
        """
        signed = case(
            (LedgerEntry.entry_type == LedgerEntryType.REVERSAL, -LedgerEntry.amount),
            else_=LedgerEntry.amount,
        )
        stmt = select(func.coalesce(func.sum(signed), Decimal("0"))).where(
            LedgerEntry.user_id == user_id,
            LedgerEntry.status == LedgerEntryStatus.COMPLETED,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def get_user_entries(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        entry_type: str | None = None,
    ) -> list[LedgerEntry]:
        """
        Get completed entries for a user within an optional time range.

        Args:
            user_id: User ID
            start: Inclusive lower bound on created_at
            end: Exclusive upper bound on created_at
            entry_type: Optional LedgerEntryType filter

        Returns:
            Entries in creation order
        """
        stmt = (
            select(LedgerEntry)
            .where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.status == LedgerEntryStatus.COMPLETED,
            )
            .order_by(LedgerEntry.id)
        )
        if start is not None:
            stmt = stmt.where(LedgerEntry.created_at >= start)
        if end is not None:
            stmt = stmt.where(LedgerEntry.created_at < end)
        if entry_type:
            stmt = stmt.where(LedgerEntry.entry_type == entry_type)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_paid_user_ids(self, trigger_id: str) -> set[int]:
        """User IDs that already received an entry for a trigger."""
        stmt = select(LedgerEntry.user_id).where(
            LedgerEntry.trigger_id == trigger_id
        )
        result = await self.session.execute(stmt)
        return {row[0] for row in result.all()}
