"""
Ledger service.

Read side of the append-only ledger plus the two manual write paths:
admin bonuses and reversals. Completed entries are never modified.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import RewardPolicy
from app.models.enums import LedgerEntryStatus, LedgerEntryType
from app.models.ledger_entry import LedgerEntry
from app.models.source_reference import AdminRef, LedgerEntryRef, to_columns
from app.repositories.ledger_repository import LedgerRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService
from app.utils.exceptions import (
    InvalidAmountError,
    ProfileNotFoundError,
    ValidationError,
)


class LedgerService(BaseService):
    """Balances, history and manual ledger entries."""

    def __init__(
        self, session: AsyncSession, policy: RewardPolicy | None = None
    ) -> None:
        """Initialize ledger service."""
        super().__init__(session, policy)
        self.ledger_repo = LedgerRepository(session)
        self.profile_repo = VolunteerProfileRepository(session)

    async def balance_of(self, user_id: int) -> Decimal:
        """Sum of completed entries; reversals subtract."""
        return await self.ledger_repo.get_balance(user_id)

    async def entries_for_trigger(self, trigger_id: str) -> list[LedgerEntry]:
        """All entries produced by one trigger."""
        return await self.ledger_repo.get_by_trigger(trigger_id)

    async def earnings_between(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Decimal]:
        """
        Completed earnings per entry type within [start, end).

        Reversals are reported under their own key as a positive amount.

        Returns:
            Dict of entry_type -> total
        """
        totals: dict[str, Decimal] = {}
        for entry in await self.ledger_repo.get_user_entries(user_id, start, end):
            totals[entry.entry_type] = totals.get(entry.entry_type, Decimal("0")) + entry.amount
        return totals

    async def grant_admin_bonus(
        self,
        user_id: int,
        amount: Decimal | str | int,
        admin_id: int,
        idempotency_key: str,
        reason: str | None = None,
    ) -> LedgerEntry:
        """
        Record a manual bonus, once per idempotency key.

        Raises:
            InvalidAmountError: amount <= 0
            ValidationError: Blank idempotency key
            ProfileNotFoundError: Unknown user
        """
        if not idempotency_key or not idempotency_key.strip():
            raise ValidationError("idempotency_key must not be blank")
        try:
            value = Decimal(str(amount))
        except InvalidOperation as e:
            raise InvalidAmountError(amount=str(amount)) from e
        if not value.is_finite() or value <= 0:
            raise InvalidAmountError(amount=str(amount))

        key = f"admin:{idempotency_key}"
        existing = await self.ledger_repo.get_by_idempotency_key(key)
        if existing:
            return existing

        if not await self.profile_repo.get_by_id(user_id):
            raise ProfileNotFoundError(user_id=user_id)

        source_kind, source_id = to_columns(AdminRef(admin_id))
        entry = LedgerEntry(
            idempotency_key=key,
            trigger_id=key,
            user_id=user_id,
            entry_type=LedgerEntryType.ADMIN_BONUS,
            amount=value,
            status=LedgerEntryStatus.COMPLETED,
            source_kind=source_kind,
            source_id=source_id,
            description=reason,
            extra_data={"admin_id": admin_id},
        )
        written = await self._append(entry)

        self.logger.info(
            "Admin bonus granted",
            extra={"user_id": user_id, "admin_id": admin_id, "amount": str(value)},
        )
        return written

    async def reverse_entry(
        self, entry_id: int, reason: str | None = None
    ) -> LedgerEntry:
        """
        Correct an entry by appending a reversal of the same amount.

        Reversing twice returns the first reversal.

        Raises:
            ValidationError: Unknown entry, or the entry is itself a reversal
        """
        original = await self.ledger_repo.get_by_id(entry_id)
        if not original:
            raise ValidationError("Ledger entry not found", entry_id=entry_id)
        if original.entry_type == LedgerEntryType.REVERSAL:
            raise ValidationError("A reversal cannot be reversed", entry_id=entry_id)

        existing = await self.ledger_repo.get_reversal_of(entry_id)
        if existing:
            return existing

        log_ctx = {
            "entry_id": entry_id,
            "user_id": original.user_id,
            "amount": str(original.amount),
        }
        source_kind, source_id = to_columns(LedgerEntryRef(original.id))
        entry = LedgerEntry(
            idempotency_key=f"reversal:{original.id}",
            trigger_id=original.trigger_id,
            user_id=original.user_id,
            entry_type=LedgerEntryType.REVERSAL,
            amount=original.amount,
            status=LedgerEntryStatus.COMPLETED,
            source_kind=source_kind,
            source_id=source_id,
            reverses_entry_id=original.id,
            description=reason,
            extra_data={"reversed_type": original.entry_type},
        )
        written = await self._append(entry)

        self.logger.info("Ledger entry reversed", extra=log_ctx)
        return written

    async def _append(self, entry: LedgerEntry) -> LedgerEntry:
        try:
            self.session.add(entry)
            await self.session.flush()
            await self.commit()
        except IntegrityError:
            await self.rollback()
            existing = await self.ledger_repo.get_by_idempotency_key(entry.idempotency_key)
            if not existing:
                raise
            return existing
        return entry
