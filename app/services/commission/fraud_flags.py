"""
Sale fraud flags.

Heuristics that mark a sale for manual review. They are reported in the
logs and never block or change a payout.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.reward_policy import RewardPolicy
from app.models.enums import LedgerEntryType
from app.repositories.ledger_repository import LedgerRepository
from app.repositories.volunteer_profile_repository import (
    VolunteerProfileRepository,
)
from app.services.base_service import BaseService
from app.services.referral.chain_manager import ReferralChainManager
from app.utils.datetime_utils import as_utc, utc_now

RAPID_SALES = "rapid_sales"
LARGE_AMOUNT = "large_amount"
NEW_REFERRAL_CHAIN = "new_referral_chain"


@dataclass(frozen=True)
class PastSale:
    """A sale seen earlier through its level 1 commission entry."""

    trigger_id: str
    amount: Decimal
    created_at: datetime


class SaleFraudScreen(BaseService):
    """Flags suspicious sales before commission is queued."""

    def __init__(
        self, session: AsyncSession, policy: RewardPolicy | None = None
    ) -> None:
        """Initialize fraud screen."""
        super().__init__(session, policy)
        self.ledger_repo = LedgerRepository(session)
        self.profile_repo = VolunteerProfileRepository(session)
        self.chain_manager = ReferralChainManager(session, self.policy)

    async def past_sales(
        self, user_id: int, since: datetime
    ) -> list[PastSale]:
        """
        Earlier sales of a buyer since a point in time.

        Sales are only recorded through the commission paid to the direct
        referrer, so a buyer without referrer has no history.
        """
        profile = await self.profile_repo.get_by_id(user_id)
        if not profile or profile.referrer_id is None:
            return []

        entries = await self.ledger_repo.get_user_entries(
            profile.referrer_id,
            start=since,
            entry_type=LedgerEntryType.REFERRAL_COMMISSION,
        )
        return [
            PastSale(
                trigger_id=entry.trigger_id,
                amount=Decimal(entry.extra_data["sale_amount"]),
                created_at=as_utc(entry.created_at),
            )
            for entry in entries
            if entry.trigger_id.startswith("sale:")
            and entry.extra_data.get("level") == 1
            and entry.extra_data.get("earning_user_id") == user_id
        ]

    async def indicators(
        self,
        user_id: int,
        amount: Decimal,
        trigger_id: str,
        now: datetime | None = None,
    ) -> list[str]:
        """
        Names of the heuristics a sale trips.

        Args:
            user_id: Buyer
            amount: Sale amount
            trigger_id: Trigger of this sale (ignored in the history)
            now: Evaluation time (defaults to now)

        Returns:
            Flag names, empty when nothing looks unusual
        """
        now = now or utc_now()
        flags: list[str] = []

        history = [
            sale
            for sale in await self.past_sales(
                user_id, now - timedelta(days=self.policy.sale_average_window_days)
            )
            if sale.trigger_id != trigger_id
        ]

        last_hour = now - timedelta(hours=1)
        recent = {sale.trigger_id for sale in history if sale.created_at >= last_hour}
        if len(recent) + 1 > self.policy.rapid_sales_per_hour:
            flags.append(RAPID_SALES)

        if history:
            average = sum((sale.amount for sale in history), Decimal("0")) / len(history)
        else:
            average = self.policy.default_average_sale
        if amount > average * self.policy.large_sale_factor:
            flags.append(LARGE_AMOUNT)

        chain = [user_id, *await self.chain_manager.walk_referrers(user_id)]
        profiles = await self.profile_repo.get_many(chain)
        day_ago = now - timedelta(hours=24)
        fresh = sum(
            1 for profile in profiles.values() if as_utc(profile.created_at) >= day_ago
        )
        if fresh > self.policy.rapid_chain_profiles:
            flags.append(NEW_REFERRAL_CHAIN)

        return flags
