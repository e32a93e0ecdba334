"""Integration tests for referral commission distribution."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.models import LedgerEntry, LedgerEntryType, ReferralEdge, VolunteerProfile
from app.services.commission import CommissionDistributor, DistributionState
from app.services.events import CommissionPaid
from app.services.referral import ReferralChainManager, ReferralStatisticsManager
from app.utils.exceptions import InvalidAmountError, TransientError, ValidationError


async def edge_totals(session, referred_id):
    """referrer_id -> total_commission_paid, read from the table."""
    result = await session.execute(
        select(ReferralEdge.referrer_id, ReferralEdge.total_commission_paid).where(
            ReferralEdge.referred_id == referred_id
        )
    )
    return {row[0]: Decimal(str(row[1])) for row in result.all()}


async def commission_count(session):
    """Number of referral commission entries in the ledger."""
    result = await session.execute(
        select(func.count(LedgerEntry.id)).where(
            LedgerEntry.entry_type == LedgerEntryType.REFERRAL_COMMISSION
        )
    )
    return result.scalar()


async def set_multiplier(session, user_id, value):
    """Store an activity multiplier directly."""
    profile = await session.get(VolunteerProfile, user_id)
    profile.activity_multiplier = value
    await session.commit()


@pytest.fixture
def distributor(session, enqueuer, publisher):
    """Distributor wired to recording collaborators."""
    return CommissionDistributor(session, enqueuer=enqueuer, publisher=publisher)


class TestDistributeCommission:
    """Integration tests for CommissionDistributor.distribute_commission."""

    @pytest.mark.asyncio
    async def test_three_level_chain(
        self, session, build_chain, distributor, sample_sale_amount
    ):
        """R -> A -> B -> C: a sale by C pays B 10, A 8 and R 6."""
        await build_chain(1, 2, 3, 4)

        result = await distributor.distribute_commission("sale:tx-1", 4, sample_sale_amount)

        assert result.state == DistributionState.COMPLETED
        assert result.replayed is False
        assert result.recipients == [3, 2, 1]
        assert [e.amount for e in result.entries] == [
            Decimal("10.00"),
            Decimal("8.00"),
            Decimal("6.00"),
        ]
        assert result.total_amount == Decimal("24.00")
        assert await edge_totals(session, 4) == {
            3: Decimal("10"),
            2: Decimal("8"),
            1: Decimal("6"),
        }

    @pytest.mark.asyncio
    async def test_multiplier_scales_payout(
        self, session, build_chain, distributor, sample_sale_amount
    ):
        """A direct referrer at 1.5x receives 15."""
        await build_chain(1, 2, 3, 4)
        await set_multiplier(session, 3, 1.5)

        result = await distributor.distribute_commission("sale:tx-2", 4, sample_sale_amount)

        assert result.entries[0].user_id == 3
        assert result.entries[0].amount == Decimal("15.00")
        assert result.entries[0].extra_data["multiplier_applied"] == 1.5

    @pytest.mark.asyncio
    async def test_replay_is_idempotent(
        self, session, build_chain, distributor, sample_sale_amount
    ):
        """Same trigger twice writes once and returns the same entries."""
        await build_chain(1, 2, 3)

        first = await distributor.distribute_commission("sale:tx-3", 3, sample_sale_amount)
        first_ids = [e.id for e in first.entries]
        second = await distributor.distribute_commission("sale:tx-3", 3, sample_sale_amount)

        assert second.replayed is True
        assert [e.id for e in second.entries] == first_ids
        assert await commission_count(session) == 2
        assert await edge_totals(session, 3) == {2: Decimal("10"), 1: Decimal("8")}

    @pytest.mark.asyncio
    async def test_distinct_triggers_pay_separately(
        self, session, build_chain, distributor
    ):
        """Different trigger ids are independent distributions."""
        await build_chain(1, 2)

        await distributor.distribute_commission("sale:a", 2, Decimal("50"))
        await distributor.distribute_commission("sale:b", 2, Decimal("50"))

        assert await commission_count(session) == 2
        assert await edge_totals(session, 2) == {1: Decimal("10")}

    @pytest.mark.asyncio
    async def test_no_referrer_pays_nothing(self, make_profile, distributor):
        """A root user's sale completes with no entries."""
        await make_profile(1)

        result = await distributor.distribute_commission("sale:root", 1, Decimal("100"))

        assert result.state == DistributionState.COMPLETED
        assert result.entries == []

    @pytest.mark.asyncio
    async def test_inactive_edge_skipped(
        self, session, build_chain, distributor, sample_sale_amount
    ):
        """Deactivated edges are skipped, the rest of the chain is paid."""
        await build_chain(1, 2, 3)
        edges = await session.execute(
            select(ReferralEdge.id).where(
                ReferralEdge.referred_id == 3, ReferralEdge.level == 1
            )
        )
        await ReferralChainManager(session).deactivate(edges.scalar_one())

        result = await distributor.distribute_commission("sale:tx-4", 3, sample_sale_amount)

        assert result.recipients == [1]
        assert result.entries[0].amount == Decimal("8.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "abc", "NaN"])
    async def test_invalid_amount(self, build_chain, distributor, amount):
        """Non-positive or non-numeric amounts are rejected."""
        await build_chain(1, 2)

        with pytest.raises(InvalidAmountError):
            await distributor.distribute_commission("sale:bad", 2, amount)

    @pytest.mark.asyncio
    async def test_blank_trigger(self, build_chain, distributor):
        """Blank trigger ids are rejected."""
        await build_chain(1, 2)

        with pytest.raises(ValidationError):
            await distributor.distribute_commission("  ", 2, Decimal("10"))

    @pytest.mark.asyncio
    async def test_recalculations_staggered(
        self, build_chain, distributor, enqueuer, sample_sale_amount
    ):
        """Paid referrers are recalculated nearest first, 2s apart."""
        await build_chain(1, 2, 3, 4)

        await distributor.distribute_commission("sale:tx-5", 4, sample_sale_amount)

        assert enqueuer.recalculations == [(3, 0), (2, 2), (1, 4)]

    @pytest.mark.asyncio
    async def test_commission_paid_event(
        self, build_chain, distributor, publisher, sample_sale_amount
    ):
        """One event per completed distribution, none on replay."""
        await build_chain(1, 2)

        await distributor.distribute_commission("sale:tx-6", 2, sample_sale_amount)
        await distributor.distribute_commission("sale:tx-6", 2, sample_sale_amount)

        events = publisher.of_type(CommissionPaid)
        assert len(events) == 1
        assert events[0].recipients == (1,)
        assert events[0].total_amount == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_statistics_reflect_payouts(
        self, session, build_chain, distributor, sample_sale_amount
    ):
        """Referral stats sum commission paid per level."""
        await build_chain(1, 2, 3, 4)
        await distributor.distribute_commission("sale:tx-7", 4, sample_sale_amount)

        stats = await ReferralStatisticsManager(session).get_referral_stats(1)

        assert stats["total_commission"] == Decimal("6")
        assert stats["levels"][3].total_paid == Decimal("6")


class TestAllOrNothing:
    """A failed distribution leaves nothing behind and can be retried."""

    @pytest.mark.asyncio
    async def test_failure_on_second_level_writes_nothing(
        self, session, build_chain, distributor, enqueuer, monkeypatch, sample_sale_amount
    ):
        """An error on level 2 rolls back level 1; the same trigger then succeeds."""
        await build_chain(1, 2, 3, 4)
        original = distributor.edge_repo.increment_commission_paid
        calls = []

        async def fail_on_second_call(edge_id, amount):
            calls.append(edge_id)
            if len(calls) == 2:
                raise TransientError("database went away")
            await original(edge_id, amount)

        monkeypatch.setattr(
            distributor.edge_repo, "increment_commission_paid", fail_on_second_call
        )

        with pytest.raises(TransientError):
            await distributor.distribute_commission("sale:tx-8", 4, sample_sale_amount)

        assert await commission_count(session) == 0
        assert await edge_totals(session, 4) == {
            3: Decimal("0"),
            2: Decimal("0"),
            1: Decimal("0"),
        }
        assert enqueuer.recalculations == []

        monkeypatch.setattr(distributor.edge_repo, "increment_commission_paid", original)
        retry = await distributor.distribute_commission("sale:tx-8", 4, sample_sale_amount)

        assert retry.replayed is False
        assert retry.state == DistributionState.COMPLETED
        assert [e.amount for e in retry.entries] == [
            Decimal("10.00"),
            Decimal("8.00"),
            Decimal("6.00"),
        ]
        assert await commission_count(session) == 3
        assert await edge_totals(session, 4) == {
            3: Decimal("10"),
            2: Decimal("8"),
            1: Decimal("6"),
        }
