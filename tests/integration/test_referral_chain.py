"""Integration tests for referral chain creation and queries."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.config.reward_policy import RewardPolicy
from app.models import ReferralEdge, VolunteerProfile
from app.services.referral import (
    ReferralChainManager,
    ReferralQueryManager,
    ReferralStatisticsManager,
)
from app.utils.datetime_utils import utc_now
from app.utils.exceptions import (
    AlreadyChainedError,
    CircularReferralError,
    ProfileNotFoundError,
    ReactivationWindowExpiredError,
    ReferralInvariantError,
    SelfReferralError,
)


async def edge_rows(session, referred_id):
    """(referrer_id, level, active) of a user's edges, read from the table."""
    result = await session.execute(
        select(ReferralEdge.referrer_id, ReferralEdge.level, ReferralEdge.active)
        .where(ReferralEdge.referred_id == referred_id)
        .order_by(ReferralEdge.level)
    )
    return [tuple(row) for row in result.all()]


class TestCreateReferralChain:
    """Integration tests for ReferralChainManager.create_referral_chain."""

    @pytest.mark.asyncio
    async def test_direct_referral(self, session, make_profile):
        """A root referrer produces one level 1 edge."""
        await make_profile(1)
        await make_profile(2)

        edges = await ReferralChainManager(session).create_referral_chain(1, 2)

        assert [(e.referrer_id, e.level) for e in edges] == [(1, 1)]
        assert edges[0].commission_rate == Decimal("0.10")
        profile = await session.get(VolunteerProfile, 2)
        assert profile.referrer_id == 1

    @pytest.mark.asyncio
    async def test_chain_follows_ancestry(self, session, build_chain):
        """R -> A -> B -> C gives C edges to B, A and R."""
        await build_chain(1, 2, 3, 4)

        assert await edge_rows(session, 4) == [(3, 1, True), (2, 2, True), (1, 3, True)]

    @pytest.mark.asyncio
    async def test_chain_capped_at_five_levels(self, session, build_chain):
        """The seventh user in a line gets exactly five edges."""
        await build_chain(1, 2, 3, 4, 5, 6, 7)

        rows = await edge_rows(session, 7)

        assert [level for _, level, _ in rows] == [1, 2, 3, 4, 5]
        assert [referrer for referrer, _, _ in rows] == [6, 5, 4, 3, 2]

    @pytest.mark.asyncio
    async def test_self_referral_rejected(self, session, make_profile):
        """Nobody refers themselves."""
        await make_profile(1)

        with pytest.raises(SelfReferralError):
            await ReferralChainManager(session).create_referral_chain(1, 1)

    @pytest.mark.asyncio
    async def test_second_referral_rejected(self, session, build_chain, make_profile):
        """A referred user cannot be chained again."""
        await build_chain(1, 2)
        await make_profile(3)

        with pytest.raises(AlreadyChainedError):
            await ReferralChainManager(session).create_referral_chain(3, 2)

        assert await edge_rows(session, 2) == [(1, 1, True)]

    @pytest.mark.asyncio
    async def test_cycle_rejected(self, session, build_chain):
        """A root cannot be referred by its own descendant."""
        await build_chain(1, 2, 3)

        with pytest.raises(CircularReferralError):
            await ReferralChainManager(session).create_referral_chain(3, 1)

        assert await edge_rows(session, 1) == []

    @pytest.mark.asyncio
    async def test_missing_profile(self, session, make_profile):
        """Both sides need a profile."""
        await make_profile(1)

        with pytest.raises(ProfileNotFoundError):
            await ReferralChainManager(session).create_referral_chain(1, 99)

    @pytest.mark.asyncio
    async def test_by_code(self, session, make_profile):
        """Referral codes resolve case-insensitively."""
        await make_profile(1, referral_code="ALPHA123")
        await make_profile(2)

        edges = await ReferralChainManager(session).create_referral_chain_by_code(
            "alpha123", 2
        )

        assert edges[0].referrer_id == 1

    @pytest.mark.asyncio
    async def test_unknown_code(self, session, make_profile):
        """Unknown codes do not create edges."""
        await make_profile(2)

        with pytest.raises(ProfileNotFoundError):
            await ReferralChainManager(session).create_referral_chain_by_code("NOPE", 2)


class TestEdgeToggling:
    """Integration tests for edge deactivation and reactivation."""

    @pytest.mark.asyncio
    async def test_deactivate_and_reactivate(self, session, build_chain):
        """A recently active user's edge can be reactivated."""
        await build_chain(1, 2)
        manager = ReferralChainManager(session)
        edge_id = (await ReferralQueryManager(session).ancestor_edges(2))[0].id

        await manager.deactivate(edge_id)
        assert await edge_rows(session, 2) == [(1, 1, False)]

        await manager.reactivate(edge_id)
        assert await edge_rows(session, 2) == [(1, 1, True)]

    @pytest.mark.asyncio
    async def test_reactivation_window_expired(self, session, make_profile):
        """A long inactive user stays deactivated."""
        await make_profile(1)
        await make_profile(2, last_activity_at=utc_now() - timedelta(days=30))
        manager = ReferralChainManager(session)
        edges = await manager.create_referral_chain(1, 2)
        edge_id = edges[0].id
        await manager.deactivate(edge_id)

        with pytest.raises(ReactivationWindowExpiredError):
            await manager.reactivate(edge_id)

        assert await edge_rows(session, 2) == [(1, 1, False)]


class TestReferralQueries:
    """Integration tests for ancestor and descendant queries."""

    @pytest.mark.asyncio
    async def test_ancestors_in_level_order(self, session, build_chain):
        """Ancestors come back nearest first."""
        await build_chain(1, 2, 3, 4)

        ancestors = await ReferralQueryManager(session).ancestors_of(4)

        assert [(a.referrer_id, a.level) for a in ancestors] == [(3, 1), (2, 2), (1, 3)]

    @pytest.mark.asyncio
    async def test_ancestors_active_only(self, session, build_chain):
        """Deactivated edges are skipped on request."""
        await build_chain(1, 2, 3)
        query = ReferralQueryManager(session)
        level_one = (await query.ancestor_edges(3))[0]
        await ReferralChainManager(session).deactivate(level_one.id)

        ancestors = await query.ancestors_of(3, active_only=True)

        assert [a.referrer_id for a in ancestors] == [1]

    @pytest.mark.asyncio
    async def test_corrupt_chain_detected(self, session, build_chain):
        """More edges than the policy depth is an invariant violation."""
        await build_chain(1, 2, 3, 4)
        shallow = RewardPolicy(max_referral_depth=2)

        with pytest.raises(ReferralInvariantError):
            await ReferralQueryManager(session, shallow).ancestors_of(4)

    @pytest.mark.asyncio
    async def test_active_descendants(self, session, build_chain, make_profile):
        """Descendants count once and only when recently active."""
        await build_chain(1, 2, 3)
        await make_profile(4, last_activity_at=utc_now() - timedelta(days=60))
        await ReferralChainManager(session).create_referral_chain(1, 4)

        count = await ReferralQueryManager(session).active_descendant_count(1, 30)

        assert count == 2


class TestReferralStatistics:
    """Integration tests for ReferralStatisticsManager."""

    @pytest.mark.asyncio
    async def test_referral_stats(self, session, build_chain):
        """Root of a four user line has one referral per level."""
        await build_chain(1, 2, 3, 4)

        stats = await ReferralStatisticsManager(session).get_referral_stats(1)

        assert stats["total_referrals"] == 3
        assert stats["active_referrals"] == 3
        assert [stats["levels"][level].count for level in range(1, 6)] == [1, 1, 1, 0, 0]

    @pytest.mark.asyncio
    async def test_chain_statistics(self, session, build_chain):
        """Chain summary reports depth and multipliers."""
        await build_chain(1, 2, 3)

        chain = await ReferralStatisticsManager(session).get_chain_statistics(3)

        assert chain.depth == 2
        assert chain.has_full_chain is False
        assert [m.user_id for m in chain.referrers] == [2, 1]
        assert all(m.activity_multiplier == 1.0 for m in chain.referrers)

    @pytest.mark.asyncio
    async def test_maximum_possible_commission(self, session):
        """Full chain at max multiplier pays 30% x 3."""
        manager = ReferralStatisticsManager(session)

        assert manager.maximum_possible_commission(Decimal("100")) == Decimal("90.00")
