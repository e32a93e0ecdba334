"""
Unit tests for budget scoring and share computation.

Tests cover:
- Performance score formula and floor
- Deterministic ranking and tie-breaks
- Daily / weekly / monthly share shapes
- Payout rounding and minimum payout
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from app.config.reward_policy import DEFAULT_POLICY
from app.services.budget.scoring import (
    RankedVolunteer,
    VolunteerPerformance,
    compute_shares,
    performance_score,
    plan_bonuses,
    rank_volunteers,
)


def ranked(*scores: float) -> list[RankedVolunteer]:
    """Ranked list with user IDs 1..n in the given order."""
    return [
        RankedVolunteer(user_id=index + 1, score=score, rank=index + 1)
        for index, score in enumerate(scores)
    ]


class TestPerformanceScore:
    """Test the score formula."""

    def test_full_formula(self):
        """Task score times multiplier, plus referrals, minus penalties."""
        perf = VolunteerPerformance(
            user_id=1,
            multiplier=1.5,
            approved_tasks=[(20, 2)],  # 20 * 2 * 0.1 = 4.0
            active_referrals=1,
            rejected_tasks=1,
        )

        # 4.0 * 1.5 + 5.0 - 2.0
        assert performance_score(perf, DEFAULT_POLICY) == 9.0

    def test_overdue_penalty(self):
        """Each overdue assignment costs 1.0."""
        perf = VolunteerPerformance(
            user_id=1, multiplier=1.0, approved_tasks=[(50, 1)], overdue_tasks=2
        )

        assert performance_score(perf, DEFAULT_POLICY) == 3.0

    def test_floored_at_zero(self):
        """Penalties never make a score negative."""
        perf = VolunteerPerformance(
            user_id=1, multiplier=1.0, approved_tasks=[(10, 1)], rejected_tasks=5
        )

        assert performance_score(perf, DEFAULT_POLICY) == 0.0


class TestRanking:
    """Test ranking order."""

    def test_score_descending(self):
        """Higher score ranks first."""
        performances = [
            VolunteerPerformance(user_id=1, multiplier=1.0, approved_tasks=[(10, 1)]),
            VolunteerPerformance(user_id=2, multiplier=1.0, approved_tasks=[(30, 1)]),
        ]

        result = rank_volunteers(performances, DEFAULT_POLICY)

        assert [r.user_id for r in result] == [2, 1]
        assert [r.rank for r in result] == [1, 2]

    def test_tie_broken_by_earliest_assignment(self, now):
        """Equal scores go to the earlier assigned_at."""
        performances = [
            VolunteerPerformance(
                user_id=1, multiplier=1.0, approved_tasks=[(10, 1)],
                earliest_assigned_at=now,
            ),
            VolunteerPerformance(
                user_id=2, multiplier=1.0, approved_tasks=[(10, 1)],
                earliest_assigned_at=now - timedelta(hours=1),
            ),
        ]

        result = rank_volunteers(performances, DEFAULT_POLICY)

        assert [r.user_id for r in result] == [2, 1]

    def test_full_tie_broken_by_user_id(self):
        """Without timestamps the lower user ID wins."""
        performances = [
            VolunteerPerformance(user_id=9, multiplier=1.0, approved_tasks=[(10, 1)]),
            VolunteerPerformance(user_id=3, multiplier=1.0, approved_tasks=[(10, 1)]),
        ]

        result = rank_volunteers(performances, DEFAULT_POLICY)

        assert [r.user_id for r in result] == [3, 9]


class TestShares:
    """Test per-period share shapes."""

    def test_daily_fixed_shares(self):
        """Five eligible volunteers get 50/25/15/7/3 of 100."""
        bonuses = plan_bonuses("daily", Decimal("100"), ranked(50, 40, 30, 20, 10), DEFAULT_POLICY)

        assert [b.amount for b in bonuses] == [
            Decimal("50.00"),
            Decimal("25.00"),
            Decimal("15.00"),
            Decimal("7.00"),
            Decimal("3.00"),
        ]

    def test_daily_ignores_absolute_scores(self):
        """Daily shares do not depend on score values."""
        bonuses = plan_bonuses(
            "daily", Decimal("100"), ranked(1000, 1, 1, 1, 1), DEFAULT_POLICY
        )

        assert bonuses[0].amount == Decimal("50.00")

    def test_daily_fewer_than_five(self):
        """Only the ranked volunteers are paid."""
        bonuses = plan_bonuses("daily", Decimal("100"), ranked(5, 4), DEFAULT_POLICY)

        assert len(bonuses) == 2

    def test_weekly_proportional(self):
        """Weekly shares follow score over sum of top scores."""
        bonuses = plan_bonuses("weekly", Decimal("100"), ranked(30, 10), DEFAULT_POLICY)

        assert [b.amount for b in bonuses] == [Decimal("75.00"), Decimal("25.00")]

    def test_weekly_top_ten_only(self):
        """The 11th volunteer is not paid."""
        shares = compute_shares("weekly", ranked(*([10.0] * 11)), DEFAULT_POLICY)

        assert len(shares) == 10

    def test_weekly_all_zero_scores(self):
        """Zero total score distributes nothing."""
        assert compute_shares("weekly", ranked(0, 0), DEFAULT_POLICY) == []

    def test_monthly_single_winner_capped(self):
        """Top 25% of 4 is one volunteer, capped at 50% of the pool."""
        bonuses = plan_bonuses("monthly", Decimal("100"), ranked(40, 30, 20, 10), DEFAULT_POLICY)

        assert len(bonuses) == 1
        assert bonuses[0].amount == Decimal("50.00")

    def test_monthly_top_bonus(self):
        """Top ranks get +10 points on their proportional share."""
        scores = [30, 10, 5, 5, 5, 5, 5, 5]  # top 25% of 8 = 2
        bonuses = plan_bonuses("monthly", Decimal("100"), ranked(*scores), DEFAULT_POLICY)

        # 0.75 + 0.10 capped at 0.50, 0.25 + 0.10 = 0.35
        assert [b.amount for b in bonuses] == [Decimal("50.00"), Decimal("35.00")]

    def test_monthly_minimum_one_recipient(self):
        """Fewer than four volunteers still pays the best one."""
        shares = compute_shares("monthly", ranked(10, 5), DEFAULT_POLICY)

        assert len(shares) == 1

    def test_unknown_period(self):
        """Unknown periods are rejected."""
        with pytest.raises(ValueError):
            compute_shares("hourly", ranked(1), DEFAULT_POLICY)


class TestPlanBonuses:
    """Test rounding and pool conservation."""

    def test_rounded_down(self):
        """Payouts round down so the pool is never exceeded."""
        bonuses = plan_bonuses("weekly", Decimal("10"), ranked(1, 1, 1), DEFAULT_POLICY)

        assert all(b.amount == Decimal("3.33") for b in bonuses)
        assert sum(b.amount for b in bonuses) <= Decimal("10")

    def test_tiny_payouts_skipped(self):
        """Payouts under 0.01 are not planned."""
        bonuses = plan_bonuses("daily", Decimal("0.1"), ranked(5, 4, 3, 2, 1), DEFAULT_POLICY)

        # 0.05, 0.025, 0.015, 0.007, 0.003 -> 0.05, 0.02, 0.01
        assert [b.amount for b in bonuses] == [Decimal("0.05"), Decimal("0.02"), Decimal("0.01")]

    @pytest.mark.parametrize("period", ["daily", "weekly", "monthly"])
    def test_conservation(self, period):
        """Total payout never exceeds the pool."""
        scores = [97.3, 51.2, 44.4, 12.0, 9.9, 3.3, 1.1, 0.5]
        bonuses = plan_bonuses(period, Decimal("123.45"), ranked(*scores), DEFAULT_POLICY)

        assert sum((b.amount for b in bonuses), Decimal("0")) <= Decimal("123.45")
