"""
Unit tests for policy validation and shared utilities.

Tests cover:
- RewardPolicy consistency checks
- Budget period boundaries
- Ledger source references
- Error categories
"""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.config.reward_policy import DEFAULT_POLICY, RewardPolicy
from app.models.source_reference import (
    AdminRef,
    BudgetRunRef,
    ReferralEdgeRef,
    SaleRef,
    from_columns,
    to_columns,
)
from app.utils.datetime_utils import as_utc, days_between, period_start
from app.utils.exceptions import (
    AlreadyChainedError,
    ProfileConflictError,
    ReferralInvariantError,
    TransientError,
    is_retryable,
    is_validation_error,
)


class TestRewardPolicy:
    """Test policy defaults and validation."""

    def test_default_rates(self):
        """Default chain pays 10/8/6/4/2 percent."""
        rates = [DEFAULT_POLICY.rate_for_level(level) for level in range(1, 6)]

        assert rates == [
            Decimal("0.10"),
            Decimal("0.08"),
            Decimal("0.06"),
            Decimal("0.04"),
            Decimal("0.02"),
        ]
        assert DEFAULT_POLICY.rate_for_level(6) == Decimal("0")

    def test_max_level(self):
        """Three levels by default."""
        assert DEFAULT_POLICY.max_level == 3

    def test_rate_out_of_range(self):
        """Rates must be below 1."""
        rates = dict(DEFAULT_POLICY.commission_rates)
        rates[1] = Decimal("1.5")

        with pytest.raises(PydanticValidationError):
            RewardPolicy(commission_rates=rates)

    def test_missing_rate_for_depth(self):
        """Every level up to max depth needs a rate."""
        with pytest.raises(PydanticValidationError):
            RewardPolicy(max_referral_depth=6)

    def test_base_above_max(self):
        """Base multiplier cannot exceed the cap."""
        with pytest.raises(PydanticValidationError):
            RewardPolicy(base_multiplier=2.5)

    def test_shallow_policy(self):
        """A shorter chain is a valid policy."""
        policy = RewardPolicy(max_referral_depth=2)

        assert policy.max_referral_depth == 2

    def test_frozen(self):
        """Policies are immutable."""
        with pytest.raises(PydanticValidationError):
            DEFAULT_POLICY.max_referral_depth = 3


class TestPeriodStart:
    """Test budget period boundaries (2026-10-21 is a Wednesday)."""

    NOW = datetime(2026, 10, 21, 15, 30, tzinfo=UTC)

    def test_daily(self):
        """Midnight of the same day."""
        assert period_start("daily", self.NOW) == datetime(2026, 10, 21, tzinfo=UTC)

    def test_weekly(self):
        """Monday midnight."""
        assert period_start("weekly", self.NOW) == datetime(2026, 10, 19, tzinfo=UTC)

    def test_monthly(self):
        """First of the month."""
        assert period_start("monthly", self.NOW) == datetime(2026, 10, 1, tzinfo=UTC)

    def test_unknown(self):
        """Unknown periods raise."""
        with pytest.raises(ValueError):
            period_start("yearly", self.NOW)

    def test_naive_treated_as_utc(self):
        """Naive datetimes are UTC wall-clock time."""
        naive = datetime(2026, 10, 21, 15, 30)

        assert as_utc(naive) == self.NOW
        assert days_between(naive, self.NOW) == 0


class TestSourceReference:
    """Test (source_kind, source_id) mapping."""

    @pytest.mark.parametrize(
        "ref,columns",
        [
            (ReferralEdgeRef(5), ("referral_edge", "5")),
            (AdminRef(1), ("admin", "1")),
            (BudgetRunRef(12), ("budget_run", "12")),
            (SaleRef("tx-9"), ("sale", "tx-9")),
        ],
    )
    def test_to_columns(self, ref, columns):
        """References split into kind and id strings."""
        assert to_columns(ref) == columns
        assert from_columns(*columns) == ref

    def test_unknown_kind(self):
        """Unknown kinds are rejected."""
        with pytest.raises(ValueError):
            from_columns("wallet", "1")


class TestErrorCategories:
    """Test retry and validation classification."""

    def test_validation_not_retryable(self):
        """Caller mistakes are never retried."""
        exc = AlreadyChainedError(user_id=1)

        assert is_validation_error(exc)
        assert not is_retryable(exc)
        assert exc.context == {"user_id": 1}

    @pytest.mark.parametrize("exc", [ProfileConflictError(), TransientError()])
    def test_retryable(self, exc):
        """Conflicts and transient failures are retried."""
        assert is_retryable(exc)
        assert not is_validation_error(exc)

    def test_internal_error_neither(self):
        """Invariant violations are bugs."""
        exc = ReferralInvariantError()

        assert not is_retryable(exc)
        assert not is_validation_error(exc)
        assert exc.message == "Referral graph invariant violated."
