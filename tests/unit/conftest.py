"""
Shared fixtures for unit tests.

Unit tests exercise the pure calculators only:
- Commission amounts and payout planning
- Multiplier formula and decay
- Level derivation
- Budget scoring and shares
"""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from app.services.referral.query_manager import Ancestor


@pytest.fixture
def now():
    """
    Fixed evaluation time.

    Returns:
        datetime: 2026-10-19 12:00 UTC (a Monday)
    """
    return datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


@pytest.fixture
def full_chain():
    """
    Five active ancestors with the default decaying rates.

    Referrer IDs are 10 * level, edge IDs equal the level.

    Returns:
        list[Ancestor]: Level 1 first
    """
    rates = [Decimal("0.10"), Decimal("0.08"), Decimal("0.06"), Decimal("0.04"), Decimal("0.02")]
    return [
        Ancestor(
            referrer_id=10 * level,
            level=level,
            commission_rate=rate,
            active=True,
            edge_id=level,
        )
        for level, rate in enumerate(rates, start=1)
    ]
