"""
Commission calculation.

Pure functions: no database access, no side effects.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from app.config.reward_policy import RewardPolicy
from app.services.referral.query_manager import Ancestor

CENT = Decimal("0.01")


@dataclass(frozen=True)
class PlannedPayout:
    """Commission to pay one ancestor."""

    referrer_id: int
    edge_id: int
    level: int
    rate: Decimal
    multiplier: float
    amount: Decimal


def calculate_commission(
    sale_amount: Decimal, rate: Decimal, multiplier: float
) -> Decimal:
    """
    Commission for one level: sale * rate * referrer multiplier.

    Rounded half-up to 0.01.

    Examples:
        >>> calculate_commission(Decimal("100"), Decimal("0.10"), 1.5)
        Decimal('15.00')
    """
    raw = Decimal(sale_amount) * Decimal(rate) * Decimal(str(multiplier))
    return raw.quantize(CENT, rounding=ROUND_HALF_UP)


def plan_payouts(
    sale_amount: Decimal,
    ancestors: list[Ancestor],
    multipliers: dict[int, float],
    policy: RewardPolicy,
) -> list[PlannedPayout]:
    """
    Compute per-level payouts in ascending level order.

    Inactive edges and payouts below policy.minimum_payout are skipped.
    A referrer missing from multipliers is paid at the base multiplier.

    Args:
        sale_amount: Base amount (> 0)
        ancestors: Ancestors of the earning user, level 1 first
        multipliers: Current multiplier per referrer
        policy: Reward policy

    Returns:
        Payouts to write
    """
    payouts: list[PlannedPayout] = []
    for ancestor in sorted(ancestors, key=lambda a: a.level):
        if not ancestor.active or ancestor.level > policy.max_referral_depth:
            continue
        multiplier = multipliers.get(ancestor.referrer_id, policy.base_multiplier)
        amount = calculate_commission(sale_amount, ancestor.commission_rate, multiplier)
        if amount <= 0 or amount < policy.minimum_payout:
            continue
        payouts.append(
            PlannedPayout(
                referrer_id=ancestor.referrer_id,
                edge_id=ancestor.edge_id,
                level=ancestor.level,
                rate=ancestor.commission_rate,
                multiplier=multiplier,
                amount=amount,
            )
        )
    return payouts
