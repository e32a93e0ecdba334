"""
Budget scoring and share computation.

Pure functions: performance score, deterministic ranking and per-period
share shapes.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_DOWN, Decimal

from app.config.business_constants import PeriodType
from app.config.reward_policy import RewardPolicy
from app.utils.datetime_utils import as_utc

CENT = Decimal("0.01")


@dataclass
class VolunteerPerformance:
    """In-period activity of one eligible volunteer."""

    user_id: int
    multiplier: float
    # (xp_reward, level_required) per approved in-period task
    approved_tasks: list[tuple[int, int]] = field(default_factory=list)
    active_referrals: int = 0
    rejected_tasks: int = 0
    overdue_tasks: int = 0
    earliest_assigned_at: datetime | None = None


@dataclass(frozen=True)
class RankedVolunteer:
    """Volunteer with score and 1-based rank."""

    user_id: int
    score: float
    rank: int


@dataclass(frozen=True)
class PlannedBonus:
    """Budget payout to write."""

    user_id: int
    rank: int
    score: float
    share: Decimal
    amount: Decimal


def performance_score(perf: VolunteerPerformance, policy: RewardPolicy) -> float:
    """
    Score = sum(xp * level_required * factor) * multiplier
            + points per active referral - penalties, floored at 0.

    Rounded to 2 decimals.
    """
    task_score = sum(
        xp * level_required * policy.task_score_factor
        for xp, level_required in perf.approved_tasks
    )
    score = task_score * perf.multiplier
    score += perf.active_referrals * policy.active_referral_points
    penalty = (
        perf.rejected_tasks * policy.rejection_penalty
        + perf.overdue_tasks * policy.overdue_penalty
    )
    return round(max(score - penalty, 0.0), 2)


def rank_volunteers(
    performances: list[VolunteerPerformance], policy: RewardPolicy
) -> list[RankedVolunteer]:
    """
    Rank by score descending.

    Ties go to the earliest in-period assigned_at, then the lower user id,
    so payouts are reproducible.
    """
    far_future = datetime.max.replace(tzinfo=UTC)

    def sort_key(item: tuple[VolunteerPerformance, float]):
        perf, score = item
        assigned = as_utc(perf.earliest_assigned_at) or far_future
        return (-score, assigned, perf.user_id)

    scored = [(perf, performance_score(perf, policy)) for perf in performances]
    scored.sort(key=sort_key)
    return [
        RankedVolunteer(user_id=perf.user_id, score=score, rank=index + 1)
        for index, (perf, score) in enumerate(scored)
    ]


def compute_shares(
    period_type: str, ranked: list[RankedVolunteer], policy: RewardPolicy
) -> list[tuple[RankedVolunteer, Decimal]]:
    """
    Pool share per recipient, best first.

    daily: fixed shares for the top len(daily_shares).
    weekly: top N proportional to score.
    monthly: top fraction (min 1) proportional to score, plus a flat bonus
    for the top ranks, each share capped; scaled down if the total
    exceeds the pool.

    Raises:
        ValueError: Unknown period type
    """
    if period_type == PeriodType.DAILY:
        top = ranked[: len(policy.daily_shares)]
        return list(zip(top, policy.daily_shares, strict=False))

    if period_type == PeriodType.WEEKLY:
        top = ranked[: policy.weekly_top_n]
        return _proportional(top)

    if period_type == PeriodType.MONTHLY:
        count = max(int(len(ranked) * policy.monthly_top_fraction), 1)
        top = ranked[:count]
        shares = []
        for recipient, share in _proportional(top):
            if recipient.rank <= policy.monthly_top_bonus_ranks:
                share += policy.monthly_top_bonus
            shares.append((recipient, min(share, policy.monthly_share_cap)))
        total = sum((share for _, share in shares), Decimal("0"))
        if total > 1:
            shares = [(recipient, share / total) for recipient, share in shares]
        return shares

    raise ValueError(f"Unknown period type: {period_type}")


def _proportional(
    top: list[RankedVolunteer],
) -> list[tuple[RankedVolunteer, Decimal]]:
    total = sum((Decimal(str(r.score)) for r in top), Decimal("0"))
    if total <= 0:
        return []
    return [(r, Decimal(str(r.score)) / total) for r in top]


def plan_bonuses(
    period_type: str,
    pool_amount: Decimal,
    ranked: list[RankedVolunteer],
    policy: RewardPolicy,
) -> list[PlannedBonus]:
    """
    Turn shares into payouts, rounded down to 0.01.

    Rounding down keeps the sum within the pool; payouts under
    policy.minimum_payout are dropped.
    """
    bonuses: list[PlannedBonus] = []
    for recipient, share in compute_shares(period_type, ranked, policy):
        amount = (pool_amount * share).quantize(CENT, rounding=ROUND_DOWN)
        if amount < policy.minimum_payout:
            continue
        bonuses.append(
            PlannedBonus(
                user_id=recipient.user_id,
                rank=recipient.rank,
                score=recipient.score,
                share=share,
                amount=amount,
            )
        )
    return bonuses
