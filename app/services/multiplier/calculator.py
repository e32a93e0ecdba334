"""
Activity multiplier calculator.

Pure calculation from gathered inputs; the service layer collects the
inputs and persists the result.
"""

from dataclasses import dataclass
from datetime import datetime

from app.config.business_constants import Capability
from app.config.reward_policy import RewardPolicy
from app.utils.datetime_utils import days_between


@dataclass(frozen=True)
class MultiplierInputs:
    """Everything the multiplier depends on for one volunteer."""

    level: int
    tasks_completed_in_window: int
    active_descendants: int
    capabilities: frozenset[str]
    led_teams: int = 0
    active_team_members: int = 0
    last_activity_at: datetime | None = None


@dataclass(frozen=True)
class MultiplierBreakdown:
    """Per-term result, kept for logging and audit."""

    level_bonus: float
    activity_bonus: float
    referral_bonus: float
    leadership_bonus: float
    decay_factor: float
    inactive_weeks: int
    multiplier: float

    @property
    def raw_bonus(self) -> float:
        """Bonus before decay."""
        return (
            self.level_bonus
            + self.activity_bonus
            + self.referral_bonus
            + self.leadership_bonus
        )


def inactive_weeks(
    last_activity_at: datetime | None, now: datetime, policy: RewardPolicy
) -> int:
    """
    Full weeks of inactivity counted for decay.

    Zero within the grace period. Weeks are counted from the last activity,
    so repeated recomputation on the same day yields the same value.
    A profile that never had activity is not decayed.
    """
    if last_activity_at is None:
        return 0
    days_inactive = days_between(last_activity_at, now)
    if days_inactive <= policy.inactivity_grace_days:
        return 0
    return int(days_inactive // 7)


def calculate_multiplier(
    inputs: MultiplierInputs, now: datetime, policy: RewardPolicy
) -> MultiplierBreakdown:
    """
    Compute the activity multiplier.

    multiplier = base + (level + activity + referral + leadership bonus),
    where the bonus decays by policy.weekly_decay_factor per full inactive
    week and the result is clamped to [base, max].

    Args:
        inputs: Gathered volunteer data
        now: Evaluation time
        policy: Reward policy

    Returns:
        MultiplierBreakdown
    """
    level_bonus = policy.level_bonus_step * max(inputs.level - 1, 0)
    activity_bonus = policy.task_bonus_step * (
        inputs.tasks_completed_in_window // policy.tasks_per_step
    )
    referral_bonus = policy.referral_bonus_step * (
        inputs.active_descendants // policy.referrals_per_step
    )

    leadership_bonus = 0.0
    if Capability.TEAM_LEADERSHIP in inputs.capabilities:
        leadership_bonus = policy.team_bonus_per_team * inputs.led_teams
        leadership_bonus += policy.team_member_bonus_step * (
            inputs.active_team_members // policy.team_members_per_step
        )

    weeks = inactive_weeks(inputs.last_activity_at, now, policy)
    decay_factor = policy.weekly_decay_factor ** weeks

    bonus = (level_bonus + activity_bonus + referral_bonus + leadership_bonus) * decay_factor
    multiplier = min(max(policy.base_multiplier + bonus, policy.base_multiplier), policy.max_multiplier)

    return MultiplierBreakdown(
        level_bonus=level_bonus,
        activity_bonus=activity_bonus,
        referral_bonus=referral_bonus,
        leadership_bonus=leadership_bonus,
        decay_factor=decay_factor,
        inactive_weeks=weeks,
        multiplier=round(multiplier, 4),
    )


def needs_update(stored: float, computed: float, tolerance: float) -> bool:
    """Whether the stored multiplier differs enough to be rewritten."""
    return abs(stored - computed) > tolerance
