"""
Reward policy.

Explicit configuration passed into every service at construction time:
commission rates, level thresholds, multiplier and budget policy.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.config import business_constants as bc


class RewardPolicy(BaseModel):
    """Immutable business policy for the rewards engine."""

    model_config = ConfigDict(frozen=True)

    # Referral chain
    max_referral_depth: int = Field(default=bc.MAX_REFERRAL_DEPTH, ge=1)
    commission_rates: dict[int, Decimal] = Field(
        default_factory=lambda: dict(bc.REFERRAL_RATES)
    )
    minimum_payout: Decimal = bc.MINIMUM_PAYOUT
    referral_code_length: int = Field(default=bc.REFERRAL_CODE_LENGTH, ge=4)
    reactivation_window_days: int = Field(default=bc.REACTIVATION_WINDOW_DAYS, ge=0)
    ancestry_scan_limit: int = Field(default=bc.ANCESTRY_SCAN_LIMIT, ge=1)

    # Levels
    level_thresholds: dict[int, int] = Field(
        default_factory=lambda: dict(bc.LEVEL_THRESHOLDS)
    )
    level_unlocks: dict[int, tuple[str, ...]] = Field(
        default_factory=lambda: dict(bc.LEVEL_UNLOCKS)
    )

    # Activity multiplier
    base_multiplier: float = bc.BASE_MULTIPLIER
    max_multiplier: float = bc.MAX_MULTIPLIER
    level_bonus_step: float = bc.LEVEL_BONUS_STEP
    task_bonus_step: float = bc.TASK_BONUS_STEP
    tasks_per_step: int = Field(default=bc.TASKS_PER_STEP, ge=1)
    referral_bonus_step: float = bc.REFERRAL_BONUS_STEP
    referrals_per_step: int = Field(default=bc.REFERRALS_PER_STEP, ge=1)
    team_bonus_per_team: float = bc.TEAM_BONUS_PER_TEAM
    team_member_bonus_step: float = bc.TEAM_MEMBER_BONUS_STEP
    team_members_per_step: int = Field(default=bc.TEAM_MEMBERS_PER_STEP, ge=1)
    activity_window_days: int = Field(default=bc.ACTIVITY_WINDOW_DAYS, ge=1)
    inactivity_grace_days: int = Field(default=bc.INACTIVITY_GRACE_DAYS, ge=1)
    weekly_decay_factor: float = Field(default=bc.WEEKLY_DECAY_FACTOR, gt=0, le=1)
    multiplier_tolerance: float = Field(default=bc.MULTIPLIER_TOLERANCE, ge=0)
    recalculation_stagger_seconds: int = Field(
        default=bc.RECALCULATION_STAGGER_SECONDS, ge=0
    )

    # Budget allocation
    min_tasks_per_period: dict[str, int] = Field(
        default_factory=lambda: dict(bc.MIN_TASKS_PER_PERIOD)
    )
    daily_shares: tuple[Decimal, ...] = bc.DAILY_SHARES
    weekly_top_n: int = Field(default=bc.WEEKLY_TOP_N, ge=1)
    monthly_top_fraction: Decimal = bc.MONTHLY_TOP_FRACTION
    monthly_top_bonus: Decimal = bc.MONTHLY_TOP_BONUS
    monthly_top_bonus_ranks: int = Field(default=bc.MONTHLY_TOP_BONUS_RANKS, ge=0)
    monthly_share_cap: Decimal = bc.MONTHLY_SHARE_CAP
    task_score_factor: float = bc.TASK_SCORE_FACTOR
    active_referral_points: float = bc.ACTIVE_REFERRAL_POINTS
    rejection_penalty: float = bc.REJECTION_PENALTY
    overdue_penalty: float = bc.OVERDUE_PENALTY
    overdue_after_days: int = Field(default=bc.OVERDUE_AFTER_DAYS, ge=0)

    # Task assignment
    max_daily_assignments: int = Field(default=bc.MAX_DAILY_ASSIGNMENTS, ge=1)

    # Leaderboard
    leaderboard_window_days: dict[str, int] = Field(
        default_factory=lambda: dict(bc.LEADERBOARD_WINDOW_DAYS)
    )
    leaderboard_limit: int = Field(default=bc.LEADERBOARD_LIMIT, ge=1)

    # Sale fraud flags
    rapid_sales_per_hour: int = Field(default=bc.RAPID_SALES_PER_HOUR, ge=1)
    large_sale_factor: Decimal = bc.LARGE_SALE_FACTOR
    sale_average_window_days: int = Field(default=bc.SALE_AVERAGE_WINDOW_DAYS, ge=1)
    default_average_sale: Decimal = bc.DEFAULT_AVERAGE_SALE
    rapid_chain_profiles: int = Field(default=bc.RAPID_CHAIN_PROFILES, ge=0)

    @model_validator(mode="after")
    def check_consistency(self) -> "RewardPolicy":
        """Reject policies that would break engine invariants."""
        for level in range(1, self.max_referral_depth + 1):
            rate = self.commission_rates.get(level)
            if rate is None or not (Decimal("0") <= rate < Decimal("1")):
                raise ValueError(f"commission rate for level {level} must be in [0, 1)")
        if 1 not in self.level_thresholds or self.level_thresholds[1] != 0:
            raise ValueError("level 1 threshold must be 0")
        if self.base_multiplier > self.max_multiplier:
            raise ValueError("base_multiplier must not exceed max_multiplier")
        if sum(self.daily_shares) > Decimal("1"):
            raise ValueError("daily shares must not exceed 100% of the pool")
        return self

    @property
    def max_level(self) -> int:
        """Highest reachable level."""
        return max(self.level_thresholds)

    def rate_for_level(self, level: int) -> Decimal:
        """Commission rate for an ancestor level (0 when not configured)."""
        return self.commission_rates.get(level, Decimal("0"))


DEFAULT_POLICY = RewardPolicy()
