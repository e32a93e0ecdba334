"""
Business logic constants for the volunteer rewards engine.

Central location for business rules and constants used across the application.
These are defaults only: services receive a RewardPolicy built from them and
never read this module directly inside their algorithms.
"""

from decimal import Decimal


# =============================================================================
# REFERRAL CHAIN
# =============================================================================

MAX_REFERRAL_DEPTH = 5

# Decaying commission rate per ancestor level
REFERRAL_RATES = {
    1: Decimal("0.10"),  # 10% for level 1 (direct referrer)
    2: Decimal("0.08"),
    3: Decimal("0.06"),
    4: Decimal("0.04"),
    5: Decimal("0.02"),
}

# Payouts below this are skipped, never written as zero entries
MINIMUM_PAYOUT = Decimal("0.01")

REFERRAL_CODE_LENGTH = 8

# Referred user must have been active this recently for an edge to be reactivated
REACTIVATION_WINDOW_DAYS = 7

# Upper bound on referrer_id hops followed when checking for cycles
ANCESTRY_SCAN_LIMIT = 1000


# =============================================================================
# LEVELS AND CAPABILITIES
# =============================================================================

# Minimum total experience for each level
LEVEL_THRESHOLDS = {1: 0, 2: 100, 3: 500}


class Capability:
    """Capability tag constants."""

    BASIC_TASKS = "basic_tasks"
    TEAM_CREATION = "team_creation"
    MENTORING = "mentoring"
    INTERMEDIATE_TASKS = "intermediate_tasks"
    ADVANCED_TASKS = "advanced_tasks"
    TEAM_LEADERSHIP = "team_leadership"
    ADMIN_TASKS = "admin_tasks"


# Capabilities newly unlocked at each level (cumulative sets are derived)
LEVEL_UNLOCKS = {
    1: (Capability.BASIC_TASKS,),
    2: (
        Capability.TEAM_CREATION,
        Capability.MENTORING,
        Capability.INTERMEDIATE_TASKS,
    ),
    3: (
        Capability.ADVANCED_TASKS,
        Capability.TEAM_LEADERSHIP,
        Capability.ADMIN_TASKS,
    ),
}


# =============================================================================
# ACTIVITY MULTIPLIER
# =============================================================================

BASE_MULTIPLIER = 1.0
MAX_MULTIPLIER = 3.0

LEVEL_BONUS_STEP = 0.1          # per level above 1
TASK_BONUS_STEP = 0.05          # per TASKS_PER_STEP approved tasks in window
TASKS_PER_STEP = 10
REFERRAL_BONUS_STEP = 0.1       # per REFERRALS_PER_STEP active descendants
REFERRALS_PER_STEP = 5
TEAM_BONUS_PER_TEAM = 0.05      # per led team
TEAM_MEMBER_BONUS_STEP = 0.05   # per TEAM_MEMBERS_PER_STEP active members
TEAM_MEMBERS_PER_STEP = 10

ACTIVITY_WINDOW_DAYS = 30
INACTIVITY_GRACE_DAYS = 7
WEEKLY_DECAY_FACTOR = 0.75      # bonus portion kept per full inactive week

# Stored multiplier is only rewritten when the change exceeds this
MULTIPLIER_TOLERANCE = 0.01

# Delay between successive referrer recalculations up the chain
RECALCULATION_STAGGER_SECONDS = 2


# =============================================================================
# BUDGET ALLOCATION
# =============================================================================

class PeriodType:
    """Budget period constants."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    ALL = (DAILY, WEEKLY, MONTHLY)


MIN_TASKS_PER_PERIOD = {
    PeriodType.DAILY: 1,
    PeriodType.WEEKLY: 3,
    PeriodType.MONTHLY: 10,
}

DAILY_SHARES = (
    Decimal("0.50"),
    Decimal("0.25"),
    Decimal("0.15"),
    Decimal("0.07"),
    Decimal("0.03"),
)
WEEKLY_TOP_N = 10
MONTHLY_TOP_FRACTION = Decimal("0.25")
MONTHLY_TOP_BONUS = Decimal("0.10")
MONTHLY_TOP_BONUS_RANKS = 3
MONTHLY_SHARE_CAP = Decimal("0.50")

TASK_SCORE_FACTOR = 0.1
ACTIVE_REFERRAL_POINTS = 5.0
REJECTION_PENALTY = 2.0
OVERDUE_PENALTY = 1.0
OVERDUE_AFTER_DAYS = 7


# =============================================================================
# TASK ASSIGNMENT
# =============================================================================

# Open assignments a volunteer may take within 24 hours
MAX_DAILY_ASSIGNMENTS = 5


# =============================================================================
# LEADERBOARD
# =============================================================================

# Rolling window per leaderboard period, in days
LEADERBOARD_WINDOW_DAYS = {
    PeriodType.DAILY: 1,
    PeriodType.WEEKLY: 7,
    PeriodType.MONTHLY: 30,
}
LEADERBOARD_LIMIT = 100


# =============================================================================
# SALE FRAUD FLAGS (logged only, never block payouts)
# =============================================================================

RAPID_SALES_PER_HOUR = 10
LARGE_SALE_FACTOR = Decimal("10")
SALE_AVERAGE_WINDOW_DAYS = 30
DEFAULT_AVERAGE_SALE = Decimal("100")
RAPID_CHAIN_PROFILES = 2
