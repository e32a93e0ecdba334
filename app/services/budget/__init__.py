"""
Budget allocation package.

- scoring: Performance score, ranking and share shapes (pure)
- allocator: Idempotent, resumable periodic distribution
"""

from app.services.budget.allocator import BudgetAllocator, budget_run_key
from app.services.budget.scoring import (
    PlannedBonus,
    RankedVolunteer,
    VolunteerPerformance,
    compute_shares,
    performance_score,
    plan_bonuses,
    rank_volunteers,
)


__all__ = [
    "BudgetAllocator",
    "PlannedBonus",
    "RankedVolunteer",
    "VolunteerPerformance",
    "budget_run_key",
    "compute_shares",
    "performance_score",
    "plan_bonuses",
    "rank_volunteers",
]
