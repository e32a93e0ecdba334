"""
Dramatiq actors.

Importing this package configures the broker and registers every actor,
so `dramatiq jobs.tasks` starts a worker for all rewards queues.
"""

from jobs import broker  # noqa: F401
from jobs.tasks.budget import distribute_budget_pool
from jobs.tasks.commission import distribute_sale_commission
from jobs.tasks.multiplier import recalculate_all_multipliers, recalculate_multiplier

__all__ = [
    "distribute_budget_pool",
    "distribute_sale_commission",
    "recalculate_all_multipliers",
    "recalculate_multiplier",
]
