"""
Activity multiplier package.

- calculator: Pure multiplier formula
- service: Input gathering, persistence and periodic recompute
"""

from app.services.multiplier.calculator import (
    MultiplierBreakdown,
    MultiplierInputs,
    calculate_multiplier,
    inactive_weeks,
    needs_update,
)
from app.services.multiplier.service import MultiplierService, RecomputeSummary


__all__ = [
    "MultiplierBreakdown",
    "MultiplierInputs",
    "MultiplierService",
    "RecomputeSummary",
    "calculate_multiplier",
    "inactive_weeks",
    "needs_update",
]
