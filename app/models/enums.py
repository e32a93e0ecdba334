"""
Enumerations shared by models and services.
"""

from enum import StrEnum


class LedgerEntryType(StrEnum):
    """Kind of token movement recorded in the ledger."""

    TASK_REWARD = "task_reward"
    REFERRAL_COMMISSION = "referral_commission"
    SALE_COMMISSION = "sale_commission"
    ADMIN_BONUS = "admin_bonus"
    PERFORMANCE_BONUS = "performance_bonus"
    REVERSAL = "reversal"


class LedgerEntryStatus(StrEnum):
    """Ledger entry lifecycle."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class SourceKind(StrEnum):
    """Kind of object that triggered a ledger entry."""

    TASK_ASSIGNMENT = "task_assignment"
    REFERRAL_EDGE = "referral_edge"
    ADMIN = "admin"
    BUDGET_RUN = "budget_run"
    SALE = "sale"
    LEDGER_ENTRY = "ledger_entry"


class TaskAssignmentStatus(StrEnum):
    """Task assignment state machine."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def open_statuses(cls) -> tuple["TaskAssignmentStatus", ...]:
        """Statuses that can become overdue."""
        return (cls.IN_PROGRESS, cls.SUBMITTED)

    @classmethod
    def unfinished_statuses(cls) -> tuple["TaskAssignmentStatus", ...]:
        """Statuses that count against the daily assignment limit."""
        return (cls.PENDING, cls.IN_PROGRESS, cls.SUBMITTED)


class BudgetRunStatus(StrEnum):
    """Budget allocation run lifecycle."""

    PENDING = "pending"
    COMPLETED = "completed"
