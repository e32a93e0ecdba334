"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from app.models.base import Base

# Budget
from app.models.budget_run import BudgetRun
from app.models.enums import (
    BudgetRunStatus,
    LedgerEntryStatus,
    LedgerEntryType,
    SourceKind,
    TaskAssignmentStatus,
)

# Ledger
from app.models.ledger_entry import LedgerEntry

# Referral graph
from app.models.referral import ReferralEdge
from app.models.source_reference import (
    AdminRef,
    BudgetRunRef,
    LedgerEntryRef,
    ReferralEdgeRef,
    SaleRef,
    SourceReference,
    TaskAssignmentRef,
)

# Tasks and teams
from app.models.task import TaskAssignment, TaskTemplate
from app.models.team import Team, TeamMembership
from app.models.volunteer_profile import VolunteerProfile


__all__ = [
    "Base",
    # Profiles
    "VolunteerProfile",
    # Referral
    "ReferralEdge",
    # Ledger
    "LedgerEntry",
    "SourceReference",
    "TaskAssignmentRef",
    "ReferralEdgeRef",
    "AdminRef",
    "BudgetRunRef",
    "SaleRef",
    "LedgerEntryRef",
    # Tasks
    "TaskTemplate",
    "TaskAssignment",
    # Teams
    "Team",
    "TeamMembership",
    # Budget
    "BudgetRun",
    # Enums
    "LedgerEntryType",
    "LedgerEntryStatus",
    "SourceKind",
    "TaskAssignmentStatus",
    "BudgetRunStatus",
]
