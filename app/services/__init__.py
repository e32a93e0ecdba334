"""
Services.

Business logic layer.
"""

# Base Service Infrastructure
from app.services.base_service import (
    BaseService,
    log_operation,
    transaction,
)

# Core Services
from app.services.leaderboard_service import LeaderboardService
from app.services.ledger_service import LedgerService
from app.services.leveling_service import LevelChangeResult, LevelingService
from app.services.profile_service import ProfileService
from app.services.task_approval_service import ApprovalResult, TaskApprovalService

# Referral Services
from app.services.referral import (
    ReferralChainManager,
    ReferralQueryManager,
    ReferralStatisticsManager,
)

# Commission, Multiplier and Budget
from app.services.commission import CommissionDistributor, DistributionResult
from app.services.multiplier import MultiplierService
from app.services.budget import BudgetAllocator

# Events and background work
from app.services.events import EventPublisher, LoggingEventPublisher
from app.services.work_queue import NullWorkEnqueuer, WorkEnqueuer


__all__ = [
    # Base Infrastructure
    "BaseService",
    "transaction",
    "log_operation",
    # Core
    "LeaderboardService",
    "LedgerService",
    "LevelingService",
    "LevelChangeResult",
    "ProfileService",
    "TaskApprovalService",
    "ApprovalResult",
    # Referral Package
    "ReferralChainManager",
    "ReferralQueryManager",
    "ReferralStatisticsManager",
    # Commission / Multiplier / Budget
    "CommissionDistributor",
    "DistributionResult",
    "MultiplierService",
    "BudgetAllocator",
    # Events / Work queue
    "EventPublisher",
    "LoggingEventPublisher",
    "WorkEnqueuer",
    "NullWorkEnqueuer",
]
