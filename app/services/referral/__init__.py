"""
Referral services package.

Contains modular services for the referral graph:
- chain_manager: Creates referral chains and toggles edges
- query_manager: Ancestor and descendant queries
- statistics: Network and chain statistics
"""

from app.services.referral.chain_manager import ReferralChainManager
from app.services.referral.query_manager import Ancestor, ReferralQueryManager
from app.services.referral.statistics import (
    ChainMember,
    ChainStatistics,
    LevelStats,
    ReferralStatisticsManager,
)


__all__ = [
    # Managers
    "ReferralChainManager",
    "ReferralQueryManager",
    "ReferralStatisticsManager",
    # Results
    "Ancestor",
    "ChainMember",
    "ChainStatistics",
    "LevelStats",
]
