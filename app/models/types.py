"""
Standard type definitions for database models.

Provides consistent types for monetary, rate and JSON fields across all models.
"""

from sqlalchemy import DECIMAL, JSON
from sqlalchemy.dialects.postgresql import JSONB

# Standard money type for amounts, balances, rewards
# Precision: 18 digits total, 8 after decimal point
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)

# Commission rate as a fraction (e.g., 0.1000 = 10%)
# Precision: 5 digits total, 4 after decimal point
RateType = DECIMAL(5, 4)

# Audit metadata: JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")
