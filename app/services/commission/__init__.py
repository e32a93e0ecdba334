"""
Commission services package.

- calculator: Pure per-level commission arithmetic
- distributor: Idempotent ledger writes for one trigger
- sale_events: Signed sale webhook payloads
- fraud_flags: Review flags for suspicious sales
"""

from app.services.commission.calculator import (
    PlannedPayout,
    calculate_commission,
    plan_payouts,
)
from app.services.commission.distributor import (
    CommissionDistributor,
    DistributionResult,
    DistributionState,
    commission_key,
)
from app.services.commission.fraud_flags import SaleFraudScreen
from app.services.commission.sale_events import (
    SaleEvent,
    SaleWebhookHandler,
    parse_sale_event,
    verify_sale_signature,
)


__all__ = [
    "CommissionDistributor",
    "DistributionResult",
    "DistributionState",
    "PlannedPayout",
    "SaleEvent",
    "SaleFraudScreen",
    "SaleWebhookHandler",
    "calculate_commission",
    "commission_key",
    "parse_sale_event",
    "plan_payouts",
    "verify_sale_signature",
]
