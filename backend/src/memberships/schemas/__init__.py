"""Pydantic schemas for API request/response validation."""

from memberships.schemas.payment import (
    BalanceInfo,
    Payment,
    PaymentCreate,
    PaymentList,
    PaymentStats,
)
from memberships.schemas.plan import (
    Plan,
    PlanList,
)
from memberships.schemas.subscription import (
    Subscription,
    SubscriptionCreate,
    SubscriptionDetails,
    SubscriptionHistoryEntry,
    SubscriptionList,
    SubscriptionPause,
    SubscriptionUpgrade,
    SubscriptionUpgradeRequest,
    UpgradeCredit,
)
from memberships.schemas.transaction import (
    RefundCreate,
    RefundResult,
    SubscriptionWithPaymentCreate,
    SubscriptionWithPaymentResult,
)

__all__ = [
    # Plan schemas
    "Plan",
    "PlanList",
    # Subscription schemas
    "Subscription",
    "SubscriptionCreate",
    "SubscriptionDetails",
    "SubscriptionHistoryEntry",
    "SubscriptionList",
    "SubscriptionPause",
    "SubscriptionUpgrade",
    "SubscriptionUpgradeRequest",
    "UpgradeCredit",
    # Payment schemas
    "Payment",
    "PaymentCreate",
    "PaymentList",
    "BalanceInfo",
    "PaymentStats",
    # Transaction schemas
    "SubscriptionWithPaymentCreate",
    "SubscriptionWithPaymentResult",
    "RefundCreate",
    "RefundResult",
]
