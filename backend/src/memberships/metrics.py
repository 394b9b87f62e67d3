"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Subscription metrics
subscriptions_created_total = Counter(
    "subscriptions_created_total",
    "Total subscriptions created",
    labelnames=["source"],  # ledger, transaction, upgrade
)

subscriptions_status_changes_total = Counter(
    "subscriptions_status_changes_total",
    "Subscription status transitions",
    labelnames=["from_status", "to_status"],
)

sessions_consumed_total = Counter(
    "sessions_consumed_total",
    "Sessions consumed from subscriptions",
)

state_conflicts_total = Counter(
    "state_conflicts_total",
    "Guarded updates that matched zero rows",
    labelnames=["operation"],
)

member_promotions_total = Counter(
    "member_promotions_total",
    "Trial to full member promotions",
    labelnames=["result"],  # promoted, skipped, failed
)

# Payment metrics
payments_recorded_total = Counter(
    "payments_recorded_total",
    "Total completed payments recorded",
    labelnames=["payment_method"],
)

payment_amount_total = Counter(
    "payment_amount_total",
    "Total payment amount in cents",
    labelnames=["payment_method"],
)

refunds_processed_total = Counter(
    "refunds_processed_total",
    "Total refunds processed",
    labelnames=["subscription_cancelled"],
)

transactions_failed_total = Counter(
    "transactions_failed_total",
    "Atomic transaction operations that failed as a unit",
    labelnames=["operation"],
)
