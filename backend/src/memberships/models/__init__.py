"""SQLAlchemy ORM models for the membership ledger."""
# Import all models here to ensure they are registered with Alembic

from memberships.models.base import Base
from memberships.models.member import Member, MemberStatus, MemberType
from memberships.models.plan import Plan
from memberships.models.subscription import Subscription, SubscriptionStatus, SubscriptionHistory
from memberships.models.payment import SubscriptionPayment, PaymentMethod, PaymentStatus, ReceiptCounter

__all__ = [
    "Base",
    "Member",
    "MemberStatus",
    "MemberType",
    "Plan",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionHistory",
    "SubscriptionPayment",
    "PaymentMethod",
    "PaymentStatus",
    "ReceiptCounter",
]
