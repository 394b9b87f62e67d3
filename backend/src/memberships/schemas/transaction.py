"""Pydantic schemas for the atomic transaction operations."""
from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field

from memberships.models.payment import PaymentMethod
from memberships.schemas.subscription import REASON_MAX_LENGTH


class SubscriptionWithPaymentCreate(BaseModel):
    """Parameters for creating a subscription and its initial payment together."""

    member_id: UUID
    plan_id: UUID
    payment_amount: int = Field(..., gt=0, description="Initial payment in cents")
    payment_method: PaymentMethod
    payment_date: date | None = None


class SubscriptionWithPaymentResult(BaseModel):
    """Result of the create-with-payment transaction."""

    success: bool
    subscription_id: UUID
    payment_id: UUID
    message: str


class RefundCreate(BaseModel):
    """Parameters for refunding a payment."""

    payment_id: UUID
    refund_amount: int = Field(..., gt=0, description="Refund in cents")
    refund_reason: str = Field(..., min_length=1, max_length=REASON_MAX_LENGTH)
    cancel_subscription: bool = True


class RefundResult(BaseModel):
    """Result of the refund transaction."""

    success: bool
    refund_id: UUID
    payment_id: UUID
    refund_amount: int
    subscription_cancelled: bool
    message: str
