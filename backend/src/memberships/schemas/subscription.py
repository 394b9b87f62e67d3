"""Pydantic schemas for Subscription model."""
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from memberships.models.payment import PaymentMethod
from memberships.models.subscription import SubscriptionStatus

NOTES_MAX_LENGTH = 500
REASON_MAX_LENGTH = 200


class SubscriptionCreate(BaseModel):
    """Schema for creating a subscription with a snapshot of the plan terms."""

    member_id: UUID = Field(..., description="Member purchasing the plan")
    plan_id: UUID = Field(..., description="Plan being purchased")
    start_date: date | None = Field(default=None, description="Start date (defaults to today)")
    initial_payment_amount: int | None = Field(default=None, ge=0, description="Initial payment in cents")
    payment_method: PaymentMethod | None = Field(default=None, description="Method for the initial payment")
    notes: str | None = Field(default=None, max_length=NOTES_MAX_LENGTH)
    include_signup_fee: bool = Field(default=False, description="Charge the plan signup fee")
    signup_fee_paid: int | None = Field(default=None, ge=0, description="Signup fee collected in cents")


class SubscriptionPause(BaseModel):
    """Schema for pausing a subscription."""

    reason: str | None = Field(default=None, max_length=REASON_MAX_LENGTH, description="Why the member is pausing")


class SubscriptionUpgradeRequest(BaseModel):
    """Request body for upgrading a subscription to a new plan."""

    new_plan_id: UUID
    credit_amount: int = Field(..., ge=0, description="Credit the client displayed, in cents")
    effective_date: date | None = Field(default=None, description="Start date of the new subscription")


class SubscriptionUpgrade(SubscriptionUpgradeRequest):
    """Schema for upgrading a subscription, naming the subscription being replaced."""

    current_subscription_id: UUID


class UpgradeCredit(BaseModel):
    """Schema for the credit a subscription would carry into an upgrade."""

    subscription_id: UUID
    remaining_sessions: int
    credit_amount: int = Field(..., description="Credit in cents")


class Subscription(BaseModel):
    """Schema for returning subscription data."""

    id: UUID
    member_id: UUID
    plan_id: UUID | None
    plan_name_snapshot: str
    total_sessions_snapshot: int
    total_amount_snapshot: int
    duration_days_snapshot: int
    status: SubscriptionStatus
    start_date: date
    end_date: date
    pause_start_date: date | None
    pause_end_date: date | None
    pause_reason: str | None
    cancelled_at: datetime | None
    upgraded_to_id: UUID | None
    used_sessions: int
    paid_amount: int
    signup_fee_paid: int
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionDetails(Subscription):
    """Subscription with computed balance and usage fields."""

    remaining_sessions: int
    balance_due: int
    completion_percentage: float
    days_remaining: int


class SubscriptionHistoryEntry(BaseModel):
    """Schema for a subscription audit trail entry."""

    id: UUID
    subscription_id: UUID
    event_type: str
    old_value: str | None
    new_value: str | None
    reason: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionList(BaseModel):
    """Schema for subscription list."""

    items: list[Subscription]
    total: int
