"""Pydantic schemas for payment entities."""
from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import date, datetime
from typing import Optional, List

from memberships.models.payment import PaymentMethod, PaymentStatus


class PaymentCreate(BaseModel):
    """Schema for recording a completed payment."""

    subscription_id: UUID
    amount: int = Field(..., description="Amount in cents", gt=0)
    payment_method: PaymentMethod
    payment_date: Optional[date] = None
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    subscription_id: UUID
    member_id: UUID
    amount: int = Field(..., description="Amount in cents")
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_date: date
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    receipt_number: str
    refunded_payment_id: Optional[UUID] = None
    refund_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# Name used by the route response models
Payment = PaymentResponse


class PaymentList(BaseModel):
    """Schema for list of payments."""

    items: List[PaymentResponse]
    total: int


class BalanceInfo(BaseModel):
    """Schema for balance information of a subscription."""

    total_amount: int
    paid_amount: int
    balance: int
    paid_percentage: float
    is_fully_paid: bool
    is_overpaid: bool


class PaymentStats(BaseModel):
    """Schema for payment statistics over a date range."""

    total_revenue: int
    payment_count: int
    average_payment: float
    payment_method_breakdown: dict[str, int]
