"""Atomic transaction endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from memberships.api.deps import get_db
from memberships.schemas.transaction import (
    RefundCreate,
    RefundResult,
    SubscriptionWithPaymentCreate,
    SubscriptionWithPaymentResult,
)
from memberships.services.transaction_service import TransactionService

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post(
    "/subscription-with-payment",
    response_model=SubscriptionWithPaymentResult,
    status_code=status.HTTP_201_CREATED,
)
async def create_subscription_with_payment(
    params: SubscriptionWithPaymentCreate,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionWithPaymentResult:
    """
    Create a subscription and its first payment atomically.

    Either both rows exist afterwards or neither does.
    """
    service = TransactionService(db)
    return await service.create_subscription_with_payment(params)


@router.post("/refund", response_model=RefundResult, status_code=status.HTTP_201_CREATED)
async def process_refund(
    params: RefundCreate,
    db: AsyncSession = Depends(get_db),
) -> RefundResult:
    """
    Refund a payment, optionally cancelling its subscription, atomically.

    - **payment_id**: Payment to refund (required)
    - **refund_amount**: Amount in cents, at most what is still refundable (required)
    - **refund_reason**: Reason (required, max 200 characters)
    - **cancel_subscription**: Cancel the subscription too (default: true)
    """
    service = TransactionService(db)
    return await service.process_refund(params)
