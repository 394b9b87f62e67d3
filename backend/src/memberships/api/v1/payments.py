"""Payment API endpoints."""
from datetime import date, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from memberships.api.deps import get_db
from memberships.exceptions import LedgerError, ValidationError
from memberships.schemas.payment import BalanceInfo, Payment, PaymentCreate, PaymentList, PaymentStats
from memberships.services.payment_service import PaymentService
from memberships.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=Payment, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
) -> Payment:
    """
    Record a completed payment against a subscription.

    - **subscription_id**: Subscription UUID (required)
    - **amount**: Amount in cents, strictly positive (required)
    - **payment_method**: cash, card, bank_transfer, online or check (required)
    - **payment_date**: Payment date (optional, defaults to today)
    - **reference_number**: External reference (optional, max 100 characters)

    The subscription's paid amount is recomputed from its payments.
    """
    service = PaymentService(db)

    try:
        payment = await service.record_payment(payment_data)
        await db.commit()
        return payment
    except LedgerError:
        await db.rollback()
        raise


@router.get("", response_model=PaymentList)
async def list_payments(
    subscription_id: UUID = Query(..., description="Subscription to list payments for"),
    db: AsyncSession = Depends(get_db),
) -> PaymentList:
    """List payments and refunds of a subscription, newest first."""
    await SubscriptionService(db).get_subscription_or_raise(subscription_id)

    service = PaymentService(db)
    payments = await service.list_subscription_payments(subscription_id)
    return PaymentList(items=payments, total=len(payments))


@router.get("/stats", response_model=PaymentStats)
async def get_payment_stats(
    start_date: date | None = Query(None, description="First payment date included (default: 30 days ago)"),
    end_date: date | None = Query(None, description="Last payment date included (default: today)"),
    db: AsyncSession = Depends(get_db),
) -> PaymentStats:
    """Revenue, payment count, average payment and per-method breakdown for a date range."""
    end_date = end_date or date.today()
    start_date = start_date or end_date - timedelta(days=30)
    if start_date > end_date:
        raise ValidationError("start_date", "must not be after end_date")

    service = PaymentService(db)
    return await service.get_payment_stats(start_date, end_date)


@router.get("/balance/{subscription_id}", response_model=BalanceInfo)
async def get_balance(
    subscription_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> BalanceInfo:
    """Total, paid amount and remaining balance of a subscription."""
    subscription = await SubscriptionService(db).get_subscription_or_raise(subscription_id)
    return PaymentService.calculate_balance_info(subscription)


@router.get("/{payment_id}", response_model=Payment)
async def get_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Payment:
    """Get payment or refund entry by ID."""
    service = PaymentService(db)
    return await service.get_payment_or_raise(payment_id)
