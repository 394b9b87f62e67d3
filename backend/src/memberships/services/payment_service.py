"""Payment recorder: appends payments and reconciles subscription paid amounts."""
from collections import defaultdict
from datetime import date
from typing import Any, Mapping, Optional, List
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError

from memberships import metrics
from memberships.config import settings
from memberships.exceptions import PaymentNotFound, SubscriptionNotFound
from memberships.models.payment import SubscriptionPayment, PaymentMethod, PaymentStatus, ReceiptCounter
from memberships.models.subscription import Subscription
from memberships.schemas.payment import BalanceInfo, PaymentCreate, PaymentStats
from memberships.validation import parse_input

logger = structlog.get_logger(__name__)


class PaymentService:
    """Service for recording payments against subscriptions."""

    def __init__(self, db: AsyncSession):
        """Initialize payment service."""
        self.db = db

    async def record_payment(self, payment_data: PaymentCreate | Mapping[str, Any]) -> SubscriptionPayment:
        """
        Record a completed payment and reconcile the subscription's paid amount.

        Args:
            payment_data: Payment details (amount in cents, strictly positive)

        Returns:
            Created payment record

        Raises:
            ValidationError: If the input violates the payment contract
            SubscriptionNotFound: If the subscription does not exist
        """
        payment_data = parse_input(PaymentCreate, payment_data)

        subscription_result = await self.db.execute(
            select(Subscription.member_id).where(Subscription.id == payment_data.subscription_id)
        )
        member_id = subscription_result.scalar_one_or_none()
        if member_id is None:
            raise SubscriptionNotFound(payment_data.subscription_id)

        payment = SubscriptionPayment(
            subscription_id=payment_data.subscription_id,
            member_id=member_id,
            amount=payment_data.amount,
            payment_method=payment_data.payment_method,
            payment_status=PaymentStatus.COMPLETED,
            payment_date=payment_data.payment_date or date.today(),
            reference_number=payment_data.reference_number,
            notes=payment_data.notes,
            receipt_number=await self.next_receipt_number(),
        )

        self.db.add(payment)
        await self.db.flush()

        paid_amount = await self.reconcile_paid_amount(payment_data.subscription_id)

        logger.info(
            "payment_recorded",
            payment_id=str(payment.id),
            subscription_id=str(payment.subscription_id),
            amount=payment.amount,
            payment_method=payment.payment_method.value,
            paid_amount=paid_amount,
        )
        metrics.payments_recorded_total.labels(payment_method=payment.payment_method.value).inc()
        metrics.payment_amount_total.labels(payment_method=payment.payment_method.value).inc(payment.amount)

        await self.db.refresh(payment)
        return payment

    async def reconcile_paid_amount(self, subscription_id: UUID) -> int:
        """
        Recompute paid_amount from the payment rows and write it back.

        paid_amount = sum of completed payments minus sum of refunds. A refund
        is its own row rather than a status flip on the payment it reverses, so
        partial refunds reduce what the member has paid by exactly the refunded
        amount. The value is recomputed from scratch on every call, never
        incremented, so running it any number of times yields the same total.

        Args:
            subscription_id: Subscription UUID

        Returns:
            Reconciled paid amount in cents
        """
        signed_amount = case(
            (SubscriptionPayment.payment_status == PaymentStatus.REFUND, -SubscriptionPayment.amount),
            else_=SubscriptionPayment.amount,
        )
        total = await self.db.scalar(
            select(func.coalesce(func.sum(signed_amount), 0)).where(
                SubscriptionPayment.subscription_id == subscription_id
            )
        )
        total_paid = max(0, int(total or 0))

        await self.db.execute(
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .values(paid_amount=total_paid)
        )
        return total_paid

    async def get_payment(self, payment_id: UUID, for_update: bool = False) -> Optional[SubscriptionPayment]:
        """
        Get payment by ID.

        Args:
            payment_id: Payment UUID
            for_update: Lock the row until the transaction ends

        Returns:
            Payment if found, None otherwise
        """
        query = select(SubscriptionPayment).where(SubscriptionPayment.id == payment_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def refundable_amount(self, payment: SubscriptionPayment) -> int:
        """Amount of a completed payment not yet refunded, in cents."""
        refunded = await self.db.scalar(
            select(func.coalesce(func.sum(SubscriptionPayment.amount), 0)).where(
                SubscriptionPayment.refunded_payment_id == payment.id,
                SubscriptionPayment.payment_status == PaymentStatus.REFUND,
            )
        )
        return max(0, payment.amount - int(refunded or 0))

    async def list_subscription_payments(self, subscription_id: UUID) -> List[SubscriptionPayment]:
        """
        List payments and refunds for a subscription, newest first.

        Args:
            subscription_id: Subscription UUID

        Returns:
            List of payments
        """
        result = await self.db.execute(
            select(SubscriptionPayment)
            .where(SubscriptionPayment.subscription_id == subscription_id)
            .order_by(SubscriptionPayment.payment_date.desc(), SubscriptionPayment.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_member_payments(self, member_id: UUID) -> List[SubscriptionPayment]:
        """List payments for a member across all subscriptions, newest first."""
        result = await self.db.execute(
            select(SubscriptionPayment)
            .where(SubscriptionPayment.member_id == member_id)
            .order_by(SubscriptionPayment.payment_date.desc(), SubscriptionPayment.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_payment_or_raise(self, payment_id: UUID, for_update: bool = False) -> SubscriptionPayment:
        payment = await self.get_payment(payment_id, for_update=for_update)
        if payment is None:
            raise PaymentNotFound(payment_id)
        return payment

    @staticmethod
    def calculate_balance_info(subscription: Subscription) -> BalanceInfo:
        """
        Calculate balance information for a subscription.

        Args:
            subscription: Subscription with reconciled paid_amount

        Returns:
            Balance information
        """
        total_amount = subscription.total_amount_snapshot
        paid_amount = subscription.paid_amount
        balance = max(0, total_amount - paid_amount)
        paid_percentage = (paid_amount / total_amount) * 100 if total_amount > 0 else 0.0

        return BalanceInfo(
            total_amount=total_amount,
            paid_amount=paid_amount,
            balance=balance,
            paid_percentage=paid_percentage,
            is_fully_paid=balance == 0,
            is_overpaid=paid_amount > total_amount,
        )

    async def get_payment_stats(self, start_date: date, end_date: date) -> PaymentStats:
        """
        Aggregate completed payments in a date range for reporting.

        Args:
            start_date: First payment date included
            end_date: Last payment date included

        Returns:
            Revenue, count, average and per-method breakdown (cents)
        """
        result = await self.db.execute(
            select(SubscriptionPayment.payment_method, SubscriptionPayment.amount).where(
                SubscriptionPayment.payment_status == PaymentStatus.COMPLETED,
                SubscriptionPayment.payment_date >= start_date,
                SubscriptionPayment.payment_date <= end_date,
            )
        )
        rows = result.all()

        breakdown: dict[str, int] = defaultdict(int)
        for method, amount in rows:
            breakdown[PaymentMethod(method).value] += amount

        total_revenue = sum(breakdown.values())
        return PaymentStats(
            total_revenue=total_revenue,
            payment_count=len(rows),
            average_payment=total_revenue / len(rows) if rows else 0.0,
            payment_method_breakdown=dict(breakdown),
        )

    async def next_receipt_number(self) -> str:
        """
        Allocate the next receipt number, e.g. RCPT-2026-1000.

        The year's counter row is incremented in place. Concurrent payments
        queue on its row lock, and numbers are never reused after a payment
        row is deleted.
        """
        year = date.today().year
        sequence = await self._increment_receipt_counter(year)
        if sequence is None:
            try:
                async with self.db.begin_nested():
                    self.db.add(ReceiptCounter(year=year, last_value=settings.receipt_sequence_start))
                sequence = settings.receipt_sequence_start
            except IntegrityError:
                # Another transaction opened this year's counter first
                sequence = await self._increment_receipt_counter(year)
                if sequence is None:
                    raise
        return f"{settings.receipt_prefix}-{year}-{sequence:04d}"

    async def _increment_receipt_counter(self, year: int) -> int | None:
        result = await self.db.execute(
            update(ReceiptCounter)
            .where(ReceiptCounter.year == year)
            .values(last_value=ReceiptCounter.last_value + 1)
            .returning(ReceiptCounter.last_value)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()
