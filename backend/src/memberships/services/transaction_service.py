"""Transaction gateway for the operations that must commit across tables as one unit."""
from datetime import date
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import structlog
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from memberships import metrics
from memberships.exceptions import (
    CannotRefundARefund,
    LedgerError,
    RefundExceedsRefundable,
    TransactionFailed,
)
from memberships.models.payment import SubscriptionPayment, PaymentStatus
from memberships.models.subscription import SubscriptionStatus
from memberships.schemas.payment import PaymentCreate
from memberships.schemas.subscription import SubscriptionCreate
from memberships.schemas.transaction import (
    RefundCreate,
    RefundResult,
    SubscriptionWithPaymentCreate,
    SubscriptionWithPaymentResult,
)
from memberships.services.member_service import MemberService
from memberships.services.payment_service import PaymentService
from memberships.services.subscription_service import SubscriptionService
from memberships.validation import parse_input

logger = structlog.get_logger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)

CREATE_FAILED_PREFIX = "Transaction failed"
REFUND_FAILED_PREFIX = "Refund failed"


class TransactionService:
    """
    Atomic multi-row operations.

    Each public method owns the session's transaction: every write of the
    operation is flushed, then committed together, and any failure rolls the
    whole unit back so concurrent readers never see a partial result. Callers
    must not have uncommitted work pending on the session.
    """

    def __init__(self, db: AsyncSession):
        """Initialize transaction service with database session."""
        self.db = db
        self.subscriptions = SubscriptionService(db)
        self.payments = PaymentService(db)
        self.members = MemberService(db)

    async def create_subscription_with_payment(
        self, params: SubscriptionWithPaymentCreate | Mapping[str, Any]
    ) -> SubscriptionWithPaymentResult:
        """
        Create a subscription and its initial payment in one transaction.

        The trial-to-full member promotion runs after the commit as a separate,
        best-effort step.

        Args:
            params: Member, plan and payment details

        Returns:
            Ids of the created subscription and payment

        Raises:
            ValidationError: If the parameters violate the input contract
            PlanNotFound: If the plan does not exist
            MemberNotFound: If the member does not exist
            TransactionFailed: If the store reported an error; nothing was written
        """
        params = parse_input(SubscriptionWithPaymentCreate, params)

        result = await self._run_atomic(
            "create_subscription_with_payment",
            CREATE_FAILED_PREFIX,
            lambda: self._create_subscription_with_payment(params),
        )

        logger.info(
            "subscription_created_with_payment",
            subscription_id=str(result.subscription_id),
            payment_id=str(result.payment_id),
            member_id=str(params.member_id),
        )

        await self.members.promote_after_purchase(params.member_id)

        return result

    async def process_refund(self, params: RefundCreate | Mapping[str, Any]) -> RefundResult:
        """
        Refund a payment and optionally cancel its subscription in one transaction.

        Args:
            params: Payment to refund, amount, reason and cancellation flag

        Returns:
            Refund confirmation

        Raises:
            ValidationError: If the parameters violate the input contract
            PaymentNotFound: If the payment does not exist
            CannotRefundARefund: If the payment is itself a refund entry
            RefundExceedsRefundable: If the amount exceeds what is left to refund
            TransactionFailed: If the store reported an error; nothing was written
        """
        params = parse_input(RefundCreate, params)

        result = await self._run_atomic(
            "process_refund",
            REFUND_FAILED_PREFIX,
            lambda: self._process_refund(params),
        )

        logger.info(
            "refund_processed",
            refund_id=str(result.refund_id),
            payment_id=str(result.payment_id),
            refund_amount=result.refund_amount,
            subscription_cancelled=result.subscription_cancelled,
        )
        metrics.refunds_processed_total.labels(
            subscription_cancelled=str(result.subscription_cancelled).lower()
        ).inc()
        return result

    async def _create_subscription_with_payment(
        self, params: SubscriptionWithPaymentCreate
    ) -> SubscriptionWithPaymentResult:
        subscription = await self.subscriptions.create_subscription_with_snapshot(
            SubscriptionCreate(member_id=params.member_id, plan_id=params.plan_id),
            source="transaction",
        )
        payment = await self.payments.record_payment(
            PaymentCreate(
                subscription_id=subscription.id,
                amount=params.payment_amount,
                payment_method=params.payment_method,
                payment_date=params.payment_date or date.today(),
                notes="Initial payment for subscription",
            )
        )
        return SubscriptionWithPaymentResult(
            success=True,
            subscription_id=subscription.id,
            payment_id=payment.id,
            message="Subscription created with payment",
        )

    async def _process_refund(self, params: RefundCreate) -> RefundResult:
        # Row lock serializes refunds of the same payment until commit
        payment = await self.payments.get_payment_or_raise(params.payment_id, for_update=True)
        if payment.is_refund:
            raise CannotRefundARefund(payment.id)

        refundable = await self.payments.refundable_amount(payment)
        if params.refund_amount > refundable:
            raise RefundExceedsRefundable(payment.id, params.refund_amount, refundable)

        refund = SubscriptionPayment(
            subscription_id=payment.subscription_id,
            member_id=payment.member_id,
            amount=params.refund_amount,
            payment_method=payment.payment_method,
            payment_status=PaymentStatus.REFUND,
            payment_date=date.today(),
            notes=f"Refund of {payment.receipt_number}",
            receipt_number=await self.payments.next_receipt_number(),
            refunded_payment_id=payment.id,
            refund_reason=params.refund_reason,
        )
        self.db.add(refund)
        await self.db.flush()

        subscription_cancelled = False
        if params.cancel_subscription:
            subscription = await self.subscriptions.get_subscription_or_raise(payment.subscription_id)
            if subscription.status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED):
                await self.subscriptions.cancel_subscription(subscription.id, reason=params.refund_reason)
                subscription_cancelled = True

        await self.payments.reconcile_paid_amount(payment.subscription_id)
        await self.subscriptions._create_history(
            payment.subscription_id,
            "refunded",
            str(payment.id),
            str(refund.id),
            params.refund_reason,
        )

        return RefundResult(
            success=True,
            refund_id=refund.id,
            payment_id=payment.id,
            refund_amount=refund.amount,
            subscription_cancelled=subscription_cancelled,
            message="Refund processed successfully",
        )

    async def _run_atomic(
        self,
        operation: str,
        failure_prefix: str,
        procedure: Callable[[], Awaitable[ResultT]],
    ) -> ResultT:
        """
        Run a procedure and commit its writes as one unit, or roll all of them back.

        Business rule errors propagate unchanged; store errors and unsuccessful
        results become TransactionFailed with the operation's failure prefix.
        """
        try:
            result = await procedure()
            if result is None or not getattr(result, "success", False):
                logger.error("transaction_unsuccessful_result", operation=operation, result=repr(result))
                raise TransactionFailed("Unexpected response from database", failure_prefix)
            await self.db.commit()
        except LedgerError:
            await self.db.rollback()
            metrics.transactions_failed_total.labels(operation=operation).inc()
            raise
        except SQLAlchemyError as exc:
            await self.db.rollback()
            metrics.transactions_failed_total.labels(operation=operation).inc()
            logger.error(
                "transaction_failed",
                operation=operation,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise TransactionFailed(str(getattr(exc, "orig", None) or exc), failure_prefix) from exc

        return result
