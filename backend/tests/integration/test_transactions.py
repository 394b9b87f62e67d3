"""
Integration tests for the atomic transaction operations.

Each operation either commits every row it writes or none of them.
"""
import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import Select, func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from memberships.exceptions import (
    CannotRefundARefund,
    PaymentNotFound,
    PlanNotFound,
    RefundExceedsRefundable,
    TransactionFailed,
    ValidationError,
)
from memberships.models.member import Member, MemberType
from memberships.models.payment import PaymentMethod, PaymentStatus, SubscriptionPayment
from memberships.models.subscription import Subscription, SubscriptionStatus
from memberships.schemas.transaction import RefundCreate, SubscriptionWithPaymentCreate
from memberships.services.payment_service import PaymentService
from memberships.services.subscription_service import SubscriptionService
from memberships.services.transaction_service import TransactionService

from conftest import TEST_DATABASE_URL, TestAsyncSessionLocal


async def _count(db_session: AsyncSession, model) -> int:
    return await db_session.scalar(select(func.count()).select_from(model))


async def _purchase(db_session: AsyncSession, member_id, plan_id, amount: int = 10000):
    service = TransactionService(db_session)
    return await service.create_subscription_with_payment(
        SubscriptionWithPaymentCreate(
            member_id=member_id,
            plan_id=plan_id,
            payment_amount=amount,
            payment_method=PaymentMethod.CARD,
        )
    )


@pytest.mark.asyncio
async def test_create_subscription_with_payment(db_session: AsyncSession, trial_member, test_plan) -> None:
    """Subscription and payment are committed together and the trial member is promoted."""
    member_id = trial_member.id

    result = await _purchase(db_session, member_id, test_plan.id, amount=6000)

    assert result.success is True
    assert result.message

    subscription = await SubscriptionService(db_session).get_subscription(result.subscription_id)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.paid_amount == 6000

    payment = await PaymentService(db_session).get_payment(result.payment_id)
    assert payment.subscription_id == result.subscription_id
    assert payment.amount == 6000
    assert payment.payment_method == PaymentMethod.CARD

    member_type = await db_session.scalar(select(Member.member_type).where(Member.id == member_id))
    assert member_type == MemberType.FULL


@pytest.mark.asyncio
async def test_create_with_payment_store_failure_writes_nothing(
    db_session: AsyncSession, trial_member, test_plan, monkeypatch
) -> None:
    """A store error after the subscription insert rolls the subscription back too."""
    member_id = trial_member.id
    plan_id = test_plan.id

    async def failing_record_payment(self, payment_data):
        raise OperationalError("INSERT INTO subscription_payments", {}, Exception("disk I/O error"))

    monkeypatch.setattr(PaymentService, "record_payment", failing_record_payment)

    with pytest.raises(TransactionFailed) as exc_info:
        await _purchase(db_session, member_id, plan_id)

    assert str(exc_info.value).startswith("Transaction failed:")
    assert "disk I/O error" in str(exc_info.value)
    assert await _count(db_session, Subscription) == 0
    assert await _count(db_session, SubscriptionPayment) == 0

    member_type = await db_session.scalar(select(Member.member_type).where(Member.id == member_id))
    assert member_type == MemberType.TRIAL


@pytest.mark.asyncio
async def test_create_with_payment_unknown_plan(db_session: AsyncSession, trial_member) -> None:
    """Business rule errors propagate unchanged."""
    member_id = trial_member.id

    with pytest.raises(PlanNotFound):
        await _purchase(db_session, member_id, uuid4())

    assert await _count(db_session, Subscription) == 0


@pytest.mark.asyncio
async def test_create_with_payment_requires_positive_amount(db_session: AsyncSession, trial_member, test_plan) -> None:
    service = TransactionService(db_session)

    with pytest.raises(ValidationError):
        await service.create_subscription_with_payment(
            {"member_id": trial_member.id, "plan_id": test_plan.id, "payment_amount": 0, "payment_method": "cash"}
        )


@pytest.mark.asyncio
async def test_unsuccessful_result_is_transaction_failed(
    db_session: AsyncSession, trial_member, test_plan, monkeypatch
) -> None:
    """An operation that reports no success is treated as a failure and rolled back."""
    member_id = trial_member.id
    plan_id = test_plan.id

    async def no_result(self, params):
        await SubscriptionService(self.db).create_subscription_with_snapshot(
            {"member_id": params.member_id, "plan_id": params.plan_id}
        )
        return None

    monkeypatch.setattr(TransactionService, "_create_subscription_with_payment", no_result)

    with pytest.raises(TransactionFailed, match="^Transaction failed: Unexpected response from database$"):
        await _purchase(db_session, member_id, plan_id)

    assert await _count(db_session, Subscription) == 0


@pytest.mark.asyncio
async def test_partial_refund_without_cancel(db_session: AsyncSession, full_member, test_plan) -> None:
    purchase = await _purchase(db_session, full_member.id, test_plan.id, amount=10000)
    service = TransactionService(db_session)

    result = await service.process_refund(
        RefundCreate(
            payment_id=purchase.payment_id,
            refund_amount=3000,
            refund_reason="Billing error",
            cancel_subscription=False,
        )
    )

    assert result.success is True
    assert result.payment_id == purchase.payment_id
    assert result.refund_amount == 3000
    assert result.subscription_cancelled is False

    refund = await PaymentService(db_session).get_payment(result.refund_id)
    assert refund.payment_status == PaymentStatus.REFUND
    assert refund.amount == 3000
    assert refund.refunded_payment_id == purchase.payment_id
    assert refund.refund_reason == "Billing error"

    subscription = await SubscriptionService(db_session).get_subscription(purchase.subscription_id)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.paid_amount == 7000


@pytest.mark.asyncio
async def test_full_refund_cancels_subscription(db_session: AsyncSession, full_member, test_plan) -> None:
    purchase = await _purchase(db_session, full_member.id, test_plan.id, amount=10000)
    service = TransactionService(db_session)

    result = await service.process_refund(
        {"payment_id": purchase.payment_id, "refund_amount": 10000, "refund_reason": "Moving abroad"}
    )

    assert result.subscription_cancelled is True

    subscriptions = SubscriptionService(db_session)
    subscription = await subscriptions.get_subscription(purchase.subscription_id)
    assert subscription.status == SubscriptionStatus.CANCELLED
    assert subscription.paid_amount == 0

    history = await subscriptions.list_subscription_history(purchase.subscription_id)
    assert "refunded" in [entry.event_type for entry in history]


@pytest.mark.asyncio
async def test_refunds_cannot_exceed_original_payment(db_session: AsyncSession, full_member, test_plan) -> None:
    """Refundable amount is the original minus refunds already made against it."""
    purchase = await _purchase(db_session, full_member.id, test_plan.id, amount=10000)
    service = TransactionService(db_session)

    await service.process_refund(
        RefundCreate(
            payment_id=purchase.payment_id, refund_amount=6000, refund_reason="first", cancel_subscription=False
        )
    )

    with pytest.raises(RefundExceedsRefundable) as exc_info:
        await service.process_refund(
            RefundCreate(
                payment_id=purchase.payment_id, refund_amount=4001, refund_reason="second", cancel_subscription=False
            )
        )

    assert exc_info.value.refundable == 4000
    assert await _count(db_session, SubscriptionPayment) == 2


@pytest.mark.asyncio
async def test_cannot_refund_a_refund(db_session: AsyncSession, full_member, test_plan) -> None:
    purchase = await _purchase(db_session, full_member.id, test_plan.id, amount=10000)
    service = TransactionService(db_session)

    refund = await service.process_refund(
        RefundCreate(payment_id=purchase.payment_id, refund_amount=1000, refund_reason="partial", cancel_subscription=False)
    )

    with pytest.raises(CannotRefundARefund):
        await service.process_refund(
            RefundCreate(payment_id=refund.refund_id, refund_amount=500, refund_reason="again", cancel_subscription=False)
        )


@pytest.mark.asyncio
async def test_refund_unknown_payment(db_session: AsyncSession) -> None:
    service = TransactionService(db_session)

    with pytest.raises(PaymentNotFound):
        await service.process_refund(
            RefundCreate(payment_id=uuid4(), refund_amount=100, refund_reason="n/a")
        )


@pytest.mark.asyncio
async def test_refund_store_failure_rolls_back_cancellation(
    db_session: AsyncSession, full_member, test_plan, monkeypatch
) -> None:
    """A failure after the cancellation leaves the subscription active and no refund row."""
    purchase = await _purchase(db_session, full_member.id, test_plan.id, amount=10000)

    async def failing_reconcile(self, subscription_id):
        raise OperationalError("UPDATE member_subscriptions", {}, Exception("connection reset"))

    monkeypatch.setattr(PaymentService, "reconcile_paid_amount", failing_reconcile)

    with pytest.raises(TransactionFailed) as exc_info:
        await TransactionService(db_session).process_refund(
            RefundCreate(payment_id=purchase.payment_id, refund_amount=10000, refund_reason="Injury")
        )

    assert str(exc_info.value).startswith("Refund failed:")

    monkeypatch.undo()
    subscription = await SubscriptionService(db_session).get_subscription(purchase.subscription_id)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.paid_amount == 10000
    assert await _count(db_session, SubscriptionPayment) == 1


@pytest.mark.asyncio
async def test_refund_locks_original_payment_row(
    db_session: AsyncSession, full_member, test_plan, monkeypatch
) -> None:
    """The refunded payment is read with FOR UPDATE before the refundable amount is computed."""
    purchase = await _purchase(db_session, full_member.id, test_plan.id, amount=10000)
    executed = []
    execute = db_session.execute

    async def recording_execute(statement, *args, **kwargs):
        executed.append(statement)
        return await execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", recording_execute)

    await TransactionService(db_session).process_refund(
        RefundCreate(payment_id=purchase.payment_id, refund_amount=2500, refund_reason="partial", cancel_subscription=False)
    )

    locking_selects = [
        str(statement.compile(dialect=postgresql.dialect()))
        for statement in executed
        if isinstance(statement, Select)
    ]
    assert any(
        "FROM subscription_payments" in sql and sql.rstrip().endswith("FOR UPDATE")
        for sql in locking_selects
    )


@pytest.mark.asyncio
@pytest.mark.skipif(
    not TEST_DATABASE_URL.startswith("postgresql"), reason="row locks need a PostgreSQL test database"
)
async def test_concurrent_full_refunds_only_one_succeeds(db_session: AsyncSession, full_member, test_plan) -> None:
    purchase = await _purchase(db_session, full_member.id, test_plan.id, amount=10000)

    async def refund_in_own_session():
        async with TestAsyncSessionLocal() as session:
            return await TransactionService(session).process_refund(
                RefundCreate(
                    payment_id=purchase.payment_id,
                    refund_amount=10000,
                    refund_reason="duplicate click",
                    cancel_subscription=False,
                )
            )

    results = await asyncio.gather(refund_in_own_session(), refund_in_own_session(), return_exceptions=True)

    assert sum(isinstance(result, RefundExceedsRefundable) for result in results) == 1
    assert sum(not isinstance(result, BaseException) for result in results) == 1
    refunded = await db_session.scalar(
        select(func.sum(SubscriptionPayment.amount)).where(
            SubscriptionPayment.refunded_payment_id == purchase.payment_id
        )
    )
    assert refunded == 10000
