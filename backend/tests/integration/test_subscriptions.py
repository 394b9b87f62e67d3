"""
Integration tests for subscription creation.

Covers plan snapshots, initial payments, entitlement windows and the
trial-to-full member promotion side effect.
"""
from datetime import date, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from memberships.exceptions import MemberNotFound, NoSessionsRemaining, PlanNotFound, ValidationError
from memberships.models.member import Member, MemberStatus, MemberType
from memberships.models.payment import PaymentMethod, SubscriptionPayment
from memberships.models.subscription import Subscription, SubscriptionHistory, SubscriptionStatus
from memberships.schemas.subscription import SubscriptionCreate
from memberships.services.member_service import MemberService
from memberships.services.subscription_service import SubscriptionService


@pytest.mark.asyncio
async def test_create_subscription_snapshots_plan_terms(db_session: AsyncSession, trial_member, test_plan) -> None:
    """Snapshot columns copy the plan and are not affected by later plan edits."""
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=trial_member.id, plan_id=test_plan.id)
    )
    await db_session.commit()

    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.plan_name_snapshot == "10 Sessions"
    assert subscription.total_sessions_snapshot == 10
    assert subscription.total_amount_snapshot == 10000
    assert subscription.duration_days_snapshot == 30
    assert subscription.used_sessions == 0
    assert subscription.paid_amount == 0

    # Edit the plan after the sale
    test_plan.price = 20000
    test_plan.sessions_count = 5
    test_plan.name = "Renamed"
    await db_session.commit()

    reloaded = await service.get_subscription(subscription.id)
    assert reloaded.plan_name_snapshot == "10 Sessions"
    assert reloaded.total_sessions_snapshot == 10
    assert reloaded.total_amount_snapshot == 10000


@pytest.mark.asyncio
async def test_create_subscription_sets_entitlement_window(db_session: AsyncSession, trial_member, test_plan_premium) -> None:
    """Three plan months give 90 days from the start date."""
    service = SubscriptionService(db_session)
    start = date(2026, 1, 10)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=trial_member.id, plan_id=test_plan_premium.id, start_date=start)
    )
    await db_session.commit()

    assert subscription.duration_days_snapshot == 90
    assert subscription.start_date == start
    assert subscription.end_date == start + timedelta(days=90)


@pytest.mark.asyncio
async def test_open_ended_plan_defaults_to_thirty_days(db_session: AsyncSession, trial_member, test_plan_open_ended) -> None:
    """A plan without duration_months gets the default 30 day window starting today."""
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        {"member_id": trial_member.id, "plan_id": test_plan_open_ended.id}
    )
    await db_session.commit()

    assert subscription.duration_days_snapshot == 30
    assert subscription.start_date == date.today()
    assert subscription.end_date == date.today() + timedelta(days=30)


@pytest.mark.asyncio
async def test_create_subscription_with_initial_payment(db_session: AsyncSession, full_member, test_plan) -> None:
    """An initial payment is recorded and reflected in paid_amount."""
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(
            member_id=full_member.id,
            plan_id=test_plan.id,
            initial_payment_amount=4000,
        )
    )
    await db_session.commit()

    assert subscription.paid_amount == 4000

    result = await db_session.execute(
        select(SubscriptionPayment).where(SubscriptionPayment.subscription_id == subscription.id)
    )
    payments = result.scalars().all()
    assert len(payments) == 1
    assert payments[0].amount == 4000
    assert payments[0].payment_method == PaymentMethod.CASH
    assert payments[0].notes == "Initial payment for subscription"
    assert payments[0].member_id == full_member.id
    assert payments[0].receipt_number.startswith(f"RCPT-{date.today().year}-")


@pytest.mark.asyncio
async def test_create_subscription_records_signup_fee(db_session: AsyncSession, full_member, test_plan_premium) -> None:
    """signup_fee_paid is only kept when the fee is included."""
    service = SubscriptionService(db_session)

    with_fee = await service.create_subscription_with_snapshot(
        SubscriptionCreate(
            member_id=full_member.id,
            plan_id=test_plan_premium.id,
            include_signup_fee=True,
            signup_fee_paid=2500,
        )
    )
    without_fee = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan_premium.id, signup_fee_paid=2500)
    )
    await db_session.commit()

    assert with_fee.signup_fee_paid == 2500
    assert without_fee.signup_fee_paid == 0


@pytest.mark.asyncio
async def test_create_subscription_unknown_plan(db_session: AsyncSession, trial_member) -> None:
    """An unknown plan is rejected and nothing is written."""
    service = SubscriptionService(db_session)
    member_id = trial_member.id

    with pytest.raises(PlanNotFound):
        await service.create_subscription_with_snapshot(
            SubscriptionCreate(member_id=member_id, plan_id=uuid4())
        )

    count = await db_session.scalar(select(func.count()).select_from(Subscription))
    assert count == 0


@pytest.mark.asyncio
async def test_create_subscription_unknown_member(db_session: AsyncSession, test_plan) -> None:
    service = SubscriptionService(db_session)

    with pytest.raises(MemberNotFound):
        await service.create_subscription_with_snapshot(
            SubscriptionCreate(member_id=uuid4(), plan_id=test_plan.id)
        )


@pytest.mark.asyncio
async def test_create_subscription_rejects_long_notes(db_session: AsyncSession, trial_member, test_plan) -> None:
    """Raw input is validated before any write."""
    service = SubscriptionService(db_session)

    with pytest.raises(ValidationError) as exc_info:
        await service.create_subscription_with_snapshot(
            {"member_id": trial_member.id, "plan_id": test_plan.id, "notes": "x" * 501}
        )

    assert exc_info.value.field == "notes"


@pytest.mark.asyncio
async def test_trial_member_promoted_after_purchase_commits(db_session: AsyncSession, trial_member, test_plan) -> None:
    """A trial member becomes a full, active member once the purchase is committed."""
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=trial_member.id, plan_id=test_plan.id)
    )
    await db_session.commit()

    promoted = await MemberService(db_session).promote_after_purchase(subscription.member_id)
    await db_session.refresh(trial_member)

    assert promoted is True
    assert trial_member.member_type == MemberType.FULL
    assert trial_member.status == MemberStatus.ACTIVE


@pytest.mark.asyncio
async def test_creation_leaves_member_untouched_until_commit(db_session: AsyncSession, trial_member, test_plan) -> None:
    """Creating the subscription writes nothing to the member row."""
    service = SubscriptionService(db_session)

    await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=trial_member.id, plan_id=test_plan.id)
    )

    member_type = await db_session.scalar(select(Member.member_type).where(Member.id == trial_member.id))
    assert member_type == MemberType.TRIAL


@pytest.mark.asyncio
async def test_full_member_not_updated_again(db_session: AsyncSession, full_member, test_plan, monkeypatch) -> None:
    """Members that are not on a trial never reach the promotion update."""
    calls = []

    async def recording_promote(self, member_id):
        calls.append(member_id)
        return False

    monkeypatch.setattr(MemberService, "promote_trial_member", recording_promote)
    service = SubscriptionService(db_session)

    await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan.id)
    )
    await db_session.commit()
    promoted = await MemberService(db_session).promote_after_purchase(full_member.id)

    assert promoted is False
    assert calls == []


@pytest.mark.asyncio
async def test_collaboration_member_not_promoted(db_session: AsyncSession, collaboration_member, test_plan) -> None:
    service = SubscriptionService(db_session)

    await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=collaboration_member.id, plan_id=test_plan.id)
    )
    await db_session.commit()
    await MemberService(db_session).promote_after_purchase(collaboration_member.id)
    await db_session.refresh(collaboration_member)

    assert collaboration_member.member_type == MemberType.COLLABORATION


@pytest.mark.asyncio
async def test_promotion_failure_does_not_fail_purchase(
    db_session: AsyncSession, trial_member, test_plan, monkeypatch
) -> None:
    """A failing promotion is logged and swallowed; the committed subscription is kept."""

    async def failing_promote(self, member_id):
        raise SQLAlchemyError("members table locked")

    monkeypatch.setattr(MemberService, "promote_trial_member", failing_promote)
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=trial_member.id, plan_id=test_plan.id, initial_payment_amount=2500)
    )
    subscription_id = subscription.id
    member_id = trial_member.id
    await db_session.commit()

    promoted = await MemberService(db_session).promote_after_purchase(member_id)
    assert promoted is False

    reloaded = await service.get_subscription(subscription_id)
    assert reloaded is not None
    assert reloaded.paid_amount == 2500

    member_type = await db_session.scalar(select(Member.member_type).where(Member.id == member_id))
    assert member_type == MemberType.TRIAL


@pytest.mark.asyncio
async def test_creation_writes_history(db_session: AsyncSession, full_member, test_plan) -> None:
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan.id)
    )
    await db_session.commit()

    history = await service.list_subscription_history(subscription.id)
    assert [entry.event_type for entry in history] == ["subscription_created"]
    assert history[0].new_value == "active"


@pytest.mark.asyncio
async def test_subscription_details(db_session: AsyncSession, full_member, test_plan) -> None:
    """Details view derives remaining sessions, balance and completion."""
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan.id, initial_payment_amount=2500)
    )
    for _ in range(3):
        await service.consume_session(subscription.id)
    await db_session.commit()

    details = await service.get_subscription_with_details(subscription.id)

    assert details.used_sessions == 3
    assert details.remaining_sessions == 7
    assert details.balance_due == 7500
    assert details.completion_percentage == pytest.approx(30.0)
    assert details.days_remaining == 30


@pytest.mark.asyncio
async def test_details_with_usage_beyond_total(db_session: AsyncSession, full_member, test_plan) -> None:
    """Legacy rows with more sessions used than purchased load and show zero remaining."""
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan.id)
    )
    await db_session.execute(
        update(Subscription).where(Subscription.id == subscription.id).values(used_sessions=12)
    )
    await db_session.commit()

    details = await service.get_subscription_with_details(subscription.id)

    assert details.used_sessions == 12
    assert details.remaining_sessions == 0
    assert details.completion_percentage == pytest.approx(120.0)
    with pytest.raises(NoSessionsRemaining):
        await service.consume_session(subscription.id)


@pytest.mark.asyncio
async def test_negative_used_sessions_rejected_by_schema(db_session: AsyncSession, full_member, test_plan) -> None:
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan.id)
    )
    subscription_id = subscription.id
    await db_session.commit()

    with pytest.raises(IntegrityError):
        await db_session.execute(
            update(Subscription).where(Subscription.id == subscription_id).values(used_sessions=-1)
        )
    await db_session.rollback()


@pytest.mark.asyncio
async def test_member_subscription_queries(db_session: AsyncSession, full_member, test_plan, test_plan_premium) -> None:
    """Active lookup skips paused subscriptions; history lists everything."""
    service = SubscriptionService(db_session)

    first = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan.id)
    )
    await service.pause_subscription(first.id, "travel")
    second = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan_premium.id)
    )
    await db_session.commit()

    active = await service.get_member_active_subscription(full_member.id)
    assert active.id == second.id

    history = await service.get_member_subscription_history(full_member.id)
    assert {subscription.id for subscription in history} == {first.id, second.id}

    assert await service.get_member_active_subscription(uuid4()) is None


@pytest.mark.asyncio
async def test_history_of_unknown_subscription(db_session: AsyncSession) -> None:
    from memberships.exceptions import SubscriptionNotFound

    service = SubscriptionService(db_session)

    with pytest.raises(SubscriptionNotFound):
        await service.list_subscription_history(uuid4())


@pytest.mark.asyncio
async def test_history_rows_reference_subscription(db_session: AsyncSession, full_member, test_plan) -> None:
    service = SubscriptionService(db_session)

    subscription = await service.create_subscription_with_snapshot(
        SubscriptionCreate(member_id=full_member.id, plan_id=test_plan.id)
    )
    await service.consume_session(subscription.id)
    await db_session.commit()

    count = await db_session.scalar(
        select(func.count()).select_from(SubscriptionHistory).where(
            SubscriptionHistory.subscription_id == subscription.id
        )
    )
    assert count == 2
