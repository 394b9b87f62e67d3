"""Subscription API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from memberships.api.deps import get_db
from memberships.exceptions import LedgerError
from memberships.schemas.subscription import (
    Subscription,
    SubscriptionCreate,
    SubscriptionDetails,
    SubscriptionHistoryEntry,
    SubscriptionPause,
    SubscriptionUpgrade,
    SubscriptionUpgradeRequest,
    UpgradeCredit,
)
from memberships.services.member_service import MemberService
from memberships.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.post("", response_model=Subscription, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    subscription_data: SubscriptionCreate,
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    """
    Create a subscription from a plan, snapshotting its terms.

    - **member_id**: Member UUID (required)
    - **plan_id**: Plan UUID (required)
    - **start_date**: Start date (optional, defaults to today)
    - **initial_payment_amount**: Payment recorded with the subscription, in cents (optional)
    - **payment_method**: Method for the initial payment (optional, defaults to cash)

    The plan's name, sessions, price and duration are copied onto the
    subscription; later plan edits never change it. Once the subscription is
    committed, a trial member is promoted to full.
    """
    service = SubscriptionService(db)

    try:
        subscription = await service.create_subscription_with_snapshot(subscription_data)
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise

    # Serialized before the promotion, whose rollback would expire the row
    response = Subscription.model_validate(subscription)
    await MemberService(db).promote_after_purchase(subscription.member_id)
    return response


@router.get("/{subscription_id}", response_model=SubscriptionDetails)
async def get_subscription(
    subscription_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionDetails:
    """
    Get subscription by ID.

    Includes remaining sessions, balance due, completion percentage and
    days remaining.
    """
    service = SubscriptionService(db)
    return await service.get_subscription_with_details(subscription_id)


@router.get("/{subscription_id}/history", response_model=list[SubscriptionHistoryEntry])
async def get_subscription_history(
    subscription_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> list[SubscriptionHistoryEntry]:
    """Audit trail of lifecycle events, oldest first."""
    service = SubscriptionService(db)
    return await service.list_subscription_history(subscription_id)


@router.post("/{subscription_id}/consume", response_model=Subscription)
async def consume_session(
    subscription_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    """
    Consume one session.

    The subscription expires when its last session is consumed. Returns 409
    when the subscription is not active or has no sessions left.
    """
    service = SubscriptionService(db)

    try:
        subscription = await service.consume_session(subscription_id)
        await db.commit()
        return subscription
    except LedgerError:
        await db.rollback()
        raise


@router.post("/{subscription_id}/pause", response_model=Subscription)
async def pause_subscription(
    subscription_id: UUID,
    pause_data: SubscriptionPause | None = None,
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    """
    Pause an active subscription.

    - **reason**: Why the member is pausing (optional, max 200 characters)
    """
    service = SubscriptionService(db)

    try:
        subscription = await service.pause_subscription(subscription_id, pause_data.reason if pause_data else None)
        await db.commit()
        return subscription
    except LedgerError:
        await db.rollback()
        raise


@router.post("/{subscription_id}/resume", response_model=Subscription)
async def resume_subscription(
    subscription_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    """Resume a paused subscription."""
    service = SubscriptionService(db)

    try:
        subscription = await service.resume_subscription(subscription_id)
        await db.commit()
        return subscription
    except LedgerError:
        await db.rollback()
        raise


@router.get("/{subscription_id}/upgrade-credit", response_model=UpgradeCredit)
async def get_upgrade_credit(
    subscription_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> UpgradeCredit:
    """
    Credit the unused sessions would carry into an upgrade.

    Clients display this value and send it back with the upgrade request.
    """
    service = SubscriptionService(db)
    return await service.get_upgrade_credit(subscription_id)


@router.post("/{subscription_id}/upgrade", response_model=Subscription, status_code=status.HTTP_201_CREATED)
async def upgrade_subscription(
    subscription_id: UUID,
    upgrade_request: SubscriptionUpgradeRequest,
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    """
    Upgrade an active subscription to a new plan.

    - **new_plan_id**: Plan UUID to switch to (required)
    - **credit_amount**: Credit the client displayed, in cents (required)
    - **effective_date**: Start date of the new subscription (optional)

    The credit is recomputed server side; any difference returns 409 and
    nothing is written. The old subscription is cancelled and linked to the
    returned one.
    """
    service = SubscriptionService(db)
    upgrade_data = SubscriptionUpgrade(current_subscription_id=subscription_id, **upgrade_request.model_dump())

    try:
        subscription = await service.upgrade_subscription(upgrade_data)
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise

    response = Subscription.model_validate(subscription)
    await MemberService(db).promote_after_purchase(subscription.member_id)
    return response
