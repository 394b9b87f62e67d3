"""Member subscription endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from memberships.api.deps import get_db
from memberships.exceptions import MemberNotFound
from memberships.schemas.payment import PaymentList
from memberships.schemas.subscription import Subscription, SubscriptionList
from memberships.services.member_service import MemberService
from memberships.services.payment_service import PaymentService
from memberships.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/members", tags=["Members"])


async def _ensure_member(db: AsyncSession, member_id: UUID) -> None:
    if await MemberService(db).get_member(member_id) is None:
        raise MemberNotFound(member_id)


@router.get("/{member_id}/subscriptions", response_model=SubscriptionList)
async def list_member_subscriptions(
    member_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionList:
    """All subscriptions of a member, newest first, including cancelled and expired ones."""
    await _ensure_member(db, member_id)

    service = SubscriptionService(db)
    subscriptions = await service.get_member_subscription_history(member_id)
    return SubscriptionList(items=subscriptions, total=len(subscriptions))


@router.get("/{member_id}/subscriptions/active", response_model=Subscription | None)
async def get_member_active_subscription(
    member_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Subscription | None:
    """
    Most recent active subscription of a member.

    Returns null when the member has no active subscription.
    """
    await _ensure_member(db, member_id)

    service = SubscriptionService(db)
    return await service.get_member_active_subscription(member_id)


@router.get("/{member_id}/payments", response_model=PaymentList)
async def list_member_payments(
    member_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> PaymentList:
    """Payments and refunds of a member across all subscriptions, newest first."""
    await _ensure_member(db, member_id)

    service = PaymentService(db)
    payments = await service.list_member_payments(member_id)
    return PaymentList(items=payments, total=len(payments))
