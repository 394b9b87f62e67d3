"""Subscription ledger: snapshot creation, session consumption and lifecycle transitions."""
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from memberships import metrics
from memberships.config import settings
from memberships.exceptions import (
    CreditMismatch,
    InactiveSubscription,
    MemberNotFound,
    NoSessionsRemaining,
    PlanNotFound,
    StateConflict,
    SubscriptionNotFound,
)
from memberships.models.payment import PaymentMethod
from memberships.models.plan import Plan
from memberships.models.subscription import Subscription, SubscriptionStatus, SubscriptionHistory
from memberships.schemas.payment import PaymentCreate
from memberships.schemas.subscription import (
    Subscription as SubscriptionSchema,
    SubscriptionCreate,
    SubscriptionDetails,
    SubscriptionPause,
    SubscriptionUpgrade,
    UpgradeCredit,
)
from memberships.services.member_service import MemberService
from memberships.services.payment_service import PaymentService
from memberships.services.plan_service import PlanService
from memberships.utils.currency import format_cents, prorate_cents
from memberships.validation import parse_input

logger = structlog.get_logger(__name__)


def snapshot_duration_days(plan: Plan) -> int:
    """Days of entitlement a plan grants (30 days per plan month)."""
    if plan.duration_months:
        return plan.duration_months * settings.days_per_month
    return settings.default_duration_days


class SubscriptionService:
    """Service layer for subscription operations."""

    def __init__(self, db: AsyncSession):
        """Initialize subscription service with database session."""
        self.db = db
        self.plans = PlanService(db)
        self.members = MemberService(db)
        self.payments = PaymentService(db)

    async def create_subscription_with_snapshot(
        self,
        subscription_data: SubscriptionCreate | Mapping[str, Any],
        source: str = "ledger",
    ) -> Subscription:
        """
        Create a new subscription with the plan terms snapshotted.

        Nothing is committed here. Once the caller commits, it runs
        MemberService.promote_after_purchase as a separate step.

        Args:
            subscription_data: Subscription creation data
            source: Label recorded in metrics (ledger, transaction, upgrade)

        Returns:
            Created subscription with reconciled paid_amount

        Raises:
            ValidationError: If the input violates the creation contract
            PlanNotFound: If the plan does not exist
            MemberNotFound: If the member does not exist
        """
        subscription_data = parse_input(SubscriptionCreate, subscription_data)

        plan = await self.plans.get_plan_by_id(subscription_data.plan_id)
        if not plan:
            raise PlanNotFound(subscription_data.plan_id)

        member = await self.members.get_member(subscription_data.member_id)
        if not member:
            raise MemberNotFound(subscription_data.member_id)

        start_date = subscription_data.start_date or date.today()
        duration_days = snapshot_duration_days(plan)

        signup_fee_paid = 0
        if subscription_data.include_signup_fee:
            signup_fee_paid = subscription_data.signup_fee_paid or 0

        subscription = Subscription(
            member_id=subscription_data.member_id,
            plan_id=plan.id,
            plan_name_snapshot=plan.name,
            total_sessions_snapshot=plan.sessions_count,
            total_amount_snapshot=plan.price,
            duration_days_snapshot=duration_days,
            status=SubscriptionStatus.ACTIVE,
            start_date=start_date,
            end_date=start_date + timedelta(days=duration_days),
            used_sessions=0,
            paid_amount=0,
            signup_fee_paid=signup_fee_paid,
            notes=subscription_data.notes,
        )

        self.db.add(subscription)
        await self.db.flush()

        await self._create_history(
            subscription.id,
            "subscription_created",
            None,
            SubscriptionStatus.ACTIVE.value,
        )

        if subscription_data.initial_payment_amount and subscription_data.initial_payment_amount > 0:
            await self.payments.record_payment(
                PaymentCreate(
                    subscription_id=subscription.id,
                    amount=subscription_data.initial_payment_amount,
                    payment_method=subscription_data.payment_method or PaymentMethod.CASH,
                    payment_date=start_date,
                    notes="Initial payment for subscription",
                )
            )

        await self.db.refresh(subscription)

        logger.info(
            "subscription_created",
            subscription_id=str(subscription.id),
            member_id=str(subscription.member_id),
            plan_id=str(plan.id),
            paid_amount=subscription.paid_amount,
            source=source,
        )
        metrics.subscriptions_created_total.labels(source=source).inc()

        return subscription

    async def get_subscription(self, subscription_id: UUID) -> Subscription | None:
        """
        Get subscription by ID, reloading any copy already in the session.

        Args:
            subscription_id: Subscription UUID

        Returns:
            Subscription or None if not found
        """
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.id == subscription_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_subscription_or_raise(self, subscription_id: UUID) -> Subscription:
        subscription = await self.get_subscription(subscription_id)
        if not subscription:
            raise SubscriptionNotFound(subscription_id)
        return subscription

    async def consume_session(self, subscription_id: UUID) -> Subscription:
        """
        Consume one session from an active subscription.

        Reaching the last session expires the subscription in the same write.

        Args:
            subscription_id: Subscription UUID

        Returns:
            Updated subscription

        Raises:
            SubscriptionNotFound: If subscription not found
            InactiveSubscription: If subscription is not active
            NoSessionsRemaining: If every session has been used
            StateConflict: If another request changed the subscription first
        """
        subscription = await self.get_subscription_or_raise(subscription_id)

        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InactiveSubscription(subscription_id, subscription.status.value)

        used = subscription.used_sessions
        total = subscription.total_sessions_snapshot
        if used >= total:
            raise NoSessionsRemaining(subscription_id, used, total)

        new_used = used + 1
        new_status = SubscriptionStatus.EXPIRED if new_used >= total else SubscriptionStatus.ACTIVE

        # Guard on the count we read so two consumers cannot both spend the same session
        subscription = await self._guarded_update(
            subscription_id,
            (SubscriptionStatus.ACTIVE,),
            "consume_session",
            extra_conditions=[Subscription.used_sessions == used],
            used_sessions=new_used,
            status=new_status,
        )

        await self._create_history(subscription_id, "session_consumed", str(used), str(new_used))
        metrics.sessions_consumed_total.inc()

        if new_status == SubscriptionStatus.EXPIRED:
            await self._record_status_change(subscription_id, SubscriptionStatus.ACTIVE, new_status, "all sessions used")
            logger.info("subscription_completed", subscription_id=str(subscription_id), used_sessions=new_used)

        return subscription

    async def pause_subscription(self, subscription_id: UUID, reason: str | None = None) -> Subscription:
        """
        Pause an active subscription.

        Args:
            subscription_id: Subscription UUID
            reason: Optional pause reason (max 200 characters)

        Returns:
            Updated subscription

        Raises:
            ValidationError: If the reason is too long
            SubscriptionNotFound: If subscription not found
            StateConflict: If the subscription is not active
        """
        pause_data = parse_input(SubscriptionPause, {"reason": reason})

        subscription = await self._guarded_update(
            subscription_id,
            (SubscriptionStatus.ACTIVE,),
            "pause",
            status=SubscriptionStatus.PAUSED,
            pause_start_date=date.today(),
            pause_end_date=None,
            pause_reason=pause_data.reason,
        )

        await self._record_status_change(
            subscription_id, SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED, pause_data.reason
        )
        return subscription

    async def resume_subscription(self, subscription_id: UUID) -> Subscription:
        """
        Resume a paused subscription.

        Args:
            subscription_id: Subscription UUID

        Returns:
            Updated subscription

        Raises:
            SubscriptionNotFound: If subscription not found
            StateConflict: If the subscription is not paused
        """
        subscription = await self._guarded_update(
            subscription_id,
            (SubscriptionStatus.PAUSED,),
            "resume",
            status=SubscriptionStatus.ACTIVE,
            pause_end_date=date.today(),
        )

        await self._record_status_change(subscription_id, SubscriptionStatus.PAUSED, SubscriptionStatus.ACTIVE)
        return subscription

    async def cancel_subscription(
        self,
        subscription_id: UUID,
        reason: str | None = None,
        upgraded_to_id: UUID | None = None,
    ) -> Subscription:
        """
        Cancel an active or paused subscription.

        The row is kept as history; only its status changes.

        Args:
            subscription_id: Subscription UUID
            reason: Optional cancellation reason
            upgraded_to_id: Subscription that supersedes this one, for upgrades

        Returns:
            Updated subscription
        """
        previous = await self.get_subscription_or_raise(subscription_id)
        previous_status = previous.status

        values: dict[str, Any] = {
            "status": SubscriptionStatus.CANCELLED,
            "cancelled_at": datetime.utcnow(),
        }
        if upgraded_to_id is not None:
            values["upgraded_to_id"] = upgraded_to_id

        cancellable = (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED)
        expected = (previous_status,) if previous_status in cancellable else cancellable

        subscription = await self._guarded_update(subscription_id, expected, "cancel", **values)

        await self._record_status_change(subscription_id, previous_status, SubscriptionStatus.CANCELLED, reason)
        return subscription

    @staticmethod
    def calculate_upgrade_credit(subscription: Subscription) -> int:
        """
        Value of the unused sessions, in cents.

        Args:
            subscription: Subscription being upgraded

        Returns:
            remaining_sessions * (total_amount / total_sessions), 0 when nothing remains
        """
        remaining = subscription.total_sessions_snapshot - subscription.used_sessions
        if remaining <= 0:
            return 0
        return prorate_cents(subscription.total_amount_snapshot, remaining, subscription.total_sessions_snapshot)

    async def get_upgrade_credit(self, subscription_id: UUID) -> UpgradeCredit:
        subscription = await self.get_subscription_or_raise(subscription_id)
        return UpgradeCredit(
            subscription_id=subscription.id,
            remaining_sessions=max(0, subscription.total_sessions_snapshot - subscription.used_sessions),
            credit_amount=self.calculate_upgrade_credit(subscription),
        )

    async def upgrade_subscription(self, upgrade_data: SubscriptionUpgrade | Mapping[str, Any]) -> Subscription:
        """
        Upgrade an active subscription to a new plan.

        The credit sent by the caller is checked against a fresh server-side
        computation before anything is written. The old subscription is
        cancelled and linked to its replacement, never deleted.

        Args:
            upgrade_data: Upgrade request

        Returns:
            The new subscription

        Raises:
            SubscriptionNotFound: If the current subscription does not exist
            InactiveSubscription: If the current subscription is not active
            PlanNotFound: If the new plan does not exist
            CreditMismatch: If the credit differs from the recomputed value
            StateConflict: If the current subscription changed during the upgrade
        """
        upgrade_data = parse_input(SubscriptionUpgrade, upgrade_data)

        current = await self.get_subscription_or_raise(upgrade_data.current_subscription_id)
        if current.status != SubscriptionStatus.ACTIVE:
            raise InactiveSubscription(current.id, current.status.value)

        new_plan = await self.plans.get_plan_by_id(upgrade_data.new_plan_id)
        if not new_plan:
            raise PlanNotFound(upgrade_data.new_plan_id)

        credit = self.calculate_upgrade_credit(current)
        if credit != upgrade_data.credit_amount:
            logger.warning(
                "upgrade_credit_mismatch",
                subscription_id=str(current.id),
                expected=credit,
                provided=upgrade_data.credit_amount,
            )
            raise CreditMismatch(credit, upgrade_data.credit_amount)

        new_subscription = await self.create_subscription_with_snapshot(
            SubscriptionCreate(
                member_id=current.member_id,
                plan_id=new_plan.id,
                start_date=upgrade_data.effective_date or date.today(),
                initial_payment_amount=max(0, new_plan.price - credit),
                include_signup_fee=False,
                notes=f"Upgraded from {current.plan_name_snapshot}. Credit applied: {format_cents(credit)}",
            ),
            source="upgrade",
        )

        await self.cancel_subscription(current.id, reason="upgraded", upgraded_to_id=new_subscription.id)
        await self._create_history(current.id, "upgraded", str(current.plan_id), str(new_subscription.id))

        logger.info(
            "subscription_upgraded",
            old_subscription_id=str(current.id),
            new_subscription_id=str(new_subscription.id),
            credit=credit,
        )
        return new_subscription

    async def get_subscription_with_details(self, subscription_id: UUID) -> SubscriptionDetails:
        """
        Get a subscription with computed usage and balance fields.

        Args:
            subscription_id: Subscription UUID

        Returns:
            Subscription plus remaining_sessions, balance_due,
            completion_percentage and days_remaining
        """
        subscription = await self.get_subscription_or_raise(subscription_id)

        total = subscription.total_sessions_snapshot
        used = subscription.used_sessions
        completion = (used / total) * 100 if total > 0 else 0.0

        return SubscriptionDetails(
            **SubscriptionSchema.model_validate(subscription).model_dump(),
            remaining_sessions=max(0, total - used),
            balance_due=max(0, subscription.total_amount_snapshot - subscription.paid_amount),
            completion_percentage=completion,
            days_remaining=max(0, (subscription.end_date - date.today()).days),
        )

    async def get_member_active_subscription(self, member_id: UUID) -> Subscription | None:
        """Most recent active subscription for a member."""
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.member_id == member_id, Subscription.status == SubscriptionStatus.ACTIVE)
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_member_subscription_history(self, member_id: UUID) -> list[Subscription]:
        """All subscriptions of a member, newest first."""
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.member_id == member_id)
            .order_by(Subscription.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_subscription_history(self, subscription_id: UUID) -> list[SubscriptionHistory]:
        """Audit trail of a subscription, oldest first."""
        await self.get_subscription_or_raise(subscription_id)
        result = await self.db.execute(
            select(SubscriptionHistory)
            .where(SubscriptionHistory.subscription_id == subscription_id)
            .order_by(SubscriptionHistory.created_at)
        )
        return list(result.scalars().all())

    async def _guarded_update(
        self,
        subscription_id: UUID,
        expected: Iterable[SubscriptionStatus],
        operation: str,
        extra_conditions: list | None = None,
        **values: Any,
    ) -> Subscription:
        """
        Apply an update only if the row is still in one of the expected states.

        Raises:
            SubscriptionNotFound: If the row does not exist
            StateConflict: If the row exists but no longer matches
        """
        expected = tuple(expected)
        conditions = [Subscription.id == subscription_id, Subscription.status.in_(expected)]
        conditions.extend(extra_conditions or [])

        result = await self.db.execute(
            update(Subscription)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            subscription = await self.get_subscription(subscription_id)
            if subscription is None:
                raise SubscriptionNotFound(subscription_id)

            expected_label = " or ".join(status.value for status in expected)
            logger.warning(
                "subscription_state_conflict",
                subscription_id=str(subscription_id),
                operation=operation,
                expected_status=expected_label,
                current_status=subscription.status.value,
            )
            metrics.state_conflicts_total.labels(operation=operation).inc()
            raise StateConflict(subscription_id, expected_label)

        return await self.get_subscription_or_raise(subscription_id)

    async def _record_status_change(
        self,
        subscription_id: UUID,
        old_status: SubscriptionStatus,
        new_status: SubscriptionStatus,
        reason: str | None = None,
    ) -> None:
        await self._create_history(subscription_id, "status_changed", old_status.value, new_status.value, reason)
        metrics.subscriptions_status_changes_total.labels(
            from_status=old_status.value, to_status=new_status.value
        ).inc()
        logger.info(
            "subscription_status_changed",
            subscription_id=str(subscription_id),
            from_status=old_status.value,
            to_status=new_status.value,
        )

    async def _create_history(
        self,
        subscription_id: UUID,
        event_type: str,
        old_value: str | None,
        new_value: str | None,
        reason: str | None = None,
    ) -> None:
        """Create subscription history record."""
        history = SubscriptionHistory(
            subscription_id=subscription_id,
            event_type=event_type,
            old_value=old_value,
            new_value=new_value,
            reason=reason,
        )
        self.db.add(history)
        await self.db.flush()
