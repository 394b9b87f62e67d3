"""Subscription model for member entitlements purchased from plans."""
from sqlalchemy import CheckConstraint, Column, Integer, String, Text, Date, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import enum

from memberships.models.base import Base, value_enum


class SubscriptionStatus(enum.Enum):
    """Subscription lifecycle status."""

    ACTIVE = "active"
    PAUSED = "paused"
    PENDING = "pending"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Subscription(Base):
    """
    Member subscription to a plan.

    The *_snapshot columns freeze the plan terms at purchase time and are
    never rewritten. paid_amount is a materialized sum over the payment rows.
    """

    __tablename__ = "member_subscriptions"
    __table_args__ = (
        # used_sessions may exceed the snapshot total on legacy rows
        CheckConstraint("used_sessions >= 0", name="ck_member_subscriptions_used_sessions_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_member_subscriptions_paid_amount_non_negative"),
    )

    member_id = Column(Uuid(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Uuid(as_uuid=True), ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True, index=True)

    # Plan terms frozen at purchase
    plan_name_snapshot = Column(String, nullable=False)
    total_sessions_snapshot = Column(Integer, nullable=False)
    total_amount_snapshot = Column(Integer, nullable=False)  # Amount in cents
    duration_days_snapshot = Column(Integer, nullable=False)

    status = Column(value_enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False, index=True)
    pause_start_date = Column(Date, nullable=True)
    pause_end_date = Column(Date, nullable=True)
    pause_reason = Column(String(200), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    upgraded_to_id = Column(Uuid(as_uuid=True), ForeignKey("member_subscriptions.id"), nullable=True)

    used_sessions = Column(Integer, nullable=False, default=0)
    paid_amount = Column(Integer, nullable=False, default=0)  # Amount in cents
    signup_fee_paid = Column(Integer, nullable=False, default=0)  # Amount in cents
    notes = Column(Text, nullable=True)

    # Relationships
    member = relationship("Member", back_populates="subscriptions")
    payments = relationship("SubscriptionPayment", back_populates="subscription")
    history = relationship("SubscriptionHistory", back_populates="subscription", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Subscription(id={self.id}, member_id={self.member_id}, status={self.status.value})>"


class SubscriptionHistory(Base):
    """
    Audit trail for subscription changes.

    Tracks creation, status changes, session consumption, upgrades and refunds.
    """

    __tablename__ = "subscription_history"

    subscription_id = Column(Uuid(as_uuid=True), ForeignKey("member_subscriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String, nullable=False)  # subscription_created, status_changed, session_consumed, upgraded, refunded
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    reason = Column(String, nullable=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="history")

    def __repr__(self) -> str:
        """String representation."""
        return f"<SubscriptionHistory(subscription_id={self.subscription_id}, event={self.event_type})>"
