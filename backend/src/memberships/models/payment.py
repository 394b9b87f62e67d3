"""Payment model for money recorded against subscriptions."""
from sqlalchemy import CheckConstraint, Column, Integer, String, Text, Date, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
import enum

from memberships.database import Base as DeclarativeBase
from memberships.models.base import Base, value_enum


class PaymentMethod(enum.Enum):
    """How the member paid."""

    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    CHECK = "check"


class PaymentStatus(enum.Enum):
    """Payment record kind."""

    COMPLETED = "completed"
    REFUND = "refund"


class SubscriptionPayment(Base):
    """
    Payment or refund entry for a subscription.

    Refund entries carry refunded_payment_id and are never themselves refundable.
    """

    __tablename__ = "subscription_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_subscription_payments_amount_positive"),
        UniqueConstraint("receipt_number", name="uq_subscription_payments_receipt_number"),
    )

    subscription_id = Column(Uuid(as_uuid=True), ForeignKey("member_subscriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Amount in cents, always positive
    payment_method = Column(value_enum(PaymentMethod), nullable=False)
    payment_status = Column(value_enum(PaymentStatus), nullable=False, default=PaymentStatus.COMPLETED, index=True)
    payment_date = Column(Date, nullable=False, index=True)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    receipt_number = Column(String(50), nullable=False)
    refunded_payment_id = Column(Uuid(as_uuid=True), ForeignKey("subscription_payments.id"), nullable=True, index=True)
    refund_reason = Column(String(200), nullable=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="payments")

    @property
    def is_refund(self) -> bool:
        """Whether this entry is a refund rather than a payment."""
        return self.payment_status == PaymentStatus.REFUND

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<SubscriptionPayment(id={self.id}, subscription_id={self.subscription_id}, "
            f"status={self.payment_status.value}, amount={self.amount})>"
        )


class ReceiptCounter(DeclarativeBase):
    """
    Last receipt sequence value handed out in a year.

    Incremented in place, so the row lock serializes concurrent payments and
    deleted payments never free a number for reuse.
    """

    __tablename__ = "receipt_counters"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<ReceiptCounter(year={self.year}, last_value={self.last_value})>"
