"""Plan model for session-based membership plans."""
from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String

from memberships.models.base import Base


class Plan(Base):
    """
    Membership plan sold to members.

    Read-only from the ledger's point of view: subscriptions copy the terms
    they need into snapshot columns at purchase time.
    """

    __tablename__ = "subscription_plans"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_subscription_plans_price_non_negative"),
        CheckConstraint("sessions_count >= 0", name="ck_subscription_plans_sessions_non_negative"),
    )

    name = Column(String, nullable=False)
    price = Column(Integer, nullable=False)  # Amount in cents
    sessions_count = Column(Integer, nullable=False)
    duration_months = Column(Integer, nullable=True)  # NULL for unlimited/constraint-based plans
    signup_fee = Column(Integer, nullable=False, default=0)  # Amount in cents
    is_collaboration_plan = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    sort_order = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Plan(id={self.id}, name={self.name}, price={self.price}, sessions={self.sessions_count})>"
