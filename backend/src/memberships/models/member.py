"""Member model for gym/studio members."""
from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
import enum

from memberships.models.base import Base, value_enum


class MemberType(enum.Enum):
    """Commercial relationship of a member with the studio."""

    TRIAL = "trial"
    FULL = "full"
    COLLABORATION = "collaboration"  # Partnership members, never auto-promoted


class MemberStatus(enum.Enum):
    """Member account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING = "pending"


class Member(Base):
    """
    Studio member.

    Only the fields the subscription ledger reads or updates live here; the
    rest of the member profile is owned by the member directory.
    """

    __tablename__ = "members"

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True, index=True)
    member_type = Column(value_enum(MemberType), nullable=False, default=MemberType.TRIAL, index=True)
    status = Column(value_enum(MemberStatus), nullable=False, default=MemberStatus.PENDING)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="member")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Member(id={self.id}, type={self.member_type.value}, status={self.status.value})>"
