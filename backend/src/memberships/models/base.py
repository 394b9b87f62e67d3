"""Base model with common fields for all entities."""
import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Uuid

from memberships.database import Base as DeclarativeBase


class Base(DeclarativeBase):
    """Base model class with common fields."""

    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


def value_enum(enum_cls: type[enum.Enum]) -> SQLEnum:
    """Enum column type persisting member values ('active'), matching the migration's enum types."""
    return SQLEnum(enum_cls, values_callable=lambda members: [member.value for member in members])
