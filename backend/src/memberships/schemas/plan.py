"""Pydantic schemas for Plan model."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict


class Plan(BaseModel):
    """Schema for returning plan data."""

    id: UUID
    name: str
    price: int = Field(..., description="Price in cents")
    sessions_count: int
    duration_months: int | None = Field(default=None, description="None for unlimited/constraint-based plans")
    signup_fee: int = Field(..., description="Signup fee in cents")
    is_collaboration_plan: bool
    is_active: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlanList(BaseModel):
    """Schema for plan list."""

    items: list[Plan]
    total: int
