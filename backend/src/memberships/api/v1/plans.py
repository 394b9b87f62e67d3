"""Plan API endpoints (read only)."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from memberships.api.deps import get_db
from memberships.exceptions import PlanNotFound
from memberships.schemas.plan import Plan, PlanList
from memberships.services.plan_service import PlanService

router = APIRouter(prefix="/plans", tags=["Plans"])


@router.get("", response_model=PlanList)
async def list_plans(
    db: AsyncSession = Depends(get_db),
) -> PlanList:
    """List active plans in display order."""
    service = PlanService(db)
    plans = await service.list_active_plans()
    return PlanList(items=plans, total=len(plans))


@router.get("/{plan_id}", response_model=Plan)
async def get_plan(
    plan_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Plan:
    """
    Get plan by ID.

    Inactive plans are returned too, since existing subscriptions may still
    reference them.
    """
    service = PlanService(db)
    plan = await service.get_plan_by_id(plan_id)

    if not plan:
        raise PlanNotFound(plan_id)

    return plan
