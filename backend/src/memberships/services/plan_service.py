"""Plan catalog reader."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from memberships.models.plan import Plan


class PlanService:
    """Read-only access to plan definitions."""

    def __init__(self, db: AsyncSession):
        """Initialize plan service with database session."""
        self.db = db

    async def get_plan_by_id(self, plan_id: UUID) -> Plan | None:
        """
        Get plan by ID.

        Args:
            plan_id: Plan UUID

        Returns:
            Plan or None if not found
        """
        result = await self.db.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def list_active_plans(self) -> list[Plan]:
        """
        List plans available for sale, ordered by sort_order.

        Returns:
            Active plans
        """
        result = await self.db.execute(
            select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.sort_order, Plan.name)
        )
        return list(result.scalars().all())
