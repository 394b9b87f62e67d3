"""Member lookups and the trial-to-full promotion side effect."""
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from memberships import metrics
from memberships.models.member import Member, MemberStatus, MemberType

logger = structlog.get_logger(__name__)


class MemberService:
    """Service layer for the member fields the ledger touches."""

    def __init__(self, db: AsyncSession):
        """Initialize member service with database session."""
        self.db = db

    async def get_member(self, member_id: UUID) -> Member | None:
        result = await self.db.execute(select(Member).where(Member.id == member_id))
        return result.scalar_one_or_none()

    async def promote_trial_member(self, member_id: UUID) -> bool:
        """
        Promote a trial member to a full, active member.

        The update is conditioned on member_type = trial, so full and
        collaboration members are never touched and a concurrent promotion
        is a no-op.

        Args:
            member_id: Member UUID

        Returns:
            True if the member was promoted, False if no update applied
        """
        result = await self.db.execute(
            update(Member)
            .where(Member.id == member_id, Member.member_type == MemberType.TRIAL)
            .values(member_type=MemberType.FULL, status=MemberStatus.ACTIVE)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def promote_after_purchase(self, member_id: UUID) -> bool:
        """
        Best-effort promotion run once the purchase has been committed.

        The promotion is its own transaction: it commits on success and rolls
        back on failure, so it never touches the purchase. Failures are logged
        and swallowed. The session must have no uncommitted work pending.

        Returns:
            True if the member was promoted
        """
        try:
            member = await self.get_member(member_id)
            if member is None or member.member_type != MemberType.TRIAL:
                await self.db.commit()
                metrics.member_promotions_total.labels(result="skipped").inc()
                return False

            promoted = await self.promote_trial_member(member_id)
            await self.db.commit()
            if promoted:
                await self.db.refresh(member)
        except Exception as exc:
            await self.db.rollback()
            logger.warning(
                "member_promotion_failed",
                member_id=str(member_id),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            metrics.member_promotions_total.labels(result="failed").inc()
            return False

        if promoted:
            logger.info("member_promoted", member_id=str(member_id), member_type=MemberType.FULL.value)
            metrics.member_promotions_total.labels(result="promoted").inc()
        return promoted
