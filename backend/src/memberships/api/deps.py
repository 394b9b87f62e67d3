"""FastAPI dependencies for database sessions."""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from memberships.database import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database session dependency.

    Route handlers commit on success; anything left uncommitted when the
    request fails is rolled back here.

    Yields:
        AsyncSession: Database session for the request lifecycle
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
