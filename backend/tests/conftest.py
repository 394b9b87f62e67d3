"""Pytest configuration and fixtures for async testing."""
import os
from typing import AsyncGenerator

# Point the application at the test database before memberships.config is imported
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("APP_ENV", "test")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from memberships.api.deps import get_db  # noqa: E402
from memberships.main import app  # noqa: E402
from memberships.models import Base, Member, MemberType, MemberStatus, Plan  # noqa: E402
from utils.factories import MemberFactory, PlanFactory  # noqa: E402


def _create_test_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        # pysqlite defers BEGIN until the first DML statement, which breaks
        # SAVEPOINT; take over transaction control so nested transactions work.
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_implicit_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine

    return create_async_engine(TEST_DATABASE_URL, echo=False, pool_pre_ping=True)


# Create async test engine
test_engine = _create_test_engine()

# Create async session factory for tests
TestAsyncSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestAsyncSessionLocal() as session:
        yield session
        await session.rollback()

    # Drop all tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with database dependency override.

    Args:
        db_session: Test database session fixture

    Yields:
        AsyncClient: Async HTTP client for API testing
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


async def _add(db_session: AsyncSession, instance):
    db_session.add(instance)
    await db_session.commit()
    await db_session.refresh(instance)
    return instance


@pytest_asyncio.fixture(scope="function")
async def trial_member(db_session: AsyncSession) -> Member:
    """Member on a trial, eligible for promotion on first purchase."""
    return await _add(db_session, Member(**MemberFactory.create()))


@pytest_asyncio.fixture(scope="function")
async def full_member(db_session: AsyncSession) -> Member:
    """Member already promoted to full."""
    return await _add(
        db_session,
        Member(**MemberFactory.create({"member_type": MemberType.FULL, "status": MemberStatus.ACTIVE})),
    )


@pytest_asyncio.fixture(scope="function")
async def collaboration_member(db_session: AsyncSession) -> Member:
    """Partnership member, never promoted."""
    return await _add(
        db_session,
        Member(**MemberFactory.create({"member_type": MemberType.COLLABORATION, "status": MemberStatus.ACTIVE})),
    )


@pytest_asyncio.fixture(scope="function")
async def test_plan(db_session: AsyncSession) -> Plan:
    """
    Ten-session plan at $100.00 for one month.

    Returns:
        Plan: price 10000 cents, 10 sessions, 30 days
    """
    return await _add(
        db_session,
        Plan(**PlanFactory.create({
            "name": "10 Sessions",
            "price": 10000,
            "sessions_count": 10,
            "duration_months": 1,
            "sort_order": 1,
        })),
    )


@pytest_asyncio.fixture(scope="function")
async def test_plan_premium(db_session: AsyncSession) -> Plan:
    """Twenty-session plan at $180.00 for three months."""
    return await _add(
        db_session,
        Plan(**PlanFactory.create({
            "name": "20 Sessions",
            "price": 18000,
            "sessions_count": 20,
            "duration_months": 3,
            "signup_fee": 2500,
            "sort_order": 2,
        })),
    )


@pytest_asyncio.fixture(scope="function")
async def test_plan_open_ended(db_session: AsyncSession) -> Plan:
    """Plan without a duration in months."""
    return await _add(
        db_session,
        Plan(**PlanFactory.create({
            "name": "Open 8 Sessions",
            "price": 8000,
            "sessions_count": 8,
            "duration_months": None,
            "sort_order": 3,
        })),
    )
