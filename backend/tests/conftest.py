"""
Pytest fixtures for testing
"""
import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import subtally.models  # noqa: F401
from subtally.db import Base
from subtally.schemas.enums import BillingCycle, Category, Currency
from subtally.schemas.fx import FxRates
from subtally.schemas.subscription import SubscriptionRecord

CREATED = datetime(2020, 1, 1, 9, 0)


@pytest.fixture
async def db_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
def rates() -> FxRates:
    usd_to_krw = Decimal("1300")
    return FxRates(
        usd_to_krw=usd_to_krw,
        krw_to_usd=1 / usd_to_krw,
        last_updated=datetime(2024, 1, 1),
        source="test",
    )


@pytest.fixture
def make_sub():
    """Build a SubscriptionRecord snapshot; created long before any test window."""

    def _make(**overrides) -> SubscriptionRecord:
        values = {
            "id": str(uuid.uuid4()),
            "name": "Test",
            "category": Category.OTHER,
            "amount": Decimal("10"),
            "currency": Currency.USD,
            "billing_cycle": BillingCycle.MONTHLY,
            "billing_day": 15,
            "is_active": True,
            "created_at": CREATED,
            "updated_at": CREATED,
        }
        values.update(overrides)
        return SubscriptionRecord(**values)

    return _make
