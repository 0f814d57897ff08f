"""Shared test infrastructure for the SpaceMatch test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- recording_notifier / make_notifier: fake NewMatchNotifier capturing (user_id, matches) calls
- make_user / make_business / make_demand / make_property: row factories
"""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base first, then models to register all tables
from spacematch.infra.database import Base

import spacematch.domain.models  # noqa: F401

from spacematch.domain.models import (
    Business,
    DemandListing,
    PropertyListing,
    User,
)


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Notifier fakes
# ---------------------------------------------------------------------------

class RecordingNotifier:
    """Records notify_new_matches calls; optionally raises after recording."""

    def __init__(self, error: Exception | None = None):
        self.calls = []
        self.error = error

    async def notify_new_matches(self, user_id, matches):
        self.calls.append((user_id, list(matches)))
        if self.error is not None:
            raise self.error


@pytest.fixture
def recording_notifier():
    return RecordingNotifier()


@pytest.fixture
def make_notifier():
    """Factory for RecordingNotifier instances, e.g. make_notifier(error=RuntimeError())."""
    return RecordingNotifier


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that creates a User row.

    Usage:
        user = await make_user(email="tenant@test.com")
    """
    async def _factory(
        email: str | None = None,
        name: str = "Test Tenant",
        role: str = "tenant",
        is_active: bool = True,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"tenant-{uuid.uuid4().hex[:8]}@test.com",
            name=name,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _factory


@pytest.fixture
def make_business(db_session, make_user):
    async def _factory(user: User | None = None, name: str = "Test Business") -> Business:
        user = user or await make_user()
        business = Business(id=str(uuid.uuid4()), user_id=user.id, name=name)
        db_session.add(business)
        await db_session.flush()
        return business

    return _factory


@pytest.fixture
def make_demand(db_session, make_business):
    """Factory that creates a DemandListing owned by a (new) business.

    Defaults mirror the Miami retail QFP used across the suite.
    """
    async def _factory(
        business: Business | None = None,
        city: str | None = "Miami",
        state: str | None = "FL",
        sqft_min: int | None = 1000,
        sqft_max: int | None = 2000,
        budget_min: float | None = 5000,
        budget_max: float | None = 8000,
        asset_type: str | None = "retail",
        additional_features: list[str] | None = None,
        status: str = "active",
    ) -> DemandListing:
        business = business or await make_business()
        demand = DemandListing(
            id=str(uuid.uuid4()),
            business_id=business.id,
            title="Retail QFP",
            city=city,
            state=state,
            sqft_min=sqft_min,
            sqft_max=sqft_max,
            budget_min=budget_min,
            budget_max=budget_max,
            asset_type=asset_type,
            additional_features=["parking"] if additional_features is None else additional_features,
            status=status,
        )
        db_session.add(demand)
        await db_session.flush()
        return demand

    return _factory


@pytest.fixture
def make_property(db_session):
    """Factory that creates a PropertyListing.

    Usage:
        prop = await make_property(city="Orlando", sqft=2500)
    """
    async def _factory(
        title: str = "Brickell Storefront",
        city: str | None = "Miami",
        state: str | None = "FL",
        sqft: int = 1500,
        asking_price: float | None = 6000,
        property_type: str = "retail",
        amenities: list[str] | None = None,
        status: str = "active",
    ) -> PropertyListing:
        prop = PropertyListing(
            id=str(uuid.uuid4()),
            title=title,
            address="100 Main St",
            city=city,
            state=state,
            zip_code="33131",
            sqft=sqft,
            asking_price=asking_price,
            property_type=property_type,
            amenities=["Parking Lot"] if amenities is None else amenities,
            status=status,
        )
        db_session.add(prop)
        await db_session.flush()
        return prop

    return _factory
