"""Integration tests for MatchingService: matching pipeline, queries and lifecycle."""

import asyncio
import logging

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from spacematch.domain.models import Business, DemandListing, PropertyListing, PropertyMatch, User
from spacematch.infra.database import Base
from spacematch.services import matching_service as matching_module
from spacematch.services.match_store import MatchStore
from spacematch.services.matching_service import (
    DemandListingNotFoundError,
    MatchNotFoundError,
    MatchingService,
)
from spacematch.services.notification_service import NotificationDispatcher


@pytest.fixture
def dispatcher(recording_notifier):
    return NotificationDispatcher(recording_notifier)


@pytest.fixture
def service(db_session, dispatcher):
    return MatchingService(db_session, notifier=dispatcher)


async def _all_match_rows(db_session) -> list[PropertyMatch]:
    result = await db_session.execute(select(PropertyMatch))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# find_matches_for_demand_listing
# ---------------------------------------------------------------------------

class TestFindMatches:

    @pytest.mark.asyncio
    async def test_unknown_demand_listing(self, service):
        with pytest.raises(DemandListingNotFoundError, match="Demand listing not found"):
            await service.find_matches_for_demand_listing("does-not-exist")

    @pytest.mark.asyncio
    async def test_ranks_and_persists_matches(self, service, db_session, make_demand, make_property):
        demand = await make_demand()
        await make_property(title="Perfect")
        await make_property(
            title="Orlando Office", city="Orlando", sqft=2500, asking_price=9200,
            property_type="office", amenities=[],
        )

        matches = await service.find_matches_for_demand_listing(demand.id)

        assert [m.property_listing.title for m in matches] == ["Perfect", "Orlando Office"]
        assert [m.match_score for m in matches] == [100.0, 37.5]
        assert all(m.demand_listing_id == demand.id for m in matches)
        assert len(await _all_match_rows(db_session)) == 2

    @pytest.mark.asyncio
    async def test_zero_score_properties_are_not_stored(
        self, service, db_session, make_demand, make_property,
    ):
        demand = await make_demand()
        await make_property(
            title="Nowhere Land", city="Austin", state="TX", sqft=9000,
            asking_price=50000, property_type="land", amenities=[],
        )

        assert await service.find_matches_for_demand_listing(demand.id) == []
        assert await _all_match_rows(db_session) == []

    @pytest.mark.asyncio
    async def test_inactive_properties_are_ignored(self, service, make_demand, make_property):
        demand = await make_demand()
        await make_property(title="Leased", status="leased")
        active = await make_property(title="Open")

        matches = await service.find_matches_for_demand_listing(demand.id)

        assert [m.property_listing_id for m in matches] == [active.id]

    @pytest.mark.asyncio
    async def test_limit_keeps_highest_scores(self, service, make_demand, make_property):
        demand = await make_demand()
        await make_property(title="Same State", city="Tampa")
        await make_property(title="Perfect")
        await make_property(title="Oversized", sqft=2200)

        matches = await service.find_matches_for_demand_listing(demand.id, limit=2)

        assert [m.property_listing.title for m in matches] == ["Perfect", "Oversized"]

    @pytest.mark.asyncio
    async def test_equal_scores_keep_fetch_order(
        self, service, db_session, make_demand, make_property,
    ):
        demand = await make_demand()
        for i in range(4):
            await make_property(title=f"Twin {i}")
        fetch_order = [p.id for p in await MatchStore(db_session).find_active_property_listings()]

        matches = await service.find_matches_for_demand_listing(demand.id, limit=3)

        assert [m.property_listing_id for m in matches] == fetch_order[:3]

    @pytest.mark.asyncio
    async def test_rescoring_updates_rows_in_place(
        self, service, db_session, make_demand, make_property,
    ):
        demand = await make_demand()
        prop = await make_property(asking_price=6000)

        first = await service.find_matches_for_demand_listing(demand.id)
        first_id = first[0].id
        prop.asking_price = 9200
        await db_session.commit()
        second = await service.find_matches_for_demand_listing(demand.id)

        assert second[0].id == first_id
        assert second[0].price_score == 50.0
        assert len(await _all_match_rows(db_session)) == 1

    @pytest.mark.asyncio
    async def test_service_scorer_delegates(self, service):
        demand = {"city": "Miami", "state": "FL", "asset_type": "retail", "additional_features": []}
        prop = {"city": "Miami", "state": "FL", "sqft": 1200, "asking_price": 0, "property_type": "retail"}

        result = service.calculate_match_score(demand, prop)

        assert result.component_scores.price == 50.0
        assert result.score == 87.5


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class TestNotifications:

    @pytest.mark.asyncio
    async def test_notification_sent_to_listing_owner(
        self, service, dispatcher, recording_notifier,
        make_user, make_business, make_demand, make_property,
    ):
        owner = await make_user()
        demand = await make_demand(business=await make_business(user=owner))
        await make_property(title="Brickell Storefront")

        matches = await service.find_matches_for_demand_listing(demand.id, send_notification=True)
        await dispatcher.drain()

        assert len(recording_notifier.calls) == 1
        user_id, summaries = recording_notifier.calls[0]
        assert user_id == owner.id
        assert [s.id for s in summaries] == [m.id for m in matches]
        assert summaries[0].property_title == "Brickell Storefront"
        assert summaries[0].property_city == "Miami"
        assert summaries[0].score == 100.0

    @pytest.mark.asyncio
    async def test_no_notification_by_default(
        self, service, dispatcher, recording_notifier, make_demand, make_property,
    ):
        demand = await make_demand()
        await make_property()

        await service.find_matches_for_demand_listing(demand.id)
        await dispatcher.drain()

        assert recording_notifier.calls == []

    @pytest.mark.asyncio
    async def test_no_notification_without_matches(
        self, service, dispatcher, recording_notifier, make_demand,
    ):
        demand = await make_demand()

        await service.find_matches_for_demand_listing(demand.id, send_notification=True)
        await dispatcher.drain()

        assert recording_notifier.calls == []

    @pytest.mark.asyncio
    async def test_failing_notifier_does_not_fail_matching(
        self, db_session, make_demand, make_property, make_notifier, caplog,
    ):
        failing = make_notifier(error=RuntimeError("mail server down"))
        dispatcher = NotificationDispatcher(failing)
        service = MatchingService(db_session, notifier=dispatcher)
        demand = await make_demand()
        await make_property()

        with caplog.at_level(logging.ERROR):
            matches = await service.find_matches_for_demand_listing(demand.id, send_notification=True)
            await dispatcher.drain()

        assert len(matches) == 1
        assert len(failing.calls) == 1
        assert "mail server down" in caplog.text
        assert dispatcher.pending == 0


# ---------------------------------------------------------------------------
# refresh_all_matches
# ---------------------------------------------------------------------------

class TestRefreshAll:

    @pytest.mark.asyncio
    async def test_refreshes_every_active_demand(self, service, make_demand, make_property):
        await make_demand()
        await make_demand(city="Tampa")
        await make_demand(status="closed")
        await make_property()

        total = await service.refresh_all_matches()

        assert total == 2

    @pytest.mark.asyncio
    async def test_one_failing_demand_does_not_stop_the_sweep(
        self, service, db_session, make_demand, make_property, monkeypatch, caplog,
    ):
        good = await make_demand(city="Miami")
        bad = await make_demand(city="Tampa")
        await make_property()
        good_id, bad_id = good.id, bad.id
        await db_session.commit()

        real_score = matching_module.calculate_match_score

        def flaky_score(demand, prop):
            if demand.id == bad_id:
                raise RuntimeError("scoring exploded")
            return real_score(demand, prop)

        monkeypatch.setattr(matching_module, "calculate_match_score", flaky_score)

        with caplog.at_level(logging.ERROR):
            total = await service.refresh_all_matches()

        assert total == 1
        assert bad_id in caplog.text
        rows = await _all_match_rows(db_session)
        assert [r.demand_listing_id for r in rows] == [good_id]

    @pytest.mark.asyncio
    async def test_no_active_demands(self, service):
        assert await service.refresh_all_matches() == 0


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries:

    @pytest.mark.asyncio
    async def test_matches_for_user_and_demand(
        self, service, make_user, make_business, make_demand, make_property,
    ):
        user = await make_user()
        business = await make_business(user=user)
        d1 = await make_demand(business=business)
        d2 = await make_demand(business=business, asset_type="office_space")
        await make_demand()
        await make_property()

        await service.refresh_all_matches()

        user_matches = await service.get_matches_for_user(user.id)
        assert {m.demand_listing_id for m in user_matches} == {d1.id, d2.id}
        assert user_matches[0].match_score >= user_matches[1].match_score

        d2_matches = await service.get_matches_for_demand_listing(d2.id)
        assert len(d2_matches) == 1
        assert d2_matches[0].property_listing.title == "Brickell Storefront"

        assert await service.get_matches_for_user(user.id, limit=1) == user_matches[:1]

    @pytest.mark.asyncio
    async def test_saved_matches(self, service, make_user, make_business, make_demand, make_property):
        user = await make_user()
        demand = await make_demand(business=await make_business(user=user))
        await make_property(title="Keep")
        await make_property(title="Skip", city="Tampa")

        matches = await service.find_matches_for_demand_listing(demand.id)
        keep = next(m for m in matches if m.property_listing.title == "Keep")
        await service.toggle_saved(keep.id)

        saved = await service.get_saved_matches(user.id)

        assert [m.id for m in saved] == [keep.id]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:

    @pytest.fixture
    async def match(self, service, make_demand, make_property):
        demand = await make_demand()
        await make_property()
        matches = await service.find_matches_for_demand_listing(demand.id)
        return matches[0]

    @pytest.mark.asyncio
    async def test_mark_as_viewed(self, service, db_session, match):
        await service.mark_as_viewed(match.id)

        stored = await MatchStore(db_session).get_match(match.id)
        assert stored.is_viewed is True
        assert stored.viewed_at is not None

    @pytest.mark.asyncio
    async def test_toggle_saved_round_trip(self, service, db_session, match):
        assert await service.toggle_saved(match.id) is True
        stored = await MatchStore(db_session).get_match(match.id)
        assert stored.is_saved is True
        assert stored.saved_at is not None

        assert await service.toggle_saved(match.id) is False
        stored = await MatchStore(db_session).get_match(match.id)
        assert stored.is_saved is False
        assert stored.saved_at is None

    @pytest.mark.asyncio
    async def test_dismissal_survives_rescoring(self, service, db_session, match):
        demand_id = match.demand_listing_id
        await service.dismiss_match(match.id)

        rescored = await service.find_matches_for_demand_listing(demand_id)

        assert [m.id for m in rescored] == [match.id]
        assert rescored[0].is_dismissed is True
        assert rescored[0].dismissed_at is not None
        assert await service.get_matches_for_demand_listing(demand_id) == []
        shown = await service.get_matches_for_demand_listing(demand_id, include_dismissed=True)
        assert [m.id for m in shown] == [match.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["mark_as_viewed", "toggle_saved", "dismiss_match"])
    async def test_unknown_match_id(self, service, operation):
        with pytest.raises(MatchNotFoundError):
            await getattr(service, operation)("missing-match")


# ---------------------------------------------------------------------------
# Concurrent lifecycle updates (separate connections on a file database)
# ---------------------------------------------------------------------------

@pytest.fixture
async def file_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'lifecycle.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def _seed_match(factory) -> str:
    async with factory() as db:
        user = User(email="tenant@test.com", name="Tenant")
        db.add(user)
        await db.flush()
        business = Business(user_id=user.id, name="Shop Co")
        db.add(business)
        await db.flush()
        demand = DemandListing(
            business_id=business.id, city="Miami", state="FL",
            sqft_min=1000, sqft_max=2000, budget_min=5000, budget_max=8000,
            asset_type="retail", additional_features=["parking"], status="active",
        )
        db.add(demand)
        db.add(PropertyListing(
            title="Brickell Storefront", city="Miami", state="FL", sqft=1500,
            asking_price=6000, property_type="retail", amenities=["Parking Lot"],
            status="active",
        ))
        await db.commit()

        matches = await MatchingService(db).find_matches_for_demand_listing(demand.id)
        return matches[0].id


class TestConcurrentLifecycle:

    @pytest.mark.asyncio
    async def test_concurrent_toggles_do_not_lose_an_update(self, file_session_factory):
        match_id = await _seed_match(file_session_factory)

        async def _toggle():
            async with file_session_factory() as db:
                return await MatchingService(db).toggle_saved(match_id)

        results = await asyncio.gather(_toggle(), _toggle())

        assert sorted(results) == [False, True]
        async with file_session_factory() as db:
            stored = await MatchStore(db).get_match(match_id)
            assert stored.is_saved is False
            assert stored.saved_at is None

    @pytest.mark.asyncio
    async def test_concurrent_view_and_dismiss_both_apply(self, file_session_factory):
        match_id = await _seed_match(file_session_factory)

        async def _view():
            async with file_session_factory() as db:
                await MatchingService(db).mark_as_viewed(match_id)

        async def _dismiss():
            async with file_session_factory() as db:
                await MatchingService(db).dismiss_match(match_id)

        await asyncio.gather(_view(), _dismiss())

        async with file_session_factory() as db:
            stored = await MatchStore(db).get_match(match_id)
            assert stored.is_viewed is True
            assert stored.is_dismissed is True
            assert stored.viewed_at is not None
            assert stored.dismissed_at is not None
