"""Match Store — persistence adapter for the matching service.

Reads demand/property listings and writes PropertyMatch rows.  Matches are
upserted on the (demand_listing_id, property_listing_id) pair, so
recomputing a pair always updates the existing row and concurrent
recomputation is last-write-wins rather than duplicate-producing.
"""

import logging
from typing import Any, Optional

from sqlalchemy import case, func, not_, null, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from spacematch.domain.enums import DemandListingStatus, PropertyListingStatus
from spacematch.domain.models import (
    Business,
    DemandListing,
    PropertyListing,
    PropertyMatch,
)
from spacematch.domain.schemas import ComponentScores, MatchDetails

logger = logging.getLogger(__name__)

# Columns a lifecycle patch may touch
LIFECYCLE_FIELDS = frozenset({
    "is_viewed", "viewed_at",
    "is_saved", "saved_at",
    "is_dismissed", "dismissed_at",
})

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class MatchStore:
    """Read/write access to listings and property matches."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def find_demand_listing_with_owner(
        self, demand_listing_id: str
    ) -> Optional[tuple[DemandListing, str]]:
        """Return the demand listing and its owning user id, or None."""
        result = await self.db.execute(
            select(DemandListing, Business.user_id)
            .join(Business, DemandListing.business_id == Business.id)
            .where(DemandListing.id == demand_listing_id)
        )
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]

    async def find_active_demand_listings(self) -> list[DemandListing]:
        result = await self.db.execute(
            select(DemandListing)
            .where(DemandListing.status == DemandListingStatus.ACTIVE.value)
            .order_by(DemandListing.created_at, DemandListing.id)
        )
        return list(result.scalars().all())

    async def find_active_property_listings(self) -> list[PropertyListing]:
        """All active property listings in a stable order (created_at, id)."""
        result = await self.db.execute(
            select(PropertyListing)
            .where(PropertyListing.status == PropertyListingStatus.ACTIVE.value)
            .order_by(PropertyListing.created_at, PropertyListing.id)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Upsert
    # ------------------------------------------------------------------

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise NotImplementedError(f"Match upsert not supported on dialect {dialect!r}") from None

    async def upsert_match(
        self,
        demand_listing_id: str,
        property_listing_id: str,
        score: float,
        component_scores: ComponentScores,
        details: MatchDetails,
    ) -> PropertyMatch:
        """Insert or update the match row for a (demand, property) pair.

        On conflict only the scores, details and updated_at are overwritten;
        viewed/saved/dismissed flags keep their stored values.
        """
        scores = {
            "match_score": score,
            "location_score": component_scores.location,
            "sqft_score": component_scores.sqft,
            "price_score": component_scores.price,
            "asset_type_score": component_scores.asset_type,
            "amenities_score": component_scores.amenities,
            "match_details": details.model_dump(),
        }

        insert = self._insert()
        stmt = insert(PropertyMatch).values(
            demand_listing_id=demand_listing_id,
            property_listing_id=property_listing_id,
            **scores,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                PropertyMatch.demand_listing_id,
                PropertyMatch.property_listing_id,
            ],
            set_={**scores, "updated_at": func.now()},
        ).returning(PropertyMatch)

        result = await self.db.scalars(
            stmt, execution_options={"populate_existing": True}
        )
        return result.one()

    # ------------------------------------------------------------------
    # Match queries
    # ------------------------------------------------------------------

    def _matches_with_property(self):
        return (
            select(PropertyMatch)
            .join(PropertyListing, PropertyMatch.property_listing_id == PropertyListing.id)
            .options(contains_eager(PropertyMatch.property_listing))
            .execution_options(populate_existing=True)
        )

    async def find_matches_by_ids(self, match_ids: list[str]) -> list[PropertyMatch]:
        """Load matches with their property listing, preserving *match_ids* order."""
        if not match_ids:
            return []
        result = await self.db.execute(
            self._matches_with_property().where(PropertyMatch.id.in_(match_ids))
        )
        by_id = {m.id: m for m in result.scalars().all()}
        return [by_id[mid] for mid in match_ids if mid in by_id]

    async def find_matches_by_demand(
        self,
        demand_listing_id: str,
        *,
        active_only: bool = True,
        include_dismissed: bool = False,
        limit: int = 10,
    ) -> list[PropertyMatch]:
        stmt = self._matches_with_property().where(
            PropertyMatch.demand_listing_id == demand_listing_id
        )
        stmt = self._apply_filters(stmt, active_only, include_dismissed)
        stmt = stmt.order_by(PropertyMatch.match_score.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_matches_by_user(
        self,
        user_id: str,
        *,
        active_only: bool = True,
        include_dismissed: bool = False,
        limit: int = 10,
    ) -> list[PropertyMatch]:
        """Matches across every demand listing owned (via business) by *user_id*."""
        stmt = self._owned_by(self._matches_with_property(), user_id)
        stmt = self._apply_filters(stmt, active_only, include_dismissed)
        stmt = stmt.order_by(PropertyMatch.match_score.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_saved_matches_by_user(self, user_id: str) -> list[PropertyMatch]:
        stmt = self._owned_by(self._matches_with_property(), user_id).where(
            PropertyMatch.is_saved.is_(True),
            PropertyMatch.is_dismissed.is_(False),
        )
        stmt = stmt.order_by(PropertyMatch.saved_at.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _owned_by(stmt, user_id: str):
        return (
            stmt.join(DemandListing, PropertyMatch.demand_listing_id == DemandListing.id)
            .join(Business, DemandListing.business_id == Business.id)
            .where(Business.user_id == user_id)
        )

    @staticmethod
    def _apply_filters(stmt, active_only: bool, include_dismissed: bool):
        if active_only:
            stmt = stmt.where(PropertyListing.status == PropertyListingStatus.ACTIVE.value)
        if not include_dismissed:
            stmt = stmt.where(PropertyMatch.is_dismissed.is_(False))
        return stmt

    # ------------------------------------------------------------------
    # Lifecycle flags
    # ------------------------------------------------------------------

    async def get_match(self, match_id: str) -> Optional[PropertyMatch]:
        return await self.db.get(PropertyMatch, match_id, populate_existing=True)

    async def update_match_flags(self, match_id: str, **patch: Any) -> bool:
        """Apply a viewed/saved/dismissed patch in one UPDATE.

        Values may be SQL expressions such as ``func.now()``. Returns False
        when no match has *match_id*.
        """
        unknown = set(patch) - LIFECYCLE_FIELDS
        if unknown:
            raise ValueError(f"Not a lifecycle field: {', '.join(sorted(unknown))}")

        result = await self.db.execute(
            update(PropertyMatch)
            .where(PropertyMatch.id == match_id)
            .values(**patch)
            .returning(PropertyMatch.id),
            execution_options={"synchronize_session": False},
        )
        return result.scalar_one_or_none() is not None

    async def toggle_saved(self, match_id: str) -> Optional[bool]:
        """Flip is_saved in the database and return the new value.

        SET expressions read the pre-update row, so saved_at is cleared when
        the match was saved and stamped when it was not. Returns None when
        no match has *match_id*.
        """
        result = await self.db.execute(
            update(PropertyMatch)
            .where(PropertyMatch.id == match_id)
            .values(
                is_saved=not_(PropertyMatch.is_saved),
                saved_at=case(
                    (PropertyMatch.is_saved.is_(True), null()),
                    else_=func.now(),
                ),
            )
            .returning(PropertyMatch.is_saved),
            execution_options={"synchronize_session": False},
        )
        return result.scalar_one_or_none()
