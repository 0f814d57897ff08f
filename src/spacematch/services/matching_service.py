"""Matching Service — ranks property listings against tenant demand listings.

Pipeline for one demand listing:
    1. Load the demand listing and resolve its owning user
    2. Load every active property listing
    3. Score each pair with the deterministic match scorer, drop score 0
    4. Stable sort by score (descending), keep the top ``limit``
    5. Upsert one PropertyMatch row per (demand, property) pair
    6. Optionally hand a "new matches" notification to the dispatcher

Lifecycle operations (view / save / dismiss) flip per-match flags.  A
rescore never touches those flags, so a dismissed pair stays dismissed.
"""

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from spacematch.domain.models import PropertyListing, PropertyMatch
from spacematch.domain.schemas import MatchScore, NewMatchSummary
from spacematch.services.match_scorer import calculate_match_score
from spacematch.services.match_store import MatchStore
from spacematch.services.notification_service import NotificationDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


class DemandListingNotFoundError(ValueError):
    """Raised when a demand listing id does not exist."""


class MatchNotFoundError(ValueError):
    """Raised when a property match id does not exist."""


class MatchingService:
    """Rule-based matching engine for demand listings (QFPs) and property listings."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.store = MatchStore(db)
        self._notifier = notifier

    @property
    def notifier(self) -> NotificationDispatcher:
        if self._notifier is None:
            self._notifier = get_dispatcher()
        return self._notifier

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def calculate_match_score(self, demand, prop) -> MatchScore:
        return calculate_match_score(demand, prop)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    async def find_matches_for_demand_listing(
        self,
        demand_listing_id: str,
        limit: int = DEFAULT_LIMIT,
        send_notification: bool = False,
    ) -> list[PropertyMatch]:
        """Score, persist and return the top matches for a demand listing.

        Args:
            demand_listing_id: UUID of the DemandListing to match.
            limit: Maximum number of matches kept and stored.
            send_notification: Dispatch a "new matches" notification to the
                listing owner when at least one match was produced.

        Returns:
            Stored PropertyMatch rows (property listing loaded), best first.

        Raises:
            DemandListingNotFoundError: If the demand listing does not exist.
        """
        found = await self.store.find_demand_listing_with_owner(demand_listing_id)
        if found is None:
            raise DemandListingNotFoundError("Demand listing not found")
        demand, owner_user_id = found

        properties = await self.store.find_active_property_listings()

        candidates: list[tuple[PropertyListing, MatchScore]] = []
        for prop in properties:
            result = calculate_match_score(demand, prop)
            if result.score > 0:
                candidates.append((prop, result))

        # list.sort is stable, equal scores keep property fetch order
        candidates.sort(key=lambda c: c[1].score, reverse=True)
        top = candidates[:limit]

        match_ids: list[str] = []
        for prop, result in top:
            stored = await self.store.upsert_match(
                demand_listing_id,
                prop.id,
                result.score,
                result.component_scores,
                result.details,
            )
            match_ids.append(stored.id)

        await self.db.commit()

        matches = await self.store.find_matches_by_ids(match_ids)

        logger.info(
            "Matching complete for demand listing %s: %d scored, %d above zero, %d stored",
            demand_listing_id,
            len(properties),
            len(candidates),
            len(matches),
        )

        if send_notification and matches:
            self._notify(owner_user_id, matches)

        return matches

    def _notify(self, user_id: str, matches: list[PropertyMatch]) -> None:
        summaries = [
            NewMatchSummary(
                id=m.id,
                score=m.match_score,
                property_title=m.property_listing.title,
                property_city=m.property_listing.city,
                property_state=m.property_listing.state,
            )
            for m in matches
        ]
        try:
            self.notifier.dispatch(user_id, summaries)
        except Exception:
            logger.exception("Failed to dispatch match notification for user %s", user_id)

    async def refresh_all_matches(self) -> int:
        """Recompute matches for every active demand listing.

        A failure on one demand listing is logged and skipped; the sweep
        continues and the returned total counts successful listings only.
        """
        demand_ids = [d.id for d in await self.store.find_active_demand_listings()]

        total = 0
        failed = 0
        for demand_id in demand_ids:
            try:
                matches = await self.find_matches_for_demand_listing(demand_id)
                total += len(matches)
            except Exception:
                failed += 1
                logger.exception("Error refreshing matches for demand listing %s", demand_id)
                await self.db.rollback()

        logger.info(
            "Match refresh complete: %d demand listings, %d matches, %d failed",
            len(demand_ids),
            total,
            failed,
        )
        return total

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_matches_for_demand_listing(
        self,
        demand_listing_id: str,
        *,
        limit: int = DEFAULT_LIMIT,
        include_dismissed: bool = False,
    ) -> list[PropertyMatch]:
        return await self.store.find_matches_by_demand(
            demand_listing_id,
            active_only=True,
            include_dismissed=include_dismissed,
            limit=limit,
        )

    async def get_matches_for_user(
        self, user_id: str, limit: int = DEFAULT_LIMIT
    ) -> list[PropertyMatch]:
        return await self.store.find_matches_by_user(
            user_id, active_only=True, include_dismissed=False, limit=limit,
        )

    async def get_saved_matches(self, user_id: str) -> list[PropertyMatch]:
        return await self.store.find_saved_matches_by_user(user_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    # One UPDATE per operation, keyed on the match id; timestamps come from
    # the database clock.

    async def mark_as_viewed(self, match_id: str) -> None:
        found = await self.store.update_match_flags(
            match_id, is_viewed=True, viewed_at=func.now(),
        )
        if not found:
            raise MatchNotFoundError(f"Match {match_id} not found")
        await self.db.commit()

    async def toggle_saved(self, match_id: str) -> bool:
        """Flip the saved flag. Returns the new state."""
        is_saved = await self.store.toggle_saved(match_id)
        if is_saved is None:
            raise MatchNotFoundError(f"Match {match_id} not found")
        await self.db.commit()
        return is_saved

    async def dismiss_match(self, match_id: str) -> None:
        """Dismiss a match. There is no undismiss."""
        found = await self.store.update_match_flags(
            match_id, is_dismissed=True, dismissed_at=func.now(),
        )
        if not found:
            raise MatchNotFoundError(f"Match {match_id} not found")
        await self.db.commit()
