"""Property match routes for tenants.

GET  /api/matches                              — top matches across the user's demand listings
GET  /api/matches/saved                        — saved, not dismissed
GET  /api/matches/demand-listing/{id}          — stored matches for one demand listing
POST /api/matches/demand-listing/{id}/refresh  — recompute matches for one demand listing
POST /api/matches/{id}/view | /save | /dismiss — lifecycle flags
POST /api/matches/refresh-all                  — recompute every active demand listing
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from spacematch.app.config import get_settings
from spacematch.app.routes.auth import get_current_user_dep
from spacematch.domain.models import PropertyMatch, User
from spacematch.domain.schemas import (
    MatchListResponse,
    PropertyMatchResponse,
    RefreshResponse,
    SavedToggleResponse,
)
from spacematch.infra.database import get_db
from spacematch.services.matching_service import (
    DemandListingNotFoundError,
    MatchNotFoundError,
    MatchingService,
)
from spacematch.services.notification_service import NotificationDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/matches", tags=["matches"])


def get_notification_dispatcher() -> NotificationDispatcher:
    return get_dispatcher()


def get_matching_service(
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> MatchingService:
    return MatchingService(db, notifier=dispatcher)


def _limit(limit: int | None) -> int:
    return limit or get_settings().match_default_limit


def _to_list(matches: list[PropertyMatch]) -> MatchListResponse:
    return MatchListResponse(
        matches=[PropertyMatchResponse.model_validate(m) for m in matches],
        total=len(matches),
    )


@router.get("", response_model=MatchListResponse)
async def list_matches(
    limit: int | None = Query(None, ge=1, le=100),
    user: User = Depends(get_current_user_dep),
    service: MatchingService = Depends(get_matching_service),
):
    """Top matches for the authenticated user across all their demand listings."""
    try:
        matches = await service.get_matches_for_user(user.id, _limit(limit))
    except Exception:
        logger.exception("Get matches error for user %s", user.id)
        raise HTTPException(status_code=500, detail="An error occurred while fetching matches")
    return _to_list(matches)


@router.get("/saved", response_model=MatchListResponse)
async def list_saved_matches(
    user: User = Depends(get_current_user_dep),
    service: MatchingService = Depends(get_matching_service),
):
    try:
        matches = await service.get_saved_matches(user.id)
    except Exception:
        logger.exception("Get saved matches error for user %s", user.id)
        raise HTTPException(status_code=500, detail="An error occurred while fetching saved matches")
    return _to_list(matches)


@router.get("/demand-listing/{demand_listing_id}", response_model=MatchListResponse)
async def list_demand_listing_matches(
    demand_listing_id: str,
    limit: int | None = Query(None, ge=1, le=100),
    include_dismissed: bool = False,
    user: User = Depends(get_current_user_dep),
    service: MatchingService = Depends(get_matching_service),
):
    try:
        matches = await service.get_matches_for_demand_listing(
            demand_listing_id, limit=_limit(limit), include_dismissed=include_dismissed,
        )
    except Exception:
        logger.exception("Get demand listing matches error for %s", demand_listing_id)
        raise HTTPException(status_code=500, detail="An error occurred while fetching matches")
    return _to_list(matches)


@router.post("/demand-listing/{demand_listing_id}/refresh", response_model=MatchListResponse)
async def refresh_demand_listing_matches(
    demand_listing_id: str,
    notify: bool = False,
    limit: int | None = Query(None, ge=1, le=100),
    user: User = Depends(get_current_user_dep),
    service: MatchingService = Depends(get_matching_service),
):
    """Recompute and store matches for one demand listing."""
    try:
        matches = await service.find_matches_for_demand_listing(
            demand_listing_id, limit=_limit(limit), send_notification=notify,
        )
    except DemandListingNotFoundError:
        raise HTTPException(status_code=404, detail="Demand listing not found")
    except Exception:
        logger.exception("Refresh matches error for %s", demand_listing_id)
        raise HTTPException(status_code=500, detail="An error occurred while refreshing matches")
    return _to_list(matches)


@router.post("/refresh-all", response_model=RefreshResponse)
async def refresh_all_matches(
    user: User = Depends(get_current_user_dep),
    service: MatchingService = Depends(get_matching_service),
):
    """Recompute matches for every active demand listing (admin/cron)."""
    try:
        total = await service.refresh_all_matches()
    except Exception:
        logger.exception("Refresh all matches error")
        raise HTTPException(status_code=500, detail="An error occurred while refreshing all matches")
    return RefreshResponse(total_matches=total)


@router.post("/{match_id}/view")
async def view_match(
    match_id: str,
    user: User = Depends(get_current_user_dep),
    service: MatchingService = Depends(get_matching_service),
):
    try:
        await service.mark_as_viewed(match_id)
    except MatchNotFoundError:
        raise HTTPException(status_code=404, detail="Match not found")
    return {"ok": True}


@router.post("/{match_id}/save", response_model=SavedToggleResponse)
async def save_match(
    match_id: str,
    user: User = Depends(get_current_user_dep),
    service: MatchingService = Depends(get_matching_service),
):
    try:
        is_saved = await service.toggle_saved(match_id)
    except MatchNotFoundError:
        raise HTTPException(status_code=404, detail="Match not found")
    return SavedToggleResponse(is_saved=is_saved)


@router.post("/{match_id}/dismiss")
async def dismiss_match(
    match_id: str,
    user: User = Depends(get_current_user_dep),
    service: MatchingService = Depends(get_matching_service),
):
    try:
        await service.dismiss_match(match_id)
    except MatchNotFoundError:
        raise HTTPException(status_code=404, detail="Match not found")
    return {"ok": True}
