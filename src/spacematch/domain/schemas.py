"""Pydantic v2 schemas for match scoring results and API responses."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Match details (persisted to property_matches.match_details)
# ---------------------------------------------------------------------------


class LocationMatch(BaseModel):
    same_city: bool
    same_state: bool


class SqftMatch(BaseModel):
    property_sqft: int | None = None
    required_min: int | None = None
    required_max: int | None = None
    in_range: bool


class PriceMatch(BaseModel):
    property_price: float | None = None
    budget_min: float | None = None
    budget_max: float | None = None
    in_range: bool


class AssetTypeMatch(BaseModel):
    property_type: str | None = None
    required_type: str | None = None
    is_exact_match: bool


class AmenitiesMatch(BaseModel):
    matched_features: list[str] = Field(default_factory=list)
    total_required: int = 0
    match_percentage: int = 100


class MatchDetails(BaseModel):
    """Raw comparison facts behind each component score, kept for display/audit."""

    location_match: LocationMatch
    sqft_match: SqftMatch
    price_match: PriceMatch
    asset_type_match: AssetTypeMatch
    amenities_match: AmenitiesMatch


class ComponentScores(BaseModel):
    """Unrounded per-dimension scores, each 0-100."""

    location: float = 0
    sqft: float = 0
    price: float = 0
    asset_type: float = 0
    amenities: float = 0


class MatchScore(BaseModel):
    """Result of scoring one demand listing against one property listing."""

    score: float
    details: MatchDetails
    component_scores: ComponentScores


class NewMatchSummary(BaseModel):
    """One entry of a "new matches" notification."""

    id: str
    score: float
    property_title: str | None = None
    property_city: str | None = None
    property_state: str | None = None


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------


class PropertyListingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str | None = None
    property_type: str
    status: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    sqft: int
    asking_price: float | None = None
    amenities: list[str] = Field(default_factory=list)


class PropertyMatchResponse(BaseModel):
    """A persisted match joined with its property listing."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    demand_listing_id: str
    property_listing_id: str
    match_score: float
    location_score: float | None = None
    sqft_score: float | None = None
    price_score: float | None = None
    asset_type_score: float | None = None
    amenities_score: float | None = None
    match_details: MatchDetails | None = None
    is_viewed: bool = False
    is_saved: bool = False
    is_dismissed: bool = False
    viewed_at: datetime | None = None
    saved_at: datetime | None = None
    dismissed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    property: PropertyListingResponse | None = Field(
        default=None,
        validation_alias=AliasChoices("property_listing", "property"),
    )


class MatchListResponse(BaseModel):
    matches: list[PropertyMatchResponse]
    total: int


class SavedToggleResponse(BaseModel):
    is_saved: bool


class RefreshResponse(BaseModel):
    total_matches: int
