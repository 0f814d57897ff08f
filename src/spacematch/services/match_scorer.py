"""Deterministic rule-based match scorer.

Pure-function module — NO database access, NO network.

Computes a weighted match score between a tenant demand listing and a
property listing from five dimensions:
    - Location   (30)  — city/state string equality
    - Sqft       (25)  — range fit with 20% / 50% tolerance bands
    - Price      (25)  — budget fit with 10% / 25% overage bands
    - Asset type (15)  — exact or table-compatible (delegates to asset_type_compat)
    - Amenities  (5)   — share of required features the property offers

Inputs may be ORM objects or plain dicts so the scorer can be called from
the matching service, from tests, or from offline batch jobs.
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from spacematch.domain.schemas import (
    AmenitiesMatch,
    AssetTypeMatch,
    ComponentScores,
    LocationMatch,
    MatchDetails,
    MatchScore,
    PriceMatch,
    SqftMatch,
)
from spacematch.services.asset_type_compat import compute_asset_type_score

# ── Weights (sum to 100) ─────────────────────────────────────────────────────

W_LOCATION = 30
W_SQFT = 25
W_PRICE = 25
W_ASSET_TYPE = 15
W_AMENITIES = 5

WEIGHTS: dict[str, int] = {
    "location": W_LOCATION,
    "sqft": W_SQFT,
    "price": W_PRICE,
    "asset_type": W_ASSET_TYPE,
    "amenities": W_AMENITIES,
}

# Partial credit when the property does not publish an asking price
UNPRICED_SCORE = 50.0

_NON_ALNUM = re.compile(r"[^a-z0-9]")


# ── Helpers ──────────────────────────────────────────────────────────────────

def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read *name* from a mapping or an attribute-bearing object."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _round_half_up(value: float, places: int = 0) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _clean(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def normalize_feature(value: str) -> str:
    """Lower-case and replace every non-alphanumeric character with ``_``."""
    return _NON_ALNUM.sub("_", (value or "").lower())


# ── Component scores ─────────────────────────────────────────────────────────

def compute_location_score(demand, prop) -> tuple[float, bool, bool]:
    """Location score (0-100).

    * Same city and same state → 100
    * Same state only          → 50
    * Otherwise                → 0

    Empty city or state on the demand side never counts as a match.
    """
    demand_city = _clean(_field(demand, "city"))
    demand_state = _clean(_field(demand, "state"))
    prop_city = _clean(_field(prop, "city"))
    prop_state = _clean(_field(prop, "state"))

    same_city = demand_city != "" and demand_city == prop_city
    same_state = demand_state != "" and demand_state == prop_state

    if same_city and same_state:
        return 100.0, same_city, same_state
    if same_state:
        return 50.0, same_city, same_state
    return 0.0, same_city, same_state


def compute_sqft_score(demand, prop) -> tuple[float, bool]:
    """Square-footage score (0-100).

    * No min and no max                         → 100
    * Inside [min or 0, max or ∞]               → 100
    * Within 20% of the range size outside it   → 70
    * Within 50% of the range size outside it   → 40
    * Further out                               → 0
    """
    sqft = _field(prop, "sqft") or 0
    min_sqft = _field(demand, "sqft_min")
    max_sqft = _field(demand, "sqft_max")

    if not min_sqft and not max_sqft:
        return 100.0, True

    effective_min = min_sqft or 0
    effective_max = max_sqft or math.inf

    if effective_min <= sqft <= effective_max:
        return 100.0, True

    range_size = (max_sqft or min_sqft or sqft) - (min_sqft or 0)
    tolerance_20 = range_size * 0.2
    tolerance_50 = range_size * 0.5

    if sqft < effective_min:
        diff = effective_min - sqft
    else:
        diff = sqft - effective_max

    if diff <= tolerance_20:
        return 70.0, False
    if diff <= tolerance_50:
        return 40.0, False
    return 0.0, False


def compute_price_score(demand, prop) -> tuple[float, bool]:
    """Budget score (0-100).

    * Property has no asking price                → 50 (not in range)
    * Demand has no budget bounds                 → 100
    * Inside [min or 0, max or ∞] or below min    → 100
    * Over max by ≤10% of (max or min or price)   → 80
    * Over max by ≤25%                            → 50
    * Further over                                → 0
    """
    price = _field(prop, "asking_price")
    min_budget = _field(demand, "budget_min")
    max_budget = _field(demand, "budget_max")

    if not price:
        return UNPRICED_SCORE, False

    if not min_budget and not max_budget:
        return 100.0, True

    price = float(price)
    effective_min = float(min_budget or 0)
    effective_max = float(max_budget) if max_budget else math.inf

    if effective_min <= price <= effective_max:
        return 100.0, True

    # Cheaper than asked for is always a match
    if price < effective_min:
        return 100.0, True

    budget_midpoint = float(max_budget or min_budget or price)
    diff = price - effective_max
    if diff <= budget_midpoint * 0.10:
        return 80.0, False
    if diff <= budget_midpoint * 0.25:
        return 50.0, False
    return 0.0, False


def compute_amenities_score(demand, prop) -> tuple[float, list[str], int, int]:
    """Share of required features the property offers (0-100).

    Returns
    -------
    (score, matched_features, total_required, percentage)
    """
    required = list(_field(demand, "additional_features") or [])
    amenities = list(_field(prop, "amenities") or [])

    if not required:
        return 100.0, [], 0, 100

    normalized_amenities = [normalize_feature(a) for a in amenities]

    matched: list[str] = []
    for feature in required:
        needle = normalize_feature(feature)
        if any(needle in a or a in needle for a in normalized_amenities):
            matched.append(feature)

    percentage = int(_round_half_up(len(matched) / len(required) * 100))
    return float(percentage), matched, len(required), percentage


# ── Main scorer ──────────────────────────────────────────────────────────────

def calculate_match_score(demand, prop) -> MatchScore:
    """Score one demand listing against one property listing.

    Returns
    -------
    MatchScore
        ``score`` is the weighted total rounded to 2 decimals, ``details``
        the comparison facts behind each component and
        ``component_scores`` the unrounded per-dimension scores.
    """
    location_score, same_city, same_state = compute_location_score(demand, prop)
    sqft_score, sqft_in_range = compute_sqft_score(demand, prop)
    price_score, price_in_range = compute_price_score(demand, prop)
    asset_score, is_exact = compute_asset_type_score(
        _field(prop, "property_type"), _field(demand, "asset_type"),
    )
    amenities_score, matched, total_required, percentage = compute_amenities_score(demand, prop)

    components = ComponentScores(
        location=location_score,
        sqft=sqft_score,
        price=price_score,
        asset_type=float(asset_score),
        amenities=amenities_score,
    )

    total = (
        components.location * W_LOCATION
        + components.sqft * W_SQFT
        + components.price * W_PRICE
        + components.asset_type * W_ASSET_TYPE
        + components.amenities * W_AMENITIES
    ) / 100

    details = MatchDetails(
        location_match=LocationMatch(same_city=same_city, same_state=same_state),
        sqft_match=SqftMatch(
            property_sqft=_field(prop, "sqft"),
            required_min=_field(demand, "sqft_min"),
            required_max=_field(demand, "sqft_max"),
            in_range=sqft_in_range,
        ),
        price_match=PriceMatch(
            property_price=_field(prop, "asking_price"),
            budget_min=_field(demand, "budget_min"),
            budget_max=_field(demand, "budget_max"),
            in_range=price_in_range,
        ),
        asset_type_match=AssetTypeMatch(
            property_type=_field(prop, "property_type"),
            required_type=_field(demand, "asset_type"),
            is_exact_match=is_exact,
        ),
        amenities_match=AmenitiesMatch(
            matched_features=matched,
            total_required=total_required,
            match_percentage=percentage,
        ),
    )

    return MatchScore(
        score=_round_half_up(total, 2),
        details=details,
        component_scores=components,
    )
