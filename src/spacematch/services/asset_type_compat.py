"""Asset-type compatibility table.

Pure-function module — NO database access.

Maps each property-listing ``property_type`` to the demand-listing
``asset_type`` strings it can satisfy.  The table is consulted in both
directions: a hit from property→demand or from demand→property counts as a
compatible (non-exact) match.
"""

from __future__ import annotations

# ── What each property type can be listed as on the demand side ─────────

ASSET_TYPE_MAP: dict[str, list[str]] = {
    "retail":     ["retail", "storefront"],
    "restaurant": ["restaurant", "storefront"],
    "office":     ["office_space", "office"],
    "industrial": ["industrial_space", "warehouse"],
    "warehouse":  ["warehouse", "industrial_space"],
    "medical":    ["medical_office", "office_space"],
    "flex":       ["flex", "warehouse", "office_space"],
    "land":       ["land"],
    "other":      ["other"],
}

EXACT_SCORE = 100
COMPATIBLE_SCORE = 70
INCOMPATIBLE_SCORE = 0


def _norm(value: str | None) -> str:
    return (value or "").lower()


def is_compatible(property_type: str | None, required_type: str | None) -> bool:
    """True when either side lists the other in ``ASSET_TYPE_MAP``."""
    prop = _norm(property_type)
    req = _norm(required_type)
    if req in ASSET_TYPE_MAP.get(prop, []):
        return True
    return prop in ASSET_TYPE_MAP.get(req, [])


def compute_asset_type_score(
    property_type: str | None,
    required_type: str | None,
) -> tuple[int, bool]:
    """Score how well *property_type* satisfies the tenant's *required_type*.

    Returns
    -------
    (score, is_exact_match)
        * No required type            → (100, True)
        * Case-insensitive equality   → (100, True)
        * Compatible in either table direction → (70, False)
        * Otherwise                   → (0, False)
    """
    req = _norm(required_type)
    if not req:
        return EXACT_SCORE, True

    if _norm(property_type) == req:
        return EXACT_SCORE, True

    if is_compatible(property_type, required_type):
        return COMPATIBLE_SCORE, False

    return INCOMPATIBLE_SCORE, False
