"""Domain enumerations for the SpaceMatch marketplace.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class PropertyType(str, Enum):
    """Category of a landlord/broker property listing."""

    RETAIL = "retail"
    RESTAURANT = "restaurant"
    OFFICE = "office"
    INDUSTRIAL = "industrial"
    WAREHOUSE = "warehouse"
    MEDICAL = "medical"
    FLEX = "flex"
    LAND = "land"
    OTHER = "other"


class PropertyListingStatus(str, Enum):
    """Availability of a property listing. Only ACTIVE listings are matched."""

    ACTIVE = "active"
    PENDING = "pending"
    LEASED = "leased"
    OFF_MARKET = "off_market"


class DemandListingStatus(str, Enum):
    """Status of a tenant demand listing (QFP)."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"
    CLOSED = "closed"


class NotificationType(str, Enum):
    """Kinds of user notifications the marketplace can send."""

    NEW_MATCH = "new_match"
    NEW_MESSAGE = "new_message"
