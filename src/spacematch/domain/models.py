"""SQLAlchemy ORM models for the SpaceMatch marketplace.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from spacematch.infra.database import Base


# ---------------------------------------------------------------------------
# Users / Businesses
# ---------------------------------------------------------------------------


class User(Base):
    """Marketplace user (tenant, landlord or broker)."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="tenant")  # tenant, landlord, broker, admin
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    businesses = relationship("Business", back_populates="owner")
    notification_preference = relationship(
        "NotificationPreference", back_populates="user", uselist=False
    )


class Business(Base):
    """Tenant business that owns demand listings.

    Demand listings are owned via business_id; the owning user is always
    resolved through businesses.user_id.
    """

    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    owner = relationship("User", back_populates="businesses")
    demand_listings = relationship("DemandListing", back_populates="business")


class NotificationPreference(Base):
    """Per-user email notification switches. Missing row means all enabled."""

    __tablename__ = "notification_preferences"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    email_new_matches = Column(Boolean, default=True)
    email_new_messages = Column(Boolean, default=True)
    unsubscribed_all = Column(Boolean, default=False)
    unsubscribed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="notification_preference")


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class DemandListing(Base):
    """Tenant space requirement (QFP)."""

    __tablename__ = "demand_listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    title = Column(String(255), nullable=True)
    city = Column(String(100))
    state = Column(String(50))
    sqft_min = Column(Integer, nullable=True)
    sqft_max = Column(Integer, nullable=True)
    budget_min = Column(Float, nullable=True)
    budget_max = Column(Float, nullable=True)
    asset_type = Column(String(50), nullable=True)  # retail, office_space, warehouse, ...
    additional_features = Column(JSON, default=list)
    status = Column(String(20), default="active", index=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    business = relationship("Business", back_populates="demand_listings")
    matches = relationship("PropertyMatch", back_populates="demand_listing")


class PropertyListing(Base):
    """Landlord/broker space inventory."""

    __tablename__ = "property_listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    property_type = Column(String(20), nullable=False, default="other")
    status = Column(String(20), nullable=False, default="pending", index=True)
    address = Column(String(500), nullable=True)
    city = Column(String(100))
    state = Column(String(50))
    zip_code = Column(String(20))
    sqft = Column(Integer, nullable=False)
    asking_price = Column(Float, nullable=True)
    amenities = Column(JSON, default=list)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    matches = relationship("PropertyMatch", back_populates="property_listing")


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class PropertyMatch(Base):
    """A scored pairing of one demand listing and one property listing.

    (demand_listing_id, property_listing_id) is the natural key and the
    upsert target; rescoring updates the row in place.
    """

    __tablename__ = "property_matches"
    __table_args__ = (
        UniqueConstraint(
            "demand_listing_id", "property_listing_id", name="uq_property_matches_pair"
        ),
        Index("ix_property_matches_score", "match_score"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    demand_listing_id = Column(
        String(36), ForeignKey("demand_listings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    property_listing_id = Column(
        String(36), ForeignKey("property_listings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Overall score and the five components, each 0-100
    match_score = Column(Float, nullable=False, default=0.0)
    location_score = Column(Float, default=0.0)
    sqft_score = Column(Float, default=0.0)
    price_score = Column(Float, default=0.0)
    asset_type_score = Column(Float, default=0.0)
    amenities_score = Column(Float, default=0.0)
    match_details = Column(JSON, default=dict)

    # Tenant interaction tracking
    is_viewed = Column(Boolean, nullable=False, default=False)
    is_saved = Column(Boolean, nullable=False, default=False)
    is_dismissed = Column(Boolean, nullable=False, default=False)
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    saved_at = Column(DateTime(timezone=True), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    # Relationships
    demand_listing = relationship("DemandListing", back_populates="matches")
    property_listing = relationship("PropertyListing", back_populates="matches")
