# classifieds/models.py
"""SQLAlchemy ORM models for users, categories, listings, messages and favorites.

Indexes mirror the query patterns of the search engine and the conversation
aggregator. The favorites table carries the (user, listing) unique constraint
that the registry relies on for atomic toggles.
"""
from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from .db import Base
from .utils import utcnow

LISTING_STATUSES = ("active", "sold", "expired")
# largest value a Numeric(12, 2) price column holds
PRICE_MAX = 9_999_999_999.99

MediaList = JSON().with_variant(JSONB, "postgresql")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    display_name = Column(String(120), nullable=False)
    # stored lower-cased so the unique index is case-insensitive
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(40))
    location = Column(String(255))
    avatar_ref = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(140), nullable=False, unique=True, index=True)
    name = Column(String(120), nullable=False)
    icon_ref = Column(Text)
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(12, 2), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    media = Column(MediaList, nullable=False, default=list)
    location = Column(String(255), nullable=False, default="")
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String(16), nullable=False, default="active")
    featured = Column(Boolean, nullable=False, default=False)
    views = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_listings_price_non_negative"),
        CheckConstraint(
            "status IN ('active', 'sold', 'expired')", name="ck_listings_status"
        ),
    )


Index("idx_listings_title", Listing.title)
Index("idx_listings_category", Listing.category_id)
Index("idx_listings_location", Listing.location)
Index("idx_listings_seller", Listing.seller_id)
Index("idx_listings_status", Listing.status)
Index("idx_listings_created_desc", Listing.created_at.desc())
Index("idx_listings_price", Listing.price)


class Message(Base):
    __tablename__ = "messages"
    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(String(1000), nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("sender_id <> receiver_id", name="ck_messages_distinct_parties"),
    )


Index("idx_messages_pair", Message.sender_id, Message.receiver_id)
Index("idx_messages_listing", Message.listing_id)
Index("idx_messages_receiver_read", Message.receiver_id, Message.read)


class Favorite(Base):
    __tablename__ = "favorites"
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "listing_id", name="uq_favorites_user_listing"),
    )


Index("idx_favorites_user_created", Favorite.user_id, Favorite.created_at.desc())
