# classifieds/crud.py
"""Session-level data access for users, categories, listings, messages and favorites.

Every helper takes an open `Session` and leaves commit/rollback to the caller's
session scope. Constraint checks that must hold under concurrency are pushed
into single statements (conditional updates, conflict-ignoring inserts) rather
than read-then-write sequences.
"""
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, NotFoundError, ValidationError
from .models import PRICE_MAX, Category, Favorite, Listing, Message, User
from .utils import utcnow

MEDIA_MIN = 1
MEDIA_MAX = 10
CONTENT_MAX = 1000
REQUIRED_USER_FIELDS = ("display_name", "email")


def normalize_email(email: str) -> str:
    value = (email or "").strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValidationError("email is not a valid address")
    return value


# users

def create_user(db: Session, data: Dict[str, Any]) -> User:
    user = User(
        display_name=data["display_name"].strip(),
        email=normalize_email(data["email"]),
        password_hash=data["password_hash"],
        phone=data.get("phone"),
        location=data.get("location"),
        avatar_ref=data.get("avatar_ref"),
        is_active=True,
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        raise ConflictError("email already registered")
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError(f"user {user_id} not found")
    return user


def update_user(db: Session, user_id: int, updates: Dict[str, Any]) -> User:
    for field in REQUIRED_USER_FIELDS:
        if field in updates and updates[field] is None:
            raise ValidationError(f"{field} cannot be cleared")
    user = get_user(db, user_id)
    if "email" in updates:
        updates = dict(updates, email=normalize_email(updates["email"]))
        taken = db.query(User.id).filter(User.email == updates["email"], User.id != user_id).first()
        if taken is not None:
            raise ConflictError("email already registered")
    for k, v in updates.items():
        setattr(user, k, v)
    try:
        db.flush()
    except IntegrityError:
        if "email" not in updates:
            raise
        raise ConflictError("email already registered")
    return user


# categories

def get_category(db: Session, category_id: int) -> Category:
    obj = db.get(Category, category_id)
    if obj is None:
        raise NotFoundError(f"category {category_id} not found")
    return obj


def category_edges(db: Session) -> List[tuple]:
    return [(int(cid), pid) for cid, pid in db.query(Category.id, Category.parent_id).all()]


def insert_category(db: Session, data: Dict[str, Any]) -> Category:
    obj = Category(
        slug=data["slug"].strip().lower(),
        name=data["name"].strip(),
        icon_ref=data.get("icon_ref"),
        parent_id=data.get("parent_id"),
    )
    db.add(obj)
    try:
        db.flush()
    except IntegrityError:
        raise ConflictError(f"category slug {obj.slug!r} already exists")
    return obj


# listings

def validate_listing_fields(db: Session, data: Dict[str, Any]) -> None:
    if "price" in data:
        price = data["price"]
        if price is None or not math.isfinite(price) or price < 0:
            raise ValidationError("price must be a non-negative number")
        if price > PRICE_MAX:
            raise ValidationError(f"price must be at most {PRICE_MAX}")
    if "media" in data:
        media = data["media"] or []
        if not MEDIA_MIN <= len(media) <= MEDIA_MAX:
            raise ValidationError(f"a listing needs between {MEDIA_MIN} and {MEDIA_MAX} images")
        if any(not isinstance(m, str) or not m.strip() for m in media):
            raise ValidationError("media references must be non-empty strings")
    if "category_id" in data and db.get(Category, data["category_id"]) is None:
        raise ValidationError(f"category {data['category_id']} does not exist")


def insert_listing(db: Session, seller_id: int, data: Dict[str, Any]) -> Listing:
    validate_listing_fields(db, {**data, "media": data.get("media"), "price": data.get("price")})
    seller = db.get(User, seller_id)
    if seller is None or not seller.is_active:
        raise ValidationError(f"seller {seller_id} does not exist")
    now = utcnow()
    obj = Listing(
        title=data["title"].strip(),
        description=data.get("description") or "",
        price=data["price"],
        category_id=data["category_id"],
        media=list(data["media"]),
        location=(data.get("location") or "").strip(),
        seller_id=seller_id,
        status="active",
        featured=bool(data.get("featured", False)),
        views=0,
        created_at=now,
        updated_at=now,
    )
    db.add(obj)
    db.flush()
    return obj


def get_listing(db: Session, listing_id: int) -> Listing:
    obj = db.get(Listing, listing_id)
    if obj is None:
        raise NotFoundError(f"listing {listing_id} not found")
    return obj


def increment_views(db: Session, listing_id: int) -> int:
    return db.query(Listing).filter(Listing.id == listing_id).update(
        {Listing.views: Listing.views + 1}, synchronize_session=False
    )


def update_listing(db: Session, obj: Listing, updates: Dict[str, Any]) -> Listing:
    validate_listing_fields(db, updates)
    for k, v in updates.items():
        setattr(obj, k, v)
    obj.updated_at = utcnow()
    db.flush()
    return obj


def compare_and_set_status(db: Session, listing_id: int, expected: str, new: str) -> bool:
    changed = db.query(Listing).filter(
        Listing.id == listing_id, Listing.status == expected
    ).update({Listing.status: new, Listing.updated_at: utcnow()}, synchronize_session=False)
    return changed == 1


def seller_listings(db: Session, seller_id: int, status: Optional[str] = None) -> List[Listing]:
    q = db.query(Listing).filter(Listing.seller_id == seller_id)
    if status:
        q = q.filter(Listing.status == status)
    return q.order_by(Listing.created_at.desc(), Listing.id.desc()).all()


def stale_listing_ids(db: Session, cutoff) -> List[int]:
    rows = db.query(Listing.id).filter(
        Listing.status == "active", Listing.created_at < cutoff
    ).all()
    return [int(r[0]) for r in rows]


# messages

def insert_message(db: Session, listing_id: int, sender_id: int, receiver_id: int, content: str) -> Message:
    obj = Message(
        listing_id=listing_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        read=False,
        created_at=utcnow(),
    )
    db.add(obj)
    db.flush()
    return obj


def get_message(db: Session, message_id: int) -> Message:
    obj = db.get(Message, message_id)
    if obj is None:
        raise NotFoundError(f"message {message_id} not found")
    return obj


def mark_read(
    db: Session,
    receiver_id: int,
    message_id: Optional[int] = None,
    listing_id: Optional[int] = None,
    sender_id: Optional[int] = None,
) -> int:
    """Flip unread messages addressed to `receiver_id`; returns how many changed."""
    q = db.query(Message).filter(Message.receiver_id == receiver_id, Message.read.is_(False))
    if message_id is not None:
        q = q.filter(Message.id == message_id)
    if listing_id is not None:
        q = q.filter(Message.listing_id == listing_id)
    if sender_id is not None:
        q = q.filter(Message.sender_id == sender_id)
    return q.update({Message.read: True}, synchronize_session=False)


def messages_for_user(db: Session, user_id: int):
    return (
        db.query(Message)
        .filter(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
        .order_by(Message.created_at.asc(), Message.id.asc())
    )


# favorites

def _favorite_insert(db: Session, values: Dict[str, Any]):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(Favorite.__table__).values(**values).on_conflict_do_nothing(
            index_elements=["user_id", "listing_id"]
        )
    if dialect == "sqlite":
        return sqlite_insert(Favorite.__table__).values(**values).on_conflict_do_nothing(
            index_elements=["user_id", "listing_id"]
        )
    return None


def insert_favorite_if_absent(db: Session, user_id: int, listing_id: int) -> bool:
    """Insert the (user, listing) row unless it exists; True when this call inserted it."""
    values = {"user_id": user_id, "listing_id": listing_id, "created_at": utcnow()}
    stmt = _favorite_insert(db, values)
    if stmt is not None:
        return db.execute(stmt).rowcount == 1
    try:
        with db.begin_nested():
            db.execute(insert(Favorite.__table__).values(**values))
    except IntegrityError:
        return False
    return True


def delete_favorite(db: Session, user_id: int, listing_id: int) -> bool:
    deleted = db.query(Favorite).filter(
        Favorite.user_id == user_id, Favorite.listing_id == listing_id
    ).delete(synchronize_session=False)
    return deleted == 1


def favorites_for_user(db: Session, user_id: int) -> List[Favorite]:
    return (
        db.query(Favorite)
        .filter(Favorite.user_id == user_id)
        .order_by(Favorite.created_at.desc(), Favorite.listing_id.desc())
        .all()
    )
