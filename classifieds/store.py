# classifieds/store.py
"""Entity store: validated create/read/update operations for users and listings.

Listing status changes go through a compare-and-swap on the stored status,
so two concurrent "mark sold" calls cannot both report success.
"""
from datetime import timedelta
from typing import List, Optional

from . import crud, schemas
from .db import AppContext
from .errors import (
    AuthorizationError, ConflictError, InvalidStateError, NotFoundError,
)
from .utils import logger, utcnow

ALLOWED_TRANSITIONS = {
    "active": {"sold", "expired"},
    "sold": set(),
    "expired": set(),
}


def _status_value(status) -> str:
    return status.value if isinstance(status, schemas.ListingStatus) else str(status)


class EntityStore:
    def __init__(self, ctx: AppContext):
        self.ctx = ctx

    # users

    def create_user(self, payload) -> schemas.UserOut:
        data = schemas.coerce(schemas.UserCreate, payload)

        def _create(db):
            user = crud.create_user(db, data.model_dump())
            logger.info("Registered user %s", user.id)
            return schemas.UserOut.model_validate(user)

        return self.ctx.run(_create)

    def get_user(self, user_id: int) -> schemas.UserOut:
        return self.ctx.run(lambda db: schemas.UserOut.model_validate(crud.get_user(db, user_id)))

    def authenticate(self, user_id: int) -> schemas.AuthenticatedUser:
        """Resolve an identity vouched for by the token layer into an AuthenticatedUser."""
        def _auth(db):
            user = crud.get_user(db, user_id)
            return schemas.AuthenticatedUser(id=user.id, display_name=user.display_name)

        return self.ctx.run(_auth)

    def update_profile(self, user_id: int, payload) -> schemas.UserOut:
        data = schemas.coerce(schemas.UserUpdate, payload)
        updates = data.model_dump(exclude_unset=True)

        def _update(db):
            user = crud.update_user(db, user_id, updates)
            logger.info("Updated profile of user %s (%s)", user_id, ", ".join(sorted(updates)) or "no fields")
            return schemas.UserOut.model_validate(user)

        return self.ctx.run(_update)

    # listings

    def create_listing(self, seller_id: int, payload) -> schemas.ListingOut:
        data = schemas.coerce(schemas.ListingCreate, payload)

        def _create(db):
            obj = crud.insert_listing(db, seller_id, data.model_dump())
            logger.info("Seller %s created listing %s in category %s", seller_id, obj.id, obj.category_id)
            return schemas.ListingOut.model_validate(obj)

        return self.ctx.run(_create)

    def get_listing(self, listing_id: int, viewer_id: Optional[int] = None) -> schemas.ListingOut:
        """Detail view of a listing; bumps its view counter.

        The increment runs after the read in its own transaction and any
        failure there is logged and dropped, so the read itself never fails
        because of it.
        """
        def _read(db):
            obj = crud.get_listing(db, listing_id)
            if obj.status != "active" and obj.seller_id != viewer_id:
                raise NotFoundError(f"listing {listing_id} not found")
            return schemas.ListingOut.model_validate(obj)

        listing = self.ctx.run(_read)
        try:
            with self.ctx.session_scope() as db:
                bumped = crud.increment_views(db, listing_id)
        except Exception as e:
            logger.warning("View counter increment for listing %s dropped: %s", listing_id, e)
        else:
            if bumped:
                listing.views += 1
        return listing

    def update_listing(self, listing_id: int, caller_id: int, payload) -> schemas.ListingOut:
        data = schemas.coerce(schemas.ListingUpdate, payload)
        updates = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        def _update(db):
            obj = crud.get_listing(db, listing_id)
            if obj.seller_id != caller_id:
                raise AuthorizationError("only the seller can edit this listing")
            if obj.status != "active":
                raise InvalidStateError(f"listing {listing_id} is {obj.status} and can no longer be edited")
            obj = crud.update_listing(db, obj, updates)
            logger.info("Listing %s edited by seller (%s)", listing_id, ", ".join(sorted(updates)) or "no fields")
            return schemas.ListingOut.model_validate(obj)

        return self.ctx.run(_update)

    def update_listing_status(self, listing_id: int, caller_id: Optional[int], new_status) -> schemas.ListingOut:
        """Move a listing along active → sold / active → expired.

        `caller_id=None` is reserved for system jobs (the expiry sweep) and
        skips the ownership check.
        """
        target = _status_value(new_status)
        if target not in ALLOWED_TRANSITIONS:
            raise InvalidStateError(f"unknown listing status {target!r}")

        def _transition(db):
            obj = crud.get_listing(db, listing_id)
            if caller_id is not None and obj.seller_id != caller_id:
                raise AuthorizationError("only the seller can change this listing's status")
            current = obj.status
            if target not in ALLOWED_TRANSITIONS.get(current, set()):
                raise InvalidStateError(f"cannot move listing {listing_id} from {current} to {target}")
            if not crud.compare_and_set_status(db, listing_id, current, target):
                raise InvalidStateError(
                    f"listing {listing_id} changed status concurrently; {current} → {target} rejected"
                )
            db.refresh(obj)
            logger.info("Listing %s moved %s → %s", listing_id, current, target)
            return schemas.ListingOut.model_validate(obj)

        return self.ctx.run(_transition)

    def list_seller_listings(self, seller_id: int, status=None) -> List[schemas.ListingOut]:
        def _list(db):
            crud.get_user(db, seller_id)
            rows = crud.seller_listings(db, seller_id, _status_value(status) if status else None)
            return [schemas.ListingOut.model_validate(r) for r in rows]

        return self.ctx.run(_list)

    def expire_stale_listings(self, max_age_days: Optional[int] = None) -> int:
        """Expire active listings older than `max_age_days`; returns how many moved."""
        days = max_age_days or self.ctx.settings.listing_expiry_days
        cutoff = utcnow() - timedelta(days=days)
        candidates = self.ctx.run(crud.stale_listing_ids, cutoff)
        expired = 0
        for listing_id in candidates:
            try:
                self.update_listing_status(listing_id, None, "expired")
            except InvalidStateError:
                # sold or expired by someone else since the scan
                continue
            expired += 1
        if expired:
            logger.info("Expired %d listings older than %d days", expired, days)
        return expired

    # favorites

    def create_favorite(self, user_id: int, listing_id: int) -> None:
        def _create(db):
            crud.get_user(db, user_id)
            crud.get_listing(db, listing_id)
            if not crud.insert_favorite_if_absent(db, user_id, listing_id):
                raise ConflictError(f"listing {listing_id} is already a favorite of user {user_id}")

        self.ctx.run(_create)
