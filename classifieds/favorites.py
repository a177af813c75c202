# classifieds/favorites.py
"""Favorite registry with atomic toggle semantics.

A toggle never checks-then-inserts. It first tries a conditional delete; if
nothing was there it tries a conflict-ignoring insert. When a concurrent
toggle slips in between the two statements the insert reports a conflict and
the loop goes round again, so the returned booleans always describe a
serial order of toggles and the (user, listing) unique constraint holds.
"""
from typing import List

from sqlalchemy import func

from . import crud, schemas
from .db import AppContext
from .errors import ConflictError
from .models import Favorite, Listing
from .utils import logger

TOGGLE_ATTEMPTS = 10


def _require_pair(db, user_id: int, listing_id: int):
    crud.get_user(db, user_id)
    crud.get_listing(db, listing_id)


class FavoriteRegistry:
    def __init__(self, ctx: AppContext):
        self.ctx = ctx

    def toggle(self, user_id: int, listing_id: int) -> schemas.ToggleResult:
        self.ctx.run(_require_pair, user_id, listing_id)
        for _ in range(TOGGLE_ATTEMPTS):
            if self.ctx.run(crud.delete_favorite, user_id, listing_id):
                logger.info("User %s unfavorited listing %s", user_id, listing_id)
                return schemas.ToggleResult(added=False)
            if self.ctx.run(crud.insert_favorite_if_absent, user_id, listing_id):
                logger.info("User %s favorited listing %s", user_id, listing_id)
                return schemas.ToggleResult(added=True)
            logger.warning("Favorite toggle raced for user %s listing %s, retrying", user_id, listing_id)
        raise ConflictError(f"favorite for listing {listing_id} kept changing concurrently")

    def is_favorite(self, user_id: int, listing_id: int) -> bool:
        def _exists(db):
            return db.get(Favorite, (user_id, listing_id)) is not None

        return self.ctx.run(_exists)

    def favorite_count(self, listing_id: int) -> int:
        def _count(db):
            return int(
                db.query(func.count()).select_from(Favorite)
                .filter(Favorite.listing_id == listing_id).scalar() or 0
            )

        return self.ctx.run(_count)

    def list_favorites(self, user_id: int) -> List[schemas.ListingOut]:
        """The user's favorite listings, most recently saved first.

        Favorites pointing at a listing that no longer exists are skipped.
        """
        def _list(db):
            crud.get_user(db, user_id)
            favs = crud.favorites_for_user(db, user_id)
            if not favs:
                return []
            wanted = [f.listing_id for f in favs]
            by_id = {r.id: r for r in db.query(Listing).filter(Listing.id.in_(wanted)).all()}
            out = []
            for fav in favs:
                listing = by_id.get(fav.listing_id)
                if listing is None:
                    logger.warning("Skipping dangling favorite user=%s listing=%s", user_id, fav.listing_id)
                    continue
                out.append(schemas.ListingOut.model_validate(listing))
            return out

        return self.ctx.run(_list)
