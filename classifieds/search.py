# classifieds/search.py
"""Listing search: filters, free-text ranking and offset pagination."""
import heapq
from typing import List, Tuple

from sqlalchemy import func, or_

from . import crud, schemas
from .categories import walk_descendants
from .db import AppContext
from .errors import NotFoundError, ValidationError
from .models import Listing
from .schemas import SortKey
from .utils import like_pattern, logger, tokenize, utcnow

SCAN_BATCH = 500

_ORDERINGS = {
    SortKey.newest: (Listing.created_at.desc(), Listing.id.desc()),
    SortKey.relevance: (Listing.created_at.desc(), Listing.id.desc()),
    SortKey.price_asc: (Listing.price.asc(), Listing.id.asc()),
    SortKey.price_desc: (Listing.price.desc(), Listing.id.asc()),
}


class ListingQueryEngine:
    """Ranked, paginated listing search over the entity store.

    With a text query every matching listing is scored by the context's
    RankingPolicy and ties go to the lower listing id. Without one, results
    follow the requested sort with an id tie-break so repeated requests page
    identically. Searching never touches view counters.
    """

    def __init__(self, ctx: AppContext, clock=utcnow):
        self.ctx = ctx
        self.clock = clock

    def _parse(self, filter, kwargs) -> schemas.ListingFilter:
        flt = schemas.coerce(schemas.ListingFilter, filter if filter is not None else kwargs)
        if flt.page_size > self.ctx.settings.search_max_page_size:
            raise ValidationError(f"page_size must be at most {self.ctx.settings.search_max_page_size}")
        if flt.price_min is not None and flt.price_max is not None and flt.price_min > flt.price_max:
            raise ValidationError("price_min must not exceed price_max")
        return flt

    def search(self, filter=None, **kwargs) -> schemas.ListingPage:
        return self.ctx.run(self._search, self._parse(filter, kwargs))

    def count(self, filter=None, **kwargs) -> int:
        """Unpaged number of listings matching `filter`."""
        flt = self._parse(filter, kwargs)

        def _count(db):
            conds, _ = self._conditions(db, flt)
            return int(db.query(func.count(Listing.id)).filter(*conds).scalar() or 0)

        return self.ctx.run(_count)

    def _conditions(self, db, flt: schemas.ListingFilter) -> Tuple[list, List[str]]:
        conds = [Listing.status == flt.status.value]
        if flt.category_id is not None:
            try:
                crud.get_category(db, flt.category_id)
            except NotFoundError:
                raise ValidationError(f"category {flt.category_id} does not exist") from None
            ids = walk_descendants(crud.category_edges(db), flt.category_id)
            conds.append(Listing.category_id.in_(sorted(ids)))
        location = (flt.location or "").strip()
        if location:
            conds.append(Listing.location.ilike(like_pattern(location), escape="\\"))
        if flt.price_min is not None:
            conds.append(Listing.price >= flt.price_min)
        if flt.price_max is not None:
            conds.append(Listing.price <= flt.price_max)
        terms = list(dict.fromkeys(tokenize(flt.q)))
        if terms:
            conds.append(or_(*[
                or_(
                    Listing.title.ilike(like_pattern(t), escape="\\"),
                    Listing.description.ilike(like_pattern(t), escape="\\"),
                )
                for t in terms
            ]))
        return conds, terms

    def _search(self, db, flt: schemas.ListingFilter) -> schemas.ListingPage:
        conds, terms = self._conditions(db, flt)
        offset = (flt.page - 1) * flt.page_size
        if terms:
            total, rows = self._ranked(db, conds, flt.q, offset, flt.page_size)
        else:
            total = int(db.query(func.count(Listing.id)).filter(*conds).scalar() or 0)
            rows = []
            if offset < total:
                rows = (
                    db.query(Listing)
                    .filter(*conds)
                    .order_by(*_ORDERINGS[flt.sort])
                    .offset(offset)
                    .limit(flt.page_size)
                    .all()
                )
        logger.debug("search q=%r category=%s page=%s -> %d/%d", flt.q, flt.category_id, flt.page, len(rows), total)
        return schemas.ListingPage(
            items=[schemas.ListingOut.model_validate(r) for r in rows],
            total=total,
            page=flt.page,
            page_size=flt.page_size,
        )

    def _ranked(self, db, conds, query: str, offset: int, limit: int):
        """Score every candidate, keep the best `offset + limit`, load only the page.

        The candidate scan also yields the total, so no separate count query
        runs for text searches.
        """
        policy = self.ctx.ranking
        now = self.clock()
        keep = offset + limit
        candidates = (
            db.query(Listing.id, Listing.title, Listing.description, Listing.featured, Listing.created_at)
            .filter(*conds)
            .yield_per(SCAN_BATCH)
        )
        total = 0
        best: list = []
        for lid, title, description, featured, created_at in candidates:
            total += 1
            score = policy.score(query, title, description, bool(featured), created_at, now)
            entry = (-score, int(lid))
            if len(best) < keep:
                heapq.heappush(best, _Worst(entry))
            elif entry < best[0].key:
                heapq.heapreplace(best, _Worst(entry))
        ordered = sorted(w.key for w in best)[offset:keep]
        page_ids = [lid for _, lid in ordered]
        if not page_ids:
            return total, []
        by_id = {r.id: r for r in db.query(Listing).filter(Listing.id.in_(page_ids)).all()}
        return total, [by_id[i] for i in page_ids if i in by_id]


class _Worst:
    """Heap entry that puts the lowest-ranked candidate on top."""

    __slots__ = ("key",)

    def __init__(self, key):
        self.key = key

    def __lt__(self, other):
        return self.key > other.key
