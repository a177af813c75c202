# tests/test_favorites.py
import threading

import pytest

from classifieds.errors import NotFoundError
from classifieds.models import Favorite, Listing


def test_toggle_twice(mp, users, make_listing):
    listing = make_listing()
    uid = users["buyer"].id
    assert mp.toggle_favorite(uid, listing.id).added is True
    assert [l.id for l in mp.list_favorites(uid)] == [listing.id]
    assert mp.favorites.is_favorite(uid, listing.id) is True
    assert mp.toggle_favorite(uid, listing.id).added is False
    assert mp.list_favorites(uid) == []
    assert mp.favorites.is_favorite(uid, listing.id) is False


def test_toggle_unknown_listing(mp, users, cats):
    with pytest.raises(NotFoundError):
        mp.toggle_favorite(users["buyer"].id, 5555)


def test_list_favorites_newest_first(mp, users, make_listing):
    uid = users["buyer"].id
    a, b, c = make_listing(title="a"), make_listing(title="b"), make_listing(title="c")
    for listing in (b, a, c):
        mp.toggle_favorite(uid, listing.id)
    assert [l.id for l in mp.list_favorites(uid)] == [c.id, a.id, b.id]
    assert mp.favorites.favorite_count(a.id) == 1


def test_dangling_favorite_is_skipped(mp, ctx, users, make_listing):
    uid = users["buyer"].id
    keep = make_listing(title="keep")
    gone = make_listing(title="gone")
    mp.toggle_favorite(uid, keep.id)
    mp.toggle_favorite(uid, gone.id)
    # simulate a listing removed behind the registry's back
    with ctx.engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        conn.execute(Listing.__table__.delete().where(Listing.__table__.c.id == gone.id))
        conn.commit()
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()
    assert [l.id for l in mp.list_favorites(uid)] == [keep.id]


def test_concurrent_toggles_never_duplicate(mp, ctx, users, make_listing):
    listing = make_listing()
    uid = users["buyer"].id
    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    errors = []

    def worker():
        barrier.wait()
        try:
            results.append(mp.toggle_favorite(uid, listing.id).added)
        except Exception as e:  # surfaced below
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with ctx.session_scope() as db:
        rows = db.query(Favorite).filter_by(user_id=uid, listing_id=listing.id).count()
    assert rows in (0, 1)
    # the booleans describe some serial order of adds and removes
    assert results.count(True) - results.count(False) == rows
