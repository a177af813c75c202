# tests/conftest.py
import pytest

from classifieds.config import Settings
from classifieds.db import AppContext
from classifieds.services import Marketplace

PHOTO = "https://cdn.example.test/p/1.jpg"


@pytest.fixture
def ctx(tmp_path):
    # a file database so threads in the concurrency tests share state
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'classifieds.db'}",
        db_timeout_seconds=30,
        db_retry_tries=5,
        db_retry_delay=0.01,
    )
    context = AppContext(settings)
    context.create_all()
    yield context
    context.dispose()


@pytest.fixture
def mp(ctx):
    return Marketplace(ctx)


@pytest.fixture
def users(mp):
    def make(name):
        return mp.store.create_user({
            "display_name": name.title(),
            "email": f"{name}@example.test",
            "password_hash": "x" * 64,
            "location": "Springfield",
        })

    return {name: make(name) for name in ("seller", "buyer", "other")}


@pytest.fixture
def cats(mp):
    """Electronics -> (Mobile Phones -> Smartphones, Laptops); Furniture."""
    electronics = mp.categories.create_category({"slug": "electronics", "name": "Electronics"})
    phones = mp.categories.create_category(
        {"slug": "mobile-phones", "name": "Mobile Phones", "parent_id": electronics.id}
    )
    laptops = mp.categories.create_category(
        {"slug": "laptops", "name": "Laptops", "parent_id": electronics.id}
    )
    smartphones = mp.categories.create_category(
        {"slug": "smartphones", "name": "Smartphones", "parent_id": phones.id}
    )
    furniture = mp.categories.create_category({"slug": "furniture", "name": "Furniture"})
    return {
        "electronics": electronics,
        "phones": phones,
        "laptops": laptops,
        "smartphones": smartphones,
        "furniture": furniture,
    }


@pytest.fixture
def make_listing(mp, users, cats):
    def make(**overrides):
        payload = {
            "title": "Used phone",
            "description": "Works fine",
            "price": 100,
            "category_id": cats["phones"].id,
            "media": [PHOTO],
            "location": "Springfield",
        }
        seller_id = overrides.pop("seller_id", users["seller"].id)
        payload.update(overrides)
        return mp.create_listing(seller_id, payload)

    return make
