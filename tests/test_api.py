# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from classifieds.main import create_app

PHOTO = "https://cdn.example.test/p/1.jpg"


@pytest.fixture
def client(ctx):
    with TestClient(create_app(ctx)) as c:
        yield c


def _register(client, name):
    res = client.post("/users", json={
        "display_name": name,
        "email": f"{name.lower()}@example.test",
        "password_hash": "h" * 64,
    })
    assert res.status_code == 201, res.text
    return res.json()["id"]


def _as(user_id):
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def world(client):
    seller = _register(client, "Seller")
    buyer = _register(client, "Buyer")
    root = client.post("/categories", json={"slug": "electronics", "name": "Electronics"}, headers=_as(seller)).json()
    child = client.post(
        "/categories",
        json={"slug": "mobile-phones", "name": "Mobile Phones", "parent_id": root["id"]},
        headers=_as(seller),
    ).json()
    res = client.post("/listings", json={
        "title": "Pixel 7",
        "description": "mint condition phone",
        "price": 100,
        "category_id": child["id"],
        "media": [PHOTO],
        "location": "Springfield",
    }, headers=_as(seller))
    assert res.status_code == 201, res.text
    return {"seller": seller, "buyer": buyer, "root": root, "child": child, "listing": res.json()}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_search_and_status_flow(client, world):
    params = {"category_id": world["root"]["id"], "price_max": 200}
    body = client.get("/listings", params=params).json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == world["listing"]["id"]
    assert body["page"] == 1 and body["page_size"] == 20

    lid = world["listing"]["id"]
    res = client.post(f"/listings/{lid}/status", json={"status": "sold"}, headers=_as(world["seller"]))
    assert res.status_code == 200
    assert res.json()["status"] == "sold"
    assert client.get("/listings", params=params).json()["total"] == 0

    res = client.post(f"/listings/{lid}/status", json={"status": "expired"}, headers=_as(world["seller"]))
    assert res.status_code == 409
    assert res.json()["error"] == "invalid_state"


def test_error_mapping(client, world):
    assert client.get("/listings", params={"price_min": 5, "price_max": 1}).status_code == 400
    assert client.get("/listings", params={"category_id": 999}).json()["error"] == "validation_error"
    assert client.get("/listings/9999").status_code == 404
    lid = world["listing"]["id"]
    res = client.post(f"/listings/{lid}/status", json={"status": "sold"}, headers=_as(world["buyer"]))
    assert res.status_code == 403
    assert client.post(f"/listings/{lid}/favorite").status_code == 401
    dup = client.post("/users", json={"display_name": "x", "email": "SELLER@example.test", "password_hash": "h"})
    assert dup.status_code == 409


def test_detail_view_counts(client, world):
    lid = world["listing"]["id"]
    assert client.get(f"/listings/{lid}").json()["views"] == 1
    assert client.get(f"/listings/{lid}").json()["views"] == 2


def test_messaging_flow(client, world):
    lid, seller, buyer = world["listing"]["id"], world["seller"], world["buyer"]
    res = client.post("/messages", json={"listing_id": lid, "receiver_id": seller, "content": "still available?"},
                      headers=_as(buyer))
    assert res.status_code == 201
    msg = res.json()

    assert client.get("/messages/unread", headers=_as(seller)).json() == {"unread": 1}
    convs = client.get("/conversations", headers=_as(seller)).json()
    assert convs[0]["counterpart_id"] == buyer
    assert convs[0]["unread_count"] == 1

    thread = client.get(f"/conversations/{lid}/{buyer}", headers=_as(seller)).json()
    assert [m["id"] for m in thread] == [msg["id"]]

    assert client.post(f"/messages/{msg['id']}/read", headers=_as(buyer)).status_code == 403
    assert client.post(f"/messages/{msg['id']}/read", headers=_as(seller)).json()["read"] is True
    assert client.post(f"/messages/{msg['id']}/read", headers=_as(seller)).status_code == 200
    assert client.post(f"/conversations/{lid}/{buyer}/read", headers=_as(seller)).json() == {"marked": 0}

    bad = client.post("/messages", json={"listing_id": lid, "receiver_id": seller, "content": ""}, headers=_as(buyer))
    assert bad.status_code == 400


def test_favorites_flow(client, world):
    lid, buyer = world["listing"]["id"], world["buyer"]
    assert client.post(f"/listings/{lid}/favorite", headers=_as(buyer)).json() == {"added": True}
    assert [l["id"] for l in client.get("/favorites", headers=_as(buyer)).json()] == [lid]
    assert client.post(f"/listings/{lid}/favorite", headers=_as(buyer)).json() == {"added": False}
    assert client.get("/favorites", headers=_as(buyer)).json() == []


def test_categories_endpoints(client, world):
    tree = client.get("/categories").json()
    assert tree[0]["slug"] == "electronics"
    assert tree[0]["children"][0]["slug"] == "mobile-phones"
    desc = client.get(f"/categories/{world['root']['id']}/descendants").json()
    assert desc == sorted([world["root"]["id"], world["child"]["id"]])
    res = client.patch(
        f"/categories/{world['root']['id']}", json={"parent_id": world["child"]["id"]}, headers=_as(world["seller"])
    )
    assert res.status_code == 400
    assert res.json()["error"] == "category_cycle"


def test_profile_and_seller_listings(client, world):
    res = client.patch("/users/me", json={"location": "Capital City"}, headers=_as(world["buyer"]))
    assert res.json()["location"] == "Capital City"
    assert "password_hash" not in res.json()
    mine = client.get(f"/users/{world['seller']}/listings").json()
    assert [l["id"] for l in mine] == [world["listing"]["id"]]


def test_category_patch_requires_parent_id(client, world):
    child = world["child"]
    res = client.patch(f"/categories/{child['id']}", json={"name": "Phones"}, headers=_as(world["seller"]))
    assert res.status_code == 400
    assert res.json()["error"] == "validation_error"
    tree = client.get("/categories").json()
    assert tree[0]["children"][0]["id"] == child["id"]

    res = client.patch(f"/categories/{child['id']}", json={"parent_id": None}, headers=_as(world["seller"]))
    assert res.status_code == 200
    assert res.json()["parent_id"] is None


def test_malformed_bodies_use_error_shape(client, world):
    seller = world["seller"]
    res = client.post("/listings", json={"title": "No price", "category_id": world["child"]["id"], "media": [PHOTO]},
                      headers=_as(seller))
    assert res.status_code == 400
    assert res.json()["error"] == "validation_error"
    assert "price" in res.json()["detail"]

    lid = world["listing"]["id"]
    res = client.patch(f"/listings/{lid}", json={"price": 10_000_000_000}, headers=_as(seller))
    assert res.status_code == 400
    res = client.post(f"/listings/{lid}/status", json={"status": "archived"}, headers=_as(seller))
    assert res.status_code == 400
    res = client.patch("/users/me", json={"display_name": None}, headers=_as(world["buyer"]))
    assert res.status_code == 400
    assert client.get(f"/users/{world['buyer']}").json()["display_name"] == "Buyer"


def test_request_schemas_published(client):
    spec = client.get("/openapi.json").json()
    body = spec["paths"]["/listings"]["post"]["requestBody"]["content"]["application/json"]["schema"]
    assert body["$ref"].endswith("/ListingCreate")
