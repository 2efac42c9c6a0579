# tests/test_app.py
import pytest
from fastapi.testclient import TestClient

from menu_site.config import MenuOverrides, Settings
from menu_site.main import create_app


def _seed(upstream):
    upstream.add_pages("categories", [[
        {"id": "c1", "name": "Burgers"},
        {"id": "c2", "name": "Drinks"},
        {"id": "c-hidden", "name": "Staff meals"},
        {"id": "c-gone", "name": "Old", "deleted_at": "2024-01-01"},
    ]])
    upstream.add("categories/c1", {"data": {"id": "c1", "products": [
        {"id": "p1", "name": "Classic", "price": 0, "modifiers": [
            {"id": "m1", "name": "Size", "options": [
                {"id": "o1", "name": "Small", "price": 20},
                {"id": "o2", "name": "Large", "price": 30},
            ]},
        ]},
        {"id": "p2", "name": "Kids Meal", "price": 12.5},
        {"id": "p-hidden", "name": "Secret", "price": 99},
        {"id": "p-off", "name": "Seasonal", "price": 50, "is_active": False},
    ]}})


@pytest.fixture
def client(upstream, cache, catalog):
    _seed(upstream)
    settings = Settings(api_token="test-token", cache_backend="memory", sync_secret="s3cret")
    overrides = MenuOverrides(hidden_categories=["c-hidden"], hidden_products=["p-hidden"])
    app = create_app(settings, overrides=overrides, cache=cache, catalog=catalog)
    return TestClient(app)


def test_category_page_hides_hidden_and_deleted(client):
    r = client.get("/")
    assert r.status_code == 200
    body = r.json()
    assert body["error"] is None
    assert [c["id"] for c in body["categories"]] == ["c1", "c2"]


def test_product_page_carries_display_prices(client):
    body = client.get("/", params={"category": "c1"}).json()
    assert body["category"]["name"] == "Burgers"
    products = {p["id"]: p for p in body["products"]}
    assert set(products) == {"p1", "p2"}
    assert products["p1"]["display_price"] == "20.00 EGP (Single) / 30.00 EGP (Double)"
    assert products["p1"]["has_modifier_pricing"] is True
    assert products["p2"]["display_price"] == "12.50 EGP"
    assert products["p2"]["has_modifier_pricing"] is False


def test_unknown_category(client):
    assert client.get("/", params={"category": "nope"}).json()["error"] == "Category not found"
    assert client.get("/categories/nope/products").status_code == 404
    assert client.get("/categories/c-hidden/products").status_code == 404


def test_upstream_failure_becomes_section_error(client, upstream):
    upstream.fail_with = 500
    body = client.get("/categories").json()
    assert body["categories"] == []
    assert "HTTP 500" in body["error"]


def test_cached_pages_survive_upstream_outage(client, upstream):
    client.get("/categories/c1/products")
    upstream.fail_with = 503
    body = client.get("/categories/c1/products").json()
    assert body["error"] is None
    assert len(body["products"]) == 2


def test_status_is_open(client):
    client.get("/categories")
    body = client.get("/sync").json()
    assert body["success"] is True
    assert body["cache_expiry_hours"] == 5
    assert [e["key"] for e in body["entries"]] == ["categories"]
    assert body["entries"][0]["expired"] is False


@pytest.mark.parametrize("action", ["sync", "clear", "refresh", "sweep"])
def test_mutating_actions_need_the_secret(client, action):
    assert client.get("/sync", params={"action": action}).status_code == 403
    assert client.get("/sync", params={"action": action, "secret": "wrong"}).status_code == 403


def test_clear_and_refresh(client, cache):
    client.get("/categories/c1/products")
    r = client.get("/sync", params={"action": "refresh", "secret": "s3cret", "cache_key": "products_category_c1"})
    assert r.json()["deleted_entries"] == 1
    assert cache.get("products_category_c1") is None

    r = client.get("/sync", params={"action": "refresh", "secret": "s3cret"})
    assert r.json()["success"] is False

    r = client.get("/sync", params={"action": "clear", "secret": "s3cret"})
    assert r.json() == {"success": True, "message": "Cache cleared", "deleted_entries": 1}


def test_sync_clears_and_warms(client, cache, upstream):
    cache.set("product_p1", {"id": "p1"})
    body = client.get("/sync", params={"action": "sync", "secret": "s3cret"}).json()
    assert body["success"] is True
    assert body["deleted_entries"] == 1
    assert [e.key for e in cache.entries()] == ["categories"]


def test_sync_failure_is_500(client, upstream):
    upstream.fail_with = 502
    r = client.get("/sync", params={"action": "sync", "secret": "s3cret"})
    assert r.status_code == 500
    assert r.json()["success"] is False


def test_sweep(client, cache, clock):
    cache.set("old", 1, ttl=10)
    clock.advance(11)
    body = client.get("/sync", params={"action": "sweep", "secret": "s3cret"}).json()
    assert body["deleted_entries"] == 1


def test_admin_disabled_without_secret(upstream, cache, catalog):
    app = create_app(Settings(api_token="t", cache_backend="memory"), overrides=MenuOverrides(),
                     cache=cache, catalog=catalog)
    r = TestClient(app).get("/sync", params={"action": "clear", "secret": ""})
    assert r.status_code == 403
