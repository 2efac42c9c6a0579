# tests/test_cache_store.py
import json

import fakeredis
import pytest

from menu_site.database import MemoryCacheStore, SqliteCacheStore, RedisCacheStore, DEFAULT_TTL


def _fake_redis(connected=True):
    server = fakeredis.FakeServer()
    server.connected = connected
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture(params=["memory", "sqlite", "redis"])
def store(request, clock, tmp_path):
    if request.param == "memory":
        s = MemoryCacheStore(clock=clock)
    elif request.param == "sqlite":
        s = SqliteCacheStore(str(tmp_path / "cache.db"), clock=clock)
    else:
        s = RedisCacheStore(client=_fake_redis(), clock=clock)
    yield s
    s.close()


def test_get_returns_payload_until_expiry(store, clock):
    assert store.set("categories", [{"id": "c1"}], ttl=60)
    assert store.get("categories") == [{"id": "c1"}]
    clock.advance(59)
    assert store.get("categories") == [{"id": "c1"}]
    clock.advance(1)
    assert store.get("categories") is None


def test_stale_read_ignores_expiry(store, clock):
    store.set("product_p1", {"id": "p1", "name": "Burger"}, ttl=10)
    clock.advance(3600)
    assert store.get("product_p1") is None
    assert store.get_stale("product_p1") == {"id": "p1", "name": "Burger"}


def test_missing_key(store):
    assert store.get("nope") is None
    assert store.get_stale("nope") is None


def test_set_is_a_full_replace(store, clock):
    store.set("k", {"a": 1, "b": 2}, ttl=10)
    clock.advance(5)
    store.set("k", {"a": 3}, ttl=10)
    assert store.get("k") == {"a": 3}
    [entry] = store.entries()
    assert entry.created_at == clock.now
    assert entry.expires_at == clock.now + 10


def test_clear_and_clear_all_return_counts(store):
    store.set("a", 1)
    store.set("b", 2)
    store.set("c", 3)
    assert store.clear("a") == 1
    assert store.clear("a") == 0
    assert store.clear_all() == 2
    assert store.entries() == []


def test_sweep_expired(store, clock):
    store.set("short", "x", ttl=10)
    store.set("long", "y", ttl=DEFAULT_TTL)
    clock.advance(10)
    assert store.sweep_expired() == 1
    assert [e.key for e in store.entries()] == ["long"]


def test_entries_report_size_and_age(store, clock):
    store.set("categories", ["é"], ttl=100)
    clock.advance(50)
    [entry] = store.entries()
    assert entry.key == "categories"
    assert entry.size == len(json.dumps(["é"], ensure_ascii=False).encode("utf-8"))
    assert entry.age_seconds(clock.now) == 50
    assert not entry.expired(clock.now)


def test_unencodable_payload_is_a_logged_noop(store):
    assert store.set("bad", {"when": object()}) is False
    assert store.get("bad") is None


def test_default_ttl_is_five_hours():
    assert DEFAULT_TTL == 18000


def test_redis_errors_become_misses(clock):
    store = RedisCacheStore(client=_fake_redis(connected=False), clock=clock)
    assert store.set("k", 1) is False
    assert store.get("k") is None
    assert store.get_stale("k") is None
    assert store.clear_all() == 0
    assert store.sweep_expired() == 0
    assert store.entries() == []


def test_redis_keeps_entries_without_server_ttl(clock):
    fake = _fake_redis()
    store = RedisCacheStore(client=fake, prefix="t:", clock=clock)
    store.set("modifier_m1", {"id": "m1"}, ttl=5)
    envelope = json.loads(fake.get("t:modifier_m1"))
    assert envelope["expires_at"] == clock.now + 5
    assert json.loads(envelope["payload"]) == {"id": "m1"}
    assert fake.ttl("t:modifier_m1") == -1


def test_redis_ignores_keys_outside_its_prefix(clock):
    fake = _fake_redis()
    fake.set("other:thing", "x")
    store = RedisCacheStore(client=fake, prefix="t:", clock=clock)
    store.set("categories", [])
    assert [e.key for e in store.entries()] == ["categories"]
    assert store.clear_all() == 1
    assert fake.get("other:thing") == "x"


@pytest.mark.parametrize("raw", [
    "42",
    "[1, 2]",
    json.dumps({"payload": "{}", "created_at": 1.0}),
    json.dumps({"payload": {"id": "p1"}, "created_at": 1.0, "expires_at": 2.0}),
    json.dumps({"payload": "{}", "created_at": "yesterday", "expires_at": 2.0}),
])
def test_redis_misshapen_envelope_is_dropped(clock, raw):
    fake = _fake_redis()
    fake.set("t:product_p1", raw)
    store = RedisCacheStore(client=fake, prefix="t:", clock=clock)

    assert store.get("product_p1") is None
    assert fake.get("t:product_p1") is None

    fake.set("t:product_p1", raw)
    assert store.get_stale("product_p1") is None
    fake.set("t:product_p1", raw)
    assert store.entries() == []
    fake.set("t:product_p1", raw)
    assert store.sweep_expired() == 0


def test_sqlite_survives_reopen(tmp_path, clock):
    path = str(tmp_path / "cache.db")
    first = SqliteCacheStore(path, clock=clock)
    first.set("categories", [{"id": "c1"}], ttl=60)
    first.close()

    second = SqliteCacheStore(path, clock=clock)
    assert second.get("categories") == [{"id": "c1"}]
    second.close()


def test_sqlite_corrupt_entry_is_dropped(tmp_path, clock):
    store = SqliteCacheStore(str(tmp_path / "cache.db"), clock=clock)
    store._store("broken", "{not json", clock.now, clock.now + 60)
    assert store.get("broken") is None
    assert store.entries() == []
    store.close()


def test_sqlite_io_error_after_close_is_swallowed(tmp_path, clock):
    store = SqliteCacheStore(str(tmp_path / "cache.db"), clock=clock)
    store.close()
    assert store.get("k") is None
    assert store.set("k", 1) is False
    assert store.clear("k") == 0
