# menu_site/database.py
import json
import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import redis

from .errors import CacheIOError

# Cache stores for upstream catalog responses. Three backends share one
# contract: get / get_stale / set / clear / clear_all / sweep_expired /
# entries / close. Storage errors never leave a store: reads turn into a
# miss, writes into a logged no-op.

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60 * 60  # 5 hours

Clock = Callable[[], float]


@dataclass
class CacheEntryInfo:
    key: str
    created_at: float
    expires_at: float
    size: int

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.created_at)

    def expired(self, now: float) -> bool:
        return self.expires_at <= now


def _encode(key: str, payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise CacheIOError(f"failed to encode cache data for key {key}: {e}") from e


class CacheStore:
    """Shared error handling; backends implement the underscore methods."""

    def __init__(self, clock: Clock = time.time):
        self.clock = clock

    def get(self, key: str) -> Optional[Any]:
        return self._read(key, stale=False)

    def get_stale(self, key: str) -> Optional[Any]:
        return self._read(key, stale=True)

    def _read(self, key: str, stale: bool) -> Optional[Any]:
        try:
            row = self._load(key)
        except CacheIOError as e:
            logger.error("Cache get error for %s: %s", key, e)
            return None
        if row is None:
            return None
        raw, expires_at = row
        if not stale and expires_at <= self.clock():
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.error("Cache entry %s is not valid JSON, dropping it", key)
            self.clear(key)
            return None

    def set(self, key: str, payload: Any, ttl: int = DEFAULT_TTL) -> bool:
        try:
            raw = _encode(key, payload)
            now = self.clock()
            self._store(key, raw, now, now + ttl)
            return True
        except CacheIOError as e:
            logger.error("Cache set error for %s: %s", key, e)
            return False

    def clear(self, key: str) -> int:
        try:
            return self._delete(key)
        except CacheIOError as e:
            logger.error("Cache clear error for %s: %s", key, e)
            return 0

    def clear_all(self) -> int:
        try:
            return self._delete_all()
        except CacheIOError as e:
            logger.error("Cache clear_all error: %s", e)
            return 0

    def sweep_expired(self) -> int:
        try:
            return self._delete_expired(self.clock())
        except CacheIOError as e:
            logger.error("Cache sweep error: %s", e)
            return 0

    def entries(self) -> List[CacheEntryInfo]:
        try:
            return sorted(self._list(), key=lambda e: e.key)
        except CacheIOError as e:
            logger.error("Cache listing error: %s", e)
            return []

    def close(self) -> None:
        pass

    # backend hooks
    def _load(self, key):
        raise NotImplementedError

    def _store(self, key, raw, created_at, expires_at):
        raise NotImplementedError

    def _delete(self, key):
        raise NotImplementedError

    def _delete_all(self):
        raise NotImplementedError

    def _delete_expired(self, now):
        raise NotImplementedError

    def _list(self):
        raise NotImplementedError


# ---------------------------
# In-memory
# ---------------------------
class MemoryCacheStore(CacheStore):
    def __init__(self, clock: Clock = time.time):
        super().__init__(clock)
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _load(self, key):
        entry = self._data.get(key)
        if entry is None:
            return None
        return entry["raw"], entry["expires_at"]

    def _store(self, key, raw, created_at, expires_at):
        entry = {"raw": raw, "created_at": created_at, "expires_at": expires_at}
        with self._lock:
            self._data[key] = entry

    def _delete(self, key):
        with self._lock:
            return 1 if self._data.pop(key, None) is not None else 0

    def _delete_all(self):
        with self._lock:
            n = len(self._data)
            self._data.clear()
            return n

    def _delete_expired(self, now):
        with self._lock:
            dead = [k for k, e in self._data.items() if e["expires_at"] <= now]
            for k in dead:
                del self._data[k]
            return len(dead)

    def _list(self):
        with self._lock:
            items = list(self._data.items())
        return [
            CacheEntryInfo(k, e["created_at"], e["expires_at"], len(e["raw"].encode("utf-8")))
            for k, e in items
        ]


# ---------------------------
# SQLite
# ---------------------------
_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache (
    cache_key TEXT PRIMARY KEY,
    cache_data TEXT NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    expires_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_expires_at ON cache (expires_at);
"""

_UPSERT = """
INSERT INTO cache (cache_key, cache_data, created_at, updated_at, expires_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(cache_key) DO UPDATE SET
    cache_data = excluded.cache_data,
    created_at = excluded.created_at,
    updated_at = excluded.updated_at,
    expires_at = excluded.expires_at
"""


class SqliteCacheStore(CacheStore):
    def __init__(self, path: str, clock: Clock = time.time):
        super().__init__(clock)
        self.path = path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise CacheIOError(f"cannot open cache database {path}: {e}") from e

    def _execute(self, sql: str, params=()):
        try:
            with self._lock:
                cur = self._conn.execute(sql, params)
                return cur.rowcount, cur.fetchall()
        except sqlite3.Error as e:
            raise CacheIOError(str(e)) from e

    def _load(self, key):
        _, rows = self._execute("SELECT cache_data, expires_at FROM cache WHERE cache_key = ?", (key,))
        return (rows[0][0], rows[0][1]) if rows else None

    def _store(self, key, raw, created_at, expires_at):
        self._execute(_UPSERT, (key, raw, created_at, created_at, expires_at))

    def _delete(self, key):
        count, _ = self._execute("DELETE FROM cache WHERE cache_key = ?", (key,))
        return count

    def _delete_all(self):
        count, _ = self._execute("DELETE FROM cache")
        return count

    def _delete_expired(self, now):
        count, _ = self._execute("DELETE FROM cache WHERE expires_at <= ?", (now,))
        return count

    def _list(self):
        _, rows = self._execute("SELECT cache_key, created_at, expires_at, length(CAST(cache_data AS BLOB)) FROM cache")
        return [CacheEntryInfo(k, c, e, s) for k, c, e, s in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# ---------------------------
# Redis
# ---------------------------
def _well_formed(env: Any) -> bool:
    if not isinstance(env, dict) or not isinstance(env.get("payload"), str):
        return False
    return all(
        isinstance(env.get(f), (int, float)) and not isinstance(env.get(f), bool)
        for f in ("created_at", "expires_at")
    )


class RedisCacheStore(CacheStore):
    """
    Stores a JSON envelope per key with no server-side TTL, so an entry past
    its logical expiry is still there for a stale read.
    """

    def __init__(self, url: Optional[str] = None, prefix: str = "menu_cache:",
                 client: Optional["redis.Redis"] = None, clock: Clock = time.time):
        super().__init__(clock)
        self.prefix = prefix
        self._client = client if client is not None else redis.from_url(url, decode_responses=True)

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _call(self, fn, *args):
        try:
            return fn(*args)
        except redis.RedisError as e:
            raise CacheIOError(str(e)) from e

    def _envelope(self, full_key: str) -> Optional[Dict[str, Any]]:
        raw = self._call(self._client.get, full_key)
        if not raw:
            return None
        try:
            env = json.loads(raw)
        except ValueError:
            logger.error("Cache envelope %s is not valid JSON, dropping it", full_key)
            self._call(self._client.delete, full_key)
            return None
        if not _well_formed(env):
            logger.error("Cache envelope %s has an unexpected shape, dropping it", full_key)
            self._call(self._client.delete, full_key)
            return None
        return env

    def _load(self, key):
        env = self._envelope(self._k(key))
        if env is None:
            return None
        return env["payload"], env["expires_at"]

    def _store(self, key, raw, created_at, expires_at):
        env = json.dumps({"payload": raw, "created_at": created_at, "expires_at": expires_at})
        self._call(self._client.set, self._k(key), env)

    def _keys(self) -> List[str]:
        return self._call(lambda: list(self._client.scan_iter(match=f"{self.prefix}*")))

    def _delete(self, key):
        return int(self._call(self._client.delete, self._k(key)))

    def _delete_all(self):
        keys = self._keys()
        if not keys:
            return 0
        return int(self._call(self._client.delete, *keys))

    def _delete_expired(self, now):
        dead = []
        for full_key in self._keys():
            env = self._envelope(full_key)
            if env is not None and env["expires_at"] <= now:
                dead.append(full_key)
        if not dead:
            return 0
        return int(self._call(self._client.delete, *dead))

    def _list(self):
        out = []
        for full_key in self._keys():
            env = self._envelope(full_key)
            if env is None:
                continue
            out.append(CacheEntryInfo(
                full_key[len(self.prefix):], env["created_at"], env["expires_at"],
                len(env["payload"].encode("utf-8")),
            ))
        return out

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as e:
            logger.warning("Error closing redis client: %s", e)
