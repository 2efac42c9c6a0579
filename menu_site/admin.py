# menu_site/admin.py
import asyncio
import hmac
from typing import Optional, Dict, Any

from fastapi import HTTPException

from .catalog import CatalogClient
from .database import CacheStore

# Cache administration. `status` is open; everything else needs the shared
# sync secret.

MUTATING_ACTIONS = ("sync", "clear", "refresh", "sweep")


def check_secret(action: str, provided: Optional[str], expected: Optional[str]) -> None:
    if action not in MUTATING_ACTIONS:
        return
    if not expected:
        raise HTTPException(status_code=403, detail="Cache administration is disabled: no sync secret configured")
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="Unauthorized: Invalid sync key")


def cache_status_logic(cache: CacheStore, ttl: int) -> Dict[str, Any]:
    now = cache.clock()
    entries = []
    for e in cache.entries():
        entries.append({
            "key": e.key,
            "age_hours": round(e.age_seconds(now) / 3600, 2),
            "expired": e.expired(now),
            "size": e.size,
        })
    return {
        "success": True,
        "cache_expiry_hours": round(ttl / 3600, 2),
        "total_entries": len(entries),
        "entries": entries,
    }


async def cache_sync_logic(cache: CacheStore, catalog: CatalogClient) -> Dict[str, Any]:
    deleted = await asyncio.to_thread(cache.clear_all)
    # warm the cache
    categories = await catalog.list_categories(force_refresh=True)
    return {
        "success": True,
        "message": "Cache cleared and synced",
        "deleted_entries": deleted,
        "categories": len(categories),
    }


def cache_clear_logic(cache: CacheStore) -> Dict[str, Any]:
    deleted = cache.clear_all()
    return {"success": True, "message": "Cache cleared", "deleted_entries": deleted}


def cache_refresh_logic(cache: CacheStore, cache_key: Optional[str]) -> Dict[str, Any]:
    if not cache_key:
        return {"success": False, "message": "cache_key parameter required for refresh"}
    removed = cache.clear(cache_key)
    return {"success": True, "message": f"Cache refreshed for key: {cache_key}", "deleted_entries": removed}


def cache_sweep_logic(cache: CacheStore) -> Dict[str, Any]:
    removed = cache.sweep_expired()
    return {"success": True, "message": "Expired entries removed", "deleted_entries": removed}
