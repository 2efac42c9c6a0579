# menu_site/catalog.py
import asyncio
import logging
import weakref
from typing import Optional, Dict, Any, List, Callable, Awaitable

import httpx

from .core import is_visible, visible_only, filter_modifier
from .database import CacheStore, DEFAULT_TTL
from .errors import (
    UpstreamError, TransportError, UpstreamStatusError, MalformedResponseError
)

# Single point of contact with the upstream catalog API. Every cached
# operation reads the cache first, fetches on a miss (or forced refresh) and,
# when the fetch fails, falls back to whatever is cached for the key no
# matter how old it is.

logger = logging.getLogger(__name__)

MAX_PAGES = 500


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    msg = body.get("message") or body.get("error")
    return str(msg) if msg else None


class CatalogClient:
    def __init__(self, base_url: str, token: str, cache: CacheStore,
                 ttl: int = DEFAULT_TTL, timeout: float = 20.0,
                 http: Optional[httpx.AsyncClient] = None, max_pages: int = MAX_PAGES):
        self.base_url = base_url.rstrip("/") + "/"
        self.cache = cache
        self.ttl = ttl
        self.max_pages = max_pages
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if http is None:
            http = httpx.AsyncClient(
                base_url=self.base_url, headers=headers, timeout=timeout,
                follow_redirects=True, verify=True,
            )
        else:
            http.headers.update(headers)
        self._http = http
        # a key's lock lives only while some caller holds or waits on it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def close(self) -> None:
        await self._http.aclose()

    def _get_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ---------------------------
    # Transport
    # ---------------------------
    async def fetch(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            r = await self._http.get(self.base_url + endpoint, params=params)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout calling {endpoint}: {e}", endpoint=endpoint) from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP transport error calling {endpoint}: {e}", endpoint=endpoint) from e

        if r.status_code != 200:
            err = UpstreamStatusError(r.status_code, _error_message(r), endpoint=endpoint)
            if err.is_unauthorized:
                logger.error("Upstream rejected the API token on %s: %s", endpoint, err)
            else:
                logger.error("Upstream error on %s: %s", endpoint, err)
            raise err

        try:
            data = r.json()
        except ValueError as e:
            raise MalformedResponseError(f"Invalid JSON response from {endpoint}", endpoint=endpoint) from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Unexpected response envelope from {endpoint}", endpoint=endpoint)
        return data

    async def _paginate(self, endpoint: str) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        page = 1
        while True:
            if page > self.max_pages:
                raise MalformedResponseError(
                    f"{endpoint} still paginating after {self.max_pages} pages", endpoint=endpoint
                )
            data = await self.fetch(endpoint, params={"page": page})
            items = data.get("data") or []
            if not isinstance(items, list):
                raise MalformedResponseError(f"{endpoint} page {page} has no data list", endpoint=endpoint)
            out.extend(visible_only(items))
            links = data.get("links") or {}
            if isinstance(links, dict) and links.get("next"):
                page += 1
            else:
                return out

    async def _cached(self, key: str, force_refresh: bool,
                      loader: Callable[[], Awaitable[Any]]) -> Any:
        # store calls may block (sqlite, redis), keep them off the event loop
        if not force_refresh:
            cached = await asyncio.to_thread(self.cache.get, key)
            if cached is not None:
                return cached

        async with self._get_lock(key):
            if not force_refresh:
                # another caller may have filled it while we waited
                cached = await asyncio.to_thread(self.cache.get, key)
                if cached is not None:
                    return cached
            try:
                result = await loader()
            except UpstreamError as e:
                stale = await asyncio.to_thread(self.cache.get_stale, key)
                if stale is not None:
                    logger.warning("API error, using cached %s: %s", key, e)
                    return stale
                logger.error("Error fetching %s: %s", key, e)
                raise
            if result is None:
                # gone upstream, drop any old copy
                await asyncio.to_thread(self.cache.clear, key)
            else:
                await asyncio.to_thread(self.cache.set, key, result, self.ttl)
            return result

    # ---------------------------
    # Categories & products
    # ---------------------------
    async def list_categories(self, force_refresh: bool = False) -> List[Dict[str, Any]]:
        return await self._cached("categories", force_refresh, lambda: self._paginate("categories"))

    async def list_products_by_category(self, category_id: str, force_refresh: bool = False) -> List[Dict[str, Any]]:
        async def load():
            data = await self.fetch(f"categories/{category_id}")
            category = data.get("data") or {}
            products = category.get("products") if isinstance(category, dict) else None
            return visible_only(products or [])

        return await self._cached(f"products_category_{category_id}", force_refresh, load)

    async def list_all_products(self) -> List[Dict[str, Any]]:
        try:
            return await self._paginate("products")
        except UpstreamError as e:
            logger.error("Error fetching products: %s", e)
            raise

    async def get_product(self, product_id: str, force_refresh: bool = False) -> Optional[Dict[str, Any]]:
        async def load():
            data = await self.fetch(f"products/{product_id}")
            product = data.get("data")
            if not isinstance(product, dict) or not is_visible(product):
                return None
            product = dict(product)
            if isinstance(product.get("modifiers"), list):
                product["modifiers"] = [filter_modifier(m) for m in visible_only(product["modifiers"])]
            return product

        return await self._cached(f"product_{product_id}", force_refresh, load)

    # ---------------------------
    # Modifiers
    # ---------------------------
    async def list_all_modifiers(self) -> List[Dict[str, Any]]:
        try:
            return await self._paginate("modifiers")
        except UpstreamError as e:
            logger.error("Error fetching modifiers: %s", e)
            raise

    async def get_modifier(self, modifier_id: str, force_refresh: bool = False) -> Optional[Dict[str, Any]]:
        async def load():
            data = await self.fetch(f"modifiers/{modifier_id}")
            modifier = data.get("data")
            if not isinstance(modifier, dict) or not is_visible(modifier):
                return None
            return filter_modifier(modifier)

        return await self._cached(f"modifier_{modifier_id}", force_refresh, load)
