# menu_site/main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .admin import (
    check_secret, cache_status_logic, cache_sync_logic, cache_clear_logic,
    cache_refresh_logic, cache_sweep_logic,
)
from .catalog import CatalogClient
from .config import Settings, MenuOverrides, load_settings, load_overrides
from .database import CacheStore, MemoryCacheStore, SqliteCacheStore, RedisCacheStore
from .errors import CacheIOError, ConfigurationError, UpstreamError
from .pricing import PriceResolver
from .views import category_page_logic, product_page_logic

logger = logging.getLogger(__name__)


def build_cache(settings: Settings) -> CacheStore:
    try:
        if settings.cache_backend == "memory":
            return MemoryCacheStore()
        if settings.cache_backend == "redis":
            return RedisCacheStore(settings.redis_url)
        return SqliteCacheStore(settings.cache_path)
    except CacheIOError as e:
        raise ConfigurationError(f"Cannot open {settings.cache_backend} cache: {e}") from e


def create_app(settings: Optional[Settings] = None,
               overrides: Optional[MenuOverrides] = None,
               cache: Optional[CacheStore] = None,
               catalog: Optional[CatalogClient] = None) -> FastAPI:
    settings = settings.validate_runtime() if settings is not None else load_settings()
    if overrides is None:
        overrides = load_overrides(settings.overrides_path)
    if cache is None:
        cache = build_cache(settings)
    if catalog is None:
        catalog = CatalogClient(
            settings.api_base_url, settings.api_token, cache,
            ttl=settings.cache_ttl_seconds, timeout=settings.http_timeout_seconds,
        )
    resolver = PriceResolver(catalog, overrides.pricing, currency=settings.currency)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await catalog.close()
        cache.close()

    app = FastAPI(title="menu-site", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.cache = cache
    app.state.catalog = catalog
    app.state.resolver = resolver
    app.state.hidden = overrides.hidden

    # ---------------------------
    # Menu
    # ---------------------------
    @app.get("/")
    async def index(category: Optional[str] = None):
        if category:
            return await product_page_logic(catalog, resolver, app.state.hidden, category)
        return await category_page_logic(catalog, app.state.hidden)

    @app.get("/categories")
    async def list_categories():
        return await category_page_logic(catalog, app.state.hidden)

    @app.get("/categories/{category_id}/products")
    async def list_products(category_id: str):
        page = await product_page_logic(catalog, resolver, app.state.hidden, category_id)
        if page["category"] is None and page["error"] == "Category not found":
            raise HTTPException(status_code=404, detail="Category not found")
        return page

    # ---------------------------
    # Cache administration
    # ---------------------------
    @app.get("/sync")
    async def sync(action: str = "status", secret: Optional[str] = None,
                   cache_key: Optional[str] = Query(None)):
        check_secret(action, secret, settings.sync_secret)
        try:
            if action == "sync":
                return await cache_sync_logic(cache, catalog)
            if action == "clear":
                return await asyncio.to_thread(cache_clear_logic, cache)
            if action == "refresh":
                return await asyncio.to_thread(cache_refresh_logic, cache, cache_key)
            if action == "sweep":
                return await asyncio.to_thread(cache_sweep_logic, cache)
            return await asyncio.to_thread(cache_status_logic, cache, settings.cache_ttl_seconds)
        except UpstreamError as e:
            logger.error("Cache %s failed: %s", action, e)
            return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    @app.get("/health")
    async def health():
        return {"status": "ok", "cache_backend": settings.cache_backend}

    return app


def run(host: str = "0.0.0.0", port: int = 8085):
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    run()
