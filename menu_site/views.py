# menu_site/views.py
import asyncio
import logging
from typing import Optional, Dict, Any

from .catalog import CatalogClient
from .config import HiddenSets
from .core import is_visible
from .errors import UpstreamError
from .pricing import PriceResolver, PriceResult

# Page builders for the menu. Each section degrades to an error message on
# its own; nothing here raises for upstream failures.

logger = logging.getLogger(__name__)


async def category_page_logic(catalog: CatalogClient, hidden: HiddenSets) -> Dict[str, Any]:
    try:
        categories = await catalog.list_categories()
    except UpstreamError as e:
        return {"categories": [], "error": str(e)}
    categories = [c for c in categories if c.get("id") not in hidden.categories]
    return {"categories": categories, "error": None}


async def _priced(resolver: PriceResolver, product: Dict[str, Any]) -> Dict[str, Any]:
    try:
        result = await resolver.resolve(product)
    except Exception:
        # one broken product must not take down the page
        logger.exception("Price resolution failed for product %s", product.get("id"))
        result = PriceResult("base", value=float(product.get("price") or 0), currency=resolver.currency)
    out = dict(product)
    out.update(result.as_dict())
    return out


async def product_page_logic(catalog: CatalogClient, resolver: PriceResolver,
                             hidden: HiddenSets, category_id: str) -> Dict[str, Any]:
    page: Dict[str, Any] = {"category": None, "products": [], "error": None}
    try:
        categories = await catalog.list_categories()
    except UpstreamError as e:
        page["error"] = str(e)
        return page

    category: Optional[Dict[str, Any]] = next(
        (c for c in categories if c.get("id") == category_id and c.get("id") not in hidden.categories),
        None,
    )
    if category is None:
        page["error"] = "Category not found"
        return page
    page["category"] = category

    try:
        products = await catalog.list_products_by_category(category_id)
    except UpstreamError as e:
        page["error"] = str(e)
        return page

    products = [p for p in products if p.get("id") not in hidden.products and is_visible(p)]
    page["products"] = list(await asyncio.gather(*(_priced(resolver, p) for p in products)))
    return page
