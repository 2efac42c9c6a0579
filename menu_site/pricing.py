# menu_site/pricing.py

"""Display prices for menu products.

Many products are listed upstream with a base price of zero and carry their
real prices on modifier options ("Small", "Large", "6 pcs", ...). The
resolver walks those options, sorts them into single/double sizes by name and
falls back to the base price whenever nothing usable is found.
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .catalog import CatalogClient
from .config import PriceOverrides, ProductPriceOverride
from .core import Modifier, Option, Product
from .errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "EGP"
DEFAULT_SINGLE_LABEL = "Single"
DEFAULT_DOUBLE_LABEL = "Double"

ADDON_KEYWORDS = ("sauce", "extra", "addon", "topping")
SIZE_KEYWORDS = (
    "size", "single", "double", "small", "large", "medium", "regular", "big",
    "quantity", "options", "bun", "pcs", "pc", "taste",
)

# size-specific names win over the generic ones
SIZE_SINGLE_KEYWORDS = ("mini",)
SIZE_DOUBLE_KEYWORDS = ("stander", "standard")
GENERIC_DOUBLE_KEYWORDS = ("double", "large", "big")
GENERIC_SINGLE_KEYWORDS = ("single", "small", "regular", "original", "spicy", "ranch", "buffalo")

_PIECES_RE = re.compile(r"(\d+)\s*pcs?\b", re.IGNORECASE)


class OptionClass(enum.Enum):
    SINGLE = "single"
    DOUBLE = "double"
    UNCLASSIFIED = "unclassified"


def _contains_any(name: str, keywords) -> bool:
    lowered = name.lower()
    return any(k in lowered for k in keywords)


def classify_option(name: Optional[str]) -> OptionClass:
    if not name:
        return OptionClass.UNCLASSIFIED
    if _contains_any(name, SIZE_SINGLE_KEYWORDS):
        return OptionClass.SINGLE
    if _contains_any(name, SIZE_DOUBLE_KEYWORDS):
        return OptionClass.DOUBLE
    if _contains_any(name, GENERIC_DOUBLE_KEYWORDS):
        return OptionClass.DOUBLE
    if _contains_any(name, GENERIC_SINGLE_KEYWORDS):
        return OptionClass.SINGLE
    return OptionClass.UNCLASSIFIED


def is_addon_modifier(name: Optional[str]) -> bool:
    if not name:
        return False
    return _contains_any(name, ADDON_KEYWORDS) and not _contains_any(name, SIZE_KEYWORDS)


def option_price(option: Option) -> Optional[float]:
    if option.price is not None:
        return float(option.price)
    prices = [
        float(b.price) for b in option.branch_prices()
        if b.price is not None and b.is_active is not False and b.is_in_stock is not False
    ]
    return min(prices) if prices else None


def pieces_label(name: Optional[str]) -> Optional[str]:
    m = _PIECES_RE.search(name or "")
    return f"{m.group(1)} PCS" if m else None


# ---------------------------
# Formatting
# ---------------------------
def format_price(value: Optional[float], currency: str = DEFAULT_CURRENCY) -> str:
    if value is None:
        return ""
    if value == 0:
        return "Free"
    return f"{value:,.2f} {currency}"


def format_pair(single: float, double: float, single_label: str, double_label: str,
                currency: str = DEFAULT_CURRENCY) -> str:
    return (f"{format_price(single, currency)} ({single_label}) / "
            f"{format_price(double, currency)} ({double_label})")


def format_range(low: float, high: float, currency: str = DEFAULT_CURRENCY) -> str:
    return f"{format_price(low, currency)} - {format_price(high, currency)}"


@dataclass
class PriceResult:
    kind: str  # base | scalar | pair | range
    value: Optional[float] = None
    single: Optional[float] = None
    double: Optional[float] = None
    single_label: str = DEFAULT_SINGLE_LABEL
    double_label: str = DEFAULT_DOUBLE_LABEL
    low: Optional[float] = None
    high: Optional[float] = None
    currency: str = DEFAULT_CURRENCY

    @property
    def from_modifiers(self) -> bool:
        return self.kind != "base"

    @property
    def display(self) -> str:
        if self.kind == "pair":
            return format_pair(self.single, self.double, self.single_label, self.double_label, self.currency)
        if self.kind == "range":
            return format_range(self.low, self.high, self.currency)
        return format_price(self.value, self.currency)

    def as_dict(self) -> Dict[str, Any]:
        return {"display_price": self.display, "has_modifier_pricing": self.from_modifiers}


@dataclass
class _Collected:
    single: Optional[Tuple[float, str]] = None
    double: Optional[Tuple[float, str]] = None
    generic: List[Tuple[float, str]] = field(default_factory=list)

    def all_prices(self) -> List[float]:
        out = [p for p, _ in self.generic]
        if self.single:
            out.append(self.single[0])
        if self.double:
            out.append(self.double[0])
        return out


class PriceResolver:
    def __init__(self, catalog: CatalogClient, overrides: Optional[PriceOverrides] = None,
                 currency: str = DEFAULT_CURRENCY):
        self.catalog = catalog
        self.overrides = overrides or PriceOverrides()
        self.currency = currency

    def _base(self, product: Product) -> PriceResult:
        return PriceResult("base", value=product.base_price, currency=self.currency)

    def _scalar(self, value: float) -> PriceResult:
        return PriceResult("scalar", value=value, currency=self.currency)

    def should_use_modifiers(self, product: Product) -> bool:
        if product.base_price == 0 or product.modifiers:
            return True
        return product.category_id in self.overrides.modifier_categories

    async def resolve(self, record: Dict[str, Any]) -> PriceResult:
        try:
            product = Product.model_validate(record)
        except ValidationError as e:
            logger.error("Cannot read product %s for pricing: %s", record.get("id"), e)
            return PriceResult("base", value=float(record.get("price") or 0), currency=self.currency)

        if not self.should_use_modifiers(product):
            return self._base(product)

        policy = self.overrides.for_product(product.id)
        modifiers = await self._modifiers_for(product)
        if not modifiers:
            return self._base(product)

        collected = _Collected()
        for raw in modifiers:
            modifier = self._read_modifier(product, raw)
            if modifier is None or not modifier.visible:
                continue
            if not policy.include_all_modifiers and is_addon_modifier(modifier.name):
                continue
            for option in await self._options_for(product, modifier):
                self._collect(collected, option)

        return self._decide(product, policy, collected)

    def _read_modifier(self, product: Product, raw: Any) -> Optional[Modifier]:
        try:
            return Modifier.model_validate(raw)
        except ValidationError as e:
            logger.error("Skipping unreadable modifier %s of product %s: %s",
                         raw.get("id") if isinstance(raw, dict) else None, product.id, e)
            return None

    async def _modifiers_for(self, product: Product) -> List[Any]:
        if product.modifiers:
            return product.modifiers
        try:
            details = await self.catalog.get_product(product.id)
        except UpstreamError as e:
            logger.error("Error fetching modifier prices for product %s: %s", product.id, e)
            return []
        if not details:
            return []
        try:
            return Product.model_validate(details).modifiers or []
        except ValidationError as e:
            logger.error("Cannot read modifiers of product %s: %s", product.id, e)
            return []

    async def _options_for(self, product: Product, modifier: Modifier) -> List[Option]:
        if modifier.options is not None:
            return modifier.options
        if not modifier.id:
            return []
        try:
            details = await self.catalog.get_modifier(modifier.id)
        except UpstreamError as e:
            logger.error("Error fetching modifier %s for product %s: %s", modifier.id, product.id, e)
            return []
        if not details:
            return []
        try:
            return Modifier.model_validate(details).options or []
        except ValidationError as e:
            logger.error("Cannot read options of modifier %s: %s", modifier.id, e)
            return []

    def _collect(self, collected: _Collected, option: Option) -> None:
        if not option.visible:
            return
        price = option_price(option)
        if price is None or price <= 0:
            return
        name = option.name or ""
        cls = classify_option(name)
        if cls is OptionClass.SINGLE:
            if collected.single is None:
                collected.single = (price, name)
        elif cls is OptionClass.DOUBLE:
            if collected.double is None:
                collected.double = (price, name)
        else:
            collected.generic.append((price, name))

    def _labels(self, policy: ProductPriceOverride, single_name: str, double_name: str) -> Tuple[str, str]:
        single_label = policy.single_label or DEFAULT_SINGLE_LABEL
        double_label = policy.double_label or DEFAULT_DOUBLE_LABEL
        if policy.labels_from_option_name:
            single_label = pieces_label(single_name) or single_label
            double_label = pieces_label(double_name) or double_label
        return single_label, double_label

    def _decide(self, product: Product, policy: ProductPriceOverride, collected: _Collected) -> PriceResult:
        # two unnamed sizes read as single/double
        if len(collected.generic) == 2 and collected.single is None and collected.double is None:
            low, high = sorted(collected.generic)
            collected.single, collected.double, collected.generic = low, high, []

        prices = collected.all_prices()
        if policy.collapse_if_equal and prices and len(set(prices)) == 1:
            return self._scalar(prices[0])

        if collected.single and collected.double:
            if policy.force_single:
                return self._scalar(collected.single[0])
            single_label, double_label = self._labels(policy, collected.single[1], collected.double[1])
            return PriceResult(
                "pair", single=collected.single[0], double=collected.double[0],
                single_label=single_label, double_label=double_label, currency=self.currency,
            )
        if collected.single:
            return self._scalar(collected.single[0])
        if collected.double:
            return self._scalar(collected.double[0])

        if collected.generic:
            low = min(p for p, _ in collected.generic)
            high = max(p for p, _ in collected.generic)
            if low == high:
                return self._scalar(low)
            return PriceResult("range", low=low, high=high, currency=self.currency)

        return self._base(product)
