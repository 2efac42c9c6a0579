# menu_site/config.py

"""Runtime settings and the static override tables.

Connection settings come from ``MENU_*`` environment variables (or a
``.env`` file). Hidden ids and per-product price overrides live in a YAML
file whose path is given by ``MENU_OVERRIDES_PATH``::

    hidden_categories: [cat-1]
    hidden_products: [prod-9]
    modifier_categories: [cat-burgers]
    products:
      prod-42:
        collapse_if_equal: true
      prod-77:
        labels_from_option_name: true
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Literal, Optional, Set

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PLACEHOLDER_TOKEN = "YOUR_TOKEN_HERE"


class ProductPriceOverride(BaseModel):
    """How the price resolver treats one specific product."""

    include_all_modifiers: bool = False
    collapse_if_equal: bool = False
    force_single: bool = False
    single_label: Optional[str] = None
    double_label: Optional[str] = None
    labels_from_option_name: bool = False


class PriceOverrides(BaseModel):
    modifier_categories: Set[str] = Field(default_factory=set)
    products: Dict[str, ProductPriceOverride] = Field(default_factory=dict)

    def for_product(self, product_id: Optional[str]) -> ProductPriceOverride:
        return self.products.get(product_id or "") or ProductPriceOverride()


class HiddenSets(BaseModel):
    categories: Set[str] = Field(default_factory=set)
    products: Set[str] = Field(default_factory=set)


class MenuOverrides(BaseModel):
    hidden_categories: List[str] = Field(default_factory=list)
    hidden_products: List[str] = Field(default_factory=list)
    modifier_categories: List[str] = Field(default_factory=list)
    products: Dict[str, ProductPriceOverride] = Field(default_factory=dict)

    @property
    def hidden(self) -> HiddenSets:
        return HiddenSets(categories=set(self.hidden_categories), products=set(self.hidden_products))

    @property
    def pricing(self) -> PriceOverrides:
        return PriceOverrides(modifier_categories=set(self.modifier_categories), products=self.products)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MENU_", env_file=".env", extra="ignore")

    api_base_url: str = "https://api.foodics.com/v5/"
    api_token: str = ""
    cache_backend: Literal["memory", "sqlite", "redis"] = "sqlite"
    cache_path: str = "menu_cache.db"
    redis_url: Optional[str] = None
    cache_ttl_seconds: int = Field(default=5 * 60 * 60, ge=1)
    http_timeout_seconds: float = Field(default=20.0, gt=0)
    sync_secret: Optional[str] = None
    currency: str = "EGP"
    overrides_path: Optional[str] = None

    def validate_runtime(self) -> "Settings":
        if not self.api_token or self.api_token == PLACEHOLDER_TOKEN:
            raise ConfigurationError("API token not configured. Set MENU_API_TOKEN to a valid bearer token.")
        if self.cache_backend == "redis" and not self.redis_url:
            raise ConfigurationError("MENU_REDIS_URL is required when MENU_CACHE_BACKEND=redis.")
        return self


def load_settings(**overrides) -> Settings:
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
    return settings.validate_runtime()


def load_overrides(path: Optional[str]) -> MenuOverrides:
    """
    Load hidden ids and price overrides from YAML.

    No path means no overrides. A path that does not exist, or a file that
    does not match the schema, raises ConfigurationError.
    """
    if not path:
        return MenuOverrides()

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Overrides file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        overrides = MenuOverrides(**data)
    except (yaml.YAMLError, TypeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid overrides file {config_path}: {e}") from e

    logger.info(
        "Loaded overrides from %s (%d hidden categories, %d hidden products, %d product policies)",
        config_path, len(overrides.hidden_categories), len(overrides.hidden_products), len(overrides.products),
    )
    return overrides
