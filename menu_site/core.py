# menu_site/core.py
from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any, List, Union

# Typed views over the upstream catalog records. Upstream sends far more
# fields than we read; they are kept (extra="allow") so a model can be dumped
# back to the original shape.


class CatalogEntity(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    name_localized: Optional[str] = None
    is_active: Optional[bool] = True
    deleted_at: Optional[str] = None

    @property
    def visible(self) -> bool:
        return is_visible(self.model_dump())


class BranchPrice(BaseModel):
    model_config = ConfigDict(extra="allow")

    is_active: Optional[bool] = True
    is_in_stock: Optional[bool] = True
    price: Optional[float] = None


class Option(CatalogEntity):
    price: Optional[float] = None
    branches: Optional[List[Dict[str, Any]]] = None

    def branch_prices(self) -> List[BranchPrice]:
        # branch overrides come either flat or under a "pivot" key
        out = []
        for b in self.branches or []:
            if not isinstance(b, dict):
                continue
            out.append(BranchPrice.model_validate(b.get("pivot") or b))
        return out


class Modifier(CatalogEntity):
    id: Optional[str] = None
    options: Optional[List[Option]] = None


class Product(CatalogEntity):
    price: Optional[float] = 0
    image: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Union[str, Dict[str, Any]]] = None
    # raw records, read one by one when pricing
    modifiers: Optional[List[Any]] = None

    @property
    def base_price(self) -> float:
        return float(self.price or 0)

    @property
    def category_id(self) -> Optional[str]:
        if isinstance(self.category, dict):
            return self.category.get("id")
        return self.category


# ---------------------------
# Visibility filter
# ---------------------------
def is_visible(entity: Dict[str, Any]) -> bool:
    if entity.get("deleted_at") is not None:
        return False
    # absence of is_active means active
    return entity.get("is_active", True) is not False


def visible_only(entities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [e for e in entities if isinstance(e, dict) and is_visible(e)]


def filter_modifier(modifier: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of a modifier with deleted/inactive options removed."""
    out = dict(modifier)
    if isinstance(out.get("options"), list):
        out["options"] = visible_only(out["options"])
    return out
