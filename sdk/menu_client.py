# sdk/menu_client.py
import requests
from typing import Optional, Dict, Any


class MenuClient:
    def __init__(self, base_url: str = "http://localhost:8085", sync_secret: Optional[str] = None, timeout: int = 10):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.timeout = timeout
        self.sync_secret = sync_secret

    # Menu
    def list_categories(self) -> Dict[str, Any]:
        r = self.session.get(f"{self.base_url}/categories", timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def list_products(self, category_id: str) -> Dict[str, Any]:
        r = self.session.get(f"{self.base_url}/categories/{category_id}/products", timeout=self.timeout)
        # unknown category comes back as 404; hand the body to the caller
        if r.status_code == 404:
            return {"category": None, "products": [], "error": r.json().get("detail", "Category not found")}
        r.raise_for_status()
        return r.json()

    # Cache administration
    def _admin(self, action: str, **params) -> Dict[str, Any]:
        params["action"] = action
        if self.sync_secret:
            params["secret"] = self.sync_secret
        r = self.session.get(f"{self.base_url}/sync", params=params, timeout=self.timeout)
        # 500 carries {"success": false, "error": ...}; do not raise on it
        if r.status_code == 500:
            return r.json()
        r.raise_for_status()
        return r.json()

    def cache_status(self) -> Dict[str, Any]:
        return self._admin("status")

    def sync_cache(self) -> Dict[str, Any]:
        return self._admin("sync")

    def clear_cache(self) -> Dict[str, Any]:
        return self._admin("clear")

    def refresh_key(self, cache_key: str) -> Dict[str, Any]:
        return self._admin("refresh", cache_key=cache_key)

    def sweep_cache(self) -> Dict[str, Any]:
        return self._admin("sweep")

    def health(self) -> Dict[str, Any]:
        r = self.session.get(f"{self.base_url}/health", timeout=self.timeout)
        r.raise_for_status()
        return r.json()


if __name__ == "__main__":
    import argparse
    import os

    parser = argparse.ArgumentParser(description="Menu site client")
    parser.add_argument("--base-url", default=os.getenv("MENU_SITE_URL", "http://127.0.0.1:8085"))
    parser.add_argument("--secret", default=os.getenv("MENU_SYNC_SECRET"))
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---------------------------
    # Menu commands
    # ---------------------------
    subparsers.add_parser("categories", help="List visible categories")
    lp = subparsers.add_parser("products", help="List products of a category with display prices")
    lp.add_argument("--category-id", required=True, help="Category ID")

    # ---------------------------
    # Cache commands
    # ---------------------------
    subparsers.add_parser("status", help="Show cache entries and their age")
    subparsers.add_parser("sync", help="Clear the cache and warm it with categories")
    subparsers.add_parser("clear", help="Clear the whole cache")
    subparsers.add_parser("sweep", help="Delete expired cache entries")
    rf = subparsers.add_parser("refresh", help="Invalidate one cache key")
    rf.add_argument("--key", required=True, help="Cache key, e.g. products_category_<id>")

    args = parser.parse_args()
    c = MenuClient(base_url=args.base_url, sync_secret=args.secret)

    if args.command == "categories":
        print(c.list_categories())
    elif args.command == "products":
        print(c.list_products(args.category_id))
    elif args.command == "status":
        print(c.cache_status())
    elif args.command == "sync":
        print(c.sync_cache())
    elif args.command == "clear":
        print(c.clear_cache())
    elif args.command == "sweep":
        print(c.sweep_cache())
    elif args.command == "refresh":
        print(c.refresh_key(args.key))
