#!/usr/bin/env python
import os
from sdk.menu_client import MenuClient


def main():
    c = MenuClient(base_url="http://127.0.0.1:8085", sync_secret=os.getenv("MENU_SYNC_SECRET"))

    # -----------------------------
    # Warm the cache
    # -----------------------------
    print("Syncing cache...")
    print(c.sync_cache())

    # -----------------------------
    # Walk the menu
    # -----------------------------
    print("\nListing categories...")
    page = c.list_categories()
    if page.get("error"):
        print("Error loading categories:", page["error"])
        return

    for category in page["categories"]:
        print(f"\n== {category.get('name', 'Unnamed Category')} ==")
        products = c.list_products(category["id"])
        if products.get("error"):
            print("  Error loading products:", products["error"])
            continue
        for p in products["products"]:
            print(f"  {p.get('name', 'Unnamed Product')}: {p['display_price']}")

    # -----------------------------
    # Cache status
    # -----------------------------
    print("\nCache status...")
    print(c.cache_status())


if __name__ == "__main__":
    main()
