"""
Catalog seed loader.

Usage:
    python -m backend.catalog.loader
"""
from __future__ import annotations

import json
import logging
from typing import Any

from .config import DEFAULT_CATALOG_CONFIG, CatalogConfig
from .models import Dish, EntityType, Menu, Product, Restaurant
from .store import CatalogStore

logger = logging.getLogger(__name__)

_catalog: CatalogStore | None = None


def _read_seed(config: CatalogConfig) -> dict[str, list[dict[str, Any]]]:
    raw = json.loads(config.seed_path.read_text(encoding="utf-8"))
    return {key: raw.get(key, []) for key in ("restaurants", "menus", "dishes", "products")}


def load_catalog(config: CatalogConfig = DEFAULT_CATALOG_CONFIG) -> CatalogStore:
    """
    Build a catalog store from the seed file.

    Restaurants are written first without their dish / menu lists, since those
    collections point back at restaurants. Once menus and dishes exist, each
    restaurant's lists are back-filled from the records that reference it, so
    every cross reference passes the store's integrity check.
    """
    seed = _read_seed(config)
    store = CatalogStore(config)

    for entry in seed["restaurants"]:
        data = {k: v for k, v in entry.items() if k not in ("dishes", "menus")}
        store.add(Restaurant(**data))
    for entry in seed["menus"]:
        store.add(Menu(**entry))
    for entry in seed["dishes"]:
        store.add(Dish(**entry))
    for entry in seed["products"]:
        store.add(Product(**entry))

    dishes = store.scan_all(EntityType.dish)
    menus = store.scan_all(EntityType.menu)
    for restaurant in store.scan_all(EntityType.restaurant):
        store.update(
            EntityType.restaurant,
            restaurant.slug,
            {
                "dishes": [d.slug for d in dishes if restaurant.slug in d.restaurants],
                "menus": [m.slug for m in menus if restaurant.slug in m.restaurants],
            },
        )

    logger.info(
        "Catalog loaded: %d restaurants, %d menus, %d dishes, %d products",
        store.count(EntityType.restaurant),
        store.count(EntityType.menu),
        store.count(EntityType.dish),
        store.count(EntityType.product),
    )
    return store


def get_catalog() -> CatalogStore:
    """Return the process-wide catalog, loading the seed file on first call."""
    global _catalog
    if _catalog is None:
        _catalog = load_catalog()
    return _catalog


def set_catalog(store: CatalogStore | None) -> None:
    """Replace the process-wide catalog (``None`` reloads the seed on next use)."""
    global _catalog
    _catalog = store


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    catalog = load_catalog()
    print(f"Seed OK: {DEFAULT_CATALOG_CONFIG.seed_path} (revision {catalog.revision})")
