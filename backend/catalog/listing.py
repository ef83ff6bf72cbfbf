from __future__ import annotations

import pandas as pd

from ..errors import ValidationError
from ..pagination import clamp_window
from .loader import get_catalog
from .models import Dish, EntityType, Menu, Product, Restaurant
from .store import RECORD_COLUMN, CatalogStore

PRODUCT_SORT_FIELDS = ("created_at", "name", "price")


def _window(df: pd.DataFrame, page: int, limit: int) -> tuple[list, int]:
    _, limit, skip = clamp_window(page, limit)
    return df.iloc[skip: skip + limit][RECORD_COLUMN].tolist(), len(df)


def list_products(
    category: str | None = None,
    delivery_only: bool = False,
    featured_only: bool = False,
    sort_by: str = "created_at",
    order: str = "desc",
    page: int = 1,
    limit: int = 8,
    store: CatalogStore | None = None,
) -> tuple[list[Product], int]:
    if sort_by not in PRODUCT_SORT_FIELDS:
        raise ValidationError(f"Cannot sort products by '{sort_by}'")
    if order not in ("asc", "desc"):
        raise ValidationError("Order must be 'asc' or 'desc'")

    df = (store or get_catalog()).frame(EntityType.product)
    mask = pd.Series(True, index=df.index)
    if category and category != "All":
        mask &= df["category"] == category
    if delivery_only:
        mask &= df["available_for_delivery"].astype(bool)
    if featured_only:
        mask &= df["is_featured"].astype(bool)

    selected = df.loc[mask].sort_values(sort_by, ascending=(order == "asc"), kind="stable")
    return _window(selected, page, limit)


def list_restaurants(
    cuisine: str | None = None,
    page: int = 1,
    limit: int = 20,
    store: CatalogStore | None = None,
) -> tuple[list[Restaurant], int]:
    df = (store or get_catalog()).frame(EntityType.restaurant)
    if cuisine:
        df = df.loc[df["cuisine_type"].str.contains(cuisine, case=False, regex=False, na=False)]
    return _window(df, page, limit)


def list_dishes(
    restaurant: str | None = None,
    menu: str | None = None,
    signature_only: bool = False,
    status: str | None = "active",
    page: int = 1,
    limit: int = 20,
    store: CatalogStore | None = None,
) -> tuple[list[Dish], int]:
    df = (store or get_catalog()).frame(EntityType.dish)
    mask = pd.Series(True, index=df.index)
    if status:
        mask &= df["status"] == status
    if restaurant:
        mask &= df["restaurants"].apply(lambda slugs: restaurant in slugs).astype(bool)
    if menu:
        mask &= df["menus"].apply(lambda slugs: menu in slugs).astype(bool)
    if signature_only:
        mask &= df["is_signature_dish"].astype(bool)
    return _window(df.loc[mask], page, limit)


def related_products(product: Product, limit: int = 4, store: CatalogStore | None = None) -> list[Product]:
    """Other products in the same category."""
    df = (store or get_catalog()).frame(EntityType.product)
    same = df.loc[(df["category"] == product.category) & (df["slug"] != product.slug)]
    return same.head(limit)[RECORD_COLUMN].tolist()


def menus_for_restaurant(restaurant_slug: str, store: CatalogStore | None = None) -> list[Menu]:
    df = (store or get_catalog()).frame(EntityType.menu)
    mask = df["restaurants"].apply(lambda slugs: restaurant_slug in slugs).astype(bool)
    return df.loc[mask][RECORD_COLUMN].tolist()


def signature_dishes(restaurant_slug: str | None = None, store: CatalogStore | None = None) -> list[Dish]:
    dishes, _ = list_dishes(
        restaurant=restaurant_slug,
        signature_only=True,
        limit=100,
        store=store,
    )
    return dishes
