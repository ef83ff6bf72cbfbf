from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EntityType(str, Enum):
    restaurant = "restaurant"
    menu = "menu"
    dish = "dish"
    product = "product"


Allergen = Literal["dairy", "eggs", "shellfish", "soy", "nuts", "gluten"]
ProductCategory = Literal["Food", "Drink", "Snack", "Condiment", "Other"]
DishStatus = Literal["active", "inactive", "seasonal"]


class CatalogRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    slug: str = Field(default="", max_length=120)
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Restaurant(CatalogRecord):
    cuisine_type: str = Field(..., min_length=1)
    city: str = ""
    address: str = ""
    phone: str | None = Field(default=None, pattern=r"^\+?[0-9\s\-]+$")
    email: str | None = Field(default=None, pattern=r"^\S+@\S+\.\S+$")
    website: str | None = None
    opening_hours: dict[str, str] = Field(default_factory=dict)
    specialties: list[str] = Field(default_factory=list)
    is_vr_experience: bool = False
    max_capacity: int | None = Field(default=None, ge=0)
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    price_range: Literal["$", "$$", "$$$", "$$$$"] = "$$"
    dishes: list[str] = Field(default_factory=list)
    menus: list[str] = Field(default_factory=list)


class Menu(CatalogRecord):
    restaurants: list[str] = Field(default_factory=list)


class Dish(CatalogRecord):
    price: float = Field(..., ge=0)
    ingredients: list[str] = Field(default_factory=list)
    allergens: list[Allergen] = Field(default_factory=list)
    chen_pi_age: int = Field(default=0, ge=0)
    is_signature_dish: bool = False
    menus: list[str] = Field(default_factory=list)
    restaurants: list[str] = Field(default_factory=list)
    status: DishStatus = "active"


class Product(CatalogRecord):
    category: ProductCategory
    ingredients: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    price: float = Field(..., ge=0)
    is_featured: bool = False
    available_for_delivery: bool = True
    caution: str | None = Field(default=None, max_length=200)
    related_dishes: list[str] = Field(default_factory=list)
    related_restaurants: list[str] = Field(default_factory=list)


MODEL_BY_TYPE: dict[EntityType, type[CatalogRecord]] = {
    EntityType.restaurant: Restaurant,
    EntityType.menu: Menu,
    EntityType.dish: Dish,
    EntityType.product: Product,
}

# Slug-valued fields and the collection each one points into.
REFERENCE_FIELDS: dict[EntityType, dict[str, EntityType]] = {
    EntityType.restaurant: {"dishes": EntityType.dish, "menus": EntityType.menu},
    EntityType.menu: {"restaurants": EntityType.restaurant},
    EntityType.dish: {"menus": EntityType.menu, "restaurants": EntityType.restaurant},
    EntityType.product: {
        "related_dishes": EntityType.dish,
        "related_restaurants": EntityType.restaurant,
    },
}


def entity_type_of(record: CatalogRecord) -> EntityType:
    for entity_type, model in MODEL_BY_TYPE.items():
        if type(record) is model:
            return entity_type
    raise TypeError(f"Not a catalog record: {type(record).__name__}")


# ── Write payloads ───────────────────────────────────────────────────────


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    category: ProductCategory
    price: float = Field(..., ge=0)
    slug: str | None = None
    ingredients: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    is_featured: bool = False
    available_for_delivery: bool = True
    caution: str | None = Field(default=None, max_length=200)
    related_dishes: list[str] = Field(default_factory=list)
    related_restaurants: list[str] = Field(default_factory=list)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    category: ProductCategory | None = None
    price: float | None = Field(default=None, ge=0)
    ingredients: list[str] | None = None
    allergens: list[str] | None = None
    is_featured: bool | None = None
    available_for_delivery: bool | None = None
    caution: str | None = Field(default=None, max_length=200)
    related_dishes: list[str] | None = None
    related_restaurants: list[str] | None = None


class DishCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    price: float = Field(..., ge=0)
    chen_pi_age: int = Field(..., ge=0)
    slug: str | None = None
    ingredients: list[str] = Field(default_factory=list)
    allergens: list[Allergen] = Field(default_factory=list)
    is_signature_dish: bool = False
    menus: list[str] = Field(..., min_length=1)
    restaurants: list[str] = Field(..., min_length=1)
    status: DishStatus = "active"
