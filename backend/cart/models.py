from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CartItem(BaseModel):
    product: str = Field(..., min_length=1, description="Product slug")
    name: str = ""
    quantity: int = Field(..., ge=1)
    price_at_add: float = Field(..., ge=0, description="Catalog price when first added")

    @property
    def subtotal(self) -> float:
        return self.quantity * self.price_at_add


class Cart(BaseModel):
    user_id: str
    items: list[CartItem] = Field(default_factory=list)
    total_price: float = 0.0
    version: int = 0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def find_item(self, product: str) -> CartItem | None:
        for item in self.items:
            if item.product == product:
                return item
        return None

    def recalculate(self) -> float:
        self.total_price = sum((item.subtotal for item in self.items), 0.0)
        return self.total_price


# ── Request / response payloads ──────────────────────────────────────────


class AddToCartRequest(BaseModel):
    product: str = Field(..., min_length=1, description="Product slug or id")
    quantity: int = Field(default=1, ge=1)


class UpdateCartItemRequest(BaseModel):
    product: str = Field(..., min_length=1, description="Product slug or id")
    quantity: int = Field(..., ge=0)


class CartResponse(BaseModel):
    success: bool = True
    data: Cart


class DeliveryAvailability(BaseModel):
    unavailable: list[str]
    all_available: bool


class DeliveryCheckResponse(BaseModel):
    success: bool = True
    data: DeliveryAvailability
