from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    shipped = "shipped"
    completed = "completed"
    cancelled = "cancelled"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.pending: frozenset({OrderStatus.paid, OrderStatus.cancelled}),
    OrderStatus.paid: frozenset({OrderStatus.shipped, OrderStatus.cancelled}),
    OrderStatus.shipped: frozenset({OrderStatus.completed}),
    OrderStatus.completed: frozenset(),
    OrderStatus.cancelled: frozenset(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


class DeliveryAddress(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderItem(BaseModel):
    product: str
    name: str = ""
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)

    @property
    def subtotal(self) -> float:
        return self.quantity * self.price


class StatusChange(BaseModel):
    status: OrderStatus
    at: datetime = Field(default_factory=_now)


class Order(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    order_number: str
    user_id: str
    items: list[OrderItem]
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = OrderStatus.pending
    payment_method: str
    delivery_address: DeliveryAddress | None = None
    delivery_instructions: str | None = None
    cancellation_reason: str | None = None
    source_cart_version: int = 0
    status_history: list[StatusChange] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None


# ── Request / response payloads ──────────────────────────────────────────


class PlaceOrderRequest(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=32)
    delivery_address: DeliveryAddress | None = None
    delivery_instructions: str | None = Field(default=None, max_length=500)


class StatusUpdateRequest(BaseModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=250)


class OrderResponse(BaseModel):
    success: bool = True
    data: Order


class OrderListResponse(BaseModel):
    success: bool = True
    data: list[Order]
    meta: dict[str, int] = Field(default_factory=dict)
