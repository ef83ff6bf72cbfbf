from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Any

from ..cart.config import DEFAULT_CART_CONFIG, CartConfig
from ..cart.models import Cart
from ..cart.service import clear_cart
from ..cart.store import InMemoryCartRepository, get_cart_repository
from ..errors import (
    EmptyCart,
    Forbidden,
    InvalidStatusTransition,
    OrderNotFound,
    StoreError,
    ValidationError,
)
from ..retry import call_with_retries
from .models import (
    DeliveryAddress,
    Order,
    OrderItem,
    OrderStatus,
    StatusChange,
    can_transition,
)
from .store import InMemoryOrderRepository, get_order_repository

logger = logging.getLogger(__name__)

_MAX_NUMBER_ATTEMPTS = 20


def generate_order_number(now: datetime | None = None, rng: random.Random | None = None) -> str:
    """``ORD-YYYYMMDD-NNNN``."""
    now = now or datetime.now(timezone.utc)
    rng = rng or random
    return f"ORD-{now:%Y%m%d}-{rng.randint(0, 9999):04d}"


def _unique_order_number(orders: InMemoryOrderRepository) -> str:
    for _ in range(_MAX_NUMBER_ATTEMPTS):
        number = generate_order_number()
        if not orders.number_exists(number):
            return number
    raise StoreError("Could not allocate an order number")


def _snapshot(cart: Cart) -> list[OrderItem]:
    return [
        OrderItem(
            product=item.product,
            name=item.name,
            quantity=item.quantity,
            price=item.price_at_add,
        )
        for item in cart.items
    ]


def _is_admin(user: dict[str, Any]) -> bool:
    return user.get("role") == "admin"


def _parse_status(status: str | OrderStatus) -> OrderStatus:
    try:
        return OrderStatus(status.lower() if isinstance(status, str) else status)
    except ValueError:
        raise ValidationError(f"Invalid order status: {status}") from None


def place_order(
    user_id: str,
    payment_method: str,
    delivery_address: DeliveryAddress | None = None,
    delivery_instructions: str | None = None,
    carts: InMemoryCartRepository | None = None,
    orders: InMemoryOrderRepository | None = None,
    cart_config: CartConfig = DEFAULT_CART_CONFIG,
) -> Order:
    """
    Turn the user's cart into a pending order, then empty the cart.

    The order is written first and the cart cleared second. If the clear
    fails, the caller re-requests checkout: the cart still holds the same
    version and items, so the order already written for it is returned
    instead of a second one being created.
    """
    if not payment_method or not payment_method.strip():
        raise ValidationError("Payment method is required")
    carts = carts or get_cart_repository()
    orders = orders or get_order_repository()

    with carts.lock(user_id, timeout=cart_config.lock_timeout):
        cart = call_with_retries(lambda: carts.get_or_create(user_id))
        if not cart.items:
            raise EmptyCart()

        items = _snapshot(cart)
        order = orders.find_by_cart_version(user_id, cart.version)
        if order is not None and order.items == items:
            logger.warning(
                "Checkout retried for user %s, reusing order %s", user_id, order.order_number
            )
        else:
            now = datetime.now(timezone.utc)
            order = orders.add(
                Order(
                    order_number=_unique_order_number(orders),
                    user_id=user_id,
                    items=items,
                    total_amount=cart.total_price,
                    status=OrderStatus.pending,
                    payment_method=payment_method.strip(),
                    delivery_address=delivery_address,
                    delivery_instructions=delivery_instructions,
                    source_cart_version=cart.version,
                    status_history=[StatusChange(status=OrderStatus.pending, at=now)],
                    created_at=now,
                    updated_at=now,
                )
            )
            logger.info(
                "Order %s placed by user %s: %d items, total %.2f",
                order.order_number, user_id, len(order.items), order.total_amount,
            )

        clear_cart(user_id, carts=carts, config=cart_config)

    return order


def get_order(
    order_id: str,
    user: dict[str, Any],
    orders: InMemoryOrderRepository | None = None,
) -> Order:
    orders = orders or get_order_repository()
    order = call_with_retries(lambda: orders.get(order_id))
    if order is None:
        raise OrderNotFound()
    if not _is_admin(user) and order.user_id != user.get("id"):
        raise Forbidden("Not authorized to access this order")
    return order


def list_orders(
    user_id: str,
    status: str | OrderStatus | None = None,
    orders: InMemoryOrderRepository | None = None,
) -> list[Order]:
    orders = orders or get_order_repository()
    wanted = _parse_status(status) if status else None
    return call_with_retries(lambda: orders.list_for_user(user_id, wanted))


def list_all_orders(orders: InMemoryOrderRepository | None = None) -> list[Order]:
    orders = orders or get_order_repository()
    return call_with_retries(orders.list_all)


def _transition(order: Order, new_status: OrderStatus) -> Order:
    if not can_transition(order.status, new_status):
        raise InvalidStatusTransition(
            f"Cannot change order status from {order.status.value} to {new_status.value}"
        )
    now = datetime.now(timezone.utc)
    order.status = new_status
    order.updated_at = now
    order.status_history.append(StatusChange(status=new_status, at=now))
    if new_status == OrderStatus.completed:
        order.completed_at = now
    return order


def update_order_status(
    order_id: str,
    status: str | OrderStatus,
    orders: InMemoryOrderRepository | None = None,
) -> Order:
    """Status changes are the only mutation an existing order allows."""
    orders = orders or get_order_repository()
    new_status = _parse_status(status)
    with orders.lock():
        order = orders.get(order_id)
        if order is None:
            raise OrderNotFound()
        previous = order.status
        order = orders.save(_transition(order, new_status))
    logger.info("Order %s: %s -> %s", order.order_number, previous.value, new_status.value)
    return order


def cancel_order(
    order_id: str,
    user: dict[str, Any],
    reason: str | None = None,
    orders: InMemoryOrderRepository | None = None,
) -> Order:
    orders = orders or get_order_repository()
    with orders.lock():
        order = orders.get(order_id)
        if order is None:
            raise OrderNotFound()
        if not _is_admin(user) and order.user_id != user.get("id"):
            raise Forbidden("Not authorized to cancel this order")
        order = _transition(order, OrderStatus.cancelled)
        order.cancellation_reason = reason
        order = orders.save(order)
    logger.info("Order %s cancelled by %s", order.order_number, user.get("id"))
    return order
