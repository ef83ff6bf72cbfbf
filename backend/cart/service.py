from __future__ import annotations

import logging
from typing import Callable

from ..catalog.loader import get_catalog
from ..catalog.models import EntityType, Product
from ..catalog.store import CatalogStore
from ..errors import ConcurrentModification, ItemNotInCart, ProductNotFound, ValidationError
from ..retry import call_with_retries
from .config import DEFAULT_CART_CONFIG, CartConfig
from .models import Cart, CartItem, DeliveryAvailability
from .store import InMemoryCartRepository, get_cart_repository

logger = logging.getLogger(__name__)


def _line_key(cart: Cart, ref: str, catalog: CatalogStore) -> str:
    """Line items are keyed by product slug; also accept a catalog id."""
    if cart.find_item(ref) is not None:
        return ref
    product = catalog.find_by_id(EntityType.product, ref)
    return product.slug if product is not None else ref


def _check_quantity(quantity: int, config: CartConfig) -> None:
    if quantity > config.max_quantity:
        raise ValidationError(f"Quantity cannot exceed {config.max_quantity}")


def _apply(user_id: str, change: Callable[[Cart], bool], carts: InMemoryCartRepository) -> Cart:
    cart = call_with_retries(lambda: carts.get_or_create(user_id))
    if not change(cart):
        return cart
    cart.recalculate()
    return carts.save(cart)


def _mutate(
    user_id: str,
    change: Callable[[Cart], bool],
    carts: InMemoryCartRepository,
    config: CartConfig,
) -> Cart:
    """
    Fetch, mutate, recalculate and save one user's cart under its lock.

    ``change`` returns False when it left the cart untouched; the cart is
    then returned without a save, so no-op calls leave the version alone.
    A stale save is retried; the last attempt lets ``ConcurrentModification``
    propagate.
    """
    with carts.lock(user_id, timeout=config.lock_timeout):
        attempts = max(1, config.conflict_retries)
        for attempt in range(1, attempts):
            try:
                return _apply(user_id, change, carts)
            except ConcurrentModification:
                logger.warning(
                    "Cart of user %s changed underneath us (attempt %d/%d), retrying",
                    user_id, attempt, attempts,
                )
        return _apply(user_id, change, carts)


def get_cart(user_id: str, carts: InMemoryCartRepository | None = None) -> Cart:
    carts = carts or get_cart_repository()
    return call_with_retries(lambda: carts.get_or_create(user_id))


def add_item(
    user_id: str,
    product_ref: str,
    quantity: int = 1,
    carts: InMemoryCartRepository | None = None,
    catalog: CatalogStore | None = None,
    config: CartConfig = DEFAULT_CART_CONFIG,
) -> Cart:
    """
    Add ``quantity`` of a product. An existing line keeps its original
    ``price_at_add``; only new lines snapshot the current catalog price.
    """
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    carts = carts or get_cart_repository()
    catalog = catalog or get_catalog()

    product: Product | None = catalog.find_product(product_ref)
    if product is None:
        raise ProductNotFound()

    def change(cart: Cart) -> bool:
        item = cart.find_item(product.slug)
        if item is not None:
            _check_quantity(item.quantity + quantity, config)
            item.quantity += quantity
        else:
            _check_quantity(quantity, config)
            cart.items.append(
                CartItem(
                    product=product.slug,
                    name=product.name,
                    quantity=quantity,
                    price_at_add=product.price,
                )
            )
        return True

    cart = _mutate(user_id, change, carts, config)
    logger.info(
        "Added %s x%d to cart of user %s (%d items)",
        product.slug, quantity, user_id, len(cart.items),
    )
    return cart


def update_quantity(
    user_id: str,
    product_ref: str,
    quantity: int,
    carts: InMemoryCartRepository | None = None,
    catalog: CatalogStore | None = None,
    config: CartConfig = DEFAULT_CART_CONFIG,
) -> Cart:
    if quantity < 0:
        raise ValidationError("Valid quantity is required")
    if quantity == 0:
        raise ValidationError("Quantity must be at least 1; remove the item instead")
    _check_quantity(quantity, config)
    carts = carts or get_cart_repository()
    catalog = catalog or get_catalog()

    def change(cart: Cart) -> bool:
        item = cart.find_item(_line_key(cart, product_ref, catalog))
        if item is None:
            raise ItemNotInCart()
        if item.quantity == quantity:
            return False
        item.quantity = quantity
        return True

    cart = _mutate(user_id, change, carts, config)
    logger.info("Set %s to x%d in cart of user %s", product_ref, quantity, user_id)
    return cart


def remove_item(
    user_id: str,
    product_ref: str,
    carts: InMemoryCartRepository | None = None,
    catalog: CatalogStore | None = None,
    config: CartConfig = DEFAULT_CART_CONFIG,
) -> Cart:
    """Drop a line item; removing an absent product is not an error."""
    carts = carts or get_cart_repository()
    catalog = catalog or get_catalog()

    def change(cart: Cart) -> bool:
        key = _line_key(cart, product_ref, catalog)
        remaining = [item for item in cart.items if item.product != key]
        if len(remaining) == len(cart.items):
            return False
        cart.items = remaining
        return True

    cart = _mutate(user_id, change, carts, config)
    logger.info("Removed %s from cart of user %s (%d items)", product_ref, user_id, len(cart.items))
    return cart


def clear_cart(
    user_id: str,
    carts: InMemoryCartRepository | None = None,
    config: CartConfig = DEFAULT_CART_CONFIG,
) -> Cart:
    carts = carts or get_cart_repository()

    def change(cart: Cart) -> bool:
        if not cart.items and cart.total_price == 0:
            return False
        cart.items = []
        return True

    cart = _mutate(user_id, change, carts, config)
    logger.info("Cleared cart of user %s", user_id)
    return cart


def check_delivery_availability(
    user_id: str,
    carts: InMemoryCartRepository | None = None,
    catalog: CatalogStore | None = None,
) -> DeliveryAvailability:
    """Live check: re-resolve every line item against the current catalog."""
    carts = carts or get_cart_repository()
    catalog = catalog or get_catalog()

    cart = get_cart(user_id, carts=carts)
    products = catalog.find_many_by_slug(EntityType.product, [item.product for item in cart.items])
    unavailable = [p.name for p in products if not p.available_for_delivery]
    return DeliveryAvailability(unavailable=unavailable, all_available=not unavailable)
