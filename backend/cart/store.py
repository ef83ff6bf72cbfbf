from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from ..errors import ConcurrentModification, StoreTimeout
from .config import DEFAULT_CART_CONFIG, CartConfig
from .models import Cart


class InMemoryCartRepository:
    """
    Cart documents keyed by user id.

    Callers always get deep copies. ``save`` accepts a cart only if its
    ``version`` still matches the stored one, then bumps the version.
    ``lock`` serializes read-modify-write sequences for a single user and is
    reentrant, so a checkout holding the lock can clear the cart.
    """

    def __init__(self, config: CartConfig = DEFAULT_CART_CONFIG) -> None:
        self._config = config
        self._carts: dict[str, Cart] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, user_id: str) -> Cart | None:
        with self._guard:
            cart = self._carts.get(user_id)
            return cart.model_copy(deep=True) if cart else None

    def get_or_create(self, user_id: str) -> Cart:
        with self._guard:
            cart = self._carts.get(user_id)
            if cart is None:
                cart = Cart(user_id=user_id)
                self._carts[user_id] = cart
            return cart.model_copy(deep=True)

    def save(self, cart: Cart) -> Cart:
        with self._guard:
            current = self._carts.get(cart.user_id)
            current_version = current.version if current else 0
            if cart.version != current_version:
                raise ConcurrentModification()
            stored = cart.model_copy(deep=True)
            stored.version = current_version + 1
            stored.updated_at = datetime.now(timezone.utc)
            self._carts[cart.user_id] = stored
            return stored.model_copy(deep=True)

    @contextmanager
    def lock(self, user_id: str, timeout: float | None = None) -> Iterator[None]:
        with self._guard:
            user_lock = self._locks.setdefault(user_id, threading.RLock())
        wait = self._config.lock_timeout if timeout is None else timeout
        if not user_lock.acquire(timeout=wait):
            raise StoreTimeout(f"Timed out waiting for cart of user {user_id}")
        try:
            yield
        finally:
            user_lock.release()

    def clear(self) -> None:
        with self._guard:
            self._carts.clear()
            self._locks.clear()


_repository: InMemoryCartRepository | None = None


def get_cart_repository() -> InMemoryCartRepository:
    global _repository
    if _repository is None:
        _repository = InMemoryCartRepository()
    return _repository


def set_cart_repository(repository: InMemoryCartRepository | None) -> None:
    global _repository
    _repository = repository
