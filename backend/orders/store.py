from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from ..errors import Conflict, OrderNotFound
from .models import Order, OrderStatus


class InMemoryOrderRepository:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.RLock()

    @contextmanager
    def lock(self) -> Iterator[None]:
        with self._lock:
            yield

    def add(self, order: Order) -> Order:
        with self._lock:
            if order.id in self._orders:
                raise Conflict(f"Order {order.id} already exists")
            self._orders[order.id] = order.model_copy(deep=True)
        return order.model_copy(deep=True)

    def get(self, order_id: str) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def save(self, order: Order) -> Order:
        with self._lock:
            if order.id not in self._orders:
                raise OrderNotFound()
            self._orders[order.id] = order.model_copy(deep=True)
        return order.model_copy(deep=True)

    def list_for_user(self, user_id: str, status: OrderStatus | None = None) -> list[Order]:
        """Newest first."""
        with self._lock:
            orders = [
                o for o in self._orders.values()
                if o.user_id == user_id and (status is None or o.status == status)
            ]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [o.model_copy(deep=True) for o in orders]

    def list_all(self) -> list[Order]:
        with self._lock:
            orders = list(self._orders.values())
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [o.model_copy(deep=True) for o in orders]

    def find_by_cart_version(self, user_id: str, version: int) -> Order | None:
        with self._lock:
            for order in self._orders.values():
                if order.user_id == user_id and order.source_cart_version == version:
                    return order.model_copy(deep=True)
        return None

    def number_exists(self, order_number: str) -> bool:
        with self._lock:
            return any(o.order_number == order_number for o in self._orders.values())

    def clear(self) -> None:
        with self._lock:
            self._orders.clear()


_repository: InMemoryOrderRepository | None = None


def get_order_repository() -> InMemoryOrderRepository:
    global _repository
    if _repository is None:
        _repository = InMemoryOrderRepository()
    return _repository


def set_order_repository(repository: InMemoryOrderRepository | None) -> None:
    global _repository
    _repository = repository
