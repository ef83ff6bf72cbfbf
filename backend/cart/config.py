from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CartConfig:
    lock_timeout: float = 5.0  # seconds to wait for a user's cart lock
    max_quantity: int = 99  # per line item
    conflict_retries: int = 3


DEFAULT_CART_CONFIG = CartConfig()
