"""
Error taxonomy shared by the catalog, search, cart and order components.

Every error carries the HTTP status class it maps to, so the API layer can
turn it into a ``{"success": false, "message": ...}`` envelope without
knowing which component raised it.
"""

from __future__ import annotations


class AppError(Exception):
    status_code: int = 500
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ── 400 ──────────────────────────────────────────────────────────────────


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: str | None = None, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class InvalidQuery(ValidationError):
    default_message = "Search query is required"


class UnsupportedFilter(ValidationError):
    default_message = "Invalid filter type"


class EmptyCart(ValidationError):
    default_message = "Cart is empty"


# ── 401 / 403 ────────────────────────────────────────────────────────────


class Unauthorized(AppError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(AppError):
    status_code = 403
    default_message = "Not authorized"


# ── 404 ──────────────────────────────────────────────────────────────────


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class ProductNotFound(NotFound):
    default_message = "Product not found"


class ItemNotInCart(NotFound):
    default_message = "Product not found in cart"


class OrderNotFound(NotFound):
    default_message = "Order not found"


# ── 409 ──────────────────────────────────────────────────────────────────


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"


class InvalidStatusTransition(Conflict):
    default_message = "Invalid order status transition"


class ConcurrentModification(Conflict):
    default_message = "Cart was modified concurrently, please retry"


# ── 503 ──────────────────────────────────────────────────────────────────


class StoreError(AppError):
    status_code = 503
    default_message = "Storage unavailable"


class StoreTimeout(StoreError):
    default_message = "Storage timed out"
