from __future__ import annotations

import random
import re
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from backend.app import app
from backend.cart import service as cart_service
from backend.cart.store import InMemoryCartRepository, set_cart_repository
from backend.catalog.loader import load_catalog
from backend.errors import (
    EmptyCart,
    Forbidden,
    InvalidStatusTransition,
    OrderNotFound,
    StoreError,
    ValidationError,
)
from backend.orders import service
from backend.orders.models import DeliveryAddress, OrderStatus, can_transition
from backend.orders.store import InMemoryOrderRepository, set_order_repository

client = TestClient(app)

OWNER = {"id": "owner-1", "role": "user"}
STRANGER = {"id": "someone-else", "role": "user"}
ADMIN = {"id": "admin-1", "role": "admin"}


def _login_user(c):
    c.post("/auth/login", json={"email": "user@example.com", "password": "User123!"})


def _login_admin(c):
    c.post("/auth/login", json={"email": "admin@example.com", "password": "Admin123!"})


def _filled_cart():
    """Cart of OWNER holding two lines worth 100.00 in total."""
    carts, catalog = InMemoryCartRepository(), load_catalog()
    cart_service.add_item(OWNER["id"], "duck-gift-box", 1, carts=carts, catalog=catalog)
    cart_service.add_item(OWNER["id"], "peel-plum-snack", 1, carts=carts, catalog=catalog)
    return carts


def _placed_order():
    carts, orders = _filled_cart(), InMemoryOrderRepository()
    order = service.place_order(OWNER["id"], "stripe", carts=carts, orders=orders)
    return order, orders


# ── Order numbers ────────────────────────────────────────────────────────


def test_order_number_format():
    now = datetime(2024, 3, 9, tzinfo=timezone.utc)
    number = service.generate_order_number(now, random.Random(7))
    assert re.fullmatch(r"ORD-20240309-\d{4}", number)


# ── Placement ────────────────────────────────────────────────────────────


class TestPlaceOrder:
    def test_checkout_creates_pending_order_and_empties_cart(self):
        carts, orders = _filled_cart(), InMemoryOrderRepository()
        order = service.place_order(OWNER["id"], "stripe", carts=carts, orders=orders)

        assert order.status == OrderStatus.pending
        assert order.total_amount == pytest.approx(100.0)
        assert len(order.items) == 2
        assert order.payment_method == "stripe"
        assert [h.status for h in order.status_history] == [OrderStatus.pending]

        cart = carts.get(OWNER["id"])
        assert cart.items == []
        assert cart.total_price == 0

    def test_items_snapshot_cart_prices(self):
        order, _ = _placed_order()
        assert {(i.product, i.quantity, i.price) for i in order.items} == {
            ("duck-gift-box", 1, 80.0),
            ("peel-plum-snack", 1, 20.0),
        }
        assert order.total_amount == pytest.approx(sum(i.subtotal for i in order.items))

    def test_empty_cart_rejected(self):
        with pytest.raises(EmptyCart):
            service.place_order(
                OWNER["id"], "stripe",
                carts=InMemoryCartRepository(), orders=InMemoryOrderRepository(),
            )

    def test_payment_method_required(self):
        with pytest.raises(ValidationError):
            service.place_order(
                OWNER["id"], "  ", carts=_filled_cart(), orders=InMemoryOrderRepository(),
            )

    def test_delivery_details_are_kept(self):
        address = DeliveryAddress(
            street="1 Orchard Lane", city="Jiangmen", state="Guangdong",
            zip_code="529100", country="China",
        )
        order = service.place_order(
            OWNER["id"], "alipay",
            delivery_address=address,
            delivery_instructions="Leave at reception",
            carts=_filled_cart(), orders=InMemoryOrderRepository(),
        )
        assert order.delivery_address == address
        assert order.delivery_instructions == "Leave at reception"

    def test_retry_after_failed_clear_does_not_duplicate(self):
        carts, orders = _filled_cart(), InMemoryOrderRepository()
        with patch(
            "backend.orders.service.clear_cart", side_effect=StoreError("cart store down"),
        ):
            with pytest.raises(StoreError):
                service.place_order(OWNER["id"], "stripe", carts=carts, orders=orders)
        assert len(carts.get(OWNER["id"]).items) == 2

        order = service.place_order(OWNER["id"], "stripe", carts=carts, orders=orders)
        assert len(orders.list_for_user(OWNER["id"])) == 1
        assert order.id == orders.list_for_user(OWNER["id"])[0].id
        assert carts.get(OWNER["id"]).items == []


# ── Reads ────────────────────────────────────────────────────────────────


class TestReadOrders:
    def test_owner_and_admin_can_read(self):
        order, orders = _placed_order()
        assert service.get_order(order.id, OWNER, orders=orders).id == order.id
        assert service.get_order(order.id, ADMIN, orders=orders).id == order.id

    def test_other_user_is_forbidden(self):
        order, orders = _placed_order()
        with pytest.raises(Forbidden):
            service.get_order(order.id, STRANGER, orders=orders)

    def test_unknown_order(self):
        with pytest.raises(OrderNotFound):
            service.get_order("missing", OWNER, orders=InMemoryOrderRepository())

    def test_list_filters_by_status(self):
        order, orders = _placed_order()
        assert len(service.list_orders(OWNER["id"], orders=orders)) == 1
        assert service.list_orders(OWNER["id"], status="paid", orders=orders) == []
        assert len(service.list_orders(OWNER["id"], status="Pending", orders=orders)) == 1
        assert service.list_orders(STRANGER["id"], orders=orders) == []

    def test_list_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            service.list_orders(OWNER["id"], status="lost", orders=InMemoryOrderRepository())


# ── Status changes ───────────────────────────────────────────────────────


class TestStatusTransitions:
    def test_pending_cannot_jump_to_shipped(self):
        order, orders = _placed_order()
        with pytest.raises(InvalidStatusTransition):
            service.update_order_status(order.id, "Shipped", orders=orders)
        assert orders.get(order.id).status == OrderStatus.pending

    def test_happy_path_to_completed(self):
        order, orders = _placed_order()
        for status in ("paid", "shipped", "completed"):
            order = service.update_order_status(order.id, status, orders=orders)
        assert order.status == OrderStatus.completed
        assert order.completed_at is not None
        assert [h.status.value for h in order.status_history] == [
            "pending", "paid", "shipped", "completed",
        ]

    def test_terminal_states_are_final(self):
        order, orders = _placed_order()
        service.cancel_order(order.id, OWNER, orders=orders)
        for status in OrderStatus:
            with pytest.raises(InvalidStatusTransition):
                service.update_order_status(order.id, status, orders=orders)

    def test_transition_table(self):
        assert can_transition(OrderStatus.paid, OrderStatus.cancelled)
        assert not can_transition(OrderStatus.shipped, OrderStatus.cancelled)
        assert not can_transition(OrderStatus.pending, OrderStatus.pending)

    def test_unknown_status(self):
        order, orders = _placed_order()
        with pytest.raises(ValidationError):
            service.update_order_status(order.id, "teleported", orders=orders)

    def test_owner_cancels_with_reason(self):
        order, orders = _placed_order()
        cancelled = service.cancel_order(order.id, OWNER, reason="Changed my mind", orders=orders)
        assert cancelled.status == OrderStatus.cancelled
        assert cancelled.cancellation_reason == "Changed my mind"

    def test_stranger_cannot_cancel(self):
        order, orders = _placed_order()
        with pytest.raises(Forbidden):
            service.cancel_order(order.id, STRANGER, orders=orders)

    def test_shipped_order_cannot_be_cancelled(self):
        order, orders = _placed_order()
        service.update_order_status(order.id, "paid", orders=orders)
        service.update_order_status(order.id, "shipped", orders=orders)
        with pytest.raises(InvalidStatusTransition):
            service.cancel_order(order.id, ADMIN, orders=orders)


# ── API ──────────────────────────────────────────────────────────────────


class TestOrderEndpoints:
    def setup_method(self):
        set_cart_repository(InMemoryCartRepository())
        set_order_repository(InMemoryOrderRepository())

    def teardown_method(self):
        set_cart_repository(None)
        set_order_repository(None)

    def _checkout(self, c):
        c.post("/cart/add", json={"product": "duck-gift-box"})
        c.post("/cart/add", json={"product": "peel-plum-snack"})
        return c.post("/orders", json={"payment_method": "stripe"})

    def test_place_order(self):
        c = TestClient(app)
        _login_user(c)
        resp = self._checkout(c)
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["status"] == "pending"
        assert data["total_amount"] == pytest.approx(100.0)
        assert c.get("/cart").json()["data"]["items"] == []

    def test_empty_cart_is_400(self):
        c = TestClient(app)
        _login_user(c)
        resp = c.post("/orders", json={"payment_method": "stripe"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cart is empty"

    def test_my_orders(self):
        c = TestClient(app)
        _login_user(c)
        self._checkout(c)
        body = c.get("/orders").json()
        assert body["meta"]["total"] == 1
        assert c.get("/orders", params={"status": "paid"}).json()["data"] == []

    def test_status_update_requires_admin(self):
        c = TestClient(app)
        _login_user(c)
        order_id = self._checkout(c).json()["data"]["id"]
        resp = c.patch(f"/orders/{order_id}/status", json={"status": "paid"})
        assert resp.status_code == 403

    def test_admin_status_flow(self):
        user = TestClient(app)
        _login_user(user)
        order_id = self._checkout(user).json()["data"]["id"]

        admin = TestClient(app)
        _login_admin(admin)
        resp = admin.patch(f"/orders/{order_id}/status", json={"status": "Shipped"})
        assert resp.status_code == 409
        assert resp.json()["success"] is False

        resp = admin.patch(f"/orders/{order_id}/status", json={"status": "PAID"})
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "paid"

        all_orders = admin.get("/orders/admin/all").json()
        assert all_orders["meta"]["total"] == 1

    def test_other_user_cannot_read_order(self):
        user = TestClient(app)
        _login_user(user)
        order_id = self._checkout(user).json()["data"]["id"]

        other = TestClient(app)
        other.post(
            "/auth/register",
            json={"email": "guest@example.com", "username": "guest_reader", "password": "Guest123!"},
        )
        assert other.get(f"/orders/{order_id}").status_code == 403

    def test_cancel(self):
        c = TestClient(app)
        _login_user(c)
        order_id = self._checkout(c).json()["data"]["id"]
        resp = c.post(f"/orders/{order_id}/cancel", json={"reason": "Ordered twice"})
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "cancelled"
        assert resp.json()["data"]["cancellation_reason"] == "Ordered twice"

    def test_unknown_order_is_404(self):
        c = TestClient(app)
        _login_user(c)
        assert c.get("/orders/does-not-exist").status_code == 404
