from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from .auth.dependencies import require_admin, require_user
from .auth.models import LoginRequest, RegisterRequest
from .auth.users import authenticate, register
from .cart import service as cart_service
from .cart.models import (
    AddToCartRequest,
    CartResponse,
    DeliveryCheckResponse,
    UpdateCartItemRequest,
)
from .catalog.listing import (
    list_dishes,
    list_products,
    list_restaurants,
    menus_for_restaurant,
    related_products,
    signature_dishes,
)
from .catalog.loader import get_catalog
from .catalog.models import Dish, DishCreate, EntityType, Product, ProductCreate, ProductUpdate
from .config import DEFAULT_APP_CONFIG
from .errors import AppError, NotFound, Unauthorized, ValidationError
from .orders import service as order_service
from .orders.models import (
    CancelOrderRequest,
    OrderListResponse,
    OrderResponse,
    PlaceOrderRequest,
    StatusUpdateRequest,
)
from .pagination import clamp_window, page_count
from .search.cache import get_cache_stats
from .search.engine import search
from .search.models import SearchMeta, SearchResponse

logging.basicConfig(
    level=DEFAULT_APP_CONFIG.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Chen Pi Dining API", version="1.0.0")
app.add_middleware(SessionMiddleware, secret_key=DEFAULT_APP_CONFIG.session_secret)


# ── Error envelopes ──────────────────────────────────────────────────────


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    body: dict = {"success": False, "message": exc.message}
    if isinstance(exc, ValidationError) and exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = {"success": False, "message": "Internal server error"}
    if not DEFAULT_APP_CONFIG.is_production:
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


def _page_meta(total: int, page: int, limit: int) -> dict:
    page, limit, _ = clamp_window(page, limit)
    return {"total": total, "page": page, "limit": limit, "pages": page_count(total, limit)}


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/register", status_code=201)
def register_user(body: RegisterRequest, request: Request) -> dict:
    user = register(body.email, body.username, body.password)
    request.session["user"] = user
    return {"success": True, "data": user}


@app.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    user = authenticate(body.email, body.password)
    if not user:
        raise Unauthorized("Invalid credentials")
    request.session["user"] = user
    return {"success": True, "data": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"success": True, "message": "Logged out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return {"success": True, "data": user}


# ── Catalog endpoints ────────────────────────────────────────────────────


@app.get("/restaurants")
def restaurants(
    cuisine: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
) -> dict:
    items, total = list_restaurants(cuisine=cuisine, page=page, limit=limit)
    return {"success": True, "data": items, "meta": _page_meta(total, page, limit)}


@app.get("/restaurants/{slug}")
def restaurant_detail(slug: str) -> dict:
    restaurant = get_catalog().find_by_slug(EntityType.restaurant, slug)
    if restaurant is None:
        raise NotFound("Restaurant not found")
    return {
        "success": True,
        "data": {
            **restaurant.model_dump(mode="json"),
            "menu_details": menus_for_restaurant(slug),
            "signature_dishes": signature_dishes(slug),
        },
    }


@app.get("/menus/{slug}")
def menu_detail(slug: str) -> dict:
    menu = get_catalog().find_by_slug(EntityType.menu, slug)
    if menu is None:
        raise NotFound("Menu not found")
    dishes, _ = list_dishes(menu=slug, limit=100)
    return {"success": True, "data": {**menu.model_dump(mode="json"), "dishes": dishes}}


@app.get("/dishes")
def dishes(
    restaurant: str | None = None,
    menu: str | None = None,
    signature: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
) -> dict:
    items, total = list_dishes(
        restaurant=restaurant, menu=menu, signature_only=signature, page=page, limit=limit,
    )
    return {"success": True, "data": items, "meta": _page_meta(total, page, limit)}


@app.get("/dishes/{slug}")
def dish_detail(slug: str) -> dict:
    dish = get_catalog().find_by_slug(EntityType.dish, slug)
    if dish is None:
        raise NotFound("Dish not found")
    return {"success": True, "data": dish}


@app.get("/products")
def products(
    category: str | None = None,
    availability: str = "all",
    featured: bool = False,
    sort_by: str = "created_at",
    order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(8, ge=1),
) -> dict:
    items, total = list_products(
        category=category,
        delivery_only=availability == "delivery",
        featured_only=featured,
        sort_by=sort_by,
        order=order,
        page=page,
        limit=limit,
    )
    meta = _page_meta(total, page, limit)
    meta["category"] = category or "All"
    return {"success": True, "data": items, "meta": meta}


@app.get("/products/{slug}")
def product_detail(slug: str, include_related: bool = True) -> dict:
    product = get_catalog().find_by_slug(EntityType.product, slug)
    if product is None:
        raise NotFound("Product not found")
    related = related_products(product) if include_related else []
    return {
        "success": True,
        "data": {**product.model_dump(mode="json"), "related_products": related},
    }


# ── Admin catalog endpoints ──────────────────────────────────────────────


@app.post("/products", status_code=201)
def create_product(body: ProductCreate, user: dict = Depends(require_admin)) -> dict:
    product = get_catalog().add(Product(**body.model_dump(exclude_none=True)))
    return {"success": True, "data": product, "message": "Product created successfully"}


@app.put("/products/{slug}")
def update_product(slug: str, body: ProductUpdate, user: dict = Depends(require_admin)) -> dict:
    product = get_catalog().update(EntityType.product, slug, body.model_dump(exclude_unset=True))
    return {"success": True, "data": product, "message": "Product updated successfully"}


@app.delete("/products/{slug}")
def delete_product(slug: str, user: dict = Depends(require_admin)) -> dict:
    product = get_catalog().delete(EntityType.product, slug)
    return {"success": True, "data": product, "message": "Product deleted successfully"}


@app.post("/dishes", status_code=201)
def create_dish(body: DishCreate, user: dict = Depends(require_admin)) -> dict:
    dish = get_catalog().add(Dish(**body.model_dump(exclude_none=True)))
    return {"success": True, "data": dish, "message": "Dish created successfully"}


# ── Search ───────────────────────────────────────────────────────────────


@app.get("/search", response_model=SearchResponse)
def search_catalog(
    query: str = "",
    filter_: str = Query("restaurant", alias="filter"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
) -> SearchResponse:
    result = search(query, filter_, page=page, limit=limit)
    return SearchResponse(
        data=result.results,
        meta=SearchMeta(
            total=result.total,
            page=result.page,
            limit=result.limit,
            pages=result.pages,
            filter=result.filter,
        ),
    )


# ── Cart endpoints ───────────────────────────────────────────────────────


@app.get("/cart", response_model=CartResponse)
def get_cart(user: dict = Depends(require_user)) -> CartResponse:
    return CartResponse(data=cart_service.get_cart(user["id"]))


@app.post("/cart/add", response_model=CartResponse)
def add_to_cart(body: AddToCartRequest, user: dict = Depends(require_user)) -> CartResponse:
    return CartResponse(data=cart_service.add_item(user["id"], body.product, body.quantity))


@app.put("/cart/update", response_model=CartResponse)
def update_cart_item(body: UpdateCartItemRequest, user: dict = Depends(require_user)) -> CartResponse:
    return CartResponse(data=cart_service.update_quantity(user["id"], body.product, body.quantity))


@app.delete("/cart/remove/{product}", response_model=CartResponse)
def remove_from_cart(product: str, user: dict = Depends(require_user)) -> CartResponse:
    return CartResponse(data=cart_service.remove_item(user["id"], product))


@app.delete("/cart/clear", response_model=CartResponse)
def clear_cart(user: dict = Depends(require_user)) -> CartResponse:
    return CartResponse(data=cart_service.clear_cart(user["id"]))


@app.get("/cart/check-delivery", response_model=DeliveryCheckResponse)
def check_delivery(user: dict = Depends(require_user)) -> DeliveryCheckResponse:
    return DeliveryCheckResponse(data=cart_service.check_delivery_availability(user["id"]))


# ── Order endpoints ──────────────────────────────────────────────────────


@app.post("/orders", response_model=OrderResponse, status_code=201)
def create_order(body: PlaceOrderRequest, user: dict = Depends(require_user)) -> OrderResponse:
    order = order_service.place_order(
        user["id"],
        body.payment_method,
        delivery_address=body.delivery_address,
        delivery_instructions=body.delivery_instructions,
    )
    return OrderResponse(data=order)


@app.get("/orders", response_model=OrderListResponse)
def my_orders(status: str | None = None, user: dict = Depends(require_user)) -> OrderListResponse:
    orders = order_service.list_orders(user["id"], status=status)
    return OrderListResponse(data=orders, meta={"total": len(orders)})


@app.get("/orders/admin/all", response_model=OrderListResponse)
def all_orders(user: dict = Depends(require_admin)) -> OrderListResponse:
    orders = order_service.list_all_orders()
    return OrderListResponse(data=orders, meta={"total": len(orders)})


@app.get("/orders/{order_id}", response_model=OrderResponse)
def order_detail(order_id: str, user: dict = Depends(require_user)) -> OrderResponse:
    return OrderResponse(data=order_service.get_order(order_id, user))


@app.patch("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    user: dict = Depends(require_admin),
) -> OrderResponse:
    return OrderResponse(data=order_service.update_order_status(order_id, body.status))


@app.post("/orders/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: str,
    body: CancelOrderRequest | None = None,
    user: dict = Depends(require_user),
) -> OrderResponse:
    reason = body.reason if body else None
    return OrderResponse(data=order_service.cancel_order(order_id, user, reason=reason))


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.get("/cache/stats")
def cache_stats(user: dict = Depends(require_admin)) -> dict:
    return get_cache_stats()
