from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from storefront.db.sqlite import init_db
from storefront.errors import PersistenceError, RemoteOperationError
from storefront.services.cart import CartStore, get_cart_store
from storefront.services.catalog import CatalogAggregator, get_catalog
from storefront.services.product_manager import ProductManager, get_product_manager
from storefront.utils.formatters import money

logger = logging.getLogger(__name__)

ProductIdParam = Union[int, str]


def _product_id(raw: str) -> ProductIdParam:
    # remote ids are integers, bundled stock ids are strings
    return int(raw) if raw.isdigit() else raw


class CartAddIn(BaseModel):
    id: ProductIdParam
    name: str
    price: float = Field(0, ge=0)
    images: List[str] = Field(default_factory=list)
    quantity: int = Field(1, gt=0)

    @field_validator("id")
    @classmethod
    def normalize_id(cls, v: ProductIdParam) -> ProductIdParam:
        return _product_id(v) if isinstance(v, str) else v


class CartQuantityIn(BaseModel):
    quantity: int


class CategoryIn(BaseModel):
    name: str


class ProductIn(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = None
    category_id: Optional[int] = None
    description: Optional[str] = None
    images: Optional[List[str]] = None
    is_visible: Optional[bool] = None
    is_pinned: Optional[bool] = None


class ToggleIn(BaseModel):
    current: bool


def create_app(
    cart: Optional[CartStore] = None,
    catalog: Optional[CatalogAggregator] = None,
    manager: Optional[ProductManager] = None,
    *,
    refresh_on_startup: bool = True,
) -> FastAPI:
    app = FastAPI(title="Storefront")
    app.state.cart = cart
    app.state.catalog = catalog
    app.state.manager = manager

    def _cart(request: Request) -> CartStore:
        if request.app.state.cart is None:
            request.app.state.cart = get_cart_store()
        return request.app.state.cart

    def _catalog(request: Request) -> CatalogAggregator:
        if request.app.state.catalog is None:
            request.app.state.catalog = get_catalog()
        return request.app.state.catalog

    def _manager(request: Request) -> ProductManager:
        if request.app.state.manager is None:
            request.app.state.manager = get_product_manager()
        return request.app.state.manager

    def _cart_view(store: CartStore) -> Dict[str, Any]:
        total = store.cart_total
        return {
            "items": [it.to_dict() for it in store.items],
            "count": store.cart_count,
            "total": total,
            "total_display": money(total),
        }

    def _catalog_view(aggregator: CatalogAggregator) -> Dict[str, Any]:
        result = aggregator.result
        return {
            "categories": list(result.categories) if result else [],
            "products": [p.to_dict() for p in result.products] if result else [],
            "is_loading": aggregator.is_loading,
            "error": aggregator.last_error,
        }

    @app.on_event("startup")
    async def _startup() -> None:
        try:
            init_db()
        except PersistenceError:
            logger.exception("database init failed, cart runs in memory only")
        if refresh_on_startup:
            aggregator = app.state.catalog or get_catalog()
            app.state.catalog = aggregator
            await aggregator.refresh()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        if app.state.cart is not None:
            app.state.cart.flush()

    @app.exception_handler(RemoteOperationError)
    async def _remote_operation_error(request: Request, exc: RemoteOperationError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    # ---------------- catalog ----------------

    @app.get("/catalog")
    def catalog_get(request: Request):
        return _catalog_view(_catalog(request))

    @app.post("/catalog/refresh")
    async def catalog_refresh(request: Request):
        aggregator = _catalog(request)
        await aggregator.refresh()
        return _catalog_view(aggregator)

    # ---------------- cart ----------------

    @app.get("/cart")
    def cart_get(request: Request):
        return _cart_view(_cart(request))

    @app.post("/cart/items")
    def cart_add(request: Request, body: CartAddIn):
        store = _cart(request)
        store.add_to_cart(body.model_dump(exclude={"quantity"}), body.quantity)
        return _cart_view(store)

    @app.patch("/cart/items/{product_id}")
    def cart_update(request: Request, product_id: str, body: CartQuantityIn):
        store = _cart(request)
        store.update_quantity(_product_id(product_id), body.quantity)
        return _cart_view(store)

    @app.delete("/cart/items/{product_id}")
    def cart_remove(request: Request, product_id: str):
        store = _cart(request)
        store.remove_from_cart(_product_id(product_id))
        return _cart_view(store)

    @app.delete("/cart")
    def cart_clear(request: Request):
        store = _cart(request)
        store.clear_cart()
        return _cart_view(store)

    # ---------------- admin ----------------

    @app.get("/admin/categories")
    async def admin_categories(request: Request):
        return await _manager(request).fetch_categories()

    @app.post("/admin/categories", status_code=201)
    async def admin_categories_add(request: Request, body: CategoryIn):
        return await _manager(request).create_category(body.name)

    @app.get("/admin/products")
    async def admin_products(request: Request):
        return await _manager(request).fetch_products()

    @app.post("/admin/products", status_code=201)
    async def admin_products_add(request: Request, body: ProductIn):
        return await _manager(request).create_product(body.model_dump())

    @app.put("/admin/products/{product_id}")
    async def admin_products_update(request: Request, product_id: int, body: ProductIn):
        return await _manager(request).update_product(product_id, body.model_dump())

    @app.delete("/admin/products/{product_id}")
    async def admin_products_delete(request: Request, product_id: int):
        await _manager(request).delete_product(product_id)
        return {"deleted": product_id}

    @app.post("/admin/products/{product_id}/visibility")
    async def admin_products_visibility(request: Request, product_id: int, body: ToggleIn):
        return await _manager(request).toggle_product_visibility(product_id, body.current)

    @app.post("/admin/products/{product_id}/pinned")
    async def admin_products_pinned(request: Request, product_id: int, body: ToggleIn):
        return await _manager(request).toggle_product_pinned(product_id, body.current)

    return app


app = create_app()
