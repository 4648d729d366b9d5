from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from storefront.constants import (
    ACTION_CREATE_CATEGORY,
    ACTION_CREATE_PRODUCT,
    ACTION_DELETE_PRODUCT,
    ACTION_LOAD_CATEGORIES,
    ACTION_LOAD_PRODUCTS,
    ACTION_TOGGLE_PINNED,
    ACTION_TOGGLE_VISIBILITY,
    ACTION_UPDATE_PRODUCT,
    CATEGORIES_TABLE,
    PRODUCT_WITH_CATEGORY,
    PRODUCTS_TABLE,
)
from storefront.errors import ConfigError, RemoteOperationError, RemoteSourceError, action_failed
from storefront.utils.validators import missing_fields

logger = logging.getLogger(__name__)

CATEGORY_REQUIRED = ("name",)
PRODUCT_REQUIRED = ("name", "price", "category_id")


class TableClient(Protocol):
    async def select(self, table: str, *, columns: str = ..., filters: Optional[Dict[str, str]] = ...,
                     order: Optional[str] = ...) -> List[Dict[str, Any]]: ...

    async def insert(self, table: str, row: Dict[str, Any], *, columns: str = ...) -> Dict[str, Any]: ...

    async def update(self, table: str, row_id: Any, values: Dict[str, Any], *,
                     columns: str = ...) -> Dict[str, Any]: ...

    async def delete(self, table: str, row_id: Any) -> None: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _product_row(product: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": product.get("name"),
        "price": product.get("price"),
        "category_id": product.get("category_id"),
        "description": product.get("description"),
        "images": product.get("images") or [],
        "is_visible": product.get("is_visible") if product.get("is_visible") is not None else True,
        "is_pinned": product.get("is_pinned") if product.get("is_pinned") is not None else False,
    }


class ProductManager:
    """
    Admin-side writes to the categories/products tables.
    Every mutation clears last_error, raises RemoteOperationError("<action>失敗: ...")
    on failure and always drops the loading flag afterwards.
    """

    def __init__(self, client: Optional[TableClient] = None) -> None:
        self._client = client
        self.loading = False
        self.last_error: Optional[str] = None

    @property
    def client(self) -> TableClient:
        if self._client is None:
            from storefront.db.remote import get_client

            self._client = get_client()
        return self._client

    @asynccontextmanager
    async def _operation(self, action: str) -> AsyncIterator[None]:
        self.loading = True
        self.last_error = None
        try:
            yield
        except RemoteOperationError as e:
            self.last_error = str(e)
            raise
        except (RemoteSourceError, ConfigError) as e:
            message = action_failed(action, str(e))
            self.last_error = message
            logger.warning(message)
            raise RemoteOperationError(message) from e
        finally:
            self.loading = False

    @staticmethod
    def _require(action: str, data: Dict[str, Any], required) -> None:
        missing = missing_fields(data, required)
        if missing:
            raise RemoteOperationError(action_failed(action, f"missing required fields: {', '.join(missing)}"))

    # ---------------- reads ----------------

    async def fetch_categories(self) -> List[Dict[str, Any]]:
        try:
            return await self.client.select(CATEGORIES_TABLE, order="id")
        except (RemoteSourceError, ConfigError) as e:
            raise RemoteOperationError(action_failed(ACTION_LOAD_CATEGORIES, str(e))) from e

    async def fetch_products(self) -> List[Dict[str, Any]]:
        try:
            return await self.client.select(PRODUCTS_TABLE, columns=PRODUCT_WITH_CATEGORY, order="id")
        except (RemoteSourceError, ConfigError) as e:
            raise RemoteOperationError(action_failed(ACTION_LOAD_PRODUCTS, str(e))) from e

    # ---------------- categories ----------------

    async def create_category(self, name: str) -> Dict[str, Any]:
        async with self._operation(ACTION_CREATE_CATEGORY):
            self._require(ACTION_CREATE_CATEGORY, {"name": name}, CATEGORY_REQUIRED)
            row = await self.client.insert(CATEGORIES_TABLE, {"name": name.strip()})
            logger.info("category created: %s", row.get("id") if row else None)
            return row

    # ---------------- products ----------------

    async def create_product(self, product: Dict[str, Any]) -> Dict[str, Any]:
        async with self._operation(ACTION_CREATE_PRODUCT):
            self._require(ACTION_CREATE_PRODUCT, product, PRODUCT_REQUIRED)
            row = await self.client.insert(PRODUCTS_TABLE, _product_row(product), columns=PRODUCT_WITH_CATEGORY)
            logger.info("product created: %s", row.get("id") if row else None)
            return row

    async def update_product(self, product_id: Any, product: Dict[str, Any]) -> Dict[str, Any]:
        async with self._operation(ACTION_UPDATE_PRODUCT):
            self._require(ACTION_UPDATE_PRODUCT, product, PRODUCT_REQUIRED)
            values = _product_row(product)
            values["updated_at"] = _now_iso()
            return await self.client.update(PRODUCTS_TABLE, product_id, values, columns=PRODUCT_WITH_CATEGORY)

    async def delete_product(self, product_id: Any) -> bool:
        async with self._operation(ACTION_DELETE_PRODUCT):
            await self.client.delete(PRODUCTS_TABLE, product_id)
            logger.info("product deleted: %s", product_id)
            return True

    async def toggle_product_visibility(self, product_id: Any, current_visibility: bool) -> Dict[str, Any]:
        async with self._operation(ACTION_TOGGLE_VISIBILITY):
            return await self.client.update(
                PRODUCTS_TABLE,
                product_id,
                {"is_visible": not current_visibility, "updated_at": _now_iso()},
                columns=PRODUCT_WITH_CATEGORY,
            )

    async def toggle_product_pinned(self, product_id: Any, current_pinned: bool) -> Dict[str, Any]:
        async with self._operation(ACTION_TOGGLE_PINNED):
            return await self.client.update(
                PRODUCTS_TABLE,
                product_id,
                {"is_pinned": not current_pinned, "updated_at": _now_iso()},
                columns=PRODUCT_WITH_CATEGORY,
            )


_manager: ProductManager | None = None


def get_product_manager() -> ProductManager:
    global _manager
    if _manager is None:
        _manager = ProductManager()
    return _manager
