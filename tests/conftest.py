"""Shared fixtures for the storefront test suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from storefront.errors import PersistenceError, RemoteSourceError
from storefront.models import Product
from storefront.services.cart import CartStore


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

class MemoryStorage:
    """In-memory key-value store with switchable failures."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})
        self.ops: List[tuple] = []
        self.reads = 0
        self.fail_read = False
        self.fail_write = False

    def read(self, key: str) -> Optional[str]:
        self.reads += 1
        if self.fail_read:
            raise PersistenceError("disk unavailable")
        return self.data.get(key)

    def write(self, key: str, value: str) -> None:
        if self.fail_write:
            raise PersistenceError("disk full")
        self.ops.append(("write", value))
        self.data[key] = value

    def erase(self, key: str) -> None:
        if self.fail_write:
            raise PersistenceError("disk full")
        self.ops.append(("erase", None))
        self.data.pop(key, None)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def cart(storage: MemoryStorage) -> CartStore:
    return CartStore(storage, "cart")


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

@pytest.fixture
def book() -> Product:
    return Product(
        id=1,
        name="Python Cookbook",
        price=450.0,
        category="Books",
        images=("/img/book-front.jpg", "/img/book-back.jpg"),
        last_updated=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def robot() -> Product:
    return Product(id=2, name="Wind-up Robot", price=120.0, category="Toys")


# ---------------------------------------------------------------------------
# Remote source
# ---------------------------------------------------------------------------

class FakeCatalogSource:
    """Scripted remote source.

    ``product_batches`` are returned one per call (the last one repeats);
    ``delays`` likewise give per-call sleep times for the product read.
    ``product_errors`` gives per-call failures, overriding ``products_error``.
    """

    def __init__(
        self,
        categories: List[Dict[str, Any]],
        product_batches: List[List[Dict[str, Any]]],
        *,
        delays: Optional[List[float]] = None,
        categories_error: Optional[str] = None,
        products_error: Optional[str] = None,
        product_errors: Optional[List[Optional[str]]] = None,
    ) -> None:
        self.categories = categories
        self.product_batches = product_batches
        self.delays = delays or [0.0]
        self.categories_error = categories_error
        self.products_error = products_error
        self.product_errors = product_errors
        self.product_calls = 0

    async def list_categories(self) -> List[Dict[str, Any]]:
        await asyncio.sleep(0)
        if self.categories_error:
            raise RemoteSourceError(self.categories_error)
        return [dict(c) for c in self.categories]

    async def list_visible_products(self) -> List[Dict[str, Any]]:
        idx = self.product_calls
        self.product_calls += 1
        await asyncio.sleep(self.delays[min(idx, len(self.delays) - 1)])
        error = self.products_error
        if self.product_errors:
            error = self.product_errors[min(idx, len(self.product_errors) - 1)]
        if error:
            raise RemoteSourceError(error)
        batch = self.product_batches[min(idx, len(self.product_batches) - 1)]
        return [dict(p) for p in batch]


@pytest.fixture
def remote_categories() -> List[Dict[str, Any]]:
    return [{"id": 1, "name": "Books"}, {"id": 2, "name": "Toys"}]


@pytest.fixture
def remote_products() -> List[Dict[str, Any]]:
    return [
        {
            "id": 10,
            "name": "Old Atlas",
            "price": 300,
            "description": None,
            "images": ["/img/atlas.jpg"],
            "updated_at": "2024-01-01T08:00:00+00:00",
            "categories": {"name": "Books"},
        },
        {
            "id": 11,
            "name": "Spinning Top",
            "price": 80,
            "description": "wooden",
            "images": None,
            "updated_at": "2024-02-01T08:00:00Z",
            "categories": {"name": "Toys"},
        },
    ]


@pytest.fixture
def local_products() -> List[Dict[str, Any]]:
    return [{"id": "stock-1", "name": "Soap Box", "price": 580, "images": ["/img/soap.jpg"]}]


@pytest.fixture
def make_source(remote_categories, remote_products):
    def _make(**kwargs: Any) -> FakeCatalogSource:
        batches = kwargs.pop("product_batches", [remote_products])
        return FakeCatalogSource(remote_categories, batches, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# Table client (admin)
# ---------------------------------------------------------------------------

class FakeTableClient:
    """Records PostgREST-style calls; ``error`` makes every call fail."""

    def __init__(self, error: Optional[str] = None) -> None:
        self.error = error
        self.calls: List[tuple] = []
        self.observed_loading: List[bool] = []
        self.manager = None
        self._next_id = 100

    def _check(self) -> None:
        if self.manager is not None:
            self.observed_loading.append(self.manager.loading)
        if self.error:
            raise RemoteSourceError(self.error)

    async def select(self, table, *, columns="*", filters=None, order=None):
        self.calls.append(("select", table, columns, order))
        self._check()
        return [{"id": 1, "name": "Books"}]

    async def insert(self, table, row, *, columns="*"):
        self.calls.append(("insert", table, row, columns))
        self._check()
        self._next_id += 1
        return {"id": self._next_id, **row}

    async def update(self, table, row_id, values, *, columns="*"):
        self.calls.append(("update", table, row_id, values, columns))
        self._check()
        return {"id": row_id, **values}

    async def delete(self, table, row_id):
        self.calls.append(("delete", table, row_id))
        self._check()
