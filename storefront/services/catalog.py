"""Catalog aggregation.

Merges the live product table with the bundled in-stock dataset into a
single :class:`AggregateResult`:

* categories: ``All``, ``LocalStock``, then the remote names in id order
* products: remote products newest ``updated_at`` first, local stock last

A refresh either publishes a complete new result or clears it and sets
``last_error``; a partially fetched catalog is never exposed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from storefront.config import settings
from storefront.constants import (
    ACTION_LOAD_CATEGORY_DATA,
    ACTION_LOAD_PRODUCT_DATA,
    ALL_CATEGORY,
    CATALOG_FALLBACK_ERROR,
    LOCAL_CATEGORY,
)
from storefront.errors import (
    AggregationError,
    RemoteSourceError,
    StorefrontError,
    action_failed,
)
from storefront.models import AggregateResult, Product

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    async def list_categories(self) -> List[Dict[str, Any]]: ...

    async def list_visible_products(self) -> List[Dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning("unparseable timestamp %r, treating as missing", value)
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _images(value: Any) -> Tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return ()


def synthesize_categories(rows: Iterable[Dict[str, Any]]) -> Tuple[str, ...]:
    return (ALL_CATEGORY, LOCAL_CATEGORY, *(row["name"] for row in rows))


def normalize_remote_product(row: Dict[str, Any]) -> Product:
    category = row.get("category_name")
    if category is None:
        joined = row.get("categories") or {}
        category = joined.get("name") if isinstance(joined, dict) else None
    return Product(
        id=row["id"],
        name=row["name"],
        price=float(row.get("price") or 0),
        category=category or "",
        description=row.get("description") or "",
        images=_images(row.get("images")),
        last_updated=parse_timestamp(row.get("updated_at") or row.get("created_at")),
    )


def normalize_local_product(row: Dict[str, Any]) -> Product:
    return Product(
        id=row["id"],
        name=row["name"],
        price=float(row.get("price") or 0),
        category=LOCAL_CATEGORY,
        description=row.get("description") or "",
        images=_images(row.get("images")),
        last_updated=None,
    )


def _sort_key(entry: Tuple[bool, Product]) -> Tuple[int, float]:
    is_local, product = entry
    ts = product.last_updated.timestamp() if product.last_updated else 0.0
    return (1 if is_local else 0, -ts)


def merge_products(remote: Sequence[Product], local: Sequence[Product]) -> Tuple[Product, ...]:
    """Remote by last_updated desc, then local; ties keep source order."""
    tagged = [(False, p) for p in remote] + [(True, p) for p in local]
    return tuple(p for _, p in sorted(tagged, key=_sort_key))


# ---------------------------------------------------------------------------
# Bundled dataset
# ---------------------------------------------------------------------------

@lru_cache(maxsize=None)
def load_local_products(path: str) -> Tuple[Dict[str, Any], ...]:
    """Read the bundled in-stock JSON once per process (failures are not cached)."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise AggregationError(f"cannot load bundled catalog {path}: {e}") from e
    products = data.get("products") if isinstance(data, dict) else None
    if not isinstance(products, list):
        raise AggregationError(f"bundled catalog {path} has no products list")
    logger.info("bundled catalog loaded: %d products", len(products))
    return tuple(products)


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class CatalogAggregator:
    """Shared catalog state with a single ``refresh()`` entry point.

    Parameters
    ----------
    source:
        Remote source; defaults to the process-wide Supabase client.
    local_products:
        Raw bundled records; defaults to the JSON at ``local_catalog_path``.
    timeout:
        Seconds allowed for both remote reads together.
    """

    def __init__(
        self,
        source: Optional[CatalogSource] = None,
        *,
        local_products: Optional[Sequence[Dict[str, Any]]] = None,
        local_catalog_path: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._source = source
        self._local_products = local_products
        self._local_catalog_path = local_catalog_path or settings.local_catalog_path
        self._timeout = timeout if timeout is not None else settings.fetch_timeout

        self.result: Optional[AggregateResult] = None
        self.is_loading = False
        self.last_error: Optional[str] = None

        self._started = 0
        self._published = 0
        self._in_flight = 0

    @property
    def source(self) -> CatalogSource:
        if self._source is None:
            from storefront.db.remote import get_client

            self._source = get_client()
        return self._source

    def _local_records(self) -> Sequence[Dict[str, Any]]:
        if self._local_products is not None:
            return self._local_products
        return load_local_products(self._local_catalog_path)

    async def _fetch(self) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        source = self.source

        async def categories() -> List[Dict[str, Any]]:
            try:
                return await source.list_categories()
            except RemoteSourceError as e:
                raise AggregationError(action_failed(ACTION_LOAD_CATEGORY_DATA, str(e))) from e

        async def products() -> List[Dict[str, Any]]:
            try:
                return await source.list_visible_products()
            except RemoteSourceError as e:
                raise AggregationError(action_failed(ACTION_LOAD_PRODUCT_DATA, str(e))) from e

        try:
            cat_rows, product_rows = await asyncio.wait_for(
                asyncio.gather(categories(), products()), timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise AggregationError(
                action_failed(ACTION_LOAD_PRODUCT_DATA, f"timed out after {self._timeout:g}s")
            ) from e
        return cat_rows, product_rows

    async def _build(self) -> AggregateResult:
        cat_rows, product_rows = await self._fetch()
        try:
            categories = synthesize_categories(cat_rows)
            remote = [normalize_remote_product(row) for row in product_rows]
            local = [normalize_local_product(row) for row in self._local_records()]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise AggregationError(f"{CATALOG_FALLBACK_ERROR}: {e!r}") from e
        return AggregateResult(categories=categories, products=merge_products(remote, local))

    async def refresh(self) -> Optional[AggregateResult]:
        self._started += 1
        seq = self._started
        self._in_flight += 1
        self.is_loading = True
        self.last_error = None

        try:
            result = await self._build()
        except StorefrontError as e:
            logger.error("catalog refresh #%d failed: %s", seq, e)
            if seq > self._published:
                self._published = seq
                self.result = None
                self.last_error = str(e) or CATALOG_FALLBACK_ERROR
            return None
        else:
            if seq > self._published:
                self._published = seq
                self.result = result
                self.last_error = None
                logger.info(
                    "catalog refresh #%d: %d categories, %d products",
                    seq, len(result.categories), len(result.products),
                )
            else:
                logger.info("catalog refresh #%d superseded by #%d", seq, self._published)
            return result
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self.is_loading = False


_catalog: CatalogAggregator | None = None
_catalog_lock = threading.Lock()


def get_catalog() -> CatalogAggregator:
    global _catalog
    with _catalog_lock:
        if _catalog is None:
            _catalog = CatalogAggregator()
        return _catalog
