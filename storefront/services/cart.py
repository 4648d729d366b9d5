"""Persistent shopping cart.

Mutations are synchronous and apply to the in-memory line items first;
persistence is write-behind through :class:`CartWriter`, a single
background thread draining a FIFO queue, so the stored record always
follows mutation order.  Storage failures are logged and never reach
the caller: the cart keeps working in memory.

An empty cart has no stored record at all, whether it got there through
``clear_cart()`` or by removing the last line item.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from dataclasses import replace
from typing import Any, List, Optional, Protocol

from storefront.config import settings
from storefront.db.sqlite import SqliteKeyValueStore, init_db
from storefront.errors import PersistenceError
from storefront.models import CartItem, ProductId
from storefront.utils.validators import require_positive_int

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, value: str) -> None: ...

    def erase(self, key: str) -> None: ...


_WRITE = "write"
_ERASE = "erase"


class CartWriter:
    """Single writer thread applying cart snapshots in the order queued."""

    def __init__(self, storage: KeyValueStorage, key: str) -> None:
        self._storage = storage
        self._key = key
        self._queue: "queue.Queue[tuple[str, Optional[str]]]" = queue.Queue()
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()

        self.writes_applied = 0
        self.error_count = 0

    def _ensure_started(self) -> None:
        with self._start_lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run, name="cart-writer", daemon=True,
                )
                self._thread.start()

    def write(self, payload: str) -> None:
        self._ensure_started()
        self._queue.put((_WRITE, payload))

    def erase(self) -> None:
        self._ensure_started()
        self._queue.put((_ERASE, None))

    def flush(self) -> None:
        """Block until everything queued so far has been applied (or failed)."""
        if self._thread is None:
            return
        self._queue.join()

    def _run(self) -> None:
        while True:
            op, payload = self._queue.get()
            try:
                if op == _WRITE:
                    self._storage.write(self._key, payload or "[]")
                else:
                    self._storage.erase(self._key)
                self.writes_applied += 1
            except PersistenceError as e:
                self.error_count += 1
                logger.warning("cart %s failed, keeping in-memory state: %s", op, e)
            except Exception:
                self.error_count += 1
                logger.exception("cart %s failed with unexpected error", op)
            finally:
                self._queue.task_done()


def _field(product: Any, name: str, default: Any = None) -> Any:
    if isinstance(product, dict):
        return product.get(name, default)
    return getattr(product, name, default)


def _first_image(product: Any) -> Optional[str]:
    images = _field(product, "images")
    if isinstance(images, (list, tuple)) and images:
        return images[0]
    return _field(product, "image")


def _parse_items(raw: str) -> List[CartItem]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("stored cart is not a list")

    items: List[CartItem] = []
    seen = set()
    for entry in data:
        try:
            product_id = entry["id"]
            if isinstance(product_id, bool) or not isinstance(product_id, (int, str)):
                raise TypeError(f"unsupported id {product_id!r}")
            item = CartItem(
                id=product_id,
                name=str(entry.get("name", "")),
                image=entry.get("image"),
                price=float(entry.get("price") or 0),
                quantity=int(entry["quantity"]),
            )
        except (KeyError, TypeError, ValueError, AttributeError, OverflowError):
            logger.warning("skipping malformed cart entry: %r", entry)
            continue
        if item.quantity < 1 or item.id in seen:
            logger.warning("skipping invalid cart entry: %r", entry)
            continue
        seen.add(item.id)
        items.append(item)
    return items


class CartStore:
    def __init__(
        self,
        storage: KeyValueStorage,
        key: Optional[str] = None,
        *,
        writer: Optional[CartWriter] = None,
    ) -> None:
        self._storage = storage
        self._key = key or settings.cart_storage_key
        self._writer = writer or CartWriter(storage, self._key)
        self._items: Optional[List[CartItem]] = None
        self._lock = threading.RLock()

    # ---------------- hydration ----------------

    def _loaded(self) -> List[CartItem]:
        with self._lock:
            if self._items is None:
                self._items = self._hydrate()
            return self._items

    def _hydrate(self) -> List[CartItem]:
        try:
            raw = self._storage.read(self._key)
        except PersistenceError as e:
            logger.warning("cart read failed, starting empty: %s", e)
            return []
        if not raw:
            return []
        try:
            items = _parse_items(raw)
        except ValueError as e:
            logger.warning("stored cart is unreadable, starting empty: %s", e)
            return []
        logger.info("cart restored: %d line items", len(items))
        return items

    def _find(self, product_id: ProductId) -> Optional[CartItem]:
        for it in self._loaded():
            if it.id == product_id:
                return it
        return None

    def _persist(self) -> None:
        items = self._loaded()
        if not items:
            self._writer.erase()
            return
        payload = json.dumps([it.to_dict() for it in items], ensure_ascii=False)
        self._writer.write(payload)

    # ---------------- mutations ----------------

    def add_to_cart(self, product: Any, quantity: int = 1) -> None:
        require_positive_int(quantity, "quantity")
        product_id = _field(product, "id")
        if product_id is None:
            raise ValueError("product has no id")

        with self._lock:
            existing = self._find(product_id)
            if existing:
                existing.quantity += quantity
            else:
                self._loaded().append(
                    CartItem(
                        id=product_id,
                        name=_field(product, "name", ""),
                        image=_first_image(product),
                        price=float(_field(product, "price", 0) or 0),
                        quantity=quantity,
                    )
                )
            self._persist()

    def remove_from_cart(self, product_id: ProductId) -> None:
        with self._lock:
            items = self._loaded()
            for idx, it in enumerate(items):
                if it.id == product_id:
                    del items[idx]
                    self._persist()
                    return

    def update_quantity(self, product_id: ProductId, quantity: int) -> None:
        with self._lock:
            item = self._find(product_id)
            if item is None:
                return
            if quantity <= 0:
                self.remove_from_cart(product_id)
                return
            require_positive_int(quantity, "quantity")
            item.quantity = quantity
            self._persist()

    def clear_cart(self) -> None:
        with self._lock:
            self._items = []
            self._writer.erase()

    # ---------------- derived ----------------

    @property
    def items(self) -> List[CartItem]:
        with self._lock:
            return [replace(it) for it in self._loaded()]

    @property
    def cart_count(self) -> int:
        return sum(it.quantity for it in self.items)

    @property
    def cart_total(self) -> float:
        return sum(it.price * it.quantity for it in self.items)

    def flush(self) -> None:
        self._writer.flush()


_store: CartStore | None = None
_store_lock = threading.Lock()


def get_cart_store() -> CartStore:
    """Process-wide cart backed by the sqlite key-value table."""
    global _store
    with _store_lock:
        if _store is None:
            try:
                init_db(settings.db_path)
            except PersistenceError:
                logger.exception("cart storage unavailable, cart will not survive restarts")
            _store = CartStore(SqliteKeyValueStore(settings.db_path), settings.cart_storage_key)
        return _store
