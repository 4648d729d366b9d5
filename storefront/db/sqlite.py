from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime
from typing import Optional

from storefront.config import settings
from storefront.errors import PersistenceError

logger = logging.getLogger(__name__)


def _connect(db_path: str) -> sqlite3.Connection:
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Optional[str] = None) -> None:
    path = db_path or settings.db_path
    try:
        conn = _connect(path)
    except (OSError, sqlite3.Error) as e:
        raise PersistenceError(f"cannot open {path}: {e}") from e
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    except sqlite3.Error as e:
        raise PersistenceError(f"cannot initialize {path}: {e}") from e
    finally:
        conn.close()


class SqliteKeyValueStore:
    """
    Durable key -> string storage on top of the kv_store table.
    Every sqlite failure surfaces as PersistenceError.
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path or settings.db_path

    def _open(self) -> sqlite3.Connection:
        try:
            return _connect(self.db_path)
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"cannot open {self.db_path}: {e}") from e

    def read(self, key: str) -> Optional[str]:
        conn = self._open()
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None
        except sqlite3.Error as e:
            raise PersistenceError(f"read {key!r} failed: {e}") from e
        finally:
            conn.close()

    def write(self, key: str, value: str) -> None:
        conn = self._open()
        try:
            updated_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            conn.execute(
                "INSERT INTO kv_store(key, value, updated_at) VALUES(?,?,?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                (key, value, updated_at),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"write {key!r} failed: {e}") from e
        finally:
            conn.close()

    def erase(self, key: str) -> None:
        conn = self._open()
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"erase {key!r} failed: {e}") from e
        finally:
            conn.close()
