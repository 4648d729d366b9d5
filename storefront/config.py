from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../storefront repo root
PACKAGE_DIR = Path(__file__).resolve().parent
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float | None = None) -> float | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_anon_key: str
    db_path: str
    local_catalog_path: str
    cart_storage_key: str
    fetch_timeout: float
    currency: str
    decimals: int
    log_level: str


settings = Settings(
    supabase_url=_get_env("SUPABASE_URL", "VITE_SUPABASE_URL", default="") or "",
    supabase_anon_key=_get_env("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY", default="") or "",
    db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "storefront.db")),
    local_catalog_path=_get_path(
        "LOCAL_CATALOG_PATH", default=str(PACKAGE_DIR / "data" / "in_stock_products.json")
    ),
    cart_storage_key=_get_env("CART_STORAGE_KEY", default="cart") or "cart",
    fetch_timeout=_get_float("FETCH_TIMEOUT", default=15.0) or 15.0,
    currency=_get_env("CURRENCY", default="TWD") or "TWD",
    decimals=_get_int("DECIMALS", default=0) or 0,
    log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
)
