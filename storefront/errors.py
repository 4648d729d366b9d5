"""Exceptions raised across the storefront package."""

from __future__ import annotations


class StorefrontError(Exception):
    """Base exception for all storefront errors."""


class ConfigError(StorefrontError):
    """Missing or invalid configuration."""


# --- Storage ---
class PersistenceError(StorefrontError):
    """Durable storage read/write/erase failed."""


# --- Remote source ---
class RemoteSourceError(StorefrontError):
    """Transport or query failure reported by the remote backend."""


class AggregationError(StorefrontError):
    """Catalog fetch or merge failed."""


class RemoteOperationError(StorefrontError):
    """Administrative mutation failed; message is ready to show to a user."""


def action_failed(action: str, message: str) -> str:
    return f"{action}失敗: {message}"
