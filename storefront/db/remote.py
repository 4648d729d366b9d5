"""Supabase (PostgREST) client.

Thin async wrapper over the ``/rest/v1/<table>`` endpoints used by the
catalog and the product manager.  Every transport failure or non-2xx
response is raised as :class:`RemoteSourceError` carrying the backend's
own message, so callers can wrap it for display.

Usage::

    async with SupabaseClient(url, anon_key) as client:
        categories = await client.list_categories()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from storefront.config import settings
from storefront.constants import (
    CATEGORIES_TABLE,
    PRODUCT_WITH_CATEGORY_NAME,
    PRODUCTS_TABLE,
)
from storefront.errors import ConfigError, RemoteSourceError

logger = logging.getLogger(__name__)

_SINGLE_OBJECT = "application/vnd.pgrst.object+json"


def _error_message(response: httpx.Response) -> str:
    """Pull PostgREST's ``message`` out of an error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}: {response.text or response.reason_phrase}"


class SupabaseClient:
    """Async PostgREST client.

    Parameters
    ----------
    url:
        Project URL, e.g. ``https://xyz.supabase.co``.
    anon_key:
        Public anon key; sent both as ``apikey`` and bearer token.
    timeout:
        HTTP request timeout in seconds.
    transport:
        Optional httpx transport (tests pass an ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url or not anon_key:
            raise ConfigError(
                "Missing Supabase settings. Set SUPABASE_URL and SUPABASE_ANON_KEY "
                "(or VITE_SUPABASE_URL / VITE_SUPABASE_ANON_KEY) in .env"
            )
        self._base_url = url.rstrip("/") + "/rest/v1"
        self._anon_key = anon_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    # -- Lifecycle -----------------------------------------------------------

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "apikey": self._anon_key,
                    "Authorization": f"Bearer {self._anon_key}",
                },
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> SupabaseClient:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- Low level -----------------------------------------------------------

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        single: bool = False,
        returning: bool = False,
    ) -> Any:
        await self.open()
        assert self._client is not None

        headers: Dict[str, str] = {}
        if single:
            headers["Accept"] = _SINGLE_OBJECT
        if returning:
            headers["Prefer"] = "return=representation"

        try:
            response = await self._client.request(
                method, f"/{table}", params=params, json=json, headers=headers,
            )
        except httpx.HTTPError as e:
            raise RemoteSourceError(str(e) or type(e).__name__) from e

        if response.is_error:
            message = _error_message(response)
            logger.warning("%s %s failed: %s", method, table, message)
            raise RemoteSourceError(message)

        if not response.content:
            return None
        return response.json()

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Dict[str, str]] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {"select": columns}
        if filters:
            params.update(filters)
        if order:
            params["order"] = order
        rows = await self._request("GET", table, params=params)
        return list(rows or [])

    async def insert(self, table: str, row: Dict[str, Any], *, columns: str = "*") -> Dict[str, Any]:
        return await self._request(
            "POST", table, params={"select": columns}, json=[row], single=True, returning=True,
        )

    async def update(
        self, table: str, row_id: Any, values: Dict[str, Any], *, columns: str = "*",
    ) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            table,
            params={"id": f"eq.{row_id}", "select": columns},
            json=values,
            single=True,
            returning=True,
        )

    async def delete(self, table: str, row_id: Any) -> None:
        await self._request("DELETE", table, params={"id": f"eq.{row_id}"})

    # -- Catalog reads -------------------------------------------------------

    async def list_categories(self) -> List[Dict[str, Any]]:
        return await self.select(CATEGORIES_TABLE, order="id")

    async def list_visible_products(self) -> List[Dict[str, Any]]:
        return await self.select(
            PRODUCTS_TABLE,
            columns=PRODUCT_WITH_CATEGORY_NAME,
            filters={"is_visible": "eq.true"},
            order="id",
        )


_client: SupabaseClient | None = None


def get_client() -> SupabaseClient:
    """Process-wide client built from settings on first use."""
    global _client
    if _client is None:
        _client = SupabaseClient(
            settings.supabase_url,
            settings.supabase_anon_key,
            timeout=settings.fetch_timeout,
        )
    return _client


async def close_client() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None
