"""Tests for the PostgREST client, using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from storefront.db.remote import SupabaseClient
from storefront.errors import ConfigError, RemoteSourceError


def _client(handler) -> SupabaseClient:
    return SupabaseClient(
        "https://demo.supabase.co/", "anon-key", transport=httpx.MockTransport(handler),
    )


class TestConstruction:
    def test_missing_url_raises(self):
        with pytest.raises(ConfigError):
            SupabaseClient("", "anon-key")

    def test_missing_key_raises(self):
        with pytest.raises(ConfigError):
            SupabaseClient("https://demo.supabase.co", "")


class TestReads:
    @pytest.mark.asyncio
    async def test_list_visible_products_query(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": 1, "name": "Kite"}])

        async with _client(handler) as client:
            rows = await client.list_visible_products()

        assert rows == [{"id": 1, "name": "Kite"}]
        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/products"
        assert request.url.params["is_visible"] == "eq.true"
        assert request.url.params["order"] == "id"
        assert request.url.params["select"] == "*,categories(name)"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_list_categories_ordered_by_id(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": 1, "name": "Books"}])

        async with _client(handler) as client:
            rows = await client.list_categories()

        assert rows == [{"id": 1, "name": "Books"}]
        assert seen[0].url.path == "/rest/v1/categories"
        assert seen[0].url.params["order"] == "id"


class TestWrites:
    @pytest.mark.asyncio
    async def test_insert_requests_single_representation(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": 9, "name": "Games"})

        async with _client(handler) as client:
            row = await client.insert("categories", {"name": "Games"})

        assert row == {"id": 9, "name": "Games"}
        request = seen[0]
        assert request.method == "POST"
        assert json.loads(request.content) == [{"name": "Games"}]
        assert request.headers["prefer"] == "return=representation"
        assert request.headers["accept"] == "application/vnd.pgrst.object+json"

    @pytest.mark.asyncio
    async def test_update_filters_by_id(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": 3, "is_visible": False})

        async with _client(handler) as client:
            await client.update("products", 3, {"is_visible": False})

        assert seen[0].method == "PATCH"
        assert seen[0].url.params["id"] == "eq.3"
        assert json.loads(seen[0].content) == {"is_visible": False}

    @pytest.mark.asyncio
    async def test_delete_with_empty_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            assert request.url.params["id"] == "eq.3"
            return httpx.Response(204)

        async with _client(handler) as client:
            assert await client.delete("products", 3) is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_backend_message_is_surfaced(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400, json={"code": "42P01", "message": 'relation "public.products" does not exist'},
            )

        async with _client(handler) as client:
            with pytest.raises(RemoteSourceError, match="does not exist"):
                await client.list_visible_products()

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="upstream unavailable")

        async with _client(handler) as client:
            with pytest.raises(RemoteSourceError, match="503"):
                await client.list_categories()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(RemoteSourceError, match="connection refused"):
                await client.list_categories()
