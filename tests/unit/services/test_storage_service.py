"""Unit tests for the storage backends."""

import httpx
import pytest
from unittest.mock import patch

from faxbridge.core.exceptions import StorageError
from faxbridge.services.storage_service import LocalStorage, SupabaseStorage


def _mock_http(handler):
    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient
    return patch(
        "faxbridge.services.storage_service.httpx.AsyncClient",
        lambda **kwargs: real_client(transport=transport, **kwargs),
    )


class TestLocalStorage:
    @pytest.mark.asyncio
    async def test_put_then_get(self, tmp_path):
        storage = LocalStorage(str(tmp_path))

        key = await storage.put("inbound/fax-1.pdf", b"%PDF", "application/pdf")

        assert key == "inbound/fax-1.pdf"
        assert await storage.get(key) == b"%PDF"

    @pytest.mark.asyncio
    async def test_missing_object(self, tmp_path):
        assert await LocalStorage(str(tmp_path)).get("inbound/nothing.pdf") is None

    @pytest.mark.asyncio
    async def test_presigned_url_is_file_uri(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        await storage.put("outbound/a.pdf", b"%PDF", "application/pdf")

        url = await storage.presigned_url("outbound/a.pdf", 60)

        assert url.startswith("file://")
        assert url.endswith("/outbound/a.pdf")

    @pytest.mark.asyncio
    async def test_keys_cannot_escape_root(self, tmp_path):
        with pytest.raises(StorageError):
            await LocalStorage(str(tmp_path / "root")).put("../outside.pdf", b"x", "application/pdf")


class TestSupabaseStorage:
    def _storage(self) -> SupabaseStorage:
        return SupabaseStorage(url="https://project.supabase.test", service_role_key="secret", bucket="faxes")

    @pytest.mark.asyncio
    async def test_put_upserts_object(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["upsert"] = request.headers.get("x-upsert")
            return httpx.Response(200, json={"Key": "faxes/outbound/a.pdf"})

        with _mock_http(handler):
            key = await self._storage().put("outbound/a.pdf", b"%PDF", "application/pdf")

        assert key == "outbound/a.pdf"
        assert seen["url"] == "https://project.supabase.test/storage/v1/object/faxes/outbound/a.pdf"
        assert seen["upsert"] == "true"

    @pytest.mark.asyncio
    async def test_put_failure_raises(self):
        with _mock_http(lambda request: httpx.Response(500, text="boom")):
            with pytest.raises(StorageError):
                await self._storage().put("outbound/a.pdf", b"%PDF", "application/pdf")

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self):
        with _mock_http(lambda request: httpx.Response(404)):
            assert await self._storage().get("inbound/fax-1.pdf") is None

    @pytest.mark.asyncio
    async def test_signed_url_is_absolute(self):
        response = {"signedURL": "/object/sign/faxes/outbound/a.pdf?token=abc"}

        with _mock_http(lambda request: httpx.Response(200, json=response)):
            url = await self._storage().presigned_url("outbound/a.pdf", 3600)

        assert url == "https://project.supabase.test/storage/v1/object/sign/faxes/outbound/a.pdf?token=abc"
