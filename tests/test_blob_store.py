from __future__ import annotations

import asyncio
import binascii
from datetime import datetime, timezone

import httpx
import pytest

from persistence.blob_store import AzureBlobStore, BlobUploadError, build_blob_name, sanitize_filename
from persistence.interfaces import StoreNotConfiguredError
from persistence.signing import blob_shared_key

from conftest import STORAGE_KEY

NOW = datetime(2025, 1, 7, 9, 5, 3, tzinfo=timezone.utc)
NOW_MS = 1736240703000
DATE = "Tue, 07 Jan 2025 09:05:03 GMT"


def _store(settings, handler) -> AzureBlobStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AzureBlobStore(settings, client=client, clock=lambda: NOW)


def test_sanitize_filename():
    assert sanitize_filename("my photo(1).jpg") == "my_photo_1_.jpg"
    assert sanitize_filename("report-2024.pdf") == "report-2024.pdf"


def test_build_blob_name_with_and_without_folder():
    assert build_blob_name("a b.png", timestamp_ms=42) == "42-a_b.png"
    assert build_blob_name("a.png", folder="leaders", timestamp_ms=42) == "leaders/42-a.png"


def test_upload_signs_put_and_returns_public_url(settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    async def _run():
        store = _store(settings, handler)
        url = await store.upload(b"hello", "my photo(1).jpg", content_type="image/jpeg", folder="leaders")
        blob_name = f"leaders/{NOW_MS}-my_photo_1_.jpg"
        assert url == f"https://examplestore.blob.core.windows.net/images/{blob_name}"

        (req,) = seen
        assert req.method == "PUT"
        assert str(req.url) == url
        assert req.content == b"hello"
        assert req.headers["x-ms-blob-type"] == "BlockBlob"
        assert req.headers["x-ms-version"] == "2020-10-02"
        assert req.headers["x-ms-date"] == DATE
        assert req.headers["Content-Length"] == "5"
        assert req.headers["Content-Type"] == "image/jpeg"
        assert req.headers["Authorization"] == blob_shared_key(
            "PUT",
            content_length=5,
            content_type="image/jpeg",
            date=DATE,
            account="examplestore",
            account_key=STORAGE_KEY,
            container="images",
            blob_name=blob_name,
        )

    asyncio.run(_run())


def test_upload_defaults_content_type(settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    async def _run():
        await _store(settings, handler).upload(b"x", "blob.bin")
        assert seen[0].headers["Content-Type"] == "application/octet-stream"

    asyncio.run(_run())


def test_upload_failure_raises_with_status_and_body(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, text="AuthenticationFailed")

    async def _run():
        with pytest.raises(BlobUploadError) as exc_info:
            await _store(settings, handler).upload(b"x", "a.png", content_type="image/png")
        assert exc_info.value.status_code == 403
        assert exc_info.value.body == "AuthenticationFailed"

    asyncio.run(_run())


def test_transport_failure_raises_upload_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def _run():
        with pytest.raises(BlobUploadError) as exc_info:
            await _store(settings, handler).upload(b"x", "a.png", content_type="image/png")
        assert exc_info.value.status_code == 0
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    asyncio.run(_run())


def test_unconfigured_storage_raises_before_any_request(make_settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    async def _run():
        store = _store(make_settings(storage_account="", storage_key=""), handler)
        with pytest.raises(StoreNotConfiguredError):
            await store.upload(b"x", "a.png")
        assert seen == []

    asyncio.run(_run())


def test_malformed_storage_key_raises_before_any_request(make_settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    async def _run():
        store = _store(make_settings(storage_key="not base64!!"), handler)
        with pytest.raises(binascii.Error):
            await store.upload(b"x", "a.png", content_type="image/png")
        assert seen == []

    asyncio.run(_run())
