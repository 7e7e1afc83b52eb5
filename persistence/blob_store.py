from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable

import httpx

from settings import Settings

from .interfaces import BlobStore, StoreNotConfiguredError
from .signing import BLOB_API_VERSION, BLOB_TYPE, blob_shared_key, rfc7231_date

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class BlobUploadError(RuntimeError):
    def __init__(self, status_code: int, body: str, reason: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Failed to upload blob: {status_code} {reason}".rstrip())


def sanitize_filename(name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def build_blob_name(filename: str, *, folder: str | None = None, timestamp_ms: int | None = None) -> str:
    """`[folder/]<ms timestamp>-<sanitized filename>`"""
    ts = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    name = f"{ts}-{sanitize_filename(filename)}"
    folder = (folder or "").strip("/")
    return f"{folder}/{name}" if folder else name


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AzureBlobStore(BlobStore):
    """
    Uploads immutable block blobs and returns their public URL.

    Upload failures are raised (BlobUploadError), unlike the document store:
    a caller must never save a reference to an object that was not stored.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self._clock = clock

    def blob_url(self, blob_name: str) -> str:
        s = self._settings
        return f"https://{s.storage_account}.blob.core.windows.net/{s.storage_container}/{blob_name}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def upload(
        self,
        data: bytes,
        filename: str,
        *,
        content_type: str | None = None,
        folder: str | None = None,
    ) -> str:
        s = self._settings
        if not s.storage_configured:
            raise StoreNotConfiguredError("blob storage account/key is missing")

        blob_name = build_blob_name(filename, folder=folder, timestamp_ms=int(self._clock().timestamp() * 1000))
        ctype = content_type or DEFAULT_CONTENT_TYPE
        date = rfc7231_date(self._clock())
        authorization = blob_shared_key(
            "PUT",
            content_length=len(data),
            content_type=ctype,
            date=date,
            account=s.storage_account,
            account_key=s.storage_key,
            container=s.storage_container,
            blob_name=blob_name,
        )
        url = self.blob_url(blob_name)
        headers = {
            "Authorization": authorization,
            "x-ms-date": date,
            "x-ms-version": BLOB_API_VERSION,
            "x-ms-blob-type": BLOB_TYPE,
            "Content-Type": ctype,
            "Content-Length": str(len(data)),
        }

        try:
            response = await self._client.put(url, headers=headers, content=data)
        except httpx.HTTPError as e:
            logger.error("BLOB PUT %s: transport failure: %r", blob_name, e)
            raise BlobUploadError(0, str(e), "transport error") from e
        if not response.is_success:
            logger.error("BLOB PUT %s: status=%s body=%s", blob_name, response.status_code, response.text)
            raise BlobUploadError(response.status_code, response.text, response.reason_phrase)

        logger.info("BLOB PUT %s: %d bytes", blob_name, len(data))
        return url
