from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
from pydantic import BaseModel

from settings import Settings

from .interfaces import KeyValueDocumentStore, ReadResult, ReadStatus, StoreNotConfiguredError
from .signing import COSMOS_API_VERSION, cosmos_auth_token, rfc7231_date

logger = logging.getLogger(__name__)

PARTITION_VALUE = "kv"
PARTITION_KEY_HEADER = json.dumps([PARTITION_VALUE])

KEYS_QUERY = "SELECT c.id FROM c WHERE c.key = @partitionKey"


class KVDocument(BaseModel):
    """
    Wire shape of one entry:
      { "id": "<app key>", "key": "kv", "value": <any JSON> }

    `key` is the partition discriminator, not the application key.
    """

    id: str
    key: str = PARTITION_VALUE
    value: Any = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CosmosDocumentStore(KeyValueDocumentStore):
    """
    Key-value store over a single document collection, one document per key,
    every document in the same partition.

    Creates/upserts and queries are signed against the collection link; reads
    and deletes against the document link.
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

    @property
    def collection_link(self) -> str:
        return f"dbs/{self._settings.cosmos_database}/colls/{self._settings.cosmos_container}"

    def document_link(self, key: str) -> str:
        return f"{self.collection_link}/docs/{key}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        resource_link: str,
        *,
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> httpx.Response:
        if not self._settings.cosmos_configured:
            raise StoreNotConfiguredError("document store endpoint/key is missing")

        date = rfc7231_date(self._clock())
        request_headers = {
            "Authorization": cosmos_auth_token(method, "docs", resource_link, date, self._settings.cosmos_key),
            "x-ms-date": date,
            "x-ms-version": COSMOS_API_VERSION,
            "x-ms-documentdb-partitionkey": PARTITION_KEY_HEADER,
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        url = f"{self._settings.cosmos_endpoint.rstrip('/')}/{resource_link}"
        content = json.dumps(body) if body is not None else None
        if self._settings.debug_log_requests:
            logger.debug("COSMOS %s %s", method, url)
        return await self._client.request(method, url, headers=request_headers, content=content)

    async def fetch(self, key: str) -> ReadResult:
        try:
            response = await self._request("GET", self.document_link(key))
        except Exception as e:
            logger.warning("COSMOS GET %s: request failed: %r", key, e)
            return ReadResult(ReadStatus.TRANSPORT_ERROR, error=repr(e))

        if response.status_code == 404:
            return ReadResult(ReadStatus.NOT_FOUND)
        if not response.is_success:
            logger.warning("COSMOS GET %s: status=%s body=%s", key, response.status_code, response.text)
            return ReadResult(ReadStatus.TRANSPORT_ERROR, error=f"status {response.status_code}")

        try:
            doc = KVDocument.model_validate(response.json())
        except ValueError as e:
            logger.warning("COSMOS GET %s: unreadable document: %r", key, e)
            return ReadResult(ReadStatus.TRANSPORT_ERROR, error=repr(e))
        return ReadResult(ReadStatus.FOUND, value=doc.value)

    async def get(self, key: str) -> Any | None:
        result = await self.fetch(key)
        return result.value if result.found else None

    async def set(self, key: str, value: Any) -> bool:
        doc = KVDocument(id=key, value=value)
        try:
            response = await self._request(
                "POST",
                self.collection_link,
                headers={"x-ms-documentdb-is-upsert": "true"},
                body=doc.model_dump(mode="json"),
            )
        except Exception as e:
            logger.warning("COSMOS SET %s: request failed: %r", key, e)
            return False

        if not response.is_success:
            logger.warning("COSMOS SET %s: status=%s body=%s", key, response.status_code, response.text)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            response = await self._request("DELETE", self.document_link(key))
        except Exception as e:
            logger.warning("COSMOS DELETE %s: request failed: %r", key, e)
            return False
        return response.is_success or response.status_code == 404

    async def list_keys(self) -> list[str]:
        # Single round trip, no continuation tokens: the collection stays small.
        query = {
            "query": KEYS_QUERY,
            "parameters": [{"name": "@partitionKey", "value": PARTITION_VALUE}],
        }
        try:
            response = await self._request(
                "POST",
                self.collection_link,
                headers={
                    "x-ms-documentdb-isquery": "true",
                    "Content-Type": "application/query+json",
                },
                body=query,
            )
        except Exception as e:
            logger.warning("COSMOS QUERY keys: request failed: %r", e)
            return []

        if not response.is_success:
            logger.warning("COSMOS QUERY keys: status=%s body=%s", response.status_code, response.text)
            return []

        try:
            documents = response.json().get("Documents") or []
        except (ValueError, AttributeError) as e:
            logger.warning("COSMOS QUERY keys: unreadable response: %r", e)
            return []
        return [str(d["id"]) for d in documents if isinstance(d, dict) and "id" in d]
