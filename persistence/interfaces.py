from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class ReadStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class ReadResult:
    status: ReadStatus
    value: Any = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.status is ReadStatus.FOUND


class StoreNotConfiguredError(RuntimeError):
    """Endpoint or shared secret for a store is missing."""


class KeyValueDocumentStore(Protocol):
    """
    One JSON-serializable value per key, persisted remotely.

    Only `fetch` distinguishes "absent" from "could not ask"; the other
    operations degrade to their empty/false value and never raise.
    """

    async def fetch(self, key: str) -> ReadResult:
        ...

    async def get(self, key: str) -> Any | None:
        """Value for key, or None when absent or unreachable."""
        ...

    async def set(self, key: str, value: Any) -> bool:
        """Upsert; True when the store acknowledged the write."""
        ...

    async def delete(self, key: str) -> bool:
        """True when deleted or already absent."""
        ...

    async def list_keys(self) -> list[str]:
        ...


class BlobStore(Protocol):
    async def upload(
        self,
        data: bytes,
        filename: str,
        *,
        content_type: str | None = None,
        folder: str | None = None,
    ) -> str:
        """Store the bytes and return the object's public URL. Raises on failure."""
        ...
