from __future__ import annotations

import logging

from pydantic import BaseModel

from settings import Settings

from .interfaces import KeyValueDocumentStore, ReadStatus

logger = logging.getLogger(__name__)

CONNECTION_TEST_KEY = "_connection_test"


class ConnectionStatus(BaseModel):
    configured: bool
    connected: bool
    error: str | None = None


async def probe_connection(store: KeyValueDocumentStore, settings: Settings) -> ConnectionStatus:
    """Read a well-known key; "not found" counts as connected."""
    if not settings.cosmos_configured:
        return ConnectionStatus(configured=False, connected=False, error="document store endpoint not configured")

    result = await store.fetch(CONNECTION_TEST_KEY)
    if result.status is ReadStatus.TRANSPORT_ERROR:
        logger.warning("KV connection probe failed: %s", result.error)
        return ConnectionStatus(configured=True, connected=False, error="failed to connect to document store")
    return ConnectionStatus(configured=True, connected=True)
