from __future__ import annotations

import contextlib
import logging

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from persistence.blob_store import AzureBlobStore
from persistence.document_store import CosmosDocumentStore
from persistence.interfaces import BlobStore, KeyValueDocumentStore
from persistence.kv_cell import KVCache, RetryPolicy
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    documents: KeyValueDocumentStore | None = None,
    blobs: BlobStore | None = None,
    retry: RetryPolicy | None = None,
) -> FastAPI:
    """
    Application root. Owns the HTTP client, both store clients and the single
    KVCache shared by every request handler (via app.state).
    """
    load_dotenv("local.env")

    from endpoints.admin_endpoints import router as admin_router
    from endpoints.site_endpoints import router as site_router

    resolved = settings or get_settings()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        async with httpx.AsyncClient() as client:
            app.state.settings = resolved
            app.state.documents = documents or CosmosDocumentStore(resolved, client=client)
            app.state.blobs = blobs or AzureBlobStore(resolved, client=client)
            app.state.kv = KVCache(app.state.documents, retry=retry)
            logger.info(
                "APP START: document store configured=%s, blob storage configured=%s",
                resolved.cosmos_configured,
                resolved.storage_configured,
            )
            try:
                yield
            finally:
                await app.state.kv.drain()

    app = FastAPI(lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(site_router)
    app.include_router(admin_router)

    return app


app = create_app()
