from __future__ import annotations

from .blob_store import AzureBlobStore, BlobUploadError
from .document_store import CosmosDocumentStore
from .interfaces import BlobStore, KeyValueDocumentStore, ReadResult, ReadStatus, StoreNotConfiguredError
from .kv_cell import CellState, KVBinding, KVCache, RetryPolicy
from .uploads import IMAGE_POLICY, PDF_POLICY, UploadPolicy, UploadRejected, upload_file

__all__ = [
    "AzureBlobStore",
    "BlobUploadError",
    "CosmosDocumentStore",
    "BlobStore",
    "KeyValueDocumentStore",
    "ReadResult",
    "ReadStatus",
    "StoreNotConfiguredError",
    "CellState",
    "KVBinding",
    "KVCache",
    "RetryPolicy",
    "IMAGE_POLICY",
    "PDF_POLICY",
    "UploadPolicy",
    "UploadRejected",
    "upload_file",
]
