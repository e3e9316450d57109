"""Media store module.

Provides:
- MediaStoreBase and its Supabase / in-memory implementations
- Blob key building utilities
- ETag helpers for conditional media responses
"""

from bananapod.storage.client import (
    FakeStorageClient,
    MediaStoreBase,
    ObjectStream,
    StorageError,
    StoredObject,
    SupabaseStorageClient,
    compute_etag,
    etags_match,
)
from bananapod.storage.paths import build_blob_key, extension_from_mime

__all__ = [
    "MediaStoreBase",
    "SupabaseStorageClient",
    "FakeStorageClient",
    "StoredObject",
    "ObjectStream",
    "StorageError",
    "compute_etag",
    "etags_match",
    "build_blob_key",
    "extension_from_mime",
]
