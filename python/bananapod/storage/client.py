"""Media store client abstraction.

Provides a uniform async interface for blob operations:
- put_object: store bytes under a key
- get_object: fetch bytes + content type (None if absent)
- open_object: start a chunked download (None if absent)
- delete_object: remove a key (absent keys are not an error)

Every method either returns a result or raises StorageError; there are no
callbacks. All methods receive the full blob key directly.
"""

import hashlib
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from bananapod.logging import get_logger

logger = get_logger(__name__)

STREAM_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredObject:
    """Blob content as read back from the store."""

    data: bytes
    content_type: str


@dataclass
class ObjectStream:
    """An open download. Iterating with iter_chunks() closes it at the end."""

    chunks: AsyncIterator[bytes]
    content_type: str
    content_length: int | None
    close: Callable[[], Awaitable[None]]

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.chunks:
                yield chunk
        finally:
            await self.close()


class StorageError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, code: str = "E_STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class MediaStoreBase(ABC):
    """Abstract base class for media store implementations."""

    @abstractmethod
    async def put_object(self, key: str, data: bytes, *, content_type: str) -> None:
        """Store an object, replacing any existing content at the key.

        Raises:
            StorageError: If the write fails.
        """
        ...

    @abstractmethod
    async def get_object(self, key: str) -> StoredObject | None:
        """Fetch an object.

        Returns:
            StoredObject if the key exists, None otherwise.

        Raises:
            StorageError: If the read fails for any reason other than absence.
        """
        ...

    @abstractmethod
    async def open_object(self, key: str) -> ObjectStream | None:
        """Start reading an object without loading it into memory.

        Returns:
            ObjectStream if the key exists, None otherwise.

        Raises:
            StorageError: If the read fails for any reason other than absence.
        """
        ...

    @abstractmethod
    async def delete_object(self, key: str) -> None:
        """Delete an object. Deleting a missing key succeeds.

        Raises:
            StorageError: If the delete fails.
        """
        ...


class SupabaseStorageClient(MediaStoreBase):
    """Production media store backed by the Supabase Storage REST API.

    Uses the shared httpx.AsyncClient created in the app lifespan.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        supabase_url: str,
        service_key: str,
        bucket: str = "media",
    ):
        """Initialize the storage client.

        Args:
            client: Shared async HTTP client.
            supabase_url: Supabase project URL (e.g., https://xxx.supabase.co).
            service_key: Supabase service role key.
            bucket: Storage bucket name.
        """
        self._client = client
        self._bucket = bucket
        self._storage_url = f"{supabase_url.rstrip('/')}/storage/v1"
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def _object_url(self, key: str) -> str:
        return f"{self._storage_url}/object/{self._bucket}/{quote(key, safe='/')}"

    async def put_object(self, key: str, data: bytes, *, content_type: str) -> None:
        """Upload via POST /object/{bucket}/{key} with upsert."""
        try:
            response = await self._client.post(
                self._object_url(key),
                headers={**self._headers, "Content-Type": content_type, "x-upsert": "true"},
                content=data,
                timeout=60.0,
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to put object: {type(e).__name__}") from e

        if response.status_code not in (200, 201):
            raise StorageError(f"Failed to put object: {response.status_code}")

    async def get_object(self, key: str) -> StoredObject | None:
        """Download via authenticated GET."""
        try:
            response = await self._client.get(
                self._object_url(key), headers=self._headers, timeout=60.0
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to get object: {type(e).__name__}") from e

        # Supabase reports missing objects as 404, or 400 with a not_found body
        if response.status_code == 404 or (
            response.status_code == 400 and "not_found" in response.text.lower()
        ):
            return None

        if response.status_code != 200:
            raise StorageError(f"Failed to get object: {response.status_code}")

        return StoredObject(
            data=response.content,
            content_type=response.headers.get("content-type", "application/octet-stream"),
        )

    async def open_object(self, key: str) -> ObjectStream | None:
        """Download via authenticated GET, reading the body in chunks."""
        request = self._client.build_request(
            "GET", self._object_url(key), headers=self._headers, timeout=60.0
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to open object: {type(e).__name__}") from e

        if response.status_code != 200:
            try:
                body = await response.aread()
            except httpx.HTTPError as e:
                raise StorageError(f"Failed to open object: {type(e).__name__}") from e
            finally:
                await response.aclose()

            if response.status_code == 404 or (
                response.status_code == 400 and b"not_found" in body.lower()
            ):
                return None
            raise StorageError(f"Failed to open object: {response.status_code}")

        content_length = response.headers.get("content-length")
        return ObjectStream(
            chunks=response.aiter_bytes(STREAM_CHUNK_SIZE),
            content_type=response.headers.get("content-type", "application/octet-stream"),
            content_length=int(content_length) if content_length else None,
            close=response.aclose,
        )

    async def delete_object(self, key: str) -> None:
        """Delete via DELETE /object/{bucket}/{key}."""
        try:
            response = await self._client.delete(
                self._object_url(key), headers=self._headers, timeout=30.0
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to delete object: {type(e).__name__}") from e

        if response.status_code not in (200, 204, 404):
            logger.warning("storage_delete_failed", status_code=response.status_code)
            raise StorageError(f"Failed to delete object: {response.status_code}")


class FakeStorageClient(MediaStoreBase):
    """In-memory media store for tests and local development.

    Deterministic, no network. Exposes a few test helpers.
    """

    def __init__(self):
        self._objects: dict[str, tuple[bytes, str]] = {}  # key -> (content, content_type)
        self.closed_streams = 0

    async def put_object(self, key: str, data: bytes, *, content_type: str) -> None:
        self._objects[key] = (bytes(data), content_type)

    async def get_object(self, key: str) -> StoredObject | None:
        if key not in self._objects:
            return None
        content, content_type = self._objects[key]
        return StoredObject(data=content, content_type=content_type)

    async def open_object(self, key: str) -> ObjectStream | None:
        stored = await self.get_object(key)
        if stored is None:
            return None

        async def chunks() -> AsyncIterator[bytes]:
            for start in range(0, len(stored.data), STREAM_CHUNK_SIZE):
                yield stored.data[start : start + STREAM_CHUNK_SIZE]

        async def close() -> None:
            self.closed_streams += 1

        return ObjectStream(
            chunks=chunks(),
            content_type=stored.content_type,
            content_length=len(stored.data),
            close=close,
        )

    async def delete_object(self, key: str) -> None:
        self._objects.pop(key, None)

    # Test helper methods

    def has_object(self, key: str) -> bool:
        """Check presence directly (test helper)."""
        return key in self._objects

    def keys(self) -> list[str]:
        """List stored keys (test helper)."""
        return sorted(self._objects)

    def clear(self) -> None:
        """Clear all stored objects (test helper)."""
        self._objects.clear()


def compute_etag(data: bytes) -> str:
    """Compute a strong ETag for blob content as quoted SHA-256."""
    return f'"{hashlib.sha256(data).hexdigest()}"'


def etags_match(if_none_match: str, etag: str) -> bool:
    """Check if an If-None-Match header matches an ETag.

    Handles:
    - Comma-separated values
    - W/ prefix (weak validator)
    - Quoted strings
    - Wildcard (*)
    """
    unquoted = etag.strip('"')

    for tag in if_none_match.split(","):
        tag = tag.strip()

        if tag.startswith("W/"):
            tag = tag[2:]

        tag = tag.strip('"')

        if tag == unquoted or tag == "*":
            return True

    return False
