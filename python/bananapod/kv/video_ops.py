"""Video operation handles.

A handle records who started a long-running video job and with which prompt,
so that the status poll can verify ownership and finalize the output into a
history record. Handles carry a TTL (24h by default) and simply disappear
if never finalized; nothing reconciles them.

Redis layout:
    videoop:{operation_name}       -> {"userKey": "...", "prompt": "..."}  (SETEX)
    videoop-claim:{operation_name} -> "1"  (SET NX EX, held while finalizing)
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import redis.asyncio as redis

from bananapod.logging import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "videoop:"
CLAIM_PREFIX = "videoop-claim:"


@dataclass(frozen=True)
class VideoOperationHandle:
    """Transient record of an in-progress video generation."""

    operation_name: str
    user_key: str
    prompt: str

    def to_json(self) -> str:
        return json.dumps({"userKey": self.user_key, "prompt": self.prompt})

    @classmethod
    def from_json(cls, operation_name: str, raw: str | bytes) -> "VideoOperationHandle | None":
        """Parse a stored handle; unreadable payloads are treated as absent."""
        try:
            payload = json.loads(raw)
            return cls(
                operation_name=operation_name,
                user_key=str(payload["userKey"]),
                prompt=str(payload["prompt"]),
            )
        except (ValueError, KeyError, TypeError):
            logger.warning("video_handle_unreadable", operation_name=operation_name)
            return None


class VideoOperationStoreBase(ABC):
    """TTL-bound storage for video operation handles."""

    @abstractmethod
    async def put(self, handle: VideoOperationHandle, ttl_s: int) -> None: ...

    @abstractmethod
    async def get(self, operation_name: str) -> VideoOperationHandle | None: ...

    @abstractmethod
    async def delete(self, operation_name: str) -> None:
        """Remove the handle and any finalization claim on it."""
        ...

    @abstractmethod
    async def claim(self, operation_name: str, ttl_s: int) -> bool:
        """Take the right to finalize an operation.

        Returns False if another caller holds an unexpired claim.
        """
        ...

    @abstractmethod
    async def release(self, operation_name: str) -> None: ...


class RedisVideoOperationStore(VideoOperationStoreBase):
    """Video operation handles stored in Redis with SETEX."""

    def __init__(self, client: redis.Redis):
        self._client = client

    async def put(self, handle: VideoOperationHandle, ttl_s: int) -> None:
        await self._client.setex(f"{KEY_PREFIX}{handle.operation_name}", ttl_s, handle.to_json())

    async def get(self, operation_name: str) -> VideoOperationHandle | None:
        raw = await self._client.get(f"{KEY_PREFIX}{operation_name}")
        if raw is None:
            return None
        return VideoOperationHandle.from_json(operation_name, raw)

    async def delete(self, operation_name: str) -> None:
        await self._client.delete(
            f"{KEY_PREFIX}{operation_name}", f"{CLAIM_PREFIX}{operation_name}"
        )

    async def claim(self, operation_name: str, ttl_s: int) -> bool:
        claimed = await self._client.set(
            f"{CLAIM_PREFIX}{operation_name}", "1", nx=True, ex=ttl_s
        )
        return bool(claimed)

    async def release(self, operation_name: str) -> None:
        await self._client.delete(f"{CLAIM_PREFIX}{operation_name}")


class InMemoryVideoOperationStore(VideoOperationStoreBase):
    """In-memory handle store honoring TTLs (tests / local development)."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._items: dict[str, tuple[str, float]] = {}  # name -> (json, expires_at)
        self._claims: dict[str, float] = {}  # name -> expires_at

    async def put(self, handle: VideoOperationHandle, ttl_s: int) -> None:
        self._items[handle.operation_name] = (handle.to_json(), self._clock() + ttl_s)

    async def get(self, operation_name: str) -> VideoOperationHandle | None:
        item = self._items.get(operation_name)
        if item is None:
            return None
        raw, expires_at = item
        if expires_at <= self._clock():
            self._items.pop(operation_name, None)
            return None
        return VideoOperationHandle.from_json(operation_name, raw)

    async def delete(self, operation_name: str) -> None:
        self._items.pop(operation_name, None)
        self._claims.pop(operation_name, None)

    async def claim(self, operation_name: str, ttl_s: int) -> bool:
        now = self._clock()
        if self._claims.get(operation_name, now) > now:
            return False
        self._claims[operation_name] = now + ttl_s
        return True

    async def release(self, operation_name: str) -> None:
        self._claims.pop(operation_name, None)
