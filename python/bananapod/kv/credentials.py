"""User-key allowlist (Credential Store).

Each user key maps to a flag; the key is enabled iff the stored value,
stripped of whitespace, equals "1". Anything else (missing, "0", "") is disabled.

Redis layout:
    user:{user_key} -> "1" | "0"
"""

from abc import ABC, abstractmethod

import redis.asyncio as redis

ENABLED_VALUE = "1"
KEY_PREFIX = "user:"


def _is_enabled(raw: str | bytes | None) -> bool:
    if raw is None:
        return False
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return raw.strip() == ENABLED_VALUE


class CredentialStoreBase(ABC):
    """Authoritative enabled/disabled flag per user key."""

    @abstractmethod
    async def is_enabled(self, user_key: str) -> bool:
        """Return True iff the exact key holds an enabled flag."""
        ...

    @abstractmethod
    async def set_enabled(self, user_key: str, enabled: bool) -> None:
        """Enable or disable a key (operational tooling only)."""
        ...


class RedisCredentialStore(CredentialStoreBase):
    """Credential store backed by Redis."""

    def __init__(self, client: redis.Redis):
        self._client = client

    async def is_enabled(self, user_key: str) -> bool:
        return _is_enabled(await self._client.get(f"{KEY_PREFIX}{user_key}"))

    async def set_enabled(self, user_key: str, enabled: bool) -> None:
        await self._client.set(f"{KEY_PREFIX}{user_key}", ENABLED_VALUE if enabled else "0")


class InMemoryCredentialStore(CredentialStoreBase):
    """Credential store for tests and local development."""

    def __init__(self, flags: dict[str, str] | None = None):
        self._flags: dict[str, str] = dict(flags or {})

    async def is_enabled(self, user_key: str) -> bool:
        return _is_enabled(self._flags.get(user_key))

    async def set_enabled(self, user_key: str, enabled: bool) -> None:
        self._flags[user_key] = ENABLED_VALUE if enabled else "0"
