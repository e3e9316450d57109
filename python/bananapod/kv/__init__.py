"""Key-value stores: the user-key allowlist and video operation handles.

Both live in Redis in deployed environments and in memory for tests/local.
"""

from bananapod.kv.credentials import (
    CredentialStoreBase,
    InMemoryCredentialStore,
    RedisCredentialStore,
)
from bananapod.kv.video_ops import (
    InMemoryVideoOperationStore,
    RedisVideoOperationStore,
    VideoOperationHandle,
    VideoOperationStoreBase,
)

__all__ = [
    "CredentialStoreBase",
    "RedisCredentialStore",
    "InMemoryCredentialStore",
    "VideoOperationHandle",
    "VideoOperationStoreBase",
    "RedisVideoOperationStore",
    "InMemoryVideoOperationStore",
]
