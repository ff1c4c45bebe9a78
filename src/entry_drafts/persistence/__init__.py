"""
Persistence package: session-scoped key-value backends and the registry store built on them.
"""

from .registry_store import (
    RegistryPersistence,
    can_add_draft,
    estimate_draft_size,
    generate_draft_id,
    get_draft_ttl_status,
)
from .storage import (
    JsonFileStorage,
    KeyValueStorage,
    MemoryStorage,
    StorageError,
    StorageQuotaExceededError,
    StorageUnavailableError,
)

__all__ = [
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "RegistryPersistence",
    "StorageError",
    "StorageQuotaExceededError",
    "StorageUnavailableError",
    "can_add_draft",
    "estimate_draft_size",
    "generate_draft_id",
    "get_draft_ttl_status",
]
