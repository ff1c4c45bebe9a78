"""Application configuration using Pydantic settings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:  # pragma: no cover
    from .persistence.storage import KeyValueStorage
    from .registry import DraftRegistry


REGISTRY_STORAGE_KEY = "entry_draft_registry"
LEGACY_STORAGE_KEY = "entry_editor_draft"


class RegistryLimits(BaseModel):
    """Capacity, size, and timing bounds enforced by the registry and its persistence."""

    model_config = ConfigDict(frozen=True)

    MAX_DRAFTS: int = 10
    MAX_SINGLE_DRAFT_KB: int = 100
    WARN_TOTAL_SIZE_KB: int = 500
    MAX_TOTAL_SIZE_KB: int = 2000
    TTL_MS: int = 30 * 60 * 1000
    TTL_WARNING_MS: int = 25 * 60 * 1000
    PERSIST_DEBOUNCE_MS: int = 500


REGISTRY_LIMITS = RegistryLimits()


class Settings(BaseSettings):
    """Central application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ENTRY_DRAFTS_",
        env_nested_delimiter="__",
        env_file=(Path(".env"),),
        extra="ignore",
    )

    storage_backend: Literal["memory", "json", "sqlite"] = "json"
    storage_path: Path = Field(default_factory=lambda: Path.home() / ".entry_drafts" / "session.json")
    database_url: Optional[str] = None
    storage_key: str = REGISTRY_STORAGE_KEY
    limits: RegistryLimits = Field(default_factory=RegistryLimits)

    def resolve_database_url(self) -> str:
        """Return the SQLAlchemy URL, deriving a SQLite file next to ``storage_path`` by default."""

        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.storage_path.with_suffix('.sqlite3')}"

    def to_dict(self) -> Dict[str, Any]:
        """Return settings as a dictionary."""

        return {
            "storage_backend": self.storage_backend,
            "storage_path": str(self.storage_path),
            "database_url": self.resolve_database_url() if self.storage_backend == "sqlite" else None,
            "storage_key": self.storage_key,
            "limits": self.limits.model_dump(),
        }


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load settings from the environment, overlaid with *path* if provided.

    The configuration file is expected to be JSON. Keys it leaves out fall back to the
    environment and then to the defaults declared on :class:`Settings`.
    """
    if path is None:
        return Settings()

    with Path(path).expanduser().open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    return Settings(**data)


def build_storage(settings: Settings) -> "KeyValueStorage":
    """Instantiate the key-value backend named by ``settings.storage_backend``."""

    from .persistence.database import SqlStorage
    from .persistence.storage import JsonFileStorage, MemoryStorage

    if settings.storage_backend == "memory":
        return MemoryStorage()
    if settings.storage_backend == "sqlite":
        if not settings.database_url:
            settings.storage_path.parent.mkdir(parents=True, exist_ok=True)
        return SqlStorage(settings.resolve_database_url())
    return JsonFileStorage(settings.storage_path)


def build_registry(settings: Settings, storage: Optional["KeyValueStorage"] = None) -> "DraftRegistry":
    """Wire a registry, its persistence layer, and the configured storage together."""

    from .persistence.registry_store import RegistryPersistence
    from .registry import DraftRegistry

    persistence = RegistryPersistence(
        storage if storage is not None else build_storage(settings),
        limits=settings.limits,
        storage_key=settings.storage_key,
    )
    return DraftRegistry(persistence=persistence, limits=settings.limits)


__all__ = [
    "LEGACY_STORAGE_KEY",
    "REGISTRY_LIMITS",
    "REGISTRY_STORAGE_KEY",
    "RegistryLimits",
    "Settings",
    "build_registry",
    "build_storage",
    "load_settings",
]
