# cipherline_core/storage/__init__.py

from .models import KeyRecord
from .provider import StorageProvider
from .providers.memory_provider import InMemoryStorage
from .providers.sqlite_provider import SQLiteStorage
from .providers.rest_provider import RestStorage
from cipherline_core.constants import DEFAULT_TIMEOUT_S
import os


def load_storage_provider(config: dict | None = None) -> StorageProvider:
    """
    Factory resolver for selecting the runtime storage backend.

        - sqlite (default)
        - memory
        - rest (hosted PostgREST backend)
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("CIPHERLINE_STORAGE_PROVIDER", "sqlite")

    if provider == "memory":
        return InMemoryStorage()

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("CIPHERLINE_DB_PATH", "db/cipherline.db")
        return SQLiteStorage(db_path)

    if provider == "rest":
        url = config.get("rest_url") or os.getenv("CIPHERLINE_REST_URL")
        if not url:
            raise ValueError("rest storage provider requires a base URL")
        return RestStorage(
            url,
            api_key=config.get("rest_key") or os.getenv("CIPHERLINE_REST_KEY"),
            timeout=float(config.get("timeout") or os.getenv("CIPHERLINE_TIMEOUT_S", DEFAULT_TIMEOUT_S)),
        )

    raise ValueError(f"Unknown storage provider: {provider}")


__all__ = [
    "KeyRecord",
    "StorageProvider",
    "InMemoryStorage",
    "SQLiteStorage",
    "RestStorage",
    "load_storage_provider",
]
