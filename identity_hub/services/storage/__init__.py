"""
Storage Services Package

Provides the keyed-store interface, its backends (memory, JSON files,
Google Sheets) and the typed repositories built on top.
"""

from typing import Optional

from identity_hub.config import get_settings
from identity_hub.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    KeyedStore,
    NotFoundError,
    StorageError,
)
from identity_hub.services.storage.json_file import JsonFileStore
from identity_hub.services.storage.memory import InMemoryStore
from identity_hub.services.storage.repositories import (
    AuditEventRepository,
    Collections,
    EmailRepository,
    IdentityRepository,
    ModuleDataRepository,
    RateCache,
    ServiceRepository,
    now_ms,
)
from identity_hub.services.storage.schema import (
    CURRENT_SCHEMA_VERSION,
    upgrade_service_document,
)


def create_store(backend: Optional[str] = None) -> KeyedStore:
    """
    Build the configured KeyedStore backend.

    Google Sheets is imported lazily so gspread credentials are only
    needed when that backend is selected.
    """
    backend = backend or get_settings().storage.backend
    if backend == "memory":
        return InMemoryStore()
    if backend == "json":
        return JsonFileStore()
    if backend == "google_sheets":
        from identity_hub.services.storage.google_sheets import GoogleSheetsStore
        return GoogleSheetsStore()
    raise ValueError(f"Unknown storage backend: {backend}")


__all__ = [
    # Interface
    "KeyedStore",
    "create_store",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Backends
    "InMemoryStore",
    "JsonFileStore",
    # Repositories
    "AuditEventRepository",
    "Collections",
    "EmailRepository",
    "IdentityRepository",
    "ModuleDataRepository",
    "RateCache",
    "ServiceRepository",
    "now_ms",
    # Schema
    "CURRENT_SCHEMA_VERSION",
    "upgrade_service_document",
]
