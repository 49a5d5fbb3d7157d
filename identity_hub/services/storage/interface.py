"""
Abstract Storage Interface

DESIGN DECISION: Everything the identity graph persists goes through
one small keyed-document contract: get / put / list / delete on named
collections. This allows us to:
1. Keep flat JSON files for single-user installs
2. Use Google Sheets where the data should be visible to the user
3. Use in-memory storage for testing

The interface is intentionally simple - we're not building a full ORM.
Typed access (identities, services, module data) lives in the
repositories on top of it.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyedStore(ABC):
    """
    Abstract keyed document store.

    Documents are JSON-safe dicts. Any storage implementation must
    implement these methods.
    """

    @abstractmethod
    async def get(self, collection: str, key: str) -> Optional[dict]:
        """
        Retrieve one document.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def put(self, collection: str, key: str, document: dict) -> None:
        """
        Insert or replace a document.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list(self, collection: str) -> list[dict]:
        """
        All documents in a collection, in insertion order.

        An unknown collection is empty, not an error.
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        """
        Delete a document.

        Returns:
            True if something was deleted
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
