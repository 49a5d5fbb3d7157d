"""In-memory keyed store, used by tests and throwaway sessions."""

import copy
from typing import Optional

from identity_hub.services.storage.interface import KeyedStore


class InMemoryStore(KeyedStore):
    """
    Dict-of-dicts store.

    Documents are deep-copied on the way in and out so callers can
    never mutate stored state by accident.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = {}

    async def get(self, collection: str, key: str) -> Optional[dict]:
        document = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(document) if document is not None else None

    async def put(self, collection: str, key: str, document: dict) -> None:
        self._collections.setdefault(collection, {})[key] = copy.deepcopy(document)

    async def list(self, collection: str) -> list[dict]:
        return [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()]

    async def delete(self, collection: str, key: str) -> bool:
        return self._collections.get(collection, {}).pop(key, None) is not None
