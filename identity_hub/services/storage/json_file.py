"""
Flat-File JSON Storage

One file per collection (`<data_dir>/<collection>.json`) holding a JSON
array of documents. Every write rewrites the whole collection.

TRADEOFFS:
- Fine for one user and a few thousand records
- No concurrent writers (single active writer assumed)
- Writes go to a temp file first and are swapped in, so a crash
  never leaves a half-written collection

Each stored document carries its key under `_key`. Files written by
older versions have no `_key`; their documents are keyed by `id`.
"""

import json
import os
from pathlib import Path
from typing import Optional

import structlog

from identity_hub.config import get_settings
from identity_hub.services.storage.interface import KeyedStore, StorageError

logger = structlog.get_logger(__name__)

KEY_FIELD = "_key"


class JsonFileStore(KeyedStore):
    """KeyedStore backed by one JSON file per collection."""

    def __init__(self, data_dir: Optional[str | Path] = None):
        self._data_dir = Path(data_dir or get_settings().storage.data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, collection: str) -> Path:
        return self._data_dir / f"{collection}.json"

    def _read(self, collection: str) -> dict[str, dict]:
        """Load a collection as an ordered key -> document map."""
        path = self._path(collection)
        if not path.exists():
            return {}
        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read collection {collection}: {e}") from e

        if not isinstance(raw, list):
            raise StorageError(f"Collection file {path} does not hold a JSON array")

        documents: dict[str, dict] = {}
        for item in raw:
            if not isinstance(item, dict):
                continue
            item = dict(item)
            key = item.pop(KEY_FIELD, None) or item.get("id")
            if key is None:
                logger.warning("json_store_unkeyed_document", collection=collection)
                continue
            documents[str(key)] = item
        return documents

    def _write(self, collection: str, documents: dict[str, dict]) -> None:
        path = self._path(collection)
        tmp_path = path.with_suffix(".json.tmp")
        payload = [{KEY_FIELD: key, **doc} for key, doc in documents.items()]
        try:
            with tmp_path.open("w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write collection {collection}: {e}") from e

    async def get(self, collection: str, key: str) -> Optional[dict]:
        return self._read(collection).get(key)

    async def put(self, collection: str, key: str, document: dict) -> None:
        documents = self._read(collection)
        documents[key] = document
        self._write(collection, documents)

    async def list(self, collection: str) -> list[dict]:
        return list(self._read(collection).values())

    async def delete(self, collection: str, key: str) -> bool:
        documents = self._read(collection)
        if documents.pop(key, None) is None:
            return False
        self._write(collection, documents)
        return True
