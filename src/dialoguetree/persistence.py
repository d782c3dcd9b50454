"""Key-value persistence for dialogue tree collections."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Mapping

from pydantic import TypeAdapter

from .models import DialogueTree
from .settings import DialogueSettings

logger = logging.getLogger(__name__)

_TREE_COLLECTION_ADAPTER: TypeAdapter[Dict[str, DialogueTree]] = TypeAdapter(
    Dict[str, DialogueTree]
)


class PersistenceError(RuntimeError):
    """Raised when a key-value backend cannot read or write a document."""


class KeyValueStore(ABC):
    """Interface describing where serialised tree collections are kept."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the document stored under ``key`` or ``None``."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Persist ``value`` under ``key``, replacing any previous document.

        Raises:
            PersistenceError: If the backend cannot store the document.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the stored document if it exists."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Return all keys stored in this backend."""


class InMemoryKeyValueStore(KeyValueStore):
    """Keep documents in local process memory."""

    def __init__(self) -> None:
        self._documents: Dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._documents.get(_validate_key(key))

    def set(self, key: str, value: str) -> None:
        self._documents[_validate_key(key)] = value

    def delete(self, key: str) -> None:
        self._documents.pop(_validate_key(key), None)

    def keys(self) -> List[str]:
        return sorted(self._documents.keys())


class FileKeyValueStore(KeyValueStore):
    """Persist documents as JSON files on disk, one file per key."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> str | None:
        document_path = self._document_path(key)
        if not document_path.exists():
            return None
        try:
            return document_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Failed to read '{document_path}': {exc}") from exc

    def set(self, key: str, value: str) -> None:
        document_path = self._document_path(key)
        try:
            document_path.write_text(value, encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Failed to write '{document_path}': {exc}") from exc
        logger.debug("Wrote %d characters to %s", len(value), document_path)

    def delete(self, key: str) -> None:
        document_path = self._document_path(key)
        if document_path.exists():
            document_path.unlink()

    def keys(self) -> List[str]:
        return sorted(
            document_path.stem
            for document_path in self.storage_dir.glob("*.json")
            if document_path.is_file()
        )

    def _document_path(self, key: str) -> Path:
        validated = _validate_key(key)
        return self.storage_dir / f"{validated}.json"


def create_key_value_store(settings: DialogueSettings) -> KeyValueStore:
    """Return a file-backed store when ``storage_dir`` is configured."""

    if settings.storage_dir is not None:
        return FileKeyValueStore(settings.storage_dir)
    return InMemoryKeyValueStore()


def dump_tree_collection(trees: Mapping[str, DialogueTree]) -> str:
    """Serialise ``{tree_id: tree}`` as one JSON document."""

    return _TREE_COLLECTION_ADAPTER.dump_json(dict(trees), by_alias=True).decode("utf-8")


def load_tree_collection(document: str) -> Dict[str, DialogueTree]:
    """Parse a document produced by :func:`dump_tree_collection`.

    Raises:
        ValueError: If the document is not valid JSON or does not describe
            a mapping of trees.
    """

    return _TREE_COLLECTION_ADAPTER.validate_json(document)


def dump_tree(tree: DialogueTree) -> str:
    """Serialise one tree as indented JSON text for sharing."""

    return tree.model_dump_json(by_alias=True, indent=2)


def load_tree(document: str) -> DialogueTree:
    """Parse a single tree exported by :func:`dump_tree`.

    The tree's own ``id`` may be missing since importers replace it.

    Raises:
        ValueError: If the text is not valid JSON or not a valid tree.
    """

    payload = json.loads(document)
    if isinstance(payload, dict):
        payload.setdefault("id", "")
    return DialogueTree.model_validate(payload)


def _validate_key(key: str) -> str:
    if not isinstance(key, str):
        raise TypeError("key must be a string")
    stripped = key.strip()
    if not stripped:
        raise ValueError("key must be a non-empty string")
    if "/" in stripped or "\\" in stripped:
        raise ValueError("key must not contain path separators")
    return stripped


__all__ = [
    "FileKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "PersistenceError",
    "create_key_value_store",
    "dump_tree",
    "dump_tree_collection",
    "load_tree",
    "load_tree_collection",
]
