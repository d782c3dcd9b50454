"""Test configuration for the dialogue tree project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from collections.abc import Iterable
from typing import Any

import pytest

from dialoguetree import (
    DialogueRuntime,
    DialogueSettings,
    DialogueStore,
    InMemoryKeyValueStore,
)
from dialoguetree.models import DialogueNode


class RecordingKeyValueStore(InMemoryKeyValueStore):
    """In-memory backend that counts writes so tests can assert persistence."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self.writes.append(key)


@pytest.fixture()
def key_value_store() -> RecordingKeyValueStore:
    return RecordingKeyValueStore()


@pytest.fixture()
def store(key_value_store: RecordingKeyValueStore) -> DialogueStore:
    return DialogueStore(key_value_store, settings=DialogueSettings())


@pytest.fixture()
def runtime(store: DialogueStore) -> DialogueRuntime:
    return DialogueRuntime(store)


@pytest.fixture()
def build_tree(store: DialogueStore) -> Any:
    """Factory fixture creating a tree whose start node links to ``start_next``.

    Extra nodes are appended in order; the start node text defaults to
    ``"Start"``.
    """

    def _factory(
        nodes: Iterable[DialogueNode] = (),
        *,
        start_text: str = "Start",
        start_next: str | None = None,
        variables: dict[str, Any] | None = None,
        name: str = "Test Tree",
    ) -> str:
        tree_id = store.add_tree(name, start_text)
        for node in nodes:
            assert store.add_node(tree_id, node)
        tree = store.trees[tree_id]
        if start_next is not None:
            store.update_node(tree_id, tree.start_node_id, {"next": start_next})
        if variables is not None:
            store.update_tree(tree_id, {"variables": variables})
        return tree_id

    return _factory


__all__ = ["RecordingKeyValueStore"]
