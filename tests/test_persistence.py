"""Tests for key-value backends, store saving/loading and import/export."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from dialoguetree import (
    ChoiceNode,
    DialogueChoice,
    DialogueSettings,
    DialogueStore,
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    PersistenceError,
    TextNode,
    create_key_value_store,
)
from dialoguetree.persistence import load_tree_collection


class _BrokenKeyValueStore(InMemoryKeyValueStore):
    def get(self, key: str) -> str | None:
        raise PersistenceError("backend offline")

    def set(self, key: str, value: str) -> None:
        raise PersistenceError("backend offline")


def test_in_memory_key_value_store_round_trip() -> None:
    backend = InMemoryKeyValueStore()
    backend.set("trees", "{}")

    assert backend.get("trees") == "{}"
    assert backend.keys() == ["trees"]

    backend.delete("trees")
    assert backend.get("trees") is None
    assert backend.keys() == []


@pytest.mark.parametrize("key", ["", "   ", "a/b", "a\\b"])
def test_key_value_store_validates_keys(key: str) -> None:
    backend = InMemoryKeyValueStore()

    with pytest.raises(ValueError):
        backend.set(key, "{}")


def test_file_key_value_store_round_trip(tmp_path: Path) -> None:
    backend = FileKeyValueStore(tmp_path / "storage")
    backend.set("forge_dialogue_trees", '{"a": 1}')

    document_path = tmp_path / "storage" / "forge_dialogue_trees.json"
    assert document_path.read_text(encoding="utf-8") == '{"a": 1}'
    assert backend.get("forge_dialogue_trees") == '{"a": 1}'
    assert backend.keys() == ["forge_dialogue_trees"]
    assert backend.get("other") is None

    backend.delete("forge_dialogue_trees")
    assert not document_path.exists()


def test_file_key_value_store_wraps_os_errors(tmp_path: Path) -> None:
    backend = FileKeyValueStore(tmp_path)
    (tmp_path / "blocked.json").mkdir()

    with pytest.raises(PersistenceError):
        backend.get("blocked")
    with pytest.raises(PersistenceError):
        backend.set("blocked", "{}")


def test_create_key_value_store_uses_settings(tmp_path: Path) -> None:
    assert isinstance(create_key_value_store(DialogueSettings()), InMemoryKeyValueStore)

    backend = create_key_value_store(DialogueSettings(storage_dir=tmp_path))
    assert isinstance(backend, FileKeyValueStore)
    assert backend.storage_dir == tmp_path


def test_save_writes_collection_under_storage_key(store: DialogueStore) -> None:
    tree_id = store.add_tree("Saved", "Hello")

    document = store.backend.get("forge_dialogue_trees")
    assert document is not None
    payload = json.loads(document)
    assert list(payload) == [tree_id]
    assert payload[tree_id]["name"] == "Saved"
    assert payload[tree_id]["startNodeId"] == store.trees[tree_id].start_node_id
    assert payload[tree_id]["nodes"][0]["next"] is None


def test_load_from_store_replaces_collection(key_value_store: KeyValueStore) -> None:
    writer = DialogueStore(key_value_store)
    tree_id = writer.add_tree("Persisted")
    writer.add_node(tree_id, TextNode(id="extra", text="More"))

    reader = DialogueStore(key_value_store)
    stale_id = reader.add_tree("Stale")
    # The stale tree overwrote the shared document; restore the writer's copy.
    writer.save_to_store()

    assert reader.load_from_store()
    assert set(reader.trees) == {tree_id}
    assert reader.trees[tree_id] == writer.trees[tree_id]
    assert stale_id not in reader.trees


def test_load_from_store_without_document_keeps_collection() -> None:
    empty = DialogueStore(InMemoryKeyValueStore())
    tree_id = empty.add_tree("Only in memory")
    empty.backend.delete("forge_dialogue_trees")

    assert not empty.load_from_store()
    assert tree_id in empty.trees


def test_load_from_store_rejects_invalid_document(key_value_store: KeyValueStore) -> None:
    store = DialogueStore(key_value_store)
    tree_id = store.add_tree("Keep me")
    key_value_store.set("forge_dialogue_trees", "{not json")

    assert not store.load_from_store()
    assert tree_id in store.trees


def test_load_from_store_clears_stale_selection(key_value_store: KeyValueStore) -> None:
    store = DialogueStore(key_value_store)
    kept = store.add_tree("Kept")
    store.save_to_store()
    document = key_value_store.get("forge_dialogue_trees")
    gone = store.add_tree("Gone")
    store.select_tree(gone)
    key_value_store.set("forge_dialogue_trees", document)

    assert store.load_from_store()
    assert set(store.trees) == {kept}
    assert store.selection.selected_tree_id is None


def test_backend_failures_are_reported_not_raised() -> None:
    store = DialogueStore(_BrokenKeyValueStore())

    tree_id = store.add_tree("Unsaved")

    assert tree_id in store.trees
    assert not store.save_to_store()
    assert not store.load_from_store()


def test_file_backed_store_survives_restart(tmp_path: Path) -> None:
    settings = DialogueSettings(storage_dir=tmp_path)
    first = DialogueStore(create_key_value_store(settings), settings=settings)
    tree_id = first.add_tree("Durable")

    second = DialogueStore(create_key_value_store(settings), settings=settings)

    assert second.load_from_store()
    assert second.trees[tree_id].name == "Durable"


def test_custom_storage_key(tmp_path: Path) -> None:
    settings = DialogueSettings(storage_key="custom_trees", storage_dir=tmp_path)
    store = DialogueStore(create_key_value_store(settings), settings=settings)

    store.add_tree("Keyed")

    assert (tmp_path / "custom_trees.json").exists()


def test_export_import_round_trip(store: DialogueStore, build_tree: Any) -> None:
    tree_id = build_tree(
        [
            ChoiceNode(
                id="chooser",
                text="Pick",
                choices=[DialogueChoice(id="c1", text="Bye", next_node_id=None)],
            )
        ],
        start_next="chooser",
        variables={"gold": 2},
    )

    exported = store.export_tree(tree_id)
    assert exported is not None
    imported_id = store.import_tree(exported)

    assert imported_id is not None and imported_id != tree_id
    original = store.trees[tree_id]
    imported = store.trees[imported_id]
    assert imported.name == "Test Tree (Imported)"
    assert imported.nodes == original.nodes
    assert imported.start_node_id == original.start_node_id
    assert imported.variables == {"gold": 2}


def test_export_uses_editor_json_shape(store: DialogueStore, build_tree: Any) -> None:
    tree_id = build_tree(
        [
            ChoiceNode(
                id="chooser",
                choices=[DialogueChoice(id="c1", text="Bye", next_node_id=None)],
            )
        ],
        start_next="chooser",
    )

    payload = json.loads(store.export_tree(tree_id))

    assert set(payload) == {"id", "name", "nodes", "startNodeId", "variables"}
    chooser = payload["nodes"][1]
    assert chooser == {
        "id": "chooser",
        "type": "choice",
        "choices": [{"id": "c1", "text": "Bye", "nextNodeId": None}],
    }


def test_export_unknown_tree_returns_none(store: DialogueStore) -> None:
    assert store.export_tree("missing") is None


@pytest.mark.parametrize(
    "document",
    [
        "not json",
        "[]",
        '{"id": "t", "name": "No nodes"}',
        '{"id": "t", "name": "Bad", "startNodeId": "n", "nodes": [{"id": "n", "type": "warp"}]}',
    ],
)
def test_import_rejects_malformed_documents(store: DialogueStore, document: str) -> None:
    assert store.import_tree(document) is None
    assert dict(store.trees) == {}


def test_import_rejects_missing_start_node(store: DialogueStore) -> None:
    document = json.dumps(
        {
            "id": "t",
            "name": "Headless",
            "startNodeId": "absent",
            "nodes": [{"id": "n1", "type": "text", "speaker": "A", "text": "Hi", "next": None}],
            "variables": {},
        }
    )

    assert store.import_tree(document) is None


def test_import_clears_dangling_references(store: DialogueStore) -> None:
    document = json.dumps(
        {
            "id": "t",
            "name": "Dangling",
            "startNodeId": "n1",
            "nodes": [
                {"id": "n1", "type": "text", "speaker": "A", "text": "Hi", "next": "ghost"},
                {
                    "id": "n2",
                    "type": "condition",
                    "condition": {"type": "equals", "variable": "x", "value": 1},
                    "onTrue": "n1",
                    "onFalse": "ghost",
                },
            ],
        }
    )

    tree_id = store.import_tree(document)

    assert tree_id is not None
    tree = store.trees[tree_id]
    assert tree.get_node("n1").next is None
    assert tree.get_node("n2").on_true == "n1"
    assert tree.get_node("n2").on_false is None
    assert tree.variables == {}


def test_import_is_saved(store: DialogueStore, key_value_store: Any) -> None:
    exported = store.export_tree(store.add_tree("Source"))
    key_value_store.writes.clear()

    imported_id = store.import_tree(exported)

    assert key_value_store.writes == ["forge_dialogue_trees"]
    stored = load_tree_collection(key_value_store.get("forge_dialogue_trees"))
    assert imported_id in stored


def test_import_keeps_hand_authored_shape(store: DialogueStore) -> None:
    document = json.dumps(
        {
            "name": "Hand written",
            "startNodeId": "a",
            "nodes": [
                {"id": "a", "type": "text", "speaker": "Host", "text": "Hi", "next": "b"},
                {
                    "id": "b",
                    "type": "choice",
                    "choices": [{"id": "c1", "text": "Bye", "nextNodeId": None}],
                },
            ],
            "variables": {},
        }
    )

    tree_id = store.import_tree(document)

    assert tree_id is not None
    exported = json.loads(store.export_tree(tree_id))
    assert exported["nodes"] == json.loads(document)["nodes"]
