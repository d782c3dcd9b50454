"""Authoring store for dialogue trees, their nodes and the editor selection."""

from __future__ import annotations

import copy
import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from .ids import IdFactory, make_id
from .models import (
    NODE_ADAPTER,
    DialogueNode,
    DialogueTree,
    EditorSelection,
    TextNode,
    merge_fields,
    retarget_node,
)
from .persistence import (
    InMemoryKeyValueStore,
    KeyValueStore,
    PersistenceError,
    dump_tree,
    dump_tree_collection,
    load_tree,
    load_tree_collection,
)
from .settings import DialogueSettings

logger = logging.getLogger(__name__)

_UPDATABLE_TREE_FIELDS = ("name", "variables", "start_node_id")


class DialogueStore:
    """Own the collection of dialogue trees and keep it structurally valid.

    Unknown identifiers and operations that would break an invariant (such as
    removing a tree's start node) leave the store untouched instead of
    raising. Every successful mutation is written to the injected
    :class:`~dialoguetree.persistence.KeyValueStore`.
    """

    def __init__(
        self,
        backend: KeyValueStore | None = None,
        *,
        settings: DialogueSettings | None = None,
        id_factory: IdFactory = make_id,
    ) -> None:
        self.settings = settings or DialogueSettings()
        self.backend: KeyValueStore = backend if backend is not None else InMemoryKeyValueStore()
        self._make_id = id_factory
        self._trees: Dict[str, DialogueTree] = {}
        self.selection = EditorSelection()

    @property
    def trees(self) -> Mapping[str, DialogueTree]:
        """Return a read-only view of the stored trees keyed by id."""

        return MappingProxyType(self._trees)

    def get_tree(self, tree_id: str | None) -> DialogueTree | None:
        if tree_id is None:
            return None
        return self._trees.get(tree_id)

    def get_node(self, tree_id: str, node_id: str) -> DialogueNode | None:
        tree = self._trees.get(tree_id)
        if tree is None:
            return None
        return tree.get_node(node_id)

    # ------------------------------------------------------------------
    # Tree CRUD

    def add_tree(self, name: str, start_text: str | None = None) -> str:
        """Create a tree with a single text start node and return its id."""

        tree_id = self._make_id("tree")
        start_node = TextNode(
            id=self._make_id("node"),
            speaker=self.settings.default_speaker,
            text=start_text or self.settings.default_start_text,
        )
        self._trees[tree_id] = DialogueTree(
            id=tree_id,
            name=name,
            nodes=[start_node],
            start_node_id=start_node.id,
        )
        logger.info("Created dialogue tree %s (%r)", tree_id, name)
        self.save_to_store()
        return tree_id

    def remove_tree(self, tree_id: str) -> bool:
        if self._trees.pop(tree_id, None) is None:
            return False

        if self.selection.selected_tree_id == tree_id:
            self.selection = EditorSelection()
        logger.info("Removed dialogue tree %s", tree_id)
        self.save_to_store()
        return True

    def update_tree(
        self, tree_id: str, updates: Mapping[str, Any]
    ) -> DialogueTree | None:
        """Shallow-merge ``name``, ``variables`` or ``startNodeId`` into a tree.

        Other keys are ignored, as is a ``startNodeId`` that does not name a
        node of the tree. Returns the updated tree or ``None`` when nothing
        was applied.
        """

        tree = self._trees.get(tree_id)
        if tree is None:
            return None

        accepted: dict[str, Any] = {}
        fields = DialogueTree.model_fields
        for name in _UPDATABLE_TREE_FIELDS:
            for key in (name, fields[name].alias):
                if key in updates:
                    accepted[name] = updates[key]

        start_node_id = accepted.get("start_node_id")
        if "start_node_id" in accepted and tree.get_node(start_node_id) is None:
            logger.warning(
                "Ignoring start node %r for tree %s: no such node", start_node_id, tree_id
            )
            del accepted["start_node_id"]

        if not accepted:
            return None

        try:
            updated = DialogueTree.model_validate(merge_fields(tree, accepted))
        except ValidationError as exc:
            logger.warning("Rejected update for tree %s: %s", tree_id, exc)
            return None

        self._trees[tree_id] = updated
        self.save_to_store()
        return updated

    def duplicate_tree(self, tree_id: str) -> str | None:
        """Copy a tree under a fresh id, giving every node a fresh id too."""

        tree = self._trees.get(tree_id)
        if tree is None:
            return None

        id_map = {node.id: self._make_id("node") for node in tree.nodes}
        nodes = [
            retarget_node(
                node.model_copy(update={"id": id_map[node.id]}, deep=True),
                id_map.get,
            )
            for node in tree.nodes
        ]

        new_tree_id = self._make_id("tree")
        self._trees[new_tree_id] = DialogueTree(
            id=new_tree_id,
            name=f"{tree.name} (Copy)",
            nodes=nodes,
            start_node_id=id_map[tree.start_node_id],
            variables=copy.deepcopy(tree.variables),
        )
        logger.info("Duplicated dialogue tree %s as %s", tree_id, new_tree_id)
        self.save_to_store()
        return new_tree_id

    # ------------------------------------------------------------------
    # Node CRUD

    def add_node(self, tree_id: str, node: DialogueNode | Mapping[str, Any]) -> bool:
        """Append ``node`` to a tree. Mappings are validated first."""

        tree = self._trees.get(tree_id)
        if tree is None:
            return False

        if isinstance(node, Mapping):
            try:
                node = NODE_ADAPTER.validate_python(node)
            except ValidationError as exc:
                logger.warning("Rejected node for tree %s: %s", tree_id, exc)
                return False

        if tree.get_node(node.id) is not None:
            logger.warning("Tree %s already contains node %s", tree_id, node.id)
            return False

        tree.nodes.append(node)
        self.save_to_store()
        return True

    def update_node(
        self, tree_id: str, node_id: str, updates: Mapping[str, Any]
    ) -> DialogueNode | None:
        """Shallow-merge ``updates`` into a node.

        The node id cannot be changed. Updates that would produce an invalid
        node are rejected. Returns the updated node or ``None``.
        """

        tree = self._trees.get(tree_id)
        if tree is None:
            return None

        for index, node in enumerate(tree.nodes):
            if node.id == node_id:
                break
        else:
            return None

        try:
            updated = NODE_ADAPTER.validate_python(
                merge_fields(node, updates, protected=("id",))
            )
        except ValidationError as exc:
            logger.warning("Rejected update for node %s in tree %s: %s", node_id, tree_id, exc)
            return None

        tree.nodes[index] = updated
        self.save_to_store()
        return updated

    def remove_node(self, tree_id: str, node_id: str) -> bool:
        """Remove a node and null out every reference to it.

        The start node can never be removed.
        """

        tree = self._trees.get(tree_id)
        if tree is None:
            return False
        if node_id == tree.start_node_id:
            logger.warning("Refusing to remove start node %s of tree %s", node_id, tree_id)
            return False
        if tree.get_node(node_id) is None:
            return False

        tree.nodes = [
            retarget_node(node, lambda target: None if target == node_id else target)
            for node in tree.nodes
            if node.id != node_id
        ]
        if self.selection.selected_node_id == node_id:
            self.selection = self.selection.model_copy(update={"selected_node_id": None})
        self.save_to_store()
        return True

    # ------------------------------------------------------------------
    # Editor selection

    def select_tree(self, tree_id: str | None) -> None:
        self.selection = EditorSelection(selected_tree_id=tree_id)

    def select_node(self, node_id: str | None) -> None:
        self.selection = self.selection.model_copy(update={"selected_node_id": node_id})

    # ------------------------------------------------------------------
    # Persistence

    def save_to_store(self) -> bool:
        """Write the whole collection under the configured storage key.

        A failed write is logged and the in-memory collection stays the
        source of truth until the next successful save.
        """

        try:
            self.backend.set(self.settings.storage_key, dump_tree_collection(self._trees))
        except PersistenceError as exc:
            logger.warning("Failed to save dialogue trees: %s", exc)
            return False
        logger.debug("Saved %d dialogue trees", len(self._trees))
        return True

    def load_from_store(self) -> bool:
        """Replace the in-memory collection with the stored document.

        Returns ``False`` and keeps the current collection when nothing is
        stored or the document cannot be read.
        """

        try:
            document = self.backend.get(self.settings.storage_key)
        except PersistenceError as exc:
            logger.warning("Failed to load dialogue trees: %s", exc)
            return False
        if document is None:
            return False

        try:
            trees = load_tree_collection(document)
        except ValueError as exc:
            logger.warning("Stored dialogue trees are invalid: %s", exc)
            return False

        self._trees = trees
        if self.selection.selected_tree_id not in trees:
            self.selection = EditorSelection()
        logger.info("Loaded %d dialogue trees", len(trees))
        return True

    # ------------------------------------------------------------------
    # Import / export

    def export_tree(self, tree_id: str) -> str | None:
        tree = self._trees.get(tree_id)
        if tree is None:
            return None
        return dump_tree(tree)

    def import_tree(self, document: str) -> str | None:
        """Insert a tree from exported JSON text under a fresh id.

        Malformed text, or a tree whose start node is missing, returns
        ``None`` without touching the collection. References to nodes the
        tree does not contain are rewritten to ``None``.
        """

        try:
            tree = load_tree(document)
        except ValueError as exc:
            logger.warning("Rejected dialogue tree import: %s", exc)
            return None
        if tree.get_node(tree.start_node_id) is None:
            logger.warning(
                "Rejected dialogue tree import: start node %r is missing",
                tree.start_node_id,
            )
            return None

        known_ids = set(tree.node_ids())
        nodes = [
            retarget_node(node, lambda target: target if target in known_ids else None)
            for node in tree.nodes
        ]
        new_tree_id = self._make_id("tree")
        self._trees[new_tree_id] = tree.model_copy(
            update={
                "id": new_tree_id,
                "name": f"{tree.name} (Imported)",
                "nodes": nodes,
            }
        )
        logger.info("Imported dialogue tree %r as %s", tree.name, new_tree_id)
        self.save_to_store()
        return new_tree_id


__all__ = ["DialogueStore"]
