"""State machine that plays one dialogue tree at a time."""

from __future__ import annotations

import logging

from .evaluation import evaluate_condition, execute_actions
from .models import (
    ActionNode,
    ChoiceNode,
    ConditionNode,
    DialogueHistoryEntry,
    DialogueNode,
    DialogueTree,
    EndNode,
    RuntimeState,
    TextNode,
)
from .store import DialogueStore

logger = logging.getLogger(__name__)


class DialogueRuntime:
    """Walk a tree from the store and expose a :class:`RuntimeState` snapshot.

    The runtime is either idle or positioned on a text or choice node.
    Condition and action nodes are transparent: entering one resolves
    immediately to the next node, so a single call may cross many of them
    before it stops at a node that waits for input or ends the dialogue.

    Only the tree's ``variables`` are mutated during play; nodes are never
    touched. Calls that are not valid in the current state are no-ops.
    """

    def __init__(
        self,
        store: DialogueStore,
        *,
        max_transparent_steps: int | None = None,
    ) -> None:
        if max_transparent_steps is None:
            max_transparent_steps = store.settings.max_transparent_steps
        elif max_transparent_steps < 1:
            raise ValueError("max_transparent_steps must be greater than zero.")
        self._store = store
        self._max_transparent_steps = max_transparent_steps
        self._state = RuntimeState()

    @property
    def state(self) -> RuntimeState:
        """Return a copy of the current runtime state."""

        return self._state.model_copy(deep=True)

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    @property
    def current_node(self) -> DialogueNode | None:
        """Return the node the runtime is positioned on, if any."""

        located = self._locate()
        return None if located is None else located[1]

    def start_dialogue(self, tree_id: str) -> None:
        tree = self._store.get_tree(tree_id)
        if tree is None:
            logger.warning("Cannot start dialogue: unknown tree %r", tree_id)
            return
        if tree.get_node(tree.start_node_id) is None:
            logger.warning(
                "Cannot start dialogue: tree %s has no start node %r",
                tree_id,
                tree.start_node_id,
            )
            return

        self._state = RuntimeState(active_tree_id=tree_id, is_active=True)
        logger.info("Started dialogue %s", tree_id)
        self._enter_node(tree, tree.start_node_id)

    def advance_dialogue(self) -> None:
        """Move past the current text node."""

        located = self._locate()
        if located is None:
            return
        tree, node = located
        if not isinstance(node, TextNode):
            return
        self._enter_node(tree, node.next)

    def select_choice(self, choice_id: str) -> None:
        """Follow ``choice_id`` from the current choice node.

        The id is looked up among all of the node's choices, including ones
        whose condition currently hides them.
        """

        located = self._locate()
        if located is None:
            return
        tree, node = located
        if not isinstance(node, ChoiceNode):
            return

        for choice in node.choices:
            if choice.id == choice_id:
                self._enter_node(tree, choice.next_node_id)
                return

    def skip_typewriter(self) -> None:
        """Reveal the full text of the current node at once."""

        located = self._locate()
        if located is None:
            return
        _, node = located
        if not isinstance(node, (TextNode, ChoiceNode)):
            return
        self._state.displayed_text = node.text or ""
        self._state.typewriter_complete = True

    def end_dialogue(self) -> None:
        """Reset to the idle state, clearing history as well."""

        if self._state.is_active:
            logger.info("Ended dialogue %s", self._state.active_tree_id)
        self._state = RuntimeState()

    # ------------------------------------------------------------------

    def _locate(self) -> tuple[DialogueTree, DialogueNode] | None:
        state = self._state
        if not state.is_active:
            return None
        tree = self._store.get_tree(state.active_tree_id)
        if tree is None:
            return None
        node = tree.get_node(state.current_node_id)
        if node is None:
            return None
        return tree, node

    def _enter_node(self, tree: DialogueTree, node_id: str | None) -> None:
        transparent_steps = 0
        while True:
            if node_id is None:
                self._finish()
                return

            node = tree.get_node(node_id)
            if node is None:
                logger.warning("Tree %s references missing node %r", tree.id, node_id)
                self._finish()
                return

            logger.debug("Entering %s node %s in tree %s", node.type, node.id, tree.id)

            if isinstance(node, TextNode):
                self._state.current_node_id = node.id
                self._state.displayed_text = node.text
                self._state.typewriter_complete = False
                self._state.current_choices = []
                self._state.history.append(
                    DialogueHistoryEntry(speaker=node.speaker, text=node.text)
                )
                return

            if isinstance(node, ChoiceNode):
                self._state.current_node_id = node.id
                self._state.displayed_text = node.text or ""
                self._state.typewriter_complete = False
                self._state.current_choices = [
                    choice.model_copy(deep=True)
                    for choice in node.choices
                    if choice.condition is None
                    or evaluate_condition(choice.condition, tree.variables)
                ]
                return

            if isinstance(node, EndNode):
                self._finish()
                return

            transparent_steps += 1
            if transparent_steps > self._max_transparent_steps:
                logger.warning(
                    "Tree %s crossed %d transparent nodes without pausing; ending dialogue",
                    tree.id,
                    self._max_transparent_steps,
                )
                self._finish()
                return

            if isinstance(node, ConditionNode):
                passed = evaluate_condition(node.condition, tree.variables)
                node_id = node.on_true if passed else node.on_false
            elif isinstance(node, ActionNode):
                execute_actions(node.actions, tree.variables)
                node_id = node.next
            else:
                raise TypeError(f"Unsupported node: {node!r}")

    def _finish(self) -> None:
        """Natural termination: go idle but keep the conversation history."""

        logger.info("Dialogue %s finished", self._state.active_tree_id)
        self._state = RuntimeState(history=self._state.history)


__all__ = ["DialogueRuntime"]
