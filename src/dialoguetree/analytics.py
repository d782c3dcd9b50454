"""Structural analysis of authored dialogue trees."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Mapping

from .models import (
    ChoiceNode,
    DialogueNode,
    DialogueTree,
    EndNode,
    TRANSPARENT_NODE_TYPES,
    outgoing_references,
)


@dataclass(frozen=True)
class DanglingReference:
    """A reference to a node id the tree does not contain."""

    node_id: str
    field: str
    target: str


@dataclass(frozen=True)
class TreeValidationReport:
    """Summary of structural problems found in a single tree.

    Errors make a tree unsafe to play (a missing start node, dangling or
    ambiguous references, loops the runtime can never leave). Warnings flag
    authoring mistakes that still play: orphaned nodes, empty choice nodes
    and trees with no way to finish.
    """

    tree_id: str
    start_node_id: str
    missing_start_node: bool
    reachable_nodes: tuple[str, ...]
    unreachable_nodes: tuple[str, ...]
    dangling_references: tuple[DanglingReference, ...]
    duplicate_node_ids: tuple[str, ...]
    empty_choice_nodes: tuple[str, ...]
    transparent_cycle_nodes: tuple[str, ...]
    has_reachable_exit: bool

    @property
    def errors(self) -> tuple[str, ...]:
        messages: list[str] = []
        if self.missing_start_node:
            messages.append(f"Start node '{self.start_node_id}' is not defined.")
        for reference in self.dangling_references:
            messages.append(
                f"Node '{reference.node_id}' {reference.field} points at unknown "
                f"node '{reference.target}'."
            )
        for node_id in self.duplicate_node_ids:
            messages.append(f"Node id '{node_id}' is used more than once.")
        if self.transparent_cycle_nodes:
            joined = ", ".join(self.transparent_cycle_nodes)
            messages.append(
                f"Condition/action nodes form a loop with no text or choice node: {joined}."
            )
        return tuple(messages)

    @property
    def warnings(self) -> tuple[str, ...]:
        messages: list[str] = []
        for node_id in self.unreachable_nodes:
            messages.append(f"Node '{node_id}' cannot be reached from the start node.")
        for node_id in self.empty_choice_nodes:
            messages.append(f"Choice node '{node_id}' offers no choices.")
        if not self.missing_start_node and not self.has_reachable_exit:
            messages.append("No reachable node ends the dialogue.")
        return tuple(messages)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _ends_dialogue(node: DialogueNode) -> bool:
    if isinstance(node, EndNode):
        return True
    return any(target is None for _, target in outgoing_references(node))


def _find_transparent_cycle_nodes(nodes: Mapping[str, DialogueNode]) -> tuple[str, ...]:
    """Return transparent nodes that can reach themselves via transparent nodes only."""

    transparent = {
        node_id: node
        for node_id, node in nodes.items()
        if isinstance(node, TRANSPARENT_NODE_TYPES)
    }
    edges = {
        node_id: {
            target
            for _, target in outgoing_references(node)
            if target is not None and target in transparent
        }
        for node_id, node in transparent.items()
    }

    on_cycle: set[str] = set()
    for origin in transparent:
        frontier = list(edges[origin])
        visited: set[str] = set()
        while frontier:
            current = frontier.pop()
            if current == origin:
                on_cycle.add(origin)
                break
            if current in visited:
                continue
            visited.add(current)
            frontier.extend(edges[current])

    return tuple(sorted(on_cycle))


def validate_tree(tree: DialogueTree) -> TreeValidationReport:
    """Walk ``tree`` from its start node and report structural problems.

    Reachability follows every outgoing reference and ignores conditions,
    which approximates what a playthrough could visit.
    """

    counts = Counter(node.id for node in tree.nodes)
    duplicates = tuple(sorted(node_id for node_id, count in counts.items() if count > 1))

    nodes: dict[str, DialogueNode] = {}
    for node in tree.nodes:
        nodes.setdefault(node.id, node)

    dangling: list[DanglingReference] = []
    for node in tree.nodes:
        for field, target in outgoing_references(node):
            if target is not None and target not in nodes:
                dangling.append(DanglingReference(node.id, field, target))

    empty_choices = tuple(
        node.id for node in tree.nodes if isinstance(node, ChoiceNode) and not node.choices
    )

    missing_start = tree.start_node_id not in nodes
    visited: set[str] = set()
    frontier = [] if missing_start else [tree.start_node_id]
    while frontier:
        current = frontier.pop()
        if current in visited:
            continue
        visited.add(current)
        for _, target in outgoing_references(nodes[current]):
            if target is not None and target in nodes and target not in visited:
                frontier.append(target)

    reachable = tuple(node_id for node_id in nodes if node_id in visited)
    unreachable = tuple(node_id for node_id in nodes if node_id not in visited)

    return TreeValidationReport(
        tree_id=tree.id,
        start_node_id=tree.start_node_id,
        missing_start_node=missing_start,
        reachable_nodes=reachable,
        unreachable_nodes=unreachable,
        dangling_references=tuple(dangling),
        duplicate_node_ids=duplicates,
        empty_choice_nodes=empty_choices,
        transparent_cycle_nodes=_find_transparent_cycle_nodes(nodes),
        has_reachable_exit=any(_ends_dialogue(nodes[node_id]) for node_id in reachable),
    )


__all__ = ["DanglingReference", "TreeValidationReport", "validate_tree"]
