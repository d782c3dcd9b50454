"""Tests for the structural validation of dialogue trees."""

from __future__ import annotations

from dialoguetree import (
    ActionNode,
    ChoiceNode,
    ConditionNode,
    DialogueChoice,
    DialogueTree,
    EndNode,
    EqualsCondition,
    TextNode,
    validate_tree,
)


def _tree(*nodes, start: str = "start") -> DialogueTree:
    return DialogueTree(id="tree", name="Analysed", nodes=list(nodes), start_node_id=start)


def test_linear_tree_is_valid() -> None:
    tree = _tree(
        TextNode(id="start", text="Hi", next="bye"),
        TextNode(id="bye", text="Bye"),
    )

    report = validate_tree(tree)

    assert report.is_valid
    assert report.errors == ()
    assert report.warnings == ()
    assert report.reachable_nodes == ("start", "bye")
    assert report.unreachable_nodes == ()
    assert report.has_reachable_exit


def test_missing_start_node_is_an_error() -> None:
    report = validate_tree(_tree(TextNode(id="other"), start="start"))

    assert report.missing_start_node
    assert not report.is_valid
    assert report.errors == ("Start node 'start' is not defined.",)
    assert report.reachable_nodes == ()
    assert report.unreachable_nodes == ("other",)


def test_dangling_references_are_reported_per_field() -> None:
    tree = _tree(
        ChoiceNode(
            id="start",
            choices=[DialogueChoice(id="c1", text="Go", next_node_id="ghost")],
        ),
        ConditionNode(
            id="branch",
            condition=EqualsCondition(variable="x", value=1),
            on_true="start",
            on_false="phantom",
        ),
    )

    report = validate_tree(tree)

    assert [(ref.node_id, ref.field, ref.target) for ref in report.dangling_references] == [
        ("start", "choices[c1].nextNodeId", "ghost"),
        ("branch", "onFalse", "phantom"),
    ]
    assert not report.is_valid


def test_unreachable_and_empty_choice_nodes_are_warnings() -> None:
    tree = _tree(
        TextNode(id="start", text="Hi", next="menu"),
        ChoiceNode(id="menu", text="Nothing to pick"),
        TextNode(id="orphan", text="Nobody visits me"),
    )

    report = validate_tree(tree)

    assert report.is_valid
    assert report.unreachable_nodes == ("orphan",)
    assert report.empty_choice_nodes == ("menu",)
    assert "Node 'orphan' cannot be reached from the start node." in report.warnings
    assert "Choice node 'menu' offers no choices." in report.warnings


def test_duplicate_node_ids_are_errors() -> None:
    tree = _tree(TextNode(id="start"), TextNode(id="start", text="again"))

    report = validate_tree(tree)

    assert report.duplicate_node_ids == ("start",)
    assert "Node id 'start' is used more than once." in report.errors


def test_transparent_cycle_is_an_error() -> None:
    tree = _tree(
        TextNode(id="start", next="loop_a"),
        ActionNode(id="loop_a", next="loop_b"),
        ConditionNode(
            id="loop_b",
            condition=EqualsCondition(variable="x", value=1),
            on_true="loop_a",
            on_false="loop_a",
        ),
    )

    report = validate_tree(tree)

    assert report.transparent_cycle_nodes == ("loop_a", "loop_b")
    assert not report.is_valid
    assert "No reachable node ends the dialogue." in report.warnings


def test_cycle_through_text_node_is_allowed() -> None:
    tree = _tree(
        TextNode(id="start", next="tick"),
        ActionNode(id="tick", next="start"),
        EndNode(id="unused"),
    )

    report = validate_tree(tree)

    assert report.transparent_cycle_nodes == ()
    assert report.is_valid
    assert not report.has_reachable_exit


def test_end_node_counts_as_exit() -> None:
    tree = _tree(
        ChoiceNode(
            id="start",
            choices=[DialogueChoice(id="c1", text="Leave", next_node_id="finish")],
        ),
        EndNode(id="finish"),
    )

    report = validate_tree(tree)

    assert report.has_reachable_exit
    assert report.warnings == ()
