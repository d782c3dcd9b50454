"""Data model for authored dialogue trees and the runtime snapshot.

Node kinds, conditions and actions are closed sets of variants discriminated
by their ``type`` field. Python attributes use snake_case while the JSON
shape keeps the camelCase keys of the editor format (``startNodeId``,
``nextNodeId``, ``onTrue`` ...), so exported trees round-trip exactly.
"""

from __future__ import annotations

from typing import Annotated, Any, Callable, ClassVar, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_serializer
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base model sharing the camelCase wire format."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    # Optional fields that are left out of the serialised payload when unset.
    omitted_when_none: ClassVar[tuple[str, ...]] = ()

    @model_serializer(mode="wrap")
    def serialize_without_unset(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        fields = type(self).model_fields
        for name in self.omitted_when_none:
            for key in (name, fields[name].alias):
                if key in data and data[key] is None:
                    del data[key]
        return data


# ---------------------------------------------------------------------------
# Conditions


class EqualsCondition(_WireModel):
    type: Literal["equals"] = "equals"
    variable: str
    value: Any = None


class NotEqualsCondition(_WireModel):
    type: Literal["not_equals"] = "not_equals"
    variable: str
    value: Any = None


class GreaterCondition(_WireModel):
    type: Literal["greater"] = "greater"
    variable: str
    value: int | float


class LessCondition(_WireModel):
    type: Literal["less"] = "less"
    variable: str
    value: int | float


class HasItemCondition(_WireModel):
    type: Literal["has_item"] = "has_item"
    item_id: str


class AndCondition(_WireModel):
    """Satisfied when every nested condition holds (vacuously true)."""

    type: Literal["and"] = "and"
    conditions: list[Condition] = Field(default_factory=list)


class OrCondition(_WireModel):
    """Satisfied when at least one nested condition holds."""

    type: Literal["or"] = "or"
    conditions: list[Condition] = Field(default_factory=list)


Condition = Annotated[
    Union[
        EqualsCondition,
        NotEqualsCondition,
        GreaterCondition,
        LessCondition,
        HasItemCondition,
        AndCondition,
        OrCondition,
    ],
    Field(discriminator="type"),
]

AndCondition.model_rebuild()
OrCondition.model_rebuild()


# ---------------------------------------------------------------------------
# Actions


class SetStateAction(_WireModel):
    type: Literal["set_state"] = "set_state"
    key: str
    value: Any = None


class AddItemAction(_WireModel):
    type: Literal["add_item"] = "add_item"
    item_id: str


class RemoveItemAction(_WireModel):
    type: Literal["remove_item"] = "remove_item"
    item_id: str


class IncrementAction(_WireModel):
    type: Literal["increment"] = "increment"
    key: str
    amount: int | float = 1


class TriggerEventAction(_WireModel):
    type: Literal["trigger_event"] = "trigger_event"
    event_name: str


DialogueAction = Annotated[
    Union[
        SetStateAction,
        AddItemAction,
        RemoveItemAction,
        IncrementAction,
        TriggerEventAction,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Nodes


class NodePosition(_WireModel):
    """Canvas coordinates used by the authoring UI."""

    x: float = 0
    y: float = 0


class DialogueChoice(_WireModel):
    """A single option offered by a choice node."""

    omitted_when_none: ClassVar[tuple[str, ...]] = ("condition",)

    id: str
    text: str = ""
    next_node_id: str | None = None
    condition: Condition | None = None


class TextNode(_WireModel):
    """A line spoken by ``speaker``; waits for the player to advance."""

    omitted_when_none: ClassVar[tuple[str, ...]] = (
        "position",
        "portrait",
        "voice_asset",
    )

    id: str
    type: Literal["text"] = "text"
    speaker: str = ""
    text: str = ""
    next: str | None = None
    position: NodePosition | None = None
    portrait: str | None = None
    voice_asset: str | None = None


class ChoiceNode(_WireModel):
    """A prompt followed by a list of choices; waits for a selection."""

    omitted_when_none: ClassVar[tuple[str, ...]] = ("position", "speaker", "text")

    id: str
    type: Literal["choice"] = "choice"
    speaker: str | None = None
    text: str | None = None
    choices: list[DialogueChoice] = Field(default_factory=list)
    position: NodePosition | None = None


class ConditionNode(_WireModel):
    """Routes to ``on_true`` or ``on_false`` without pausing."""

    omitted_when_none: ClassVar[tuple[str, ...]] = ("position",)

    id: str
    type: Literal["condition"] = "condition"
    condition: Condition
    on_true: str | None = None
    on_false: str | None = None
    position: NodePosition | None = None


class ActionNode(_WireModel):
    """Applies its actions to the tree variables, then continues to ``next``."""

    omitted_when_none: ClassVar[tuple[str, ...]] = ("position",)

    id: str
    type: Literal["action"] = "action"
    actions: list[DialogueAction] = Field(default_factory=list)
    next: str | None = None
    position: NodePosition | None = None


class EndNode(_WireModel):
    omitted_when_none: ClassVar[tuple[str, ...]] = ("position",)

    id: str
    type: Literal["end"] = "end"
    position: NodePosition | None = None


DialogueNode = Annotated[
    Union[TextNode, ChoiceNode, ConditionNode, ActionNode, EndNode],
    Field(discriminator="type"),
]

NodeKind = Literal["text", "choice", "condition", "action", "end"]

NODE_ADAPTER: TypeAdapter[Any] = TypeAdapter(DialogueNode)
CONDITION_ADAPTER: TypeAdapter[Any] = TypeAdapter(Condition)
ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(DialogueAction)

TRANSPARENT_NODE_TYPES = (ConditionNode, ActionNode)


class DialogueTree(_WireModel):
    """One branching conversation graph plus its variable bag."""

    id: str
    name: str
    nodes: list[DialogueNode] = Field(default_factory=list)
    start_node_id: str
    variables: dict[str, Any] = Field(default_factory=dict)

    def get_node(self, node_id: str | None) -> DialogueNode | None:
        """Return the node with ``node_id`` or ``None`` when absent."""

        if node_id is None:
            return None
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> tuple[str, ...]:
        return tuple(node.id for node in self.nodes)


# ---------------------------------------------------------------------------
# Runtime and editor state


class DialogueHistoryEntry(_WireModel):
    omitted_when_none: ClassVar[tuple[str, ...]] = ("speaker",)

    speaker: str | None = None
    text: str


class RuntimeState(_WireModel):
    """Snapshot of the active playthrough consumed by presentation layers."""

    active_tree_id: str | None = None
    current_node_id: str | None = None
    is_active: bool = False
    displayed_text: str = ""
    typewriter_complete: bool = False
    current_choices: list[DialogueChoice] = Field(default_factory=list)
    history: list[DialogueHistoryEntry] = Field(default_factory=list)


class EditorSelection(_WireModel):
    selected_tree_id: str | None = None
    selected_node_id: str | None = None


# ---------------------------------------------------------------------------
# Helpers


def new_node(kind: NodeKind, node_id: str) -> DialogueNode:
    """Build an empty node of ``kind`` with the editor's default content."""

    if kind == "text":
        return TextNode(id=node_id, speaker="NPC", text="")
    if kind == "choice":
        return ChoiceNode(id=node_id)
    if kind == "condition":
        return ConditionNode(
            id=node_id,
            condition=EqualsCondition(variable="", value=True),
        )
    if kind == "action":
        return ActionNode(id=node_id)
    if kind == "end":
        return EndNode(id=node_id)
    raise ValueError(f"Unknown node kind: {kind!r}")


def outgoing_references(node: DialogueNode) -> tuple[tuple[str, str | None], ...]:
    """Return ``(field, target)`` pairs for every reference held by ``node``.

    Choice references are reported as ``choices[<choice id>].nextNodeId``.
    """

    if isinstance(node, (TextNode, ActionNode)):
        return (("next", node.next),)
    if isinstance(node, ChoiceNode):
        return tuple(
            (f"choices[{choice.id}].nextNodeId", choice.next_node_id)
            for choice in node.choices
        )
    if isinstance(node, ConditionNode):
        return (("onTrue", node.on_true), ("onFalse", node.on_false))
    return ()


def retarget_node(
    node: DialogueNode, resolve: Callable[[str], str | None]
) -> DialogueNode:
    """Return a copy of ``node`` with every non-null reference passed through ``resolve``."""

    def _resolve(target: str | None) -> str | None:
        return None if target is None else resolve(target)

    if isinstance(node, (TextNode, ActionNode)):
        return node.model_copy(update={"next": _resolve(node.next)})
    if isinstance(node, ChoiceNode):
        choices = [
            choice.model_copy(update={"next_node_id": _resolve(choice.next_node_id)})
            for choice in node.choices
        ]
        return node.model_copy(update={"choices": choices})
    if isinstance(node, ConditionNode):
        return node.model_copy(
            update={"on_true": _resolve(node.on_true), "on_false": _resolve(node.on_false)}
        )
    return node.model_copy()


def merge_fields(
    model: BaseModel, updates: Mapping[str, Any], *, protected: tuple[str, ...] = ()
) -> dict[str, Any]:
    """Shallow-merge ``updates`` into the aliased payload of ``model``.

    Keys may use either the Python attribute name or the wire alias. Keys
    listed in ``protected`` (attribute names) are ignored.
    """

    fields = type(model).model_fields
    aliases = {name: field.alias or name for name, field in fields.items()}
    protected_keys = {aliases.get(name, name) for name in protected}
    payload = model.model_dump(by_alias=True)
    for key, value in updates.items():
        alias = aliases.get(key, key)
        if alias in protected_keys:
            continue
        payload[alias] = value
    return payload


__all__ = [
    "ACTION_ADAPTER",
    "ActionNode",
    "AddItemAction",
    "AndCondition",
    "CONDITION_ADAPTER",
    "ChoiceNode",
    "Condition",
    "ConditionNode",
    "DialogueAction",
    "DialogueChoice",
    "DialogueHistoryEntry",
    "DialogueNode",
    "DialogueTree",
    "EditorSelection",
    "EndNode",
    "EqualsCondition",
    "GreaterCondition",
    "HasItemCondition",
    "IncrementAction",
    "LessCondition",
    "NODE_ADAPTER",
    "NodeKind",
    "NodePosition",
    "NotEqualsCondition",
    "OrCondition",
    "RemoveItemAction",
    "RuntimeState",
    "SetStateAction",
    "TRANSPARENT_NODE_TYPES",
    "TextNode",
    "TriggerEventAction",
    "merge_fields",
    "new_node",
    "outgoing_references",
    "retarget_node",
]
