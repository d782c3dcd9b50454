"""Branching dialogue trees: authoring store, runtime and persistence."""

from .analytics import DanglingReference, TreeValidationReport, validate_tree
from .evaluation import apply_action, evaluate_condition, execute_actions
from .ids import make_id
from .models import (
    ActionNode,
    AddItemAction,
    AndCondition,
    ChoiceNode,
    ConditionNode,
    DialogueChoice,
    DialogueHistoryEntry,
    DialogueTree,
    EditorSelection,
    EndNode,
    EqualsCondition,
    GreaterCondition,
    HasItemCondition,
    IncrementAction,
    LessCondition,
    NotEqualsCondition,
    OrCondition,
    RemoveItemAction,
    RuntimeState,
    SetStateAction,
    TextNode,
    TriggerEventAction,
    new_node,
)
from .persistence import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    PersistenceError,
    create_key_value_store,
)
from .runtime import DialogueRuntime
from .settings import DialogueSettings
from .store import DialogueStore

__all__ = [
    "ActionNode",
    "AddItemAction",
    "AndCondition",
    "ChoiceNode",
    "ConditionNode",
    "DanglingReference",
    "DialogueChoice",
    "DialogueHistoryEntry",
    "DialogueRuntime",
    "DialogueSettings",
    "DialogueStore",
    "DialogueTree",
    "EditorSelection",
    "EndNode",
    "EqualsCondition",
    "FileKeyValueStore",
    "GreaterCondition",
    "HasItemCondition",
    "InMemoryKeyValueStore",
    "IncrementAction",
    "KeyValueStore",
    "LessCondition",
    "NotEqualsCondition",
    "OrCondition",
    "PersistenceError",
    "RemoveItemAction",
    "RuntimeState",
    "SetStateAction",
    "TextNode",
    "TreeValidationReport",
    "TriggerEventAction",
    "apply_action",
    "create_key_value_store",
    "evaluate_condition",
    "execute_actions",
    "make_id",
    "new_node",
    "validate_tree",
]
