"""Condition evaluation and action execution over a tree's variable bag."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, MutableMapping

from .models import (
    AddItemAction,
    AndCondition,
    Condition,
    DialogueAction,
    EqualsCondition,
    GreaterCondition,
    HasItemCondition,
    IncrementAction,
    LessCondition,
    NotEqualsCondition,
    OrCondition,
    RemoveItemAction,
    SetStateAction,
    TriggerEventAction,
)

ITEMS_KEY = "items"
TRIGGERED_EVENTS_KEY = "_triggeredEvents"

_MISSING = object()


def _json_kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _strict_equals(left: Any, right: Any) -> bool:
    """Compare like JSON values: differing kinds (``1`` vs ``True``) never match."""

    if left is _MISSING or right is _MISSING:
        return False
    return _json_kind(left) == _json_kind(right) and left == right


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def evaluate_condition(condition: Condition, variables: Mapping[str, Any]) -> bool:
    """Return whether ``condition`` holds for ``variables``.

    Missing variables never equal anything and never compare greater or
    less; ``has_item`` reads the list stored under ``items``.
    """

    if isinstance(condition, EqualsCondition):
        return _strict_equals(variables.get(condition.variable, _MISSING), condition.value)
    if isinstance(condition, NotEqualsCondition):
        return not _strict_equals(
            variables.get(condition.variable, _MISSING), condition.value
        )
    if isinstance(condition, GreaterCondition):
        current = variables.get(condition.variable)
        return _is_number(current) and current > condition.value
    if isinstance(condition, LessCondition):
        current = variables.get(condition.variable)
        return _is_number(current) and current < condition.value
    if isinstance(condition, HasItemCondition):
        items = variables.get(ITEMS_KEY)
        return isinstance(items, list) and condition.item_id in items
    if isinstance(condition, AndCondition):
        return all(evaluate_condition(nested, variables) for nested in condition.conditions)
    if isinstance(condition, OrCondition):
        return any(evaluate_condition(nested, variables) for nested in condition.conditions)
    raise TypeError(f"Unsupported condition: {condition!r}")


def apply_action(
    action: DialogueAction, variables: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Apply ``action`` to ``variables`` in place and return the same mapping."""

    if isinstance(action, SetStateAction):
        variables[action.key] = action.value
    elif isinstance(action, AddItemAction):
        items = variables.get(ITEMS_KEY)
        if not isinstance(items, list):
            items = []
            variables[ITEMS_KEY] = items
        if action.item_id not in items:
            items.append(action.item_id)
    elif isinstance(action, RemoveItemAction):
        items = variables.get(ITEMS_KEY)
        if isinstance(items, list):
            variables[ITEMS_KEY] = [item for item in items if item != action.item_id]
    elif isinstance(action, IncrementAction):
        current = variables.get(action.key)
        base = current if _is_number(current) else 0
        variables[action.key] = base + action.amount
    elif isinstance(action, TriggerEventAction):
        events = variables.get(TRIGGERED_EVENTS_KEY)
        if not isinstance(events, list):
            events = []
            variables[TRIGGERED_EVENTS_KEY] = events
        events.append(action.event_name)
    else:
        raise TypeError(f"Unsupported action: {action!r}")
    return variables


def execute_actions(
    actions: Iterable[DialogueAction], variables: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Apply ``actions`` in order; later actions see earlier effects."""

    for action in actions:
        apply_action(action, variables)
    return variables


__all__ = [
    "ITEMS_KEY",
    "TRIGGERED_EVENTS_KEY",
    "apply_action",
    "evaluate_condition",
    "execute_actions",
]
