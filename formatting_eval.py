"""Per-record conditional formatting (first matching rule wins)."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List

from condition_eval import strict_equals
from plain_condition import evaluate_plain_condition


Style = Dict[str, Any]

_STYLE_KEYS = (
    ("backgroundColor", "backgroundColor"),
    ("textColor", "color"),
    ("color", "color"),
    ("borderColor", "borderColor"),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _match_field_rule(rule: dict, record: dict) -> bool:
    field = rule.get("field")
    op = rule.get("operator")
    if not field or not op:
        return False
    left = record.get(field)
    right = rule.get("value")
    if op == "equals":
        return strict_equals(left, right)
    if op == "not_equals":
        return not strict_equals(left, right)
    if op == "contains":
        return isinstance(left, str) and isinstance(right, str) and right in left
    if op == "greater_than":
        return _is_number(left) and _is_number(right) and left > right
    if op == "less_than":
        return _is_number(left) and _is_number(right) and left < right
    if op == "in":
        return isinstance(right, (list, tuple)) and any(strict_equals(left, item) for item in right)
    return False


def _rule_expression(rule: dict) -> str | None:
    for key in ("condition", "expression"):
        value = rule.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def rule_matches(rule: Any, record: dict) -> bool:
    if not isinstance(rule, dict):
        return False
    expression = _rule_expression(rule)
    if expression is not None:
        return evaluate_plain_condition(expression, record)
    return _match_field_rule(rule, record)


def rule_style(rule: dict) -> Style:
    style: Style = {}
    base = rule.get("style")
    if isinstance(base, dict):
        style.update(base)
    for key, target in _STYLE_KEYS:
        value = rule.get(key)
        if value:
            style[target] = value
    return style


def evaluate_conditional_formatting(record: Any, rules: Iterable[Any] | None) -> Style:
    if not rules or not isinstance(record, dict):
        return {}
    for rule in rules:
        if rule_matches(rule, record):
            return rule_style(rule)
    return {}


def row_style_getter(rules: Iterable[Any] | None) -> Callable[[dict], Style]:
    frozen = list(rules or [])

    def _get(record: dict) -> Style:
        return evaluate_conditional_formatting(record, frozen)

    return _get


def format_records(records: Iterable[dict], rules: Iterable[Any] | None) -> List[Style]:
    getter = row_style_getter(rules)
    return [getter(record) for record in records]
