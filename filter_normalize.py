"""Filter AST normalization (list operators expanded to single-value comparisons)."""

from __future__ import annotations

from typing import Any, List


FILTER_OPERATORS = {
    "=",
    "!=",
    ">",
    ">=",
    "<",
    "<=",
    "contains",
    "notcontains",
    "in",
    "not in",
}
LOGIC_OPS = {"and", "or"}

FilterNode = List[Any]


def _is_seq(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def is_group(node: Any) -> bool:
    return _is_seq(node) and len(node) >= 1 and isinstance(node[0], str) and node[0] in LOGIC_OPS


def is_condition(node: Any) -> bool:
    return (
        _is_seq(node)
        and len(node) == 3
        and isinstance(node[0], str)
        and node[0] not in LOGIC_OPS
        and isinstance(node[1], str)
    )


def _expand_list(field: Any, values: Any, op: str, logic: str) -> FilterNode:
    if not _is_seq(values):
        values = [values]
    if len(values) == 0:
        return []
    if len(values) == 1:
        return [field, op, values[0]]
    return [logic, *[[field, op, v] for v in values]]


def normalize_filter_condition(node: Any) -> Any:
    """Return the canonical form of one condition or logical group.

    `in` / `not in` become `=` / `!=` comparisons joined by `or` / `and`.
    An empty value list normalizes to `[]` (no constraint), which enclosing
    groups drop. Malformed fragments are returned unchanged.
    """
    if not _is_seq(node):
        return node
    if is_group(node):
        children = []
        for child in node[1:]:
            normalized = normalize_filter_condition(child)
            if _is_seq(normalized) and len(normalized) == 0:
                continue
            children.append(normalized)
        if not children:
            return []
        return [node[0], *children]
    if len(node) < 3:
        return list(node) if isinstance(node, tuple) else node

    field, op, value = node[0], node[1], node[2]
    if op == "in":
        return _expand_list(field, value, "=", "or")
    if op == "not in":
        return _expand_list(field, value, "!=", "and")
    return list(node)


def normalize_filters(items: Any) -> list[FilterNode]:
    if not _is_seq(items):
        return []
    result = []
    for item in items:
        if not _is_seq(item):
            continue
        normalized = normalize_filter_condition(item)
        if not _is_seq(normalized) or len(normalized) == 0:
            continue
        result.append(normalized)
    return result
