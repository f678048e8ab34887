"""Merge independent filter sources into a single query filter."""

from __future__ import annotations

from typing import Any, Iterable, List

from filter_normalize import (
    FilterNode,
    is_condition,
    is_group,
    normalize_filter_condition,
    normalize_filters,
)


_FILTER_BAR_OPS = {
    "equals": "=",
    "notEquals": "!=",
    "contains": "contains",
    "notContains": "notcontains",
    "greaterThan": ">",
    "greaterOrEqual": ">=",
    "lessThan": "<",
    "lessOrEqual": "<=",
    "in": "in",
    "notIn": "not in",
    "before": "<",
    "after": ">",
}


def map_operator(op: str) -> str:
    return _FILTER_BAR_OPS.get(op, "=")


def _coerce_source(source: Any) -> FilterNode:
    """Collapse one filter source to a single normalized node ([] when empty)."""
    if not isinstance(source, (list, tuple)) or len(source) == 0:
        return []
    if is_group(source) or is_condition(source):
        normalized = normalize_filter_condition(source)
        return normalized if isinstance(normalized, list) else []
    # a list of conditions, implicitly and-ed
    items = normalize_filters(source)
    if not items:
        return []
    if len(items) == 1:
        return items[0]
    return ["and", *items]


def merge_filters(*sources: Any) -> FilterNode | None:
    """Combine sources with a top-level `and`, in declaration order.

    Returns None when every source is empty so callers omit the filter.
    """
    parts = [node for node in (_coerce_source(s) for s in sources) if node]
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return ["and", *parts]


def convert_filter_group(group: dict | None) -> FilterNode:
    """Filter-bar model ({logic, conditions}) to a filter AST."""
    if not isinstance(group, dict):
        return []
    conditions = group.get("conditions") or []
    nodes: List[FilterNode] = []
    for cond in conditions:
        if not isinstance(cond, dict) or not cond.get("field"):
            continue
        field = cond.get("field")
        op = cond.get("operator")
        if op == "isEmpty":
            nodes.append([field, "=", None])
        elif op == "isNotEmpty":
            nodes.append([field, "!=", None])
        else:
            nodes.append([field, map_operator(op), cond.get("value")])
    if not nodes:
        return []
    if len(nodes) == 1:
        return nodes[0]
    logic = group.get("logic") if group.get("logic") in ("and", "or") else "and"
    return [logic, *nodes]


def default_active_quick_filters(quick_filters: Iterable[dict] | None) -> set[str]:
    return {
        qf.get("id")
        for qf in quick_filters or []
        if isinstance(qf, dict) and qf.get("defaultActive") and qf.get("id")
    }


def quick_filter_conditions(quick_filters: Iterable[dict] | None, active_ids: Iterable[str]) -> list:
    active = set(active_ids or [])
    result = []
    for qf in quick_filters or []:
        if not isinstance(qf, dict) or qf.get("id") not in active:
            continue
        filters = qf.get("filters")
        if isinstance(filters, (list, tuple)) and len(filters) > 0:
            result.append(list(filters))
    return result


def search_condition(term: str | None, searchable_fields: Iterable[str] | None) -> FilterNode:
    if not isinstance(term, str) or not term.strip():
        return []
    fields = [f for f in searchable_fields or [] if isinstance(f, str) and f]
    if not fields:
        return []
    text = term.strip()
    if len(fields) == 1:
        return [fields[0], "contains", text]
    return ["or", *[[f, "contains", text] for f in fields]]


def build_sort(items: Iterable[Any] | None) -> list[dict] | None:
    sort = []
    for item in items or []:
        if isinstance(item, dict):
            field = item.get("field")
            order = item.get("order") or item.get("direction") or "asc"
        elif isinstance(item, (list, tuple)) and item:
            field = item[0]
            order = item[1] if len(item) > 1 else "asc"
        else:
            continue
        if not field:
            continue
        sort.append({"field": field, "order": "desc" if order == "desc" else "asc"})
    return sort or None


def build_query_filter(
    base: Any = None,
    user_group: dict | None = None,
    quick: Iterable[Any] | None = None,
    search: Any = None,
) -> FilterNode | None:
    """Merge in the fixed source order: base, filter bar, quick filters, search."""
    return merge_filters(base, convert_filter_group(user_group), *(quick or []), search)
