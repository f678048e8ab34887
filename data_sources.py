"""Data source port and an in-memory implementation.

A data source exposes two coroutines::

    await source.find(object_name, {"filter": ..., "sort": ..., "limit": ..., "expand": [...]})
    await source.get_object_schema(object_name)  # -> {"fields": {name: field_def}}

``find`` may answer with a list, ``{"data": [...]}`` or ``{"records": [...]}``;
``normalize_find_result`` flattens all three.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Protocol

from condition_eval import ConditionEvalError, eval_condition
from filter_normalize import LOGIC_OPS, is_condition, is_group, normalize_filter_condition


logger = logging.getLogger("vista.data_source")

REFERENCE_FIELD_TYPES = {"lookup", "master_detail", "reference"}


@dataclass
class DataSourceError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class DataSource(Protocol):
    async def find(self, object_name: str, query: dict) -> Any: ...

    async def get_object_schema(self, object_name: str) -> dict: ...


def normalize_find_result(result: Any) -> List[dict]:
    if isinstance(result, list):
        return result
    if isinstance(result, dict):
        for key in ("data", "records"):
            value = result.get(key)
            if isinstance(value, list):
                return value
    return []


def record_id(record: Any) -> Any:
    if not isinstance(record, dict):
        return None
    value = record.get("_id")
    return value if value is not None else record.get("id")


def schema_fields(schema: Any) -> Dict[str, dict]:
    """Field definitions keyed by name; accepts a mapping or a list of defs."""
    if not isinstance(schema, dict):
        return {}
    fields = schema.get("fields")
    if isinstance(fields, dict):
        return {name: spec for name, spec in fields.items() if isinstance(spec, dict)}
    if isinstance(fields, list):
        result = {}
        for spec in fields:
            if isinstance(spec, dict) and spec.get("name"):
                result[spec["name"]] = spec
        return result
    return {}


def _requested_name(spec: Any) -> str | None:
    if isinstance(spec, str):
        return spec
    if isinstance(spec, dict):
        return spec.get("field") or spec.get("name") or spec.get("fieldName")
    return None


def build_expand_fields(schema: Any, requested: Iterable[Any] | None = None) -> List[str]:
    """Reference fields to embed, in requested order.

    Without a requested field set every reference field of the schema is
    expanded, in schema order.
    """
    fields = schema_fields(schema)
    refs = [name for name, spec in fields.items() if spec.get("type") in REFERENCE_FIELD_TYPES]
    if requested is None:
        return refs
    ref_set = set(refs)
    expand: List[str] = []
    for item in requested:
        name = _requested_name(item)
        if name in ref_set and name not in expand:
            expand.append(name)
    return expand


_COMPARE = {"=": "eq", "!=": "neq", ">": "gt", ">=": "gte", "<": "lt", "<=": "lte"}


def filter_to_condition(node: Any) -> dict | None:
    """Filter AST to Condition DSL; None means no constraint."""
    node = normalize_filter_condition(node)
    if not isinstance(node, (list, tuple)) or len(node) == 0:
        return None
    if is_group(node):
        children = [c for c in (filter_to_condition(child) for child in node[1:]) if c is not None]
        if not children:
            return None
        if len(children) == 1:
            return children[0]
        return {"op": node[0], "children": children}
    if not is_condition(node):
        raise DataSourceError("FILTER_INVALID", f"Invalid filter node: {node!r}")
    field, op, value = node
    var = {"var": field}
    present = {"op": "exists", "left": var}
    if op in _COMPARE:
        if value is None and op in ("=", "!="):
            return {"op": "not_exists" if op == "=" else "exists", "left": var}
        cond = {"op": _COMPARE[op], "left": var, "right": {"literal": value}}
        if op in ("=", "!="):
            return cond
        return {"op": "and", "children": [present, cond]}
    if op == "contains":
        cond = {"op": "contains", "left": var, "right": {"literal": value}}
        return {"op": "and", "children": [present, cond]}
    if op == "notcontains":
        cond = {"op": "not_contains", "left": var, "right": {"literal": value}}
        return {"op": "or", "children": [{"op": "not_exists", "left": var}, cond]}
    raise DataSourceError("FILTER_OPERATOR_UNKNOWN", f"Unknown operator: {op}", field)


def _filter_fields(node: Any, out: set) -> set:
    if is_group(node):
        for child in node[1:]:
            _filter_fields(child, out)
    elif isinstance(node, (list, tuple)) and len(node) == 3 and node[0] not in LOGIC_OPS:
        out.add(node[0])
    return out


def _sort_records(records: List[dict], sort: Any) -> List[dict]:
    if not isinstance(sort, list):
        return records
    result = list(records)
    for item in reversed(sort):
        if not isinstance(item, dict) or not item.get("field"):
            continue
        field = item["field"]
        reverse = item.get("order") == "desc"
        present = [r for r in result if r.get(field) is not None]
        missing = [r for r in result if r.get(field) is None]
        present.sort(key=lambda r: (isinstance(r[field], str), r[field]), reverse=reverse)
        result = present + missing
    return result


class MemoryDataSource:
    """In-memory objects for local use and tests.

    ``objects`` maps object name -> {"schema": {...}, "records": [...]}.
    """

    def __init__(self, objects: Dict[str, dict] | None = None) -> None:
        self._objects: Dict[str, dict] = {}
        for name, spec in (objects or {}).items():
            self.add_object(name, spec.get("schema"), spec.get("records"))
        self.find_calls: List[tuple[str, dict]] = []

    def add_object(self, name: str, schema: dict | None = None, records: Iterable[dict] | None = None) -> None:
        self._objects[name] = {
            "schema": copy.deepcopy(schema or {"fields": {}}),
            "records": [copy.deepcopy(r) for r in records or []],
        }

    def _object(self, name: str) -> dict:
        obj = self._objects.get(name)
        if obj is None:
            raise DataSourceError("OBJECT_NOT_FOUND", f"Unknown object: {name}", name)
        return obj

    async def get_object_schema(self, object_name: str) -> dict:
        return copy.deepcopy(self._object(object_name)["schema"])

    async def find(self, object_name: str, query: dict | None = None) -> dict:
        query = query or {}
        self.find_calls.append((object_name, copy.deepcopy(query)))
        obj = self._object(object_name)
        condition = filter_to_condition(query.get("filter"))
        fields = _filter_fields(normalize_filter_condition(query.get("filter")), set())
        matched = []
        for record in obj["records"]:
            if condition is not None and not self._matches(condition, record, fields):
                continue
            matched.append(record)
        matched = _sort_records(matched, query.get("sort"))
        limit = query.get("limit")
        skip = query.get("skip") or 0
        if isinstance(skip, int) and skip > 0:
            matched = matched[skip:]
        if isinstance(limit, int) and limit >= 0:
            matched = matched[:limit]
        data = [copy.deepcopy(r) for r in matched]
        for field in query.get("expand") or []:
            self._expand(obj["schema"], data, field)
        return {"data": data, "total": len(data)}

    def _matches(self, condition: dict, record: dict, fields: set) -> bool:
        ctx = dict(record)
        for name in fields:
            if "." not in name:
                ctx.setdefault(name, None)
        try:
            return eval_condition(condition, ctx)
        except ConditionEvalError as exc:
            logger.debug("memory_filter_skip id=%s error=%s", record_id(record), exc)
            return False

    def _expand(self, schema: dict, records: List[dict], field: str) -> None:
        spec = schema_fields(schema).get(field) or {}
        target = spec.get("reference_to") or spec.get("reference")
        if not target or target not in self._objects:
            return
        index = {record_id(r): r for r in self._objects[target]["records"]}
        for record in records:
            related = index.get(record.get(field))
            if related is not None:
                record[field] = copy.deepcopy(related)
