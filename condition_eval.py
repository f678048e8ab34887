"""Evaluate the JSON condition DSL against a record.

A condition is ``{"op": ..., ...}``. Logic ops take ``children``; every
other op takes ``left`` (and ``right``) value nodes, each one of
``{"var": "a.b"}``, ``{"literal": x}`` or ``{"array": [node, ...]}``.

Formatting rule expressions compile to this DSL, and ``MemoryDataSource``
evaluates filter ASTs with it.
"""

from __future__ import annotations

import math
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict


@dataclass
class ConditionEvalError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class MalformedConditionError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_MALFORMED", message, path)


class ConditionTooDeepError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_TOO_DEEP", message, path)


class FieldNotFoundError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_FIELD_MISSING", message, path)


class OperandTypeError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_OPERAND_TYPE", message, path)


class UnknownOpError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_UNKNOWN_OP", message, path)


DEFAULT_DEPTH_LIMIT = 32


def strict_equals(left: Any, right: Any) -> bool:
    """``==`` without bool/number coercion: ``True`` never equals ``1``."""
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def truthy(value: Any) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def lookup_field(record: dict, name: str) -> Any:
    """Exact key first, then a dotted walk through nested dicts."""
    if name in record:
        return record[name]
    current: Any = record
    for part in name.split("."):
        if not isinstance(current, dict) or part not in current:
            raise FieldNotFoundError(f"No field {name!r}", name)
        current = current[part]
    return current


_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}

# negated op -> the op whose result it inverts
_NEGATIONS = {"neq": "eq", "not_contains": "contains", "not_in": "in", "not_exists": "exists"}


class _Evaluator:
    def __init__(self, record: dict, depth_limit: int) -> None:
        self.record = record
        self.depth_limit = depth_limit

    def _enter(self, depth: int, path: str) -> None:
        if depth > self.depth_limit:
            raise ConditionTooDeepError(f"Nesting deeper than {self.depth_limit}", path)

    def value(self, node: Any, path: str, depth: int) -> Any:
        self._enter(depth, path)
        if not isinstance(node, dict):
            raise MalformedConditionError("Value node must be an object", path)
        if "var" in node:
            name = node["var"]
            if not isinstance(name, str):
                raise MalformedConditionError("var must be a string", path)
            return lookup_field(self.record, name)
        if "literal" in node:
            return node["literal"]
        if "array" in node:
            items = node["array"]
            if not isinstance(items, list):
                raise MalformedConditionError("array must be a list", path)
            return [self.value(item, f"{path}[{i}]", depth + 1) for i, item in enumerate(items)]
        raise MalformedConditionError("Value node needs var, literal or array", path)

    def operands(self, cond: dict, path: str, depth: int) -> tuple:
        for side in ("left", "right"):
            if side not in cond:
                raise MalformedConditionError(f"{cond.get('op')} needs {side}", path)
        left = self.value(cond["left"], f"{path}.left", depth + 1)
        right = self.value(cond["right"], f"{path}.right", depth + 1)
        return left, right

    def children(self, cond: dict, path: str) -> list:
        children = cond.get("children")
        if not isinstance(children, list):
            raise MalformedConditionError(f"{cond.get('op')} needs a children list", path)
        return children

    def run(self, cond: Any, path: str = "$", depth: int = 1) -> bool:
        self._enter(depth, path)
        if not isinstance(cond, dict):
            raise MalformedConditionError("Condition must be an object", path)
        op = cond.get("op")
        if op is None:
            raise MalformedConditionError("Condition has no op", path)
        positive = _NEGATIONS.get(op, op)
        handler = _HANDLERS.get(positive)
        if handler is None:
            raise UnknownOpError(f"Unknown op {op!r}", path)
        result = handler(self, cond, path, depth)
        return not result if positive != op else result

    def _and(self, cond: dict, path: str, depth: int) -> bool:
        items = self.children(cond, path)
        return all(self.run(child, f"{path}.children[{i}]", depth + 1) for i, child in enumerate(items))

    def _or(self, cond: dict, path: str, depth: int) -> bool:
        items = self.children(cond, path)
        return any(self.run(child, f"{path}.children[{i}]", depth + 1) for i, child in enumerate(items))

    def _not(self, cond: dict, path: str, depth: int) -> bool:
        items = self.children(cond, path)
        if len(items) != 1:
            raise MalformedConditionError("not takes exactly one child", path)
        return not self.run(items[0], f"{path}.children[0]", depth + 1)

    def _truthy(self, cond: dict, path: str, depth: int) -> bool:
        if "left" not in cond:
            raise MalformedConditionError("truthy needs left", path)
        return truthy(self.value(cond["left"], f"{path}.left", depth + 1))

    def _eq(self, cond: dict, path: str, depth: int) -> bool:
        return strict_equals(*self.operands(cond, path, depth))

    def _compare(self, cond: dict, path: str, depth: int) -> bool:
        left, right = self.operands(cond, path, depth)
        if not ((_is_number(left) and _is_number(right)) or (isinstance(left, str) and isinstance(right, str))):
            raise OperandTypeError("Ordering needs two numbers or two strings", path)
        for side, value in (("left", left), ("right", right)):
            if isinstance(value, float) and not math.isfinite(value):
                raise OperandTypeError("Non-finite number", f"{path}.{side}")
        return _COMPARATORS[cond["op"]](left, right)

    def _contains(self, cond: dict, path: str, depth: int) -> bool:
        left, right = self.operands(cond, path, depth)
        if isinstance(left, str) and isinstance(right, str):
            return right.lower() in left.lower()
        if isinstance(left, list):
            return any(strict_equals(item, right) for item in left)
        raise OperandTypeError("contains needs a string or list on the left", path)

    def _in(self, cond: dict, path: str, depth: int) -> bool:
        left, right = self.operands(cond, path, depth)
        if not isinstance(right, list):
            raise OperandTypeError("in needs a list on the right", f"{path}.right")
        return any(strict_equals(left, item) for item in right)

    def _exists(self, cond: dict, path: str, depth: int) -> bool:
        if "left" not in cond:
            raise MalformedConditionError("exists needs left", path)
        try:
            value = self.value(cond["left"], f"{path}.left", depth + 1)
        except FieldNotFoundError:
            return False
        return value is not None


_HANDLERS: Dict[str, Callable[[_Evaluator, dict, str, int], bool]] = {
    "and": _Evaluator._and,
    "or": _Evaluator._or,
    "not": _Evaluator._not,
    "truthy": _Evaluator._truthy,
    "eq": _Evaluator._eq,
    "gt": _Evaluator._compare,
    "gte": _Evaluator._compare,
    "lt": _Evaluator._compare,
    "lte": _Evaluator._compare,
    "contains": _Evaluator._contains,
    "in": _Evaluator._in,
    "exists": _Evaluator._exists,
}


def eval_condition(cond: dict, record: dict, depth_limit: int = DEFAULT_DEPTH_LIMIT) -> bool:
    if not isinstance(record, dict):
        raise MalformedConditionError("Record must be an object", "$")
    return _Evaluator(record, depth_limit).run(cond)
