"""Sandboxed plain-condition expressions compiled to the Condition DSL.

Accepted syntax is a small JS-like boolean language used by formatting rules::

    amount > 1000 && status === 'urgent'
    ${data.amount > 1000}
    !(stage == "closed") || priority != null

Field references resolve against the record only; there are no calls,
attribute access on objects, or arithmetic, so nothing outside the record can
be reached.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Tuple

from condition_eval import ConditionEvalError, eval_condition


@dataclass
class PlainConditionError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class PlainConditionSyntaxError(PlainConditionError):
    def __init__(self, message: str, pos: int | None = None) -> None:
        super().__init__("PLAIN_CONDITION_SYNTAX", message, None if pos is None else f"pos={pos}")


class PlainConditionTypeError(PlainConditionError):
    def __init__(self, message: str) -> None:
        super().__init__("PLAIN_CONDITION_TYPE", message, None)


_NUMBER_RE = re.compile(r"[0-9]+(\.[0-9]+)?([eE][+-]?[0-9]+)?")
_IDENT_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_TEMPLATE_RE = re.compile(r"^\$\{(.*)\}$", re.DOTALL)

_KEYWORDS = {
    "true": "TRUE",
    "false": "FALSE",
    "null": "NULL",
    "undefined": "NULL",
    "and": "AND",
    "or": "OR",
    "not": "NOT",
}
_OPERATORS = [
    ("===", "EQ"),
    ("!==", "NE"),
    ("==", "EQ"),
    ("!=", "NE"),
    ("<=", "LE"),
    (">=", "GE"),
    ("&&", "AND"),
    ("||", "OR"),
    ("<", "LT"),
    (">", "GT"),
    ("!", "NOT"),
    ("(", "LPAREN"),
    (")", "RPAREN"),
    (".", "DOT"),
    ("-", "MINUS"),
]
_COMPARE_OPS = {"EQ": "eq", "NE": "neq", "LT": "lt", "LE": "lte", "GT": "gt", "GE": "gte"}
_RECORD_PREFIXES = ("data", "record")

Token = Tuple[str, Any, int]


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(source)
    while i < n:
        c = source[i]
        if c in " \t\r\n":
            i += 1
            continue
        if c in ("'", '"'):
            i, value = _read_string(source, i)
            tokens.append(("STRING", value, i))
            continue
        m = _NUMBER_RE.match(source, i)
        if m:
            text = m.group(0)
            value: Any = float(text) if any(ch in text for ch in ".eE") else int(text)
            tokens.append(("NUMBER", value, i))
            i = m.end()
            continue
        m = _IDENT_RE.match(source, i)
        if m:
            word = m.group(0)
            tokens.append((_KEYWORDS.get(word, "IDENT"), word, i))
            i = m.end()
            continue
        for text, kind in _OPERATORS:
            if source.startswith(text, i):
                tokens.append((kind, text, i))
                i += len(text)
                break
        else:
            raise PlainConditionSyntaxError(f"Unexpected character: {c!r}", i)
    tokens.append(("EOF", None, n))
    return tokens


def _read_string(source: str, start: int) -> tuple[int, str]:
    quote = source[start]
    i = start + 1
    chars: List[str] = []
    while i < len(source):
        c = source[i]
        if c == "\\" and i + 1 < len(source):
            chars.append(source[i + 1])
            i += 2
            continue
        if c == quote:
            return i + 1, "".join(chars)
        chars.append(c)
        i += 1
    raise PlainConditionSyntaxError("Unterminated string literal", start)


class _Parser:
    """Recursive descent over tokens; yields ("cond", dsl) or ("value", dsl)."""

    def __init__(self, tokens: List[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    @property
    def kind(self) -> str:
        return self.tokens[self.pos][0]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def expect(self, kind: str) -> Token:
        tok = self.tokens[self.pos]
        if tok[0] != kind:
            raise PlainConditionSyntaxError(f"Expected {kind}, got {tok[0]}", tok[2])
        return self.advance()

    def parse(self) -> dict:
        node = self.parse_or()
        if self.kind != "EOF":
            tok = self.tokens[self.pos]
            raise PlainConditionSyntaxError(f"Unexpected token {tok[1]!r}", tok[2])
        kind, dsl = node
        if kind != "cond":
            if "literal" in dsl and isinstance(dsl["literal"], bool):
                return {"op": "truthy", "left": dsl}
            raise PlainConditionTypeError("Condition does not produce a boolean")
        return dsl

    def parse_or(self) -> tuple[str, dict]:
        node = self.parse_and()
        children = [node]
        while self.kind == "OR":
            self.advance()
            children.append(self.parse_and())
        if len(children) == 1:
            return node
        return ("cond", {"op": "or", "children": [_as_condition(c) for c in children]})

    def parse_and(self) -> tuple[str, dict]:
        node = self.parse_not()
        children = [node]
        while self.kind == "AND":
            self.advance()
            children.append(self.parse_not())
        if len(children) == 1:
            return node
        return ("cond", {"op": "and", "children": [_as_condition(c) for c in children]})

    def parse_not(self) -> tuple[str, dict]:
        if self.kind == "NOT":
            self.advance()
            inner = self.parse_not()
            return ("cond", {"op": "not", "children": [_as_condition(inner)]})
        return self.parse_comparison()

    def parse_comparison(self) -> tuple[str, dict]:
        left = self.parse_operand()
        if self.kind in _COMPARE_OPS:
            op = _COMPARE_OPS[self.advance()[0]]
            right = self.parse_operand()
            if left[0] != "value" or right[0] != "value":
                raise PlainConditionTypeError("Comparison operands must be values")
            return ("cond", {"op": op, "left": left[1], "right": right[1]})
        return left

    def parse_operand(self) -> tuple[str, dict]:
        kind, value, pos = self.tokens[self.pos]
        if kind == "LPAREN":
            self.advance()
            node = self.parse_or()
            self.expect("RPAREN")
            return node
        if kind == "NUMBER":
            self.advance()
            return ("value", {"literal": value})
        if kind == "MINUS":
            self.advance()
            number = self.expect("NUMBER")
            return ("value", {"literal": -number[1]})
        if kind == "STRING":
            self.advance()
            return ("value", {"literal": value})
        if kind == "TRUE":
            self.advance()
            return ("value", {"literal": True})
        if kind == "FALSE":
            self.advance()
            return ("value", {"literal": False})
        if kind == "NULL":
            self.advance()
            return ("value", {"literal": None})
        if kind == "IDENT":
            return ("value", {"var": self.parse_path()})
        raise PlainConditionSyntaxError(f"Unexpected token {value!r}", pos)

    def parse_path(self) -> str:
        parts = [self.expect("IDENT")[1]]
        while self.kind == "DOT":
            self.advance()
            parts.append(self.expect("IDENT")[1])
        if len(parts) > 1 and parts[0] in _RECORD_PREFIXES:
            parts = parts[1:]
        return ".".join(parts)


def _as_condition(node: tuple[str, dict]) -> dict:
    kind, dsl = node
    if kind == "cond":
        return dsl
    return {"op": "truthy", "left": dsl}


def _strip_template(expression: str) -> str:
    text = expression.strip()
    m = _TEMPLATE_RE.match(text)
    return m.group(1).strip() if m else text


@lru_cache(maxsize=512)
def compile_plain_condition(expression: str) -> dict:
    if not isinstance(expression, str) or not expression.strip():
        raise PlainConditionSyntaxError("Empty expression")
    return _Parser(tokenize(_strip_template(expression))).parse()


def evaluate_plain_condition(expression: Any, record: Any) -> bool:
    """True only when the expression evaluates to boolean true for the record."""
    if not isinstance(record, dict):
        return False
    try:
        condition = compile_plain_condition(expression)
        return eval_condition(condition, record) is True
    except (PlainConditionError, ConditionEvalError, TypeError, RecursionError):
        return False
