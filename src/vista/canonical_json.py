"""Deterministic JSON for query parameters and cache keys."""

from __future__ import annotations

import json
import math
from datetime import date
from enum import Enum
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when a value has no canonical JSON form."""


def _plain(obj: Any, where: str = "$") -> Any:
    """Reduce ``obj`` to dict/list/str/number/bool/None, validating as it goes."""
    if isinstance(obj, Enum):
        return _plain(obj.value, where)
    if isinstance(obj, dict):
        plain = {}
        for key, value in obj.items():
            name = key.value if isinstance(key, Enum) else key
            if not isinstance(name, str):
                raise CanonicalJsonTypeError(f"Unsupported key type at {where}: {type(name).__name__}")
            plain[name] = _plain(value, f"{where}.{name}")
        return plain
    # filter nodes are often built as tuples
    if isinstance(obj, (list, tuple)):
        return [_plain(item, f"{where}[{i}]") for i, item in enumerate(obj)]
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, float) and not math.isfinite(obj):
        raise ValueError(f"Non-finite float at {where}: {obj!r}")
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    raise CanonicalJsonTypeError(f"Unsupported type at {where}: {type(obj).__name__}")


def canonical_dumps(obj: Any) -> str:
    """Compact JSON with sorted keys; equal values always give equal text.

    Tuples become lists, enum members their value, dates ISO 8601 strings.
    Non-ASCII text is kept as is.
    """
    return json.dumps(_plain(obj), sort_keys=True, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
