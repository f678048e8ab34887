"""Stable identity for a list query."""

from __future__ import annotations

import hashlib
from typing import Any

from .canonical_json import canonical_dumps


def query_key(object_name: str, params: Any) -> str:
    """Return a short SHA-256 key for (object, query params).

    Two queries with the same object and equal params (ignoring dict key
    order) share a key.
    """
    data = canonical_dumps({"object": object_name, "params": params}).encode("utf-8")
    return "sha256:" + hashlib.sha256(data).hexdigest()[:16]
