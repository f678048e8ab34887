"""In-memory stores used when USE_DB is off."""

from __future__ import annotations

from typing import Dict, Tuple

from app.stores_db import get_user_id


class MemoryUserPreferenceStore:
    """Same contract as DbPreferenceStore, scoped by the current user id."""

    def __init__(self) -> None:
        self._values: Dict[Tuple[str, str], str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get((get_user_id(), key))

    def set(self, key: str, value: str) -> None:
        self._values[(get_user_id(), key)] = value

    def clear(self) -> None:
        self._values.clear()
