"""Scoped persistence of the last chosen view type per list instance."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Protocol

from view_schema import ViewType


logger = logging.getLogger("vista.view_prefs")


class PreferenceStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryPreferenceStore:
    def __init__(self, initial: Dict[str, str] | None = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def keys(self) -> list[str]:
        return sorted(self._values)


def view_pref_key(object_name: str, view_id: str | None = None) -> str:
    """Storage key; a view id scopes it to one list instance."""
    if view_id:
        return f"listview-{object_name}-{view_id}-view"
    return f"listview-{object_name}-view"


class ViewPreferences:
    """Load/save a view type through an injected store.

    Persistence is a switch: when disabled, nothing is read or written and
    callers fall back to the view type declared in configuration.
    """

    def __init__(self, store: PreferenceStore | None, enabled: bool = True) -> None:
        self.store = store
        self.enabled = enabled and store is not None

    def load(self, key: str, available: Iterable[ViewType | str] | None = None) -> ViewType | None:
        if not self.enabled:
            return None
        try:
            raw = self.store.get(key)
        except Exception as exc:
            logger.warning("view_pref_load_failed key=%s error=%s", key, exc)
            return None
        if raw is None:
            return None
        view_type = ViewType.parse(raw)
        if view_type is None:
            logger.info("view_pref_unknown key=%s value=%s", key, raw)
            return None
        if available is not None:
            allowed = {ViewType.parse(v) for v in available}
            if view_type not in allowed:
                logger.info("view_pref_unavailable key=%s value=%s", key, raw)
                return None
        return view_type

    def save(self, key: str, view_type: ViewType | str) -> bool:
        if not self.enabled:
            return False
        parsed = ViewType.parse(view_type)
        if parsed is None:
            logger.info("view_pref_rejected key=%s value=%s", key, view_type)
            return False
        try:
            self.store.set(key, parsed.value)
        except Exception as exc:
            logger.warning("view_pref_save_failed key=%s error=%s", key, exc)
            return False
        return True
