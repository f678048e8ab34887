"""Record navigation: row clicks to overlays, page navigation or new tabs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

from data_sources import record_id


logger = logging.getLogger("vista.navigation")


class NavigationMode(str, Enum):
    PAGE = "page"
    DRAWER = "drawer"
    MODAL = "modal"
    SPLIT = "split"
    POPOVER = "popover"
    NEW_WINDOW = "new_window"
    NONE = "none"


OVERLAY_MODES = frozenset({NavigationMode.DRAWER, NavigationMode.MODAL, NavigationMode.SPLIT, NavigationMode.POPOVER})
DEFAULT_OVERLAY_MODE = NavigationMode.DRAWER


@dataclass(frozen=True)
class NavigationConfig:
    mode: NavigationMode = DEFAULT_OVERLAY_MODE
    width: Any = None
    prevent_navigation: bool = False
    open_new_tab: bool = False
    view: str | None = None

    @classmethod
    def from_config(cls, config: Any) -> "NavigationConfig | None":
        if isinstance(config, cls):
            return config
        if not isinstance(config, Mapping):
            return None
        raw_mode = config.get("mode")
        mode = DEFAULT_OVERLAY_MODE
        if raw_mode is not None:
            try:
                mode = NavigationMode(raw_mode)
            except ValueError:
                logger.warning("navigation_mode_unknown mode=%s default=%s", raw_mode, mode.value)
        return cls(
            mode=mode,
            width=config.get("width"),
            prevent_navigation=bool(config.get("preventNavigation", config.get("prevent_navigation", False))),
            open_new_tab=bool(config.get("openNewTab", config.get("open_new_tab", False))),
            view=config.get("view"),
        )


def _navigation_of(source: Any) -> Any:
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get("navigation")
    return getattr(source, "navigation", None)


def find_navigation(*sources: Any) -> NavigationConfig | None:
    """First navigation block declared by the given sources, in order."""
    for source in sources:
        config = NavigationConfig.from_config(_navigation_of(source))
        if config is not None:
            return config
    return None


def resolve_navigation(view: Any = None, object_def: Any = None) -> NavigationConfig:
    """Active view navigation, then the object's, then a drawer."""
    return find_navigation(view, object_def) or NavigationConfig(mode=DEFAULT_OVERLAY_MODE)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class OverlayOpen:
    record: dict
    mode: NavigationMode


class OutcomeKind(str, Enum):
    NONE = "none"
    OPEN_URL = "open_url"
    NAVIGATE = "navigate"
    OVERLAY = "overlay"


@dataclass(frozen=True)
class NavigationOutcome:
    kind: OutcomeKind
    url: str | None = None
    record_id: Any = None
    action: str | None = None
    mode: NavigationMode | None = None


NO_OUTCOME = NavigationOutcome(OutcomeKind.NONE)


class NavigationController:
    """Owns the selected record while an overlay is open.

    ``open_url(url)`` and ``on_navigate(record_id, action)`` are the external
    effects; both are optional.
    """

    def __init__(
        self,
        object_name: str,
        config: NavigationConfig | Mapping[str, Any] | None = None,
        *,
        operations: Mapping[str, Any] | None = None,
        open_url: Callable[[str], None] | None = None,
        on_navigate: Callable[[Any, str], None] | None = None,
        base_path: str = "",
    ) -> None:
        self.object_name = object_name
        self.config = NavigationConfig.from_config(config)
        self.operations = dict(operations or {})
        self.open_url = open_url
        self.on_navigate = on_navigate
        self.base_path = base_path.rstrip("/")
        self._state: Idle | OverlayOpen = Idle()

    @property
    def state(self) -> Idle | OverlayOpen:
        return self._state

    @property
    def is_open(self) -> bool:
        return isinstance(self._state, OverlayOpen)

    @property
    def selected_record(self) -> dict | None:
        return self._state.record if isinstance(self._state, OverlayOpen) else None

    @property
    def mode(self) -> NavigationMode | None:
        return self._state.mode if isinstance(self._state, OverlayOpen) else None

    def set_config(self, config: NavigationConfig | Mapping[str, Any] | None) -> None:
        self.config = NavigationConfig.from_config(config)

    def record_url(self, rid: Any) -> str:
        return f"{self.base_path}/{self.object_name}/{rid}"

    def _read_allowed(self) -> bool:
        return self.operations.get("read") is not False

    def record_click(self, record: Any) -> NavigationOutcome:
        if not isinstance(record, dict):
            return NO_OUTCOME
        config = self.config
        if config is None:
            if not self._read_allowed():
                self._state = Idle()
                return NO_OUTCOME
            return self._open_overlay(record, DEFAULT_OVERLAY_MODE)

        if config.mode == NavigationMode.NONE or config.prevent_navigation:
            self._state = Idle()
            return NO_OUTCOME

        rid = record_id(record)
        if config.mode == NavigationMode.NEW_WINDOW or config.open_new_tab:
            self._state = Idle()
            if rid is None:
                logger.warning("navigation_missing_id object=%s mode=%s", self.object_name, config.mode.value)
                return NO_OUTCOME
            url = self.record_url(rid)
            if self.open_url is not None:
                self.open_url(url)
            return NavigationOutcome(OutcomeKind.OPEN_URL, url=url, record_id=rid)

        if config.mode == NavigationMode.PAGE:
            self._state = Idle()
            if rid is None:
                logger.warning("navigation_missing_id object=%s mode=%s", self.object_name, config.mode.value)
                return NO_OUTCOME
            action = config.view or "view"
            if self.on_navigate is not None:
                self.on_navigate(rid, action)
            return NavigationOutcome(OutcomeKind.NAVIGATE, record_id=rid, action=action)

        return self._open_overlay(record, config.mode)

    def open(self, record: Any) -> NavigationOutcome:
        """Open the overlay directly, e.g. from a ``recordId`` deep link."""
        if not isinstance(record, dict):
            return NO_OUTCOME
        mode = self.config.mode if self.config is not None else DEFAULT_OVERLAY_MODE
        if mode not in OVERLAY_MODES:
            mode = DEFAULT_OVERLAY_MODE
        return self._open_overlay(record, mode)

    def _open_overlay(self, record: dict, mode: NavigationMode) -> NavigationOutcome:
        self._state = OverlayOpen(record=record, mode=mode)
        logger.debug("navigation_overlay_open object=%s mode=%s id=%s", self.object_name, mode.value, record_id(record))
        return NavigationOutcome(OutcomeKind.OVERLAY, record_id=record_id(record), mode=mode)

    def close(self) -> None:
        self._state = Idle()
