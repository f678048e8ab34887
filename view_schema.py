"""Per-view-type configuration resolution with layered precedence.

Each field of a view type's options is resolved independently, highest layer
first:

1. the active view instance (its nested ``<type>`` block, then flat keys),
2. ``options[<type>]`` of the active named view (then its flat keys),
3. object/list-level defaults (``defaults[<type>]``, then generic keys),
4. the hardcoded fallback for the type.

Flat top-level option keys are still honored but reported as deprecated.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping


logger = logging.getLogger("vista.view_schema")

Issue = Dict[str, Any]


class ViewType(str, Enum):
    GRID = "grid"
    KANBAN = "kanban"
    CALENDAR = "calendar"
    GALLERY = "gallery"
    TIMELINE = "timeline"
    GANTT = "gantt"
    MAP = "map"

    @classmethod
    def parse(cls, value: Any) -> "ViewType | None":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


VIEW_TYPE_NAMES = [vt.value for vt in ViewType]

FLAT_OPTION_KEYS = frozenset(
    {
        "startDateField",
        "endDateField",
        "dateField",
        "groupBy",
        "groupByField",
        "groupField",
        "locationField",
        "imageField",
        "dependenciesField",
        "progressField",
        "colorField",
        "allDayField",
        "latitudeField",
        "longitudeField",
        "zoom",
        "center",
        "cardFields",
        "subtitleField",
        "descriptionField",
    }
)


@dataclass(frozen=True)
class TypeOptions:
    component: str
    required: Mapping[str, str]
    optional: Mapping[str, Any] = field(default_factory=dict)
    # canonical key -> every accepted spelling, in lookup order
    aliases: Mapping[str, tuple] = field(default_factory=dict)

    @property
    def keys(self) -> frozenset:
        names = frozenset(self.required) | frozenset(self.optional)
        for spellings in self.aliases.values():
            names |= frozenset(spellings)
        return names


TYPE_OPTIONS: Dict[ViewType, TypeOptions] = {
    ViewType.GRID: TypeOptions("object-grid", {}, {}),
    ViewType.KANBAN: TypeOptions(
        "object-kanban",
        {"groupField": "status"},
        {"titleField": "name", "cardFields": None},
        {"groupField": ("groupByField", "groupField", "groupBy")},
    ),
    ViewType.CALENDAR: TypeOptions(
        "object-calendar",
        {"startDateField": "start_date"},
        {"endDateField": "end_date", "titleField": "name", "colorField": None, "allDayField": None, "defaultView": None},
    ),
    ViewType.GALLERY: TypeOptions(
        "object-gallery",
        {"titleField": "name"},
        {"imageField": None, "subtitleField": None},
    ),
    ViewType.TIMELINE: TypeOptions(
        "object-timeline",
        {"dateField": "created_at"},
        {"titleField": "name", "descriptionField": None},
        {"dateField": ("dateField", "startDateField")},
    ),
    ViewType.GANTT: TypeOptions(
        "object-gantt",
        {"startDateField": "start_date", "endDateField": "end_date"},
        {"titleField": "name", "progressField": "progress", "dependenciesField": "dependencies", "colorField": None},
    ),
    ViewType.MAP: TypeOptions(
        "object-map",
        {"locationField": "location"},
        {"titleField": "name", "latitudeField": None, "longitudeField": None, "zoom": None, "center": None},
    ),
}


def _field_name(spec: Any) -> str | None:
    if isinstance(spec, str):
        return spec
    if isinstance(spec, dict):
        return spec.get("name") or spec.get("fieldName") or spec.get("field")
    return None


@dataclass(frozen=True)
class NamedListView:
    """A pre-configured view selectable by key. Replace, never mutate."""

    key: str
    label: str
    type: ViewType = ViewType.GRID
    columns: tuple = ()
    filter: tuple = ()
    sort: tuple = ()
    options: Mapping[str, Any] = field(default_factory=dict)
    flat_options: Mapping[str, Any] = field(default_factory=dict)
    navigation: Mapping[str, Any] | None = None

    @classmethod
    def from_config(cls, key: str, config: dict) -> "NamedListView":
        config = config if isinstance(config, dict) else {}
        view_type = ViewType.parse(config.get("type")) or ViewType.GRID
        options = copy.deepcopy(config.get("options")) if isinstance(config.get("options"), dict) else {}
        # top-level blocks such as config["kanban"] count as options.<type>
        for vt in ViewType:
            nested = config.get(vt.value)
            if isinstance(nested, dict):
                merged = dict(nested)
                merged.update(options.get(vt.value) or {})
                options[vt.value] = merged
        flat = {k: copy.deepcopy(v) for k, v in config.items() if k in FLAT_OPTION_KEYS}
        navigation = config.get("navigation") if isinstance(config.get("navigation"), dict) else None
        return cls(
            key=key,
            label=str(config.get("label") or key),
            type=view_type,
            columns=tuple(config.get("columns") or ()),
            filter=tuple(copy.deepcopy(config.get("filter") or ())),
            sort=tuple(copy.deepcopy(config.get("sort") or ())),
            options=options,
            flat_options=flat,
            navigation=copy.deepcopy(navigation),
        )

    def with_changes(self, **changes: Any) -> "NamedListView":
        return replace(self, **changes)

    def type_options(self, view_type: ViewType) -> dict:
        block = self.options.get(view_type.value) if isinstance(self.options, Mapping) else None
        return dict(block) if isinstance(block, dict) else {}


def named_views_from_config(list_views: Any) -> Dict[str, NamedListView]:
    """Build the key -> NamedListView table from a ``listViews`` mapping or list."""
    views: Dict[str, NamedListView] = {}
    if isinstance(list_views, dict):
        for key, cfg in list_views.items():
            views[key] = NamedListView.from_config(key, cfg)
    elif isinstance(list_views, list):
        for idx, cfg in enumerate(list_views):
            if isinstance(cfg, dict):
                key = cfg.get("id") or cfg.get("name") or f"view_{idx}"
                views[key] = NamedListView.from_config(key, cfg)
    return views


@dataclass
class PrecedenceChain:
    instance: dict | None = None
    named_view: NamedListView | None = None
    defaults: dict | None = None


@dataclass
class ResolvedViewSchema:
    view_type: ViewType
    component: str
    object_name: str | None
    fields: list
    options: dict
    filter: Any = None
    sort: Any = None
    warnings: List[Issue] = field(default_factory=list)

    def to_dict(self) -> dict:
        payload = {
            "type": self.component,
            "viewType": self.view_type.value,
            "objectName": self.object_name,
            "fields": list(self.fields),
        }
        if self.filter is not None:
            payload["filters"] = self.filter
        if self.sort is not None:
            payload["sort"] = self.sort
        payload.update(self.options)
        return payload


def _issue(code: str, message: str, path: str | None = None) -> Issue:
    return {"code": code, "message": message, "path": path}


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _flat_keys(source: Any, nested: dict, keys: frozenset) -> List[str]:
    """Top-level option keys that apply to this view type and are not overridden by its block."""
    if not isinstance(source, dict):
        return []
    return sorted(k for k in source if k in FLAT_OPTION_KEYS and k in keys and k not in nested)


def _build_layers(view_type: ViewType, chain: PrecedenceChain) -> tuple[List[dict], List[Issue]]:
    warnings: List[Issue] = []
    layers: List[dict] = []
    keys = TYPE_OPTIONS[view_type].keys

    instance = chain.instance if isinstance(chain.instance, dict) else {}
    nested = instance.get(view_type.value) if isinstance(instance.get(view_type.value), dict) else {}
    options = instance.get("options") if isinstance(instance.get("options"), dict) else {}
    option_block = options.get(view_type.value) if isinstance(options.get(view_type.value), dict) else {}
    found = _flat_keys(instance, {**option_block, **nested}, keys)
    if found:
        label = instance.get("id") or instance.get("name") or "<instance>"
        warnings.append(
            _issue(
                "VIEW_FLAT_OPTION_DEPRECATED",
                f"View {label!r} uses flat properties {found}; move them under {view_type.value}",
                "instance",
            )
        )
    layers.append({**nested, **option_block})
    layers.append({k: instance[k] for k in found})

    named = chain.named_view
    if named is not None:
        named_block = named.type_options(view_type)
        layers.append(named_block)
        named_flat = _flat_keys(named.flat_options, named_block, keys)
        if named_flat:
            warnings.append(
                _issue(
                    "VIEW_FLAT_OPTION_DEPRECATED",
                    f"View {named.key!r} uses flat properties {named_flat}; move them under options.{view_type.value}",
                    f"views.{named.key}",
                )
            )
        layers.append({k: named.flat_options[k] for k in named_flat})

    defaults = chain.defaults if isinstance(chain.defaults, dict) else {}
    typed = defaults.get(view_type.value)
    layers.append(dict(typed) if isinstance(typed, dict) else {})
    layers.append({k: v for k, v in defaults.items() if k in keys})

    for warning in warnings:
        logger.warning("view_flat_options_deprecated type=%s message=%s", view_type.value, warning["message"])
    return layers, warnings


def _aliased(layers: List[dict], spellings: Iterable[str], fallback: Any = None) -> Any:
    """First layer holding any spelling wins; within a layer, earlier spellings win."""
    for layer in layers:
        for key in spellings:
            if key in layer and _present(layer[key]):
                return layer[key]
    return fallback


def _resolve_common(view_type: ViewType, layers: List[dict]) -> dict:
    spec = TYPE_OPTIONS[view_type]
    resolved: dict = {}
    # pass-through keys, lowest layer first so higher layers overwrite
    for layer in reversed(layers):
        for key, value in layer.items():
            if _present(value):
                resolved[key] = copy.deepcopy(value)
    for key, fallback in {**spec.optional, **spec.required}.items():
        value = _aliased(layers, spec.aliases.get(key, (key,)), fallback)
        if value is None:
            resolved.pop(key, None)
        else:
            resolved[key] = value
    return resolved


def _resolve_grid(layers: List[dict], fields: list) -> dict:
    resolved = _resolve_common(ViewType.GRID, layers)
    resolved.setdefault("columns", list(fields))
    return resolved


def _resolve_kanban(layers: List[dict], fields: list) -> dict:
    resolved = _resolve_common(ViewType.KANBAN, layers)
    resolved.pop("groupByField", None)
    resolved["groupBy"] = resolved["groupField"]
    resolved.setdefault("cardFields", list(fields))
    return resolved


def _resolve_calendar(layers: List[dict], fields: list) -> dict:
    return _resolve_common(ViewType.CALENDAR, layers)


def _resolve_gallery(layers: List[dict], fields: list) -> dict:
    return _resolve_common(ViewType.GALLERY, layers)


def _resolve_timeline(layers: List[dict], fields: list) -> dict:
    resolved = _resolve_common(ViewType.TIMELINE, layers)
    resolved["startDateField"] = resolved["dateField"]
    return resolved


def _resolve_gantt(layers: List[dict], fields: list) -> dict:
    return _resolve_common(ViewType.GANTT, layers)


def _resolve_map(layers: List[dict], fields: list) -> dict:
    return _resolve_common(ViewType.MAP, layers)


_RESOLVERS: Dict[ViewType, Callable[[List[dict], list], dict]] = {
    ViewType.GRID: _resolve_grid,
    ViewType.KANBAN: _resolve_kanban,
    ViewType.CALENDAR: _resolve_calendar,
    ViewType.GALLERY: _resolve_gallery,
    ViewType.TIMELINE: _resolve_timeline,
    ViewType.GANTT: _resolve_gantt,
    ViewType.MAP: _resolve_map,
}

_missing = set(ViewType) - set(_RESOLVERS) | set(ViewType) - set(TYPE_OPTIONS)
if _missing:  # pragma: no cover - guards new enum members
    raise RuntimeError(f"view types without resolver: {sorted(v.value for v in _missing)}")


def _list_defaults(config: dict, defaults: Any) -> dict:
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in defaults.items()} if isinstance(defaults, dict) else {}
    options = config.get("options") if isinstance(config.get("options"), dict) else {}
    for vt in ViewType:
        # options.<type> wins over a top-level <type> block
        for block in (config.get(vt.value), options.get(vt.value)):
            if isinstance(block, dict):
                current = merged.get(vt.value)
                merged[vt.value] = {**(current if isinstance(current, dict) else {}), **block}
    for key in ("fields", "columns", *sorted(FLAT_OPTION_KEYS)):
        if _present(config.get(key)):
            merged[key] = config[key]
    return merged


def list_view_chain(config: Any, named_view: NamedListView | None = None, defaults: Any = None) -> PrecedenceChain:
    """Chain for a list config.

    Without a named view the list config is the view instance. With one, the
    list config is laid over ``defaults`` so the named view's options win.
    """
    config = config if isinstance(config, dict) else {}
    if named_view is None:
        return PrecedenceChain(instance=config, defaults=defaults if isinstance(defaults, dict) else None)
    return PrecedenceChain(named_view=named_view, defaults=_list_defaults(config, defaults))


def _chain_fields(chain: PrecedenceChain) -> list:
    instance = chain.instance if isinstance(chain.instance, dict) else {}
    for key in ("fields", "columns"):
        value = instance.get(key)
        if isinstance(value, list) and value:
            return list(value)
    if chain.named_view is not None and chain.named_view.columns:
        return list(chain.named_view.columns)
    defaults = chain.defaults if isinstance(chain.defaults, dict) else {}
    value = defaults.get("fields") or defaults.get("columns")
    return list(value) if isinstance(value, list) else []


def resolve_view_schema(
    view_type: Any,
    chain: PrecedenceChain | None = None,
    *,
    object_name: str | None = None,
    fields: Iterable[Any] | None = None,
    filter: Any = None,
    sort: Any = None,
) -> ResolvedViewSchema:
    chain = chain or PrecedenceChain()
    warnings: List[Issue] = []
    parsed = ViewType.parse(view_type)
    if parsed is None:
        warnings.append(_issue("VIEW_TYPE_UNKNOWN", f"Unknown view type {view_type!r}; using grid", "viewType"))
        logger.warning("view_type_unknown value=%s", view_type)
        parsed = ViewType.GRID
    field_list = list(fields) if fields is not None else _chain_fields(chain)
    layers, layer_warnings = _build_layers(parsed, chain)
    warnings.extend(layer_warnings)
    options = _RESOLVERS[parsed](layers, field_list)
    return ResolvedViewSchema(
        view_type=parsed,
        component=TYPE_OPTIONS[parsed].component,
        object_name=object_name,
        fields=field_list,
        options=options,
        filter=filter,
        sort=sort,
        warnings=warnings,
    )


def available_view_types(options: dict | None, current: Any = None) -> List[ViewType]:
    """View types the configured options can support, grid always first."""
    options = options if isinstance(options, dict) else {}

    def _opt(vt: str, key: str) -> Any:
        block = options.get(vt)
        return block.get(key) if isinstance(block, dict) else None

    views = [ViewType.GRID]
    if _opt("kanban", "groupField"):
        views.append(ViewType.KANBAN)
    if _opt("gallery", "imageField"):
        views.append(ViewType.GALLERY)
    if _opt("calendar", "startDateField"):
        views.append(ViewType.CALENDAR)
    if _opt("timeline", "startDateField") or _opt("timeline", "dateField") or _opt("calendar", "startDateField"):
        views.append(ViewType.TIMELINE)
    if _opt("gantt", "startDateField"):
        views.append(ViewType.GANTT)
    if _opt("map", "locationField") or (_opt("map", "latitudeField") and _opt("map", "longitudeField")):
        views.append(ViewType.MAP)
    parsed = ViewType.parse(current)
    if parsed is not None and parsed not in views:
        views.append(parsed)
    return views


def apply_field_visibility(fields: Iterable[Any], hidden: Iterable[str] | None = None, order: Iterable[str] | None = None) -> list:
    hidden_set = set(hidden or [])
    result = [f for f in fields or [] if _field_name(f) not in hidden_set]
    order_list = list(order or [])
    if order_list:
        rank = {name: idx for idx, name in enumerate(order_list)}
        result.sort(key=lambda f: rank.get(_field_name(f), len(rank)))
    return result
