"""One interactive list: query state, fetching, view resolution and navigation.

Every filter/sort/search/quick-filter change produces a new ``ViewQuery``
value and a fetch. ``render_payload`` is what a view renderer consumes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping

from data_sources import DataSource
from fetch_orchestrator import DataFetchOrchestrator
from filter_merge import (
    build_query_filter,
    build_sort,
    default_active_quick_filters,
    quick_filter_conditions,
    search_condition,
)
from formatting_eval import format_records
from navigation import NavigationConfig, NavigationController, NavigationOutcome, find_navigation
from view_prefs import ViewPreferences, view_pref_key
from view_schema import (
    NamedListView,
    ResolvedViewSchema,
    ViewType,
    apply_field_visibility,
    available_view_types,
    list_view_chain,
    named_views_from_config,
    resolve_view_schema,
)


logger = logging.getLogger("vista.session")


@dataclass(frozen=True)
class ViewQuery:
    base_filter: tuple = ()
    user_filter: Mapping[str, Any] | None = None
    quick_filters: tuple = ()
    active_quick_filters: frozenset = frozenset()
    search_term: str | None = None
    searchable_fields: tuple = ()
    sort: tuple = ()
    limit: int | None = None
    fields: tuple | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ViewQuery":
        quick = tuple(qf for qf in config.get("quickFilters") or [] if isinstance(qf, dict))
        fields = config.get("fields") or config.get("columns")
        return cls(
            base_filter=tuple(config.get("filters") or config.get("filter") or ()),
            quick_filters=quick,
            active_quick_filters=frozenset(default_active_quick_filters(quick)),
            searchable_fields=tuple(config.get("searchableFields") or ()),
            sort=tuple(config.get("sort") or ()),
            limit=config.get("pageSize"),
            fields=tuple(fields) if fields else None,
        )

    def with_user_filter(self, group: Mapping[str, Any] | None) -> "ViewQuery":
        return replace(self, user_filter=dict(group) if group else None)

    def with_quick_filter(self, quick_filter_id: str, active: bool | None = None) -> "ViewQuery":
        enabled = quick_filter_id not in self.active_quick_filters if active is None else active
        ids = set(self.active_quick_filters)
        if enabled:
            ids.add(quick_filter_id)
        else:
            ids.discard(quick_filter_id)
        return replace(self, active_quick_filters=frozenset(ids))

    def with_search(self, term: str | None) -> "ViewQuery":
        return replace(self, search_term=term or None)

    def with_sort(self, items: Iterable[Any] | None) -> "ViewQuery":
        return replace(self, sort=tuple(items or ()))

    def with_view(self, view: NamedListView) -> "ViewQuery":
        changes: Dict[str, Any] = {}
        if view.filter:
            changes["base_filter"] = view.filter
        if view.sort:
            changes["sort"] = view.sort
        if view.columns:
            changes["fields"] = view.columns
        return replace(self, **changes)

    def filter(self) -> list | None:
        return build_query_filter(
            list(self.base_filter),
            self.user_filter,
            quick_filter_conditions(self.quick_filters, self.active_quick_filters),
            search_condition(self.search_term, self.searchable_fields),
        )

    def to_params(self) -> dict:
        params: dict = {}
        merged = self.filter()
        if merged is not None:
            params["filter"] = merged
        sort = build_sort(self.sort)
        if sort is not None:
            params["sort"] = sort
        if self.limit is not None:
            params["limit"] = self.limit
        if self.fields is not None:
            params["fields"] = list(self.fields)
        return params


@dataclass
class ListViewSession:
    object_name: str
    config: Dict[str, Any]
    source: DataSource
    preferences: ViewPreferences | None = None
    view_id: str | None = None
    object_def: Dict[str, Any] = field(default_factory=dict)
    open_url: Callable[[str], None] | None = None
    on_navigate: Callable[[Any, str], None] | None = None

    def __post_init__(self) -> None:
        self.named_views = named_views_from_config(self.config.get("listViews"))
        self.active_view: NamedListView | None = None
        default_key = self.config.get("defaultView")
        if default_key in self.named_views:
            self.active_view = self.named_views[default_key]
        self.query = ViewQuery.from_config(self.config)
        if self.active_view is not None:
            self.query = self.query.with_view(self.active_view)
        self.hidden_fields = set(self.config.get("hiddenFields") or [])
        self.view_type = self._initial_view_type()
        self.orchestrator = DataFetchOrchestrator(
            self.source,
            self.object_name,
            require_schema=bool(self.config.get("requireSchema", False)),
        )
        self.navigation = NavigationController(
            self.object_name,
            self._navigation_config(),
            operations=self.config.get("operations"),
            open_url=self.open_url,
            on_navigate=self.on_navigate,
        )

    @property
    def pref_key(self) -> str:
        return view_pref_key(self.object_name, self.view_id)

    def _navigation_config(self) -> NavigationConfig | None:
        return find_navigation(self.active_view, self.config, self.object_def)

    def _declared_view_type(self) -> ViewType:
        if self.active_view is not None:
            return self.active_view.type
        return ViewType.parse(self.config.get("viewType")) or ViewType.GRID

    def available_view_types(self) -> List[ViewType]:
        return available_view_types(self.config.get("options"), self._declared_view_type())

    def _initial_view_type(self) -> ViewType:
        declared = self._declared_view_type()
        if self.preferences is None:
            return declared
        stored = self.preferences.load(self.pref_key, self.available_view_types())
        return stored or declared

    def switch_view_type(self, view_type: ViewType | str) -> ViewType:
        parsed = ViewType.parse(view_type)
        if parsed is None:
            logger.info("view_switch_rejected object=%s value=%s", self.object_name, view_type)
            return self.view_type
        self.view_type = parsed
        if self.preferences is not None:
            self.preferences.save(self.pref_key, parsed)
        return parsed

    async def refresh(self) -> List[dict]:
        return await self.orchestrator.fetch(self.query)

    async def select_view(self, key: str) -> List[dict]:
        view = self.named_views.get(key)
        if view is None:
            logger.info("named_view_unknown object=%s key=%s", self.object_name, key)
            return self.orchestrator.state.records
        self.active_view = view
        self.view_type = view.type
        self.query = ViewQuery.from_config(self.config).with_view(view)
        self.navigation.set_config(self._navigation_config())
        return await self.refresh()

    async def set_user_filter(self, group: Mapping[str, Any] | None) -> List[dict]:
        self.query = self.query.with_user_filter(group)
        return await self.refresh()

    async def toggle_quick_filter(self, quick_filter_id: str) -> List[dict]:
        self.query = self.query.with_quick_filter(quick_filter_id)
        return await self.refresh()

    async def set_search(self, term: str | None) -> List[dict]:
        self.query = self.query.with_search(term)
        return await self.refresh()

    async def set_sort(self, items: Iterable[Any] | None) -> List[dict]:
        self.query = self.query.with_sort(items)
        return await self.refresh()

    def set_hidden_fields(self, names: Iterable[str]) -> None:
        self.hidden_fields = set(names or [])

    def visible_fields(self) -> list:
        fields = list(self.query.fields or [])
        return apply_field_visibility(fields, self.hidden_fields, self.config.get("fieldOrder"))

    def resolved_schema(self) -> ResolvedViewSchema:
        params = self.query.to_params()
        chain = list_view_chain(self.config, self.active_view, self.object_def.get("views"))
        return resolve_view_schema(
            self.view_type,
            chain,
            object_name=self.object_name,
            fields=self.visible_fields() if self.query.fields is not None else None,
            filter=params.get("filter"),
            sort=params.get("sort"),
        )

    def row_styles(self, records: Iterable[dict] | None = None) -> List[dict]:
        records = self.orchestrator.state.records if records is None else records
        return format_records(records, self.config.get("conditionalFormatting"))

    def on_row_click(self, record: dict) -> NavigationOutcome:
        return self.navigation.record_click(record)

    def render_payload(self) -> dict:
        resolved = self.resolved_schema()
        state = self.orchestrator.state
        return {
            "schema": resolved.to_dict(),
            "records": list(state.records),
            "loading": state.loading,
            "error": state.error,
            "rowStyles": self.row_styles(state.records),
            "warnings": list(resolved.warnings),
        }
