import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from data_sources import MemoryDataSource
from list_session import ListViewSession, ViewQuery
from navigation import NavigationMode, OutcomeKind
from view_prefs import MemoryPreferenceStore, ViewPreferences
from view_schema import ViewType


CONFIG = {
    "viewType": "grid",
    "filters": [["status", "!=", "archived"]],
    "quickFilters": [
        {"id": "mine", "label": "Mine", "filters": [["owner", "=", "me"]], "defaultActive": True},
        {"id": "big", "label": "Big", "filters": [["amount", ">", 100]]},
    ],
    "searchableFields": ["name"],
    "sort": [{"field": "amount", "order": "desc"}],
    "pageSize": 50,
    "columns": ["name", "amount", "owner"],
    "options": {"kanban": {"groupField": "stage"}},
    "listViews": {"board": {"label": "Board", "type": "kanban", "filter": [["stage", "!=", "lost"]]}},
    "conditionalFormatting": [{"field": "amount", "operator": "greater_than", "value": 100, "backgroundColor": "#fee"}],
}

RECORDS = [
    {"id": "d1", "name": "Acme deal", "status": "open", "owner": "me", "amount": 500, "stage": "won"},
    {"id": "d2", "name": "Beta", "status": "archived", "owner": "me", "amount": 50, "stage": "open"},
    {"id": "d3", "name": "Gamma", "status": "open", "owner": "you", "amount": 200, "stage": "open"},
    {"id": "d4", "name": "Delta", "status": "open", "owner": "me", "amount": 20, "stage": "lost"},
]


def _ids(records) -> list:
    return [r["id"] for r in records]


class TestViewQuery(unittest.TestCase):
    def test_params_from_config(self) -> None:
        params = ViewQuery.from_config(CONFIG).to_params()
        self.assertEqual(params["filter"], ["and", ["status", "!=", "archived"], ["owner", "=", "me"]])
        self.assertEqual(params["sort"], [{"field": "amount", "order": "desc"}])
        self.assertEqual(params["limit"], 50)
        self.assertEqual(params["fields"], ["name", "amount", "owner"])

    def test_sources_merge_in_fixed_order(self) -> None:
        query = (
            ViewQuery.from_config(CONFIG)
            .with_quick_filter("big")
            .with_user_filter({"logic": "and", "conditions": [{"field": "stage", "operator": "equals", "value": "won"}]})
            .with_search("ac")
        )
        self.assertEqual(
            query.filter(),
            [
                "and",
                ["status", "!=", "archived"],
                ["stage", "=", "won"],
                ["owner", "=", "me"],
                ["amount", ">", 100],
                ["name", "contains", "ac"],
            ],
        )

    def test_query_values_are_immutable(self) -> None:
        query = ViewQuery.from_config(CONFIG)
        toggled = query.with_quick_filter("mine")
        self.assertEqual(query.active_quick_filters, frozenset({"mine"}))
        self.assertEqual(toggled.active_quick_filters, frozenset())
        self.assertIsNone(ViewQuery().to_params().get("filter"))


class TestListViewSession(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.source = MemoryDataSource({"deals": {"records": [dict(r) for r in RECORDS]}})
        self.opened = []

    def _session(self, **kwargs) -> ListViewSession:
        return ListViewSession("deals", dict(CONFIG), self.source, open_url=self.opened.append, **kwargs)

    async def test_refresh_and_filter_changes(self) -> None:
        session = self._session()
        self.assertEqual(_ids(await session.refresh()), ["d1", "d4"])
        self.assertEqual(_ids(await session.toggle_quick_filter("mine")), ["d1", "d3", "d4"])
        self.assertEqual(_ids(await session.set_search("gam")), ["d3"])
        await session.set_search(None)
        self.assertEqual(_ids(await session.set_sort([["amount", "asc"]])), ["d4", "d3", "d1"])

    async def test_render_payload(self) -> None:
        session = self._session()
        await session.refresh()
        payload = session.render_payload()
        self.assertEqual(payload["schema"]["type"], "object-grid")
        self.assertEqual(payload["schema"]["columns"], ["name", "amount", "owner"])
        self.assertEqual(payload["rowStyles"], [{"backgroundColor": "#fee"}, {}])
        self.assertFalse(payload["loading"])
        self.assertIsNone(payload["error"])
        self.assertEqual(payload["warnings"], [])

    async def test_select_named_view(self) -> None:
        session = self._session()
        records = await session.select_view("board")
        self.assertEqual(_ids(records), ["d1", "d2"])
        self.assertEqual(session.view_type, ViewType.KANBAN)
        schema = session.resolved_schema()
        self.assertEqual(schema.component, "object-kanban")
        self.assertEqual(schema.options["groupField"], "stage")

    def test_named_view_options_beat_list_options(self) -> None:
        config = {
            "options": {"kanban": {"groupField": "priority", "titleField": "subject"}},
            "listViews": {"board": {"type": "kanban", "options": {"kanban": {"groupField": "stage"}}}},
            "defaultView": "board",
        }
        object_def = {"views": {"kanban": {"groupField": "phase", "titleField": "label", "cardFields": ["owner"]}}}
        session = ListViewSession("deals", config, self.source, object_def=object_def)
        options = session.resolved_schema().options
        self.assertEqual(options["groupField"], "stage")
        self.assertEqual(options["titleField"], "subject")
        self.assertEqual(options["cardFields"], ["owner"])

    def test_list_options_beat_object_defaults(self) -> None:
        config = {"viewType": "kanban", "kanban": {"groupField": "owner"}}
        object_def = {"views": {"kanban": {"groupField": "phase"}, "titleField": "label"}}
        session = ListViewSession("deals", config, self.source, object_def=object_def)
        options = session.resolved_schema().options
        self.assertEqual(options["groupField"], "owner")
        self.assertEqual(options["titleField"], "label")

    async def test_unknown_named_view_keeps_state(self) -> None:
        session = self._session()
        await session.refresh()
        self.assertEqual(_ids(await session.select_view("missing")), ["d1", "d4"])
        self.assertIsNone(session.active_view)

    def test_hidden_fields_and_order(self) -> None:
        config = dict(CONFIG, hiddenFields=["owner"], fieldOrder=["amount"])
        session = ListViewSession("deals", config, self.source)
        self.assertEqual(session.visible_fields(), ["amount", "name"])
        session.set_hidden_fields([])
        self.assertEqual(session.visible_fields(), ["amount", "name", "owner"])

    def test_row_click_defaults_to_drawer(self) -> None:
        session = self._session()
        outcome = session.on_row_click({"id": "d1"})
        self.assertEqual(outcome.kind, OutcomeKind.OVERLAY)
        self.assertEqual(session.navigation.mode, NavigationMode.DRAWER)

    def test_row_click_uses_object_navigation(self) -> None:
        session = self._session(object_def={"navigation": {"mode": "new_window"}})
        session.on_row_click({"id": "d3"})
        self.assertEqual(self.opened, ["/deals/d3"])


class TestSessionPreferences(unittest.TestCase):
    def setUp(self) -> None:
        self.source = MemoryDataSource({"deals": {"records": []}})

    def test_stored_view_type_restored(self) -> None:
        store = MemoryPreferenceStore({"listview-deals-view": "kanban"})
        session = ListViewSession("deals", dict(CONFIG), self.source, preferences=ViewPreferences(store))
        self.assertEqual(session.view_type, ViewType.KANBAN)

    def test_unavailable_stored_type_ignored(self) -> None:
        store = MemoryPreferenceStore({"listview-deals-view": "map"})
        session = ListViewSession("deals", dict(CONFIG), self.source, preferences=ViewPreferences(store))
        self.assertEqual(session.view_type, ViewType.GRID)

    def test_switch_saves_under_instance_key(self) -> None:
        store = MemoryPreferenceStore()
        session = ListViewSession("deals", dict(CONFIG), self.source, preferences=ViewPreferences(store), view_id="sales")
        self.assertEqual(session.switch_view_type("calendar"), ViewType.CALENDAR)
        self.assertEqual(store.get("listview-deals-sales-view"), "calendar")
        self.assertEqual(session.switch_view_type("pivot"), ViewType.CALENDAR)

    def test_disabled_preferences_use_declared_type(self) -> None:
        store = MemoryPreferenceStore({"listview-deals-view": "kanban"})
        session = ListViewSession(
            "deals", dict(CONFIG), self.source, preferences=ViewPreferences(store, enabled=False)
        )
        self.assertEqual(session.view_type, ViewType.GRID)
        session.switch_view_type("kanban")
        self.assertEqual(store.get("listview-deals-view"), "kanban")
        self.assertEqual(store.keys(), ["listview-deals-view"])


if __name__ == "__main__":
    unittest.main()
