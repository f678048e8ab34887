import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from navigation import (
    Idle,
    NavigationConfig,
    NavigationController,
    NavigationMode,
    OutcomeKind,
    OverlayOpen,
    resolve_navigation,
)


class TestNavigationController(unittest.TestCase):
    def setUp(self) -> None:
        self.opened = []
        self.navigated = []

    def _controller(self, config=None, **kwargs) -> NavigationController:
        return NavigationController(
            "orders",
            config,
            open_url=self.opened.append,
            on_navigate=lambda rid, action: self.navigated.append((rid, action)),
            **kwargs,
        )

    def test_new_window_opens_url(self) -> None:
        nav = self._controller({"mode": "new_window"})
        outcome = nav.record_click({"id": "42"})
        self.assertEqual(outcome.kind, OutcomeKind.OPEN_URL)
        self.assertEqual(outcome.url, "/orders/42")
        self.assertEqual(self.opened, ["/orders/42"])
        self.assertIsInstance(nav.state, Idle)

    def test_open_new_tab_flag(self) -> None:
        nav = self._controller({"mode": "drawer", "openNewTab": True})
        nav.record_click({"_id": "a1", "id": "ignored"})
        self.assertEqual(self.opened, ["/orders/a1"])
        self.assertFalse(nav.is_open)

    def test_none_and_prevent_navigation(self) -> None:
        for config in ({"mode": "none"}, {"mode": "drawer", "preventNavigation": True}):
            nav = self._controller(config)
            outcome = nav.record_click({"id": 1})
            self.assertEqual(outcome.kind, OutcomeKind.NONE)
            self.assertIsInstance(nav.state, Idle)
        self.assertEqual(self.opened, [])
        self.assertEqual(self.navigated, [])

    def test_page_emits_navigation_intent(self) -> None:
        nav = self._controller({"mode": "page"})
        outcome = nav.record_click({"id": 7})
        self.assertEqual(outcome.kind, OutcomeKind.NAVIGATE)
        self.assertEqual(self.navigated, [(7, "view")])
        self.assertIsInstance(nav.state, Idle)

    def test_overlay_modes(self) -> None:
        for mode in ("drawer", "modal", "split", "popover"):
            nav = self._controller({"mode": mode})
            record = {"id": 1}
            nav.record_click(record)
            self.assertEqual(nav.state, OverlayOpen(record=record, mode=NavigationMode(mode)))

    def test_click_while_open_replaces_record(self) -> None:
        nav = self._controller({"mode": "modal", "width": 600})
        nav.record_click({"id": 1})
        nav.record_click({"id": 2})
        self.assertEqual(nav.selected_record, {"id": 2})
        self.assertEqual(nav.mode, NavigationMode.MODAL)

    def test_mode_reevaluated_on_next_click(self) -> None:
        nav = self._controller({"mode": "drawer"})
        nav.record_click({"id": 1})
        nav.set_config({"mode": "page"})
        nav.record_click({"id": 2})
        self.assertIsNone(nav.selected_record)
        self.assertEqual(self.navigated, [(2, "view")])

    def test_close_discards_record(self) -> None:
        nav = self._controller({"mode": "drawer"})
        nav.record_click({"id": 1})
        nav.close()
        self.assertIsInstance(nav.state, Idle)
        self.assertIsNone(nav.selected_record)

    def test_no_config_defaults_to_overlay_when_readable(self) -> None:
        nav = self._controller()
        outcome = nav.record_click({"id": 1})
        self.assertEqual(outcome.kind, OutcomeKind.OVERLAY)
        self.assertEqual(nav.mode, NavigationMode.DRAWER)

        blocked = self._controller(operations={"read": False})
        self.assertEqual(blocked.record_click({"id": 1}).kind, OutcomeKind.NONE)
        self.assertFalse(blocked.is_open)

    def test_unreadable_click_after_config_cleared_closes_overlay(self) -> None:
        nav = self._controller({"mode": "modal"}, operations={"read": False})
        nav.record_click({"id": 1})
        self.assertTrue(nav.is_open)
        nav.set_config(None)
        self.assertEqual(nav.record_click({"id": 2}).kind, OutcomeKind.NONE)
        self.assertIsInstance(nav.state, Idle)
        self.assertIsNone(nav.selected_record)

    def test_missing_id_for_url_modes(self) -> None:
        nav = self._controller({"mode": "new_window"})
        with self.assertLogs("vista.navigation", level="WARNING"):
            outcome = nav.record_click({"name": "no id"})
        self.assertEqual(outcome.kind, OutcomeKind.NONE)
        self.assertEqual(self.opened, [])

    def test_open_deep_link(self) -> None:
        nav = self._controller({"mode": "page"})
        nav.open({"_id": "r1", "id": "r1"})
        self.assertEqual(nav.mode, NavigationMode.DRAWER)
        self.assertEqual(nav.selected_record, {"_id": "r1", "id": "r1"})


class TestNavigationConfig(unittest.TestCase):
    def test_from_config(self) -> None:
        config = NavigationConfig.from_config({"mode": "split", "width": "40%", "view": "edit"})
        self.assertEqual(config.mode, NavigationMode.SPLIT)
        self.assertEqual(config.width, "40%")
        self.assertIsNone(NavigationConfig.from_config(None))

    def test_unknown_mode_defaults_to_drawer(self) -> None:
        with self.assertLogs("vista.navigation", level="WARNING"):
            config = NavigationConfig.from_config({"mode": "sidecar"})
        self.assertEqual(config.mode, NavigationMode.DRAWER)

    def test_resolve_precedence(self) -> None:
        view = {"navigation": {"mode": "modal"}}
        obj = {"navigation": {"mode": "page"}}
        self.assertEqual(resolve_navigation(view, obj).mode, NavigationMode.MODAL)
        self.assertEqual(resolve_navigation({}, obj).mode, NavigationMode.PAGE)
        self.assertEqual(resolve_navigation(None, None).mode, NavigationMode.DRAWER)


if __name__ == "__main__":
    unittest.main()
