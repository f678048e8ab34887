import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from data_sources import (
    DataSourceError,
    MemoryDataSource,
    build_expand_fields,
    filter_to_condition,
    normalize_find_result,
    record_id,
)


SCHEMA = {
    "fields": {
        "name": {"type": "text"},
        "account": {"type": "lookup", "reference_to": "accounts"},
        "parent": {"type": "master_detail", "reference_to": "orders"},
        "amount": {"type": "number"},
    }
}


class TestHelpers(unittest.TestCase):
    def test_normalize_find_result(self) -> None:
        rows = [{"id": 1}]
        self.assertEqual(normalize_find_result(rows), rows)
        self.assertEqual(normalize_find_result({"data": rows}), rows)
        self.assertEqual(normalize_find_result({"records": rows}), rows)
        self.assertEqual(normalize_find_result({"value": rows}), [])
        self.assertEqual(normalize_find_result(None), [])

    def test_record_id(self) -> None:
        self.assertEqual(record_id({"_id": "a", "id": "b"}), "a")
        self.assertEqual(record_id({"id": 0}), 0)
        self.assertIsNone(record_id("x"))

    def test_expand_fields_follow_requested_order(self) -> None:
        self.assertEqual(build_expand_fields(SCHEMA, ["parent", "name", {"field": "account"}]), ["parent", "account"])
        self.assertEqual(build_expand_fields(SCHEMA), ["account", "parent"])
        self.assertEqual(build_expand_fields(SCHEMA, []), [])
        self.assertEqual(build_expand_fields(None, ["account"]), [])

    def test_expand_fields_from_field_list(self) -> None:
        schema = {"fields": [{"name": "owner", "type": "reference"}, {"name": "title", "type": "text"}]}
        self.assertEqual(build_expand_fields(schema, ["title", "owner"]), ["owner"])

    def test_filter_to_condition(self) -> None:
        self.assertIsNone(filter_to_condition(None))
        self.assertIsNone(filter_to_condition(["status", "in", []]))
        self.assertEqual(
            filter_to_condition(["status", "=", "open"]),
            {"op": "eq", "left": {"var": "status"}, "right": {"literal": "open"}},
        )
        with self.assertRaises(DataSourceError):
            filter_to_condition(["status", "~", "x"])


class TestMemoryDataSource(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.source = MemoryDataSource(
            {
                "orders": {
                    "schema": SCHEMA,
                    "records": [
                        {"id": "o1", "name": "Alpha", "status": "open", "amount": 50, "account": "a1"},
                        {"id": "o2", "name": "Beta", "status": "closed", "amount": 500, "account": "a2"},
                        {"id": "o3", "name": "Gamma", "status": "open", "amount": None, "account": None},
                    ],
                },
                "accounts": {"records": [{"id": "a1", "name": "Acme"}, {"id": "a2", "name": "Globex"}]},
            }
        )

    async def test_in_filter_matches_any_value(self) -> None:
        result = await self.source.find("orders", {"filter": ["name", "in", ["Alpha", "Gamma"]]})
        self.assertEqual([r["id"] for r in result["data"]], ["o1", "o3"])

    async def test_group_and_comparisons(self) -> None:
        query = {"filter": ["and", ["status", "=", "open"], ["amount", ">", 10]]}
        result = await self.source.find("orders", query)
        self.assertEqual([r["id"] for r in result["data"]], ["o1"])

    async def test_contains_and_null(self) -> None:
        result = await self.source.find("orders", {"filter": ["name", "contains", "ET"]})
        self.assertEqual([r["id"] for r in result["data"]], ["o2"])
        result = await self.source.find("orders", {"filter": ["amount", "=", None]})
        self.assertEqual([r["id"] for r in result["data"]], ["o3"])
        result = await self.source.find("orders", {"filter": ["missing", "notcontains", "x"]})
        self.assertEqual(len(result["data"]), 3)

    async def test_sort_limit_and_expand(self) -> None:
        query = {"sort": [{"field": "amount", "order": "desc"}], "limit": 2, "expand": ["account"]}
        result = await self.source.find("orders", query)
        self.assertEqual([r["id"] for r in result["data"]], ["o2", "o1"])
        self.assertEqual(result["data"][0]["account"], {"id": "a2", "name": "Globex"})

    async def test_unknown_object(self) -> None:
        with self.assertRaises(DataSourceError):
            await self.source.find("ghosts", {})
        with self.assertRaises(DataSourceError):
            await self.source.get_object_schema("ghosts")

    async def test_results_are_copies(self) -> None:
        result = await self.source.find("orders", {})
        result["data"][0]["name"] = "changed"
        again = await self.source.find("orders", {})
        self.assertEqual(again["data"][0]["name"], "Alpha")


if __name__ == "__main__":
    unittest.main()
