import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from formatting_eval import evaluate_conditional_formatting, format_records, row_style_getter, rule_matches


class TestFieldRules(unittest.TestCase):
    def test_first_match_wins(self) -> None:
        rules = [
            {"field": "amount", "operator": "greater_than", "value": 1000, "backgroundColor": "#fee"},
            {"field": "status", "operator": "equals", "value": "active", "backgroundColor": "#cce"},
        ]
        self.assertEqual(evaluate_conditional_formatting({"amount": 500, "status": "active"}, rules), {"backgroundColor": "#cce"})
        self.assertEqual(evaluate_conditional_formatting({"amount": 5000, "status": "active"}, rules), {"backgroundColor": "#fee"})

    def test_no_rules_or_no_match(self) -> None:
        self.assertEqual(evaluate_conditional_formatting({"a": 1}, []), {})
        self.assertEqual(evaluate_conditional_formatting({"a": 1}, None), {})
        rules = [{"field": "a", "operator": "equals", "value": 2, "color": "red"}]
        self.assertEqual(evaluate_conditional_formatting({"a": 1}, rules), {})

    def test_type_mismatch_is_non_matching(self) -> None:
        self.assertFalse(rule_matches({"field": "amount", "operator": "greater_than", "value": 10}, {"amount": "500"}))
        self.assertFalse(rule_matches({"field": "amount", "operator": "less_than", "value": 10}, {"amount": True}))
        self.assertFalse(rule_matches({"field": "name", "operator": "contains", "value": 1}, {"name": "a1"}))
        self.assertFalse(rule_matches({"field": "tag", "operator": "in", "value": "abc"}, {"tag": "a"}))

    def test_operators(self) -> None:
        record = {"name": "Acme Corp", "amount": 5, "tag": "b", "flag": True}
        self.assertTrue(rule_matches({"field": "name", "operator": "contains", "value": "Acme"}, record))
        self.assertFalse(rule_matches({"field": "name", "operator": "contains", "value": "acme"}, record))
        self.assertTrue(rule_matches({"field": "amount", "operator": "less_than", "value": 10}, record))
        self.assertTrue(rule_matches({"field": "tag", "operator": "in", "value": ["a", "b"]}, record))
        self.assertTrue(rule_matches({"field": "amount", "operator": "not_equals", "value": "5"}, record))
        self.assertFalse(rule_matches({"field": "flag", "operator": "equals", "value": 1}, record))
        self.assertFalse(rule_matches({"field": "amount", "operator": "between", "value": 1}, record))

    def test_style_merge_prefers_explicit_keys(self) -> None:
        rules = [
            {
                "field": "status",
                "operator": "equals",
                "value": "late",
                "style": {"color": "black", "fontWeight": "bold", "backgroundColor": "white"},
                "backgroundColor": "#fdd",
                "textColor": "#900",
                "borderColor": "#f00",
            }
        ]
        self.assertEqual(
            evaluate_conditional_formatting({"status": "late"}, rules),
            {"color": "#900", "fontWeight": "bold", "backgroundColor": "#fdd", "borderColor": "#f00"},
        )


class TestExpressionRules(unittest.TestCase):
    def test_expression_rule(self) -> None:
        rules = [{"expression": "amount > 1000 && status === 'urgent'", "backgroundColor": "#f00"}]
        self.assertEqual(evaluate_conditional_formatting({"amount": 1500, "status": "urgent"}, rules), {"backgroundColor": "#f00"})
        self.assertEqual(evaluate_conditional_formatting({"amount": 1500, "status": "normal"}, rules), {})

    def test_condition_key_and_template(self) -> None:
        rules = [{"condition": "${data.priority == 'high'}", "textColor": "#c00"}]
        self.assertEqual(evaluate_conditional_formatting({"priority": "high"}, rules), {"color": "#c00"})

    def test_broken_expression_falls_through(self) -> None:
        rules = [
            {"expression": "amount >", "backgroundColor": "#f00"},
            {"expression": "missing_field > 3", "backgroundColor": "#0f0"},
            {"field": "amount", "operator": "greater_than", "value": 1, "backgroundColor": "#00f"},
        ]
        self.assertEqual(evaluate_conditional_formatting({"amount": 2}, rules), {"backgroundColor": "#00f"})

    def test_odd_expression_text_never_raises(self) -> None:
        fallback = {"field": "amount", "operator": "greater_than", "value": 1, "backgroundColor": "#00f"}
        expressions = [
            "amount > ²",
            "٣ < amount",
            "amount > 1e",
            "amount == 'open",
            "amount > 3 ) (",
            "(" * 50 + "amount",
            "!" * 5000 + "amount",
            "amount > 1 && ${nested}",
        ]
        for expression in expressions:
            rules = [{"expression": expression, "backgroundColor": "#f00"}, fallback]
            self.assertEqual(
                evaluate_conditional_formatting({"amount": 5, "a": 1}, rules),
                {"backgroundColor": "#00f"},
                expression,
            )

    def test_helpers(self) -> None:
        rules = [{"field": "done", "operator": "equals", "value": True, "color": "gray"}]
        getter = row_style_getter(rules)
        self.assertEqual(getter({"done": True}), {"color": "gray"})
        self.assertEqual(format_records([{"done": True}, {"done": False}], rules), [{"color": "gray"}, {}])


if __name__ == "__main__":
    unittest.main()
