import unittest
from datetime import UTC, datetime

from momentum.memory.models import (
    Importance,
    StructuredContext,
    normalize_importance,
    parse_string_list,
    render_context,
)
from momentum.memory.timestamps import age_hours, parse_timestamp, time_ago

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


class ImportanceTests(unittest.TestCase):
    def test_normalize(self) -> None:
        self.assertEqual(Importance.CRITICAL, normalize_importance("CRITICAL"))
        self.assertEqual(Importance.REFERENCE, normalize_importance(Importance.REFERENCE))
        self.assertEqual(Importance.NORMAL, normalize_importance("urgent"))
        self.assertEqual(Importance.NORMAL, normalize_importance(None))
        self.assertEqual(Importance.NORMAL, normalize_importance(3))

    def test_weights_are_ordered(self) -> None:
        weights = [level.weight for level in (Importance.CRITICAL, Importance.IMPORTANT, Importance.NORMAL, Importance.REFERENCE)]
        self.assertEqual([4, 3, 2, 1], weights)


class StructuredContextTests(unittest.TestCase):
    def test_render_sections_in_stable_order(self) -> None:
        text = StructuredContext(
            description="desc",
            files=["a.py"],
            decisions=["d1"],
            blockers=["b1"],
            errors_fixed=["e1"],
            code_state={"branch": "main"},
        ).render()

        order = [text.index(s) for s in ("desc", "Files:", "Decisions:", "Blockers:", "Errors Fixed:", "Code State:")]
        self.assertEqual(sorted(order), order)
        self.assertIn("- a.py", text)
        self.assertIn('"branch": "main"', text)

    def test_empty_sections_are_omitted(self) -> None:
        text = StructuredContext(description="only this").render()
        self.assertEqual("only this", text)

    def test_unknown_dict_keys_are_kept(self) -> None:
        text = render_context({"description": "d", "notes": "remember the milk"})
        self.assertIn("notes:", text)
        self.assertIn("remember the milk", text)

    def test_string_section_is_a_single_item(self) -> None:
        ctx = StructuredContext.from_dict({"files": "a.py", "decisions": ["x", 2]})

        self.assertEqual(["a.py"], ctx.files)
        self.assertEqual(["x", "2"], ctx.decisions)
        self.assertIn("Files:\n- a.py\n", ctx.render())

    def test_plain_text_passes_through(self) -> None:
        self.assertEqual("as is", render_context("as is"))


class BestEffortParsingTests(unittest.TestCase):
    def test_parse_string_list(self) -> None:
        self.assertEqual(["a", "b"], parse_string_list('["a", "b"]'))
        self.assertIsNone(parse_string_list(None))
        self.assertIsNone(parse_string_list("not json"))
        self.assertIsNone(parse_string_list('{"a": 1}'))

    def test_parse_timestamp(self) -> None:
        self.assertEqual(datetime(2026, 3, 1, tzinfo=UTC), parse_timestamp("2026-03-01T00:00:00Z"))
        self.assertEqual(datetime(2026, 3, 1, tzinfo=UTC), parse_timestamp("2026-03-01 00:00:00"))
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(None))

    def test_age_hours_is_clamped(self) -> None:
        self.assertEqual(0.0, age_hours("2026-03-11T00:00:00+00:00", now=NOW))
        self.assertEqual(12.0, age_hours("2026-03-10T00:00:00+00:00", now=NOW))
        self.assertIsNone(age_hours("garbage", now=NOW))

    def test_time_ago_labels(self) -> None:
        self.assertEqual("just now", time_ago("2026-03-10T11:59:40+00:00", now=NOW))
        self.assertEqual("5m ago", time_ago("2026-03-10T11:55:00+00:00", now=NOW))
        self.assertEqual("3h ago", time_ago("2026-03-10T09:00:00+00:00", now=NOW))
        self.assertEqual("2d ago", time_ago("2026-03-08T12:00:00+00:00", now=NOW))
        self.assertEqual("2026-02-01", time_ago("2026-02-01T12:00:00+00:00", now=NOW))
