import asyncio
import json
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffgap.content_source import InMemoryContentSource, OriginalContent, split_content  # noqa: E402
from diffgap.errors import ContentFetchFailure  # noqa: E402
from diffgap.models import AnnotationTarget  # noqa: E402
from diffgap.session import ReviewSession  # noqa: E402


def make_content(total: int) -> str:
    return "".join(f"line {number}\n" for number in range(1, total + 1))


DIFF_TEXT = "\n".join(
    [
        "diff --git a/src/a.js b/src/a.js",
        "--- a/src/a.js",
        "+++ b/src/a.js",
        "@@ -10,4 +10,4 @@",
        " c10",
        "-old11",
        "+new11",
        " c12",
        " c13",
        "@@ -18,2 +18,2 @@",
        "-old18",
        "+new18",
        " c19",
        "diff --git a/src/old_name.js b/src/b.js",
        "similarity index 95%",
        "rename from src/old_name.js",
        "rename to src/b.js",
        "--- a/src/old_name.js",
        "+++ b/src/b.js",
        "@@ -1,2 +1,2 @@",
        "-x",
        "+y",
        " z",
    ]
)


class ConcurrencyProbe:
    def __init__(self, files):
        self.inner = InMemoryContentSource(files)
        self.active = 0
        self.max_active = 0
        self.requested = []

    async def fetch_original_content(self, file):
        self.requested.append(file)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.01)
            return await self.inner.fetch_original_content(file)
        finally:
            self.active -= 1


class TestReviewSession(unittest.TestCase):
    def test_files_come_from_unified_diff(self):
        session = ReviewSession.from_unified_diff(DIFF_TEXT, InMemoryContentSource({}))
        self.assertEqual(session.files(), ["src/a.js", "src/b.js"])
        self.assertEqual(session.registry("src/b.js").original_file, "src/old_name.js")
        with self.assertRaises(LookupError):
            session.registry("missing.js")

    def test_prepare_validates_concurrently_and_auto_expands_small_gaps(self):
        source = ConcurrencyProbe(
            {"src/a.js": make_content(30), "src/old_name.js": make_content(40)}
        )
        session = ReviewSession.from_unified_diff(DIFF_TEXT, source)
        validation = asyncio.run(session.prepare())

        self.assertEqual(source.max_active, 2)
        self.assertIn("src/old_name.js", source.requested)
        self.assertEqual(validation["src/a.js"].status, "validated")
        self.assertEqual(validation["src/b.js"].status, "validated")

        # Lines 14-17 sit between the hunks of a.js and are revealed right away.
        registry = session.registry("src/a.js")
        self.assertEqual([line.old_number for line in registry.revealed_lines()], [14, 15, 16, 17])
        self.assertEqual(
            [(gap.position, gap.old_start, gap.old_end) for gap in registry.gaps()],
            [("above", 1, 9), ("below", 20, 30)],
        )
        self.assertEqual(registry.old_coverage(), list(range(1, 31)))

    def test_one_missing_file_does_not_fail_prepare(self):
        session = ReviewSession.from_unified_diff(DIFF_TEXT, InMemoryContentSource({"src/a.js": make_content(30)}))
        with self.assertLogs("diffgap", level="WARNING"):
            validation = asyncio.run(session.prepare())
        self.assertIsInstance(validation["src/b.js"], ContentFetchFailure)
        self.assertTrue(session.registry("src/b.js").eof_gap().eof_unknown)

    def test_expand_actions(self):
        session = ReviewSession.from_unified_diff(DIFF_TEXT, InMemoryContentSource({"src/a.js": make_content(30)}))
        above = session.registry("src/a.js").gaps()[0]
        result = asyncio.run(session.expand("src/a.js", above.gap_id, "up", 4))
        self.assertEqual([line.old_number for line in result.lines], [6, 7, 8, 9])
        with self.assertRaises(ValueError):
            asyncio.run(session.expand("src/a.js", above.gap_id, "sideways"))
        with self.assertRaises(LookupError):
            asyncio.run(session.expand("src/a.js", "src/a.js#gap99"))

    def test_discard_tears_down_file(self):
        session = ReviewSession.from_unified_diff(DIFF_TEXT, InMemoryContentSource({"src/a.js": make_content(30)}))
        registry = session.registry("src/a.js")
        gap = registry.gaps()[0]
        session.discard("src/a.js")
        self.assertTrue(registry.closed)
        result = asyncio.run(session.engine.expand_all(registry, gap))
        self.assertEqual(result.status, "stale")
        self.assertEqual(session.files(), ["src/b.js"])

    def test_ensure_visible_and_anchor(self):
        session = ReviewSession.from_unified_diff(DIFF_TEXT, InMemoryContentSource({"src/a.js": make_content(30)}))
        outcomes = asyncio.run(session.ensure_visible([AnnotationTarget("src/a.js", 3)]))
        self.assertEqual(outcomes[0].status, "revealed")
        anchor = session.anchor("src/a.js", 3)
        self.assertTrue(anchor.requires_file_level_fallback)
        # Second header sits at position 6; "+new18" follows "-old18".
        self.assertEqual(session.anchor("src/a.js", 18).position, 8)

    def test_to_dict_is_json_serializable(self):
        session = ReviewSession.from_unified_diff(DIFF_TEXT, InMemoryContentSource({}))
        payload = json.loads(json.dumps(session.to_dict()))
        first = payload["files"][0]
        self.assertEqual(first["file"], "src/a.js")
        self.assertEqual(first["errors"], [])
        gap_ids = [segment["id"] for segment in first["segments"] if segment["kind"] == "gap"]
        self.assertEqual(sorted(first["controls"]), sorted(gap_ids))
        self.assertEqual(payload["files"][1]["originalFile"], "src/old_name.js")


class TestSplitContent(unittest.TestCase):
    def test_trailing_newline_is_not_a_line(self):
        self.assertEqual(split_content("a\nb\n"), ("a", "b"))
        self.assertEqual(split_content("a\r\nb"), ("a", "b"))
        self.assertEqual(split_content(""), ())
        self.assertEqual(OriginalContent(("a", "b")).line(2), "b")

    def test_empty_file_is_a_fetch_failure(self):
        source = InMemoryContentSource({"empty.txt": ""})
        with self.assertRaises(ContentFetchFailure):
            asyncio.run(source.fetch_original_content("empty.txt"))


if __name__ == "__main__":
    unittest.main()
