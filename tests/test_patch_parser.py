import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffgap import patch_parser  # noqa: E402


TWO_HUNK_PATCH = "\n".join(
    [
        "diff --git a/a.js b/a.js",
        "index 1111111..2222222 100644",
        "--- a/a.js",
        "+++ b/a.js",
        "@@ -1,3 +1,4 @@",
        " a",
        "+b",
        " c",
        " d",
        "@@ -10,2 +11,2 @@ function tail() {",
        " x",
        "-y",
        "+z",
    ]
)


class TestParseFilePatch(unittest.TestCase):
    def test_first_header_has_no_position_and_lines_start_at_one(self):
        parsed = patch_parser.parse_file_patch(TWO_HUNK_PATCH, "a.js")
        self.assertEqual(len(parsed.hunks), 2)
        first, second = parsed.hunks
        self.assertIsNone(first.header_position)
        self.assertEqual([line.diff_position for line in first.lines], [1, 2, 3, 4])
        self.assertEqual(second.header_position, 5)
        self.assertEqual([line.diff_position for line in second.lines], [6, 7, 8])
        self.assertEqual(parsed.last_position, 8)

    def test_positions_increase_by_one_per_header_or_line(self):
        parsed = patch_parser.parse_file_patch(TWO_HUNK_PATCH, "a.js")
        positions: list[int] = []
        for hunk in parsed.hunks:
            if hunk.header_position is not None:
                positions.append(hunk.header_position)
            positions.extend(line.diff_position for line in hunk.lines)
        self.assertEqual(positions, list(range(1, len(positions) + 1)))

    def test_line_numbers_follow_per_side_counters(self):
        parsed = patch_parser.parse_file_patch(TWO_HUNK_PATCH, "a.js")
        first, second = parsed.hunks
        self.assertEqual(
            [(line.type, line.old_number, line.new_number) for line in first.lines],
            [("context", 1, 1), ("insert", None, 2), ("context", 2, 3), ("context", 3, 4)],
        )
        self.assertEqual(
            [(line.type, line.old_number, line.new_number) for line in second.lines],
            [("context", 10, 11), ("delete", 11, None), ("insert", None, 12)],
        )
        self.assertEqual([line.side for line in second.lines], ["RIGHT", "LEFT", "RIGHT"])
        self.assertEqual(second.function_context, "function tail() {")
        self.assertIsNone(first.function_context)

    def test_malformed_header_drops_hunk_but_keeps_positions(self):
        patch = "\n".join(
            [
                "@@ -1,2 +1,2 @@",
                " a",
                "-b",
                "+B",
                "@@ -x +y @@",
                " junk",
                "@@ -20,1 +20,1 @@",
                "-q",
                "+Q",
            ]
        )
        with self.assertLogs("diffgap.patch_parser", level="WARNING"):
            parsed = patch_parser.parse_file_patch(patch, "m.py")
        self.assertEqual(len(parsed.hunks), 2)
        self.assertEqual(len(parsed.errors), 1)
        self.assertEqual(parsed.errors[0].header, "@@ -x +y @@")
        self.assertEqual(parsed.errors[0].position, 4)
        survivor = parsed.hunks[1]
        self.assertEqual(survivor.header_position, 6)
        self.assertEqual([line.diff_position for line in survivor.lines], [7, 8])

    def test_no_newline_marker_is_skipped(self):
        patch = "@@ -1,2 +1,2 @@\n a\n-b\n\\ No newline at end of file\n+c\n"
        parsed = patch_parser.parse_file_patch(patch)
        lines = parsed.hunks[0].lines
        self.assertEqual([line.content for line in lines], ["a", "b", "c"])
        self.assertEqual([line.diff_position for line in lines], [1, 2, 3])

    def test_blank_line_inside_hunk_is_empty_context(self):
        patch = "@@ -1,3 +1,3 @@\n a\n\n c\n"
        parsed = patch_parser.parse_file_patch(patch)
        lines = parsed.hunks[0].lines
        self.assertEqual([(line.type, line.content, line.old_number) for line in lines], [
            ("context", "a", 1),
            ("context", "", 2),
            ("context", "c", 3),
        ])

    def test_empty_and_none_patch(self):
        self.assertEqual(patch_parser.parse_file_patch("").hunks, [])
        self.assertEqual(patch_parser.parse_file_patch(None).hunks, [])


class TestSplitUnifiedDiff(unittest.TestCase):
    def test_git_diff_with_new_and_renamed_files(self):
        diff_text = "\n".join(
            [
                "diff --git a/old.py b/new.py",
                "similarity index 90%",
                "rename from old.py",
                "rename to new.py",
                "--- a/old.py",
                "+++ b/new.py",
                "@@ -1 +1 @@",
                "-x",
                "+y",
                "diff --git a/added.py b/added.py",
                "new file mode 100644",
                "--- /dev/null",
                "+++ b/added.py",
                "@@ -0,0 +1,2 @@",
                "+one",
                "+two",
            ]
        )
        files = patch_parser.split_unified_diff(diff_text)
        self.assertEqual([item.path for item in files], ["new.py", "added.py"])
        self.assertEqual(files[0].a_path, "old.py")
        self.assertIsNone(files[1].a_path)
        self.assertTrue(files[0].patch.startswith("@@ -1 +1 @@"))
        self.assertIn("new file mode 100644", files[1].meta)

    def test_deleted_line_that_looks_like_file_header(self):
        diff_text = "\n".join(
            [
                "diff --git a/x.sql b/x.sql",
                "--- a/x.sql",
                "+++ b/x.sql",
                "@@ -1,2 +1,2 @@",
                "--- comment",
                "+++ other",
                " keep",
            ]
        )
        files = patch_parser.split_unified_diff(diff_text)
        self.assertEqual(len(files), 1)
        parsed = patch_parser.parse_file_patch(files[0].patch)
        self.assertEqual(
            [(line.type, line.content) for line in parsed.hunks[0].lines],
            [("delete", "-- comment"), ("insert", "++ other"), ("context", "keep")],
        )

    def test_plain_diff_u_output(self):
        diff_text = "\n".join(
            [
                "--- a.txt\t2024-01-01",
                "+++ a.txt\t2024-01-02",
                "@@ -1 +1 @@",
                "-a",
                "+b",
                "--- b.txt",
                "+++ b.txt",
                "@@ -1 +1 @@",
                "-c",
                "+d",
            ]
        )
        files = patch_parser.split_unified_diff(diff_text)
        self.assertEqual([item.path for item in files], ["a.txt", "b.txt"])


class TestHunksForLines(unittest.TestCase):
    def test_matches_by_side(self):
        parsed = patch_parser.parse_file_patch(TWO_HUNK_PATCH, "a.js")
        self.assertEqual(len(patch_parser.hunks_for_lines(parsed.hunks, 12, 12)), 1)
        self.assertEqual(patch_parser.hunks_for_lines(parsed.hunks, 12, 12)[0].new_start, 11)
        self.assertEqual(patch_parser.hunks_for_lines(parsed.hunks, 12, 12, "LEFT"), [])
        self.assertEqual(len(patch_parser.hunks_for_lines(parsed.hunks, 1, 20)), 2)


if __name__ == "__main__":
    unittest.main()
