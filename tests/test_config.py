import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffgap.config import EngineConfig, load_engine_config  # noqa: E402


class TestLoadEngineConfig(unittest.TestCase):
    def write(self, tmpdir: str, text: str) -> Path:
        path = Path(tmpdir) / "diffgap.toml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_defaults(self):
        config = EngineConfig()
        self.assertEqual(config.default_expand_lines, 20)
        self.assertEqual(config.small_gap_threshold, 10)
        self.assertEqual(config.full_expand_ratio, 0.7)
        self.assertEqual(config.context_radius, 3)
        self.assertEqual(config.auto_expand_threshold, 6)

    def test_reads_expansion_table(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write(tmpdir, "[expansion]\ndefault_expand_lines = 50\ncontext_radius = 0\nfull_expand_ratio = 0.5\n")
            config = load_engine_config(path)
        self.assertEqual(config.default_expand_lines, 50)
        self.assertEqual(config.context_radius, 0)
        self.assertEqual(config.full_expand_ratio, 0.5)
        self.assertEqual(config.small_gap_threshold, 10)

    def test_missing_table_uses_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = self.write(tmpdir, "[other]\nvalue = 1\n")
            self.assertEqual(load_engine_config(path), EngineConfig())

    def test_invalid_values_raise(self):
        cases = [
            "[expansion]\ndefault_expand_lines = 0\n",
            "[expansion]\ncontext_radius = -1\n",
            "[expansion]\nfull_expand_ratio = 1.5\n",
            "[expansion]\nsmall_gap_threshold = \"many\"\n",
            "expansion = 3\n",
            "[expansion\n",
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            for text in cases:
                with self.subTest(text=text):
                    path = self.write(tmpdir, text)
                    with self.assertRaises(RuntimeError):
                        load_engine_config(path)

    def test_missing_file_raises(self):
        with self.assertRaises(RuntimeError):
            load_engine_config(Path("/nonexistent/diffgap.toml"))


if __name__ == "__main__":
    unittest.main()
