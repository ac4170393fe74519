import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.config import (
    DEFAULT_CONFIG_NAME,
    ReviewConfig,
    load_review_config,
    resolve_review_config,
    review_config_from_dict,
)


class TestReviewConfig(unittest.TestCase):
    def test_defaults(self):
        config = review_config_from_dict({})
        self.assertEqual(config, ReviewConfig())
        self.assertEqual(config.view_mode, "inline")
        self.assertEqual(config.default_base, "HEAD")

    def test_load_from_toml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "review.toml"
            path.write_text(
                "\n".join(
                    [
                        "[review]",
                        'view_mode = "side-by-side"',
                        "ignore_whitespace = true",
                        'default_base = "main"',
                        "max_lines_per_chunk = 50",
                        'comments = "notes/comments.json"',
                    ]
                ),
                encoding="utf-8",
            )
            config = load_review_config(path)
            self.assertEqual(config.view_mode, "side-by-side")
            self.assertTrue(config.ignore_whitespace)
            self.assertEqual(config.default_base, "main")
            self.assertEqual(config.max_lines_per_chunk, 50)
            self.assertEqual(config.comments_path, Path(tmp) / "notes" / "comments.json")

    def test_invalid_values(self):
        bad = [
            {"review": {"view_mode": "split"}},
            {"review": {"ignore_whitespace": "yes"}},
            {"review": {"max_lines_per_chunk": 0}},
            {"review": {"max_lines_per_chunk": "many"}},
            {"review": "inline"},
        ]
        for data in bad:
            with self.subTest(data=data):
                with self.assertRaises(RuntimeError):
                    review_config_from_dict(data)

    def test_invalid_toml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.toml"
            path.write_text("[review\n", encoding="utf-8")
            with self.assertRaisesRegex(RuntimeError, "Invalid TOML"):
                load_review_config(path)
            with self.assertRaisesRegex(RuntimeError, "File not found"):
                load_review_config(Path(tmp) / "missing.toml")

    def test_resolve_uses_repo_file_when_present(self):
        with tempfile.TemporaryDirectory() as tmp:
            repo = Path(tmp)
            self.assertEqual(resolve_review_config(None, repo), ReviewConfig())
            (repo / DEFAULT_CONFIG_NAME).write_text('[review]\nview_mode = "side-by-side"\n', encoding="utf-8")
            self.assertEqual(resolve_review_config(None, repo).view_mode, "side-by-side")

            explicit = repo / "other.toml"
            explicit.write_text("[review]\nmax_lines_per_chunk = 12\n", encoding="utf-8")
            config = resolve_review_config(explicit, repo)
            self.assertEqual(config.view_mode, "inline")
            self.assertEqual(config.max_lines_per_chunk, 12)


if __name__ == "__main__":
    unittest.main()
