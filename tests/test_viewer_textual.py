import asyncio
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview.diff_model import build_model
from diffreview.model import Comment, CursorPosition
from diffreview.viewer_textual import DiffReviewApp, DiffTable, row_key_for_target

DIFF_TEXT = """diff --git a/src/a.py b/src/a.py
index 1111111..2222222 100644
--- a/src/a.py
+++ b/src/a.py
@@ -1,3 +1,3 @@
 keep
-old
+new
 tail
diff --git a/src/b.py b/src/b.py
index 1111111..2222222 100644
--- a/src/b.py
+++ b/src/b.py
@@ -1,1 +1,2 @@
 first
+second
"""


def make_app(**kwargs) -> DiffReviewApp:
    return DiffReviewApp("test", build_model(DIFF_TEXT), **kwargs)


class TestRowKeys(unittest.TestCase):
    def test_row_key_for_target_strips_side(self):
        self.assertEqual(row_key_for_target("file-0-chunk-1-line-2-left"), "file-0-chunk-1-line-2")
        self.assertEqual(row_key_for_target("file-0-chunk-1-line-2-right"), "file-0-chunk-1-line-2")
        self.assertEqual(row_key_for_target("file-0-chunk-1-line-2"), "file-0-chunk-1-line-2")


class TestDiffReviewApp(unittest.TestCase):
    def test_line_and_chunk_keys_move_cursor(self):
        async def run() -> None:
            app = make_app()
            async with app.run_test(size=(120, 40)) as pilot:
                self.assertIsNone(app.engine.cursor)
                await pilot.press("j")
                await pilot.pause()
                self.assertEqual(app.engine.cursor, CursorPosition(0, 0, 0, "right"))
                table = app.query_one("#diff", DiffTable)
                self.assertEqual(table.cursor_row, 2)

                await pilot.press("n")
                await pilot.pause()
                self.assertEqual(app.engine.cursor, CursorPosition(0, 0, 1, "left"))

                await pilot.press("n")
                await pilot.pause()
                self.assertEqual(app.engine.cursor, CursorPosition(1, 0, 1, "right"))

                await pilot.press("k")
                await pilot.pause()
                self.assertEqual(app.engine.cursor, CursorPosition(1, 0, 0, "right"))

        asyncio.run(run())

    def test_side_by_side_switching(self):
        async def run() -> None:
            app = make_app()
            async with app.run_test(size=(140, 40)) as pilot:
                await pilot.press("t")
                await pilot.pause()
                self.assertEqual(app.engine.view_mode, "side-by-side")

                await pilot.press("j", "j")
                await pilot.pause()
                self.assertEqual(app.engine.cursor, CursorPosition(0, 0, 2, "right"))
                self.assertEqual(app.engine.scroll_target(), "file-0-chunk-0-line-2-right")

                await pilot.press("h")
                await pilot.pause()
                self.assertEqual(app.engine.cursor, CursorPosition(0, 0, 1, "left"))

                await pilot.press("l")
                await pilot.pause()
                self.assertEqual(app.engine.cursor, CursorPosition(0, 0, 2, "right"))

        asyncio.run(run())

    def test_toggle_reviewed_hides_file_from_navigation(self):
        async def run() -> None:
            app = make_app()
            async with app.run_test(size=(120, 40)) as pilot:
                await pilot.press("j")
                await pilot.press("r")
                await pilot.pause()
                self.assertIn("src/a.py", app.engine.collapsed)
                self.assertIn("src/a.py", app.reviewed_fingerprints)

                await pilot.press("j")
                await pilot.pause()
                self.assertEqual(app.engine.cursor.file_index, 1)

        asyncio.run(run())

    def test_changed_file_is_unmarked_after_reload(self):
        changed = DIFF_TEXT.replace("+second", "+second edited")

        async def run() -> None:
            app = make_app(reload=lambda: build_model(changed))
            async with app.run_test(size=(120, 40)) as pilot:
                app.engine.toggle_collapsed("src/a.py")
                app.engine.set_cursor_position(CursorPosition(1, 0, 0))
                await pilot.press("r")
                await pilot.pause()
                self.assertEqual(app.engine.collapsed, {"src/a.py", "src/b.py"})

                app.reviewed_fingerprints.pop("src/a.py", None)
                app.action_reload()
                await pilot.pause()
                self.assertEqual(app.engine.collapsed, {"src/a.py"})
                self.assertNotIn("src/b.py", app.reviewed_fingerprints)

        asyncio.run(run())

    def test_cursor_stays_on_drawn_rows_of_truncated_chunk(self):
        long_diff = "\n".join(
            ["diff --git a/long.txt b/long.txt", "new file mode 100644", "--- /dev/null", "+++ b/long.txt", "@@ -0,0 +1,5 @@"]
            + [f"+line {number}" for number in range(1, 6)]
        )
        comments = [Comment(file="long.txt", line=4, body="hidden")]

        async def run() -> None:
            app = DiffReviewApp("long", build_model(long_diff), comments, max_lines_per_chunk=2)
            async with app.run_test(size=(120, 40)) as pilot:
                table = app.query_one("#diff", DiffTable)
                await pilot.press("N")
                await pilot.pause()
                self.assertIsNone(app.engine.cursor)

                seen = []
                for _ in range(4):
                    await pilot.press("j")
                    await pilot.pause()
                    row_key = table.coordinate_to_cell_key(table.cursor_coordinate).row_key.value
                    seen.append((app.engine.cursor.line_index, row_key))
                self.assertEqual(
                    seen,
                    [
                        (0, "file-0-chunk-0-line-0"),
                        (1, "file-0-chunk-0-line-1"),
                        (0, "file-0-chunk-0-line-0"),
                        (1, "file-0-chunk-0-line-1"),
                    ],
                )

        asyncio.run(run())

    def test_comment_navigation_and_creation(self):
        comments = [Comment(file="src/b.py", line=2, body="check this")]

        async def run() -> None:
            app = make_app(comments=comments)
            async with app.run_test(size=(120, 40)) as pilot:
                await pilot.press("N")
                await pilot.pause()
                self.assertEqual(app.engine.cursor, CursorPosition(1, 0, 1, "right"))

                await pilot.press("c")
                await pilot.pause()
                await pilot.press("w", "o", "w", "enter")
                await pilot.pause()
                self.assertEqual(len(app.engine.comments), 2)
                added = app.engine.comments[-1]
                self.assertEqual((added.file, added.line, added.body), ("src/b.py", 2, "wow"))
                self.assertEqual(added.code_content, "second")

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
