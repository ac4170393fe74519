import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from diffreview import git_source
from diffreview.model import FileSummary

DIFF_TEXT = """diff --git a/src/a.py b/src/a.py
index 1111111..2222222 100644
--- a/src/a.py
+++ b/src/a.py
@@ -1,2 +1,2 @@
 keep
-old
+new
diff --git a/logo.png b/logo.png
index 1111111..2222222 100644
Binary files a/logo.png and b/logo.png differ
"""

NUMSTAT_TEXT = "1\t1\tsrc/a.py\n-\t-\tlogo.png\n"


class TestCommitish(unittest.TestCase):
    def test_validate_commitish(self):
        for value in ("HEAD", "HEAD~2", "abc1234", "main", "feature/x", "v1.0", "HEAD^"):
            with self.subTest(value=value):
                self.assertTrue(git_source.validate_commitish(value))
        for value in ("", "   ", "bad name", "a;rm -rf", None):
            with self.subTest(value=value):
                self.assertFalse(git_source.validate_commitish(value))


class TestResolveDiffRequest(unittest.TestCase):
    def test_working(self):
        request = git_source.resolve_diff_request("working", default_base="main")
        self.assertEqual(request.args, ())
        self.assertIsNone(request.base)

    def test_staged(self):
        self.assertEqual(git_source.resolve_diff_request("staged").args, ("--cached", "HEAD"))
        self.assertEqual(git_source.resolve_diff_request("staged", "main").args, ("--cached", "main"))

    def test_uncommitted(self):
        self.assertEqual(git_source.resolve_diff_request(".").args, ("HEAD",))
        self.assertEqual(git_source.resolve_diff_request(".", default_base="develop").args, ("develop",))

    def test_commit(self):
        self.assertEqual(git_source.resolve_diff_request("abc1234").args, ("abc1234^", "abc1234"))
        self.assertEqual(git_source.resolve_diff_request("feature", "main").args, ("main", "feature"))

    def test_ignore_whitespace(self):
        request = git_source.resolve_diff_request("HEAD", ignore_whitespace=True)
        self.assertEqual(request.args, ("HEAD^", "HEAD", "-w"))

    def test_invalid_requests(self):
        with self.assertRaises(ValueError):
            git_source.resolve_diff_request("bad name")
        with self.assertRaises(ValueError):
            git_source.resolve_diff_request("HEAD", "working")
        with self.assertRaises(ValueError):
            git_source.resolve_diff_request("HEAD", "HEAD")
        with self.assertRaises(ValueError):
            git_source.resolve_diff_request("HEAD", "no good")


class TestNumstat(unittest.TestCase):
    def test_parse_numstat(self):
        self.assertEqual(
            git_source.parse_numstat(NUMSTAT_TEXT + "\n"),
            [FileSummary(1, 1), FileSummary(binary=True)],
        )

    def test_rename_entries_keep_counts(self):
        self.assertEqual(git_source.parse_numstat("0\t0\told.gif => new.gif\n"), [FileSummary(0, 0)])


class TestLoadDiff(unittest.TestCase):
    def test_load_diff_with_stubbed_git(self):
        calls = []

        def fake_git(repo, args):
            calls.append(args)
            if args[0] == "rev-parse":
                return "0123456789abcdef\n"
            if "--numstat" in args:
                return NUMSTAT_TEXT
            return DIFF_TEXT

        with mock.patch.object(git_source, "run_git", side_effect=fake_git):
            result = git_source.load_diff(Path("."), "feature", "main")

        self.assertEqual(result.label, "0123456..0123456")
        self.assertEqual([item.path for item in result.model.files], ["src/a.py", "logo.png"])
        self.assertEqual(result.model.files[1].chunks, [])
        self.assertIn(["diff", "--numstat", "-M", "main", "feature"], calls)
        self.assertIn(["diff", "--no-color", "-M", "main", "feature"], calls)

    def test_working_label_does_not_call_rev_parse(self):
        with mock.patch.object(git_source, "run_git", return_value="") as run_git:
            result = git_source.load_diff(Path("."), "working")
        self.assertTrue(result.model.is_empty)
        self.assertEqual(result.label, "Working Directory (unstaged changes)")
        self.assertNotIn("rev-parse", [call.args[1][0] for call in run_git.call_args_list])

    @unittest.skipUnless(shutil.which("git"), "git is not installed")
    def test_run_git_failure_raises(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(RuntimeError):
                git_source.run_git(Path(tmp) / "missing", ["status"])


@unittest.skipUnless(shutil.which("git"), "git is not installed")
class TestLoadDiffFromRepository(unittest.TestCase):
    def git(self, repo: Path, *args: str) -> None:
        subprocess.run(
            ["git", "-C", str(repo), "-c", "user.name=Review", "-c", "user.email=review@example.com", *args],
            check=True,
            capture_output=True,
        )

    def test_working_and_commit_targets(self):
        with tempfile.TemporaryDirectory() as tmp:
            repo = Path(tmp)
            self.git(repo, "init", "-q")
            (repo / "a.txt").write_text("one\ntwo\n", encoding="utf-8")
            self.git(repo, "add", "a.txt")
            self.git(repo, "commit", "-q", "-m", "first")
            (repo / "a.txt").write_text("one\nTWO\nthree\n", encoding="utf-8")
            self.git(repo, "commit", "-q", "-am", "second")
            (repo / "a.txt").write_text("one\nTWO\nthree\nfour\n", encoding="utf-8")

            working = git_source.load_diff(repo, "working")
            self.assertEqual(len(working.model.files), 1)
            self.assertEqual(working.model.files[0].status, "modified")
            self.assertEqual((working.model.files[0].additions, working.model.files[0].deletions), (1, 0))

            head = git_source.load_diff(repo, "HEAD")
            diff_file = head.model.files[0]
            self.assertEqual((diff_file.additions, diff_file.deletions), (2, 1))
            self.assertEqual([line.type for line in diff_file.chunks[0].lines], ["normal", "delete", "add", "add"])
            self.assertIn("..", head.label)


if __name__ == "__main__":
    unittest.main()
