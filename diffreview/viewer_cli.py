from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable
from pathlib import Path

from rich.console import Console

from .comment_index import comment_key, end_line, find_comment_position, load_comments
from .config import ReviewConfig, resolve_review_config
from .diff_model import build_model
from .git_source import DiffResult, load_diff
from .model import VALID_VIEW_MODES, Comment, DiffModel
from .viewer_render import render_file_diff, render_files, render_summary


def parse_review_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Review a git diff in the terminal with keyboard navigation.")
    parser.add_argument(
        "target",
        nargs="?",
        default="HEAD",
        help="Commit-ish to review, or 'working', 'staged', '.' (default: HEAD).",
    )
    parser.add_argument("base", nargs="?", help="Base commit-ish (default: <target>^, or HEAD for pseudo targets).")
    parser.add_argument("--repo", default=".", help="Path to git repository (default: current directory).")
    parser.add_argument("--diff-file", help="Read raw unified diff text from a file ('-' for stdin) instead of git.")
    parser.add_argument("--mode", choices=sorted(VALID_VIEW_MODES), help="Diff view mode.")
    parser.add_argument("--comments", help="JSON file with existing comments to show and navigate.")
    parser.add_argument("--config", help="Config TOML (default: <repo>/.diffreview.toml if present).")
    parser.add_argument(
        "-w",
        "--ignore-whitespace",
        action="store_const",
        const=True,
        default=None,
        help="Ignore whitespace changes.",
    )
    parser.add_argument("--max-lines", type=int, help="Max lines rendered per chunk.")
    parser.add_argument("--once", action="store_true", help="Print the diff with rich and exit.")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Print the parsed diff model as JSON.")
    return parser.parse_args(argv)


def read_diff_file(value: str) -> str:
    if value == "-":
        return sys.stdin.read()
    path = Path(value)
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error


def load_review_input(
    args: argparse.Namespace,
    config: ReviewConfig,
) -> tuple[str, DiffModel, Callable[[], DiffModel]]:
    ignore_whitespace = config.ignore_whitespace if args.ignore_whitespace is None else args.ignore_whitespace
    if args.diff_file:
        label = "stdin" if args.diff_file == "-" else Path(args.diff_file).name
        model = build_model(read_diff_file(args.diff_file))
        if args.diff_file == "-":
            return label, model, lambda: model
        return label, model, lambda: build_model(read_diff_file(args.diff_file))

    repo = Path(args.repo)

    def _load() -> DiffResult:
        return load_diff(
            repo,
            args.target,
            args.base,
            default_base=config.default_base,
            ignore_whitespace=ignore_whitespace,
        )

    result = _load()
    return result.label, result.model, lambda: _load().model


def run_review(argv: list[str]) -> int:
    args = parse_review_args(argv)
    if args.max_lines is not None and args.max_lines < 1:
        print("[error] --max-lines must be >= 1", file=sys.stderr)
        return 2

    console = Console()
    try:
        config = resolve_review_config(Path(args.config) if args.config else None, Path(args.repo))
        label, model, reload = load_review_input(args, config)
        comments_path = Path(args.comments) if args.comments else config.comments_path
        comments: list[Comment] = load_comments(comments_path) if comments_path else []
    except ValueError as error:
        print(f"[error] {error}", file=sys.stderr)
        return 2
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    view_mode = args.mode or config.view_mode
    max_lines = args.max_lines or config.max_lines_per_chunk

    if args.as_json:
        payload = {"label": label, **model.to_dict(), "comments": [comment.to_dict() for comment in comments]}
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    known_paths = {item.path for item in model.files}
    for comment in comments:
        if comment.file not in known_paths:
            console.print(f"[yellow]warning:[/yellow] comment on file outside this diff: {comment.file}")
        elif find_comment_position(comment, model.files) is None:
            console.print(
                f"[yellow]warning:[/yellow] comment on line outside this diff: "
                f"{comment_key(comment.file, end_line(comment.line))}"
            )

    if model.is_empty:
        console.print(f"[yellow]No differences found[/yellow] ({label})")
        return 0

    if args.once:
        render_summary(console, label, model, len(comments))
        render_files(console, model.files)
        for diff_file in model.files:
            render_file_diff(console, diff_file, max_lines, comments)
        return 0

    try:
        from .viewer_textual import launch_review_app
    except Exception as error:  # noqa: BLE001
        print(
            f"[error] textual UI is unavailable: {error}. "
            "Install dependencies: python -m pip install -e .",
            file=sys.stderr,
        )
        return 1
    return launch_review_app(
        label,
        model,
        comments,
        view_mode=view_mode,
        max_lines_per_chunk=max_lines,
        reload=reload,
    )


def main() -> int:
    return run_review(sys.argv[1:])
