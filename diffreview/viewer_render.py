from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .comment_index import build_index, comment_key
from .model import LINE_ADD, LINE_DELETE, Comment, DiffFile, DiffModel

KEY_HELP = [
    ("j / down", "Next line"),
    ("k / up", "Previous line"),
    ("n / p", "Next / previous change"),
    ("N / P", "Next / previous comment"),
    ("] / [", "Next / previous file"),
    ("h / l", "Left / right side (side-by-side)"),
    (".", "Move cursor to the center of the view"),
    ("r", "Toggle reviewed for the current file"),
    ("c", "Comment on the current line"),
    ("y", "Copy all comments as a prompt"),
    ("t", "Toggle inline / side-by-side"),
    ("ctrl+r", "Reload the diff"),
    ("?", "Show this help"),
    ("q", "Quit"),
]


def status_style(status: str) -> str:
    if status == "added":
        return "green"
    if status == "deleted":
        return "red"
    if status == "renamed":
        return "yellow"
    return "white"


def line_style(line_type: str) -> str:
    if line_type == LINE_ADD:
        return "green"
    if line_type == LINE_DELETE:
        return "red"
    return "white"


def line_prefix(line_type: str) -> str:
    return {LINE_ADD: "+", LINE_DELETE: "-"}.get(line_type, " ")


def render_summary(console: Console, label: str, model: DiffModel, comment_count: int = 0) -> None:
    additions = sum(item.additions for item in model.files)
    deletions = sum(item.deletions for item in model.files)
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Diff", label or "-")
    table.add_row("Files", str(len(model.files)))
    table.add_row("Additions", f"+{additions}")
    table.add_row("Deletions", f"-{deletions}")
    table.add_row("Comments", str(comment_count))
    console.print(Panel(table, title="Diff Review", border_style="blue"))


def render_files(console: Console, files: Sequence[DiffFile]) -> None:
    table = Table(title=f"Files ({len(files)})", header_style="bold magenta")
    table.add_column("status", no_wrap=True)
    table.add_column("path", overflow="ellipsis")
    table.add_column("+", justify="right", style="green")
    table.add_column("-", justify="right", style="red")
    for item in files:
        path = item.path if item.old_path is None else f"{item.old_path} -> {item.path}"
        table.add_row(
            Text(item.status, style=status_style(item.status)),
            path,
            str(item.additions),
            str(item.deletions),
        )
    console.print(table)


def render_file_diff(
    console: Console,
    diff_file: DiffFile,
    max_lines: int,
    comments: Sequence[Comment] = (),
) -> None:
    index = build_index(comments)
    table = Table(title=diff_file.path, header_style="bold magenta", title_justify="left")
    table.add_column("old", justify="right", style="dim")
    table.add_column("new", justify="right", style="dim")
    table.add_column("content")
    if not diff_file.chunks:
        table.add_row("", "", Text("(no textual changes)", style="italic"))
        console.print(table)
        return

    shown = 0
    for chunk in diff_file.chunks:
        table.add_row("", "", Text(chunk.header, style="bold cyan"))
        for line in chunk.lines:
            if shown >= max_lines:
                break
            shown += 1
            table.add_row(
                "" if line.old_line_number is None else str(line.old_line_number),
                "" if line.new_line_number is None else str(line.new_line_number),
                Text(line_prefix(line.type) + line.content, style=line_style(line.type)),
            )
            if line.type == LINE_DELETE or line.new_line_number is None:
                continue
            for comment in index.get(comment_key(diff_file.path, line.new_line_number), []):
                table.add_row("", "", Text(f"COMMENT: {comment.body}", style="bold yellow"))
    total = sum(len(chunk.lines) for chunk in diff_file.chunks)
    if total > shown:
        table.add_row("", "", Text(f"... {total - shown} more lines", style="italic"))
    console.print(table)
