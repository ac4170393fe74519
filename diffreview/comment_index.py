from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from .model import SIDE_LEFT, SIDE_RIGHT, Comment, CursorPosition, DiffFile, LineNumber

PROMPT_SEPARATOR = "\n\n=====\n\n"


def anchor_line(line: LineNumber) -> int:
    if isinstance(line, tuple):
        return line[0]
    return line


def end_line(line: LineNumber) -> int:
    if isinstance(line, tuple):
        return line[1]
    return line


def comment_key(file_path: str, line_number: int) -> str:
    return f"{file_path}:{line_number}"


def build_index(comments: Iterable[Comment]) -> dict[str, list[Comment]]:
    """Group comments by ``path:anchorLine``; always rebuilt from scratch."""
    index: dict[str, list[Comment]] = {}
    for comment in comments:
        key = comment_key(comment.file, anchor_line(comment.line))
        index.setdefault(key, []).append(comment)
    return index


def _parse_line_number(value: Any) -> LineNumber:
    if isinstance(value, bool):
        raise ValueError(f"Invalid comment line: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, (list, tuple)) and len(value) == 2:
        start, end = (int(item) for item in value)
        if end < start:
            raise ValueError(f"Invalid comment line range: {start}-{end}")
        return (start, end)
    raise ValueError(f"Invalid comment line: {value!r}")


def comment_from_dict(item: Mapping[str, Any]) -> Comment:
    file_path = str(item.get("file") or "").strip()
    if not file_path:
        raise ValueError("Comment is missing 'file'.")
    line = _parse_line_number(item.get("line"))
    code_content = item.get("codeContent")
    return Comment(
        file=file_path,
        line=line,
        body=str(item.get("body", "")),
        id=str(item.get("id") or f"{file_path}:{anchor_line(line)}"),
        created_at=str(item.get("timestamp", "")),
        code_content=None if code_content is None else str(code_content),
    )


def load_comments(path: Path) -> list[Comment]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error
    except json.JSONDecodeError as error:
        raise RuntimeError(f"Invalid JSON: {error}") from error
    if not isinstance(data, list):
        raise RuntimeError(f"Comments file must contain a JSON array: {path}")
    comments: list[Comment] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise RuntimeError(f"Comment #{index} must be an object.")
        try:
            comments.append(comment_from_dict(item))
        except ValueError as error:
            raise RuntimeError(f"Comment #{index}: {error}") from error
    return comments


def find_line_position(diff_file: DiffFile, file_index: int, line_number: int) -> CursorPosition | None:
    for chunk_index, chunk in enumerate(diff_file.chunks):
        for line_index, line in enumerate(chunk.lines):
            number = line.new_line_number or line.old_line_number
            if number == line_number:
                side = SIDE_RIGHT if line.new_line_number else SIDE_LEFT
                return CursorPosition(file_index, chunk_index, line_index, side)
    return None


def find_comment_position(comment: Comment, files: Sequence[DiffFile]) -> CursorPosition | None:
    for file_index, diff_file in enumerate(files):
        if diff_file.path == comment.file:
            return find_line_position(diff_file, file_index, end_line(comment.line))
    return None


def _commented_code(comment: Comment, files: Sequence[DiffFile]) -> str:
    if comment.code_content is not None:
        return comment.code_content
    start = anchor_line(comment.line)
    stop = end_line(comment.line)
    for diff_file in files:
        if diff_file.path != comment.file:
            continue
        picked: list[str] = []
        for chunk in diff_file.chunks:
            for line in chunk.lines:
                if line.new_line_number is not None and start <= line.new_line_number <= stop:
                    picked.append(line.content)
        return "\n".join(picked)
    return ""


def format_comment_prompt(comment: Comment, files: Sequence[DiffFile] = ()) -> str:
    start = anchor_line(comment.line)
    stop = end_line(comment.line)
    location = f"L{start}" if start == stop else f"L{start}-L{stop}"
    parts = [f"{comment.file} {location}"]
    code = _commented_code(comment, files)
    if code:
        parts.extend(["----", code, "----"])
    parts.append(comment.body.strip())
    return "\n".join(parts)


def format_comments_prompt(comments: Iterable[Comment], files: Sequence[DiffFile] = ()) -> str:
    return PROMPT_SEPARATOR.join(format_comment_prompt(comment, files) for comment in comments)
