from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

LINE_ADD = "add"
LINE_DELETE = "delete"
LINE_NORMAL = "normal"
LINE_TYPES = {LINE_ADD, LINE_DELETE, LINE_NORMAL}

STATUS_ADDED = "added"
STATUS_DELETED = "deleted"
STATUS_MODIFIED = "modified"
STATUS_RENAMED = "renamed"
VALID_STATUSES = {STATUS_ADDED, STATUS_DELETED, STATUS_MODIFIED, STATUS_RENAMED}

SIDE_LEFT = "left"
SIDE_RIGHT = "right"

VIEW_INLINE = "inline"
VIEW_SIDE_BY_SIDE = "side-by-side"
VALID_VIEW_MODES = {VIEW_INLINE, VIEW_SIDE_BY_SIDE}

LineNumber = Union[int, tuple[int, int]]


@dataclass(frozen=True)
class DiffLine:
    type: str
    content: str
    old_line_number: int | None = None
    new_line_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type, "content": self.content}
        if self.old_line_number is not None:
            out["oldLineNumber"] = self.old_line_number
        if self.new_line_number is not None:
            out["newLineNumber"] = self.new_line_number
        return out


@dataclass(frozen=True)
class DiffChunk:
    header: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[DiffLine] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "header": self.header,
            "oldStart": self.old_start,
            "oldLines": self.old_lines,
            "newStart": self.new_start,
            "newLines": self.new_lines,
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class DiffFile:
    path: str
    status: str
    additions: int
    deletions: int
    chunks: list[DiffChunk] = field(default_factory=list)
    old_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"path": self.path}
        if self.old_path is not None:
            out["oldPath"] = self.old_path
        out.update(
            {
                "status": self.status,
                "additions": self.additions,
                "deletions": self.deletions,
                "chunks": [chunk.to_dict() for chunk in self.chunks],
            }
        )
        return out


@dataclass(frozen=True)
class FileSummary:
    """Per-file counts reported by the diff tool, in diff block order."""

    insertions: int = 0
    deletions: int = 0
    binary: bool = False


@dataclass(frozen=True)
class DiffModel:
    files: list[DiffFile]
    is_empty: bool

    def to_dict(self) -> dict[str, Any]:
        return {"files": [item.to_dict() for item in self.files], "isEmpty": self.is_empty}


@dataclass(frozen=True)
class CursorPosition:
    """Index triplet into files/chunks/lines plus the pane the cursor sits on."""

    file_index: int
    chunk_index: int
    line_index: int
    side: str = SIDE_RIGHT

    def with_side(self, side: str) -> CursorPosition:
        return CursorPosition(self.file_index, self.chunk_index, self.line_index, side)

    def same_line(self, other: CursorPosition) -> bool:
        return (
            self.file_index == other.file_index
            and self.chunk_index == other.chunk_index
            and self.line_index == other.line_index
        )


@dataclass(frozen=True)
class Comment:
    file: str
    line: LineNumber
    body: str = ""
    id: str = ""
    created_at: str = ""
    code_content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "file": self.file,
            "line": list(self.line) if isinstance(self.line, tuple) else self.line,
            "body": self.body,
            "timestamp": self.created_at,
        }
        if self.code_content is not None:
            out["codeContent"] = self.code_content
        return out


def opposite_side(side: str) -> str:
    return SIDE_RIGHT if side == SIDE_LEFT else SIDE_LEFT
