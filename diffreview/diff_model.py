from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping, Sequence
from typing import Any

from .model import (
    LINE_ADD,
    LINE_DELETE,
    LINE_NORMAL,
    STATUS_ADDED,
    STATUS_DELETED,
    STATUS_MODIFIED,
    STATUS_RENAMED,
    DiffChunk,
    DiffFile,
    DiffLine,
    DiffModel,
    FileSummary,
)

FILE_BLOCK_RE = re.compile(r"^diff --git ", re.MULTILINE)
FILE_HEADER_RE = re.compile(r'^diff --git "?[a-z]/(?P<old>.+?)"? "?[a-z]/(?P<new>.+?)"?$')
FILE_HEADER_PLAIN_RE = re.compile(r'^diff --git "?(?P<old>[^ "]+)"? "?(?P<new>[^ "]+)"?$')
HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<header>.*)$"
)
BINARY_FILES_RE = re.compile(r"^Binary files (?P<old>.+) and (?P<new>.+) differ$")

NULL_PATH = "/dev/null"
LINE_TYPE_BY_PREFIX = {"+": LINE_ADD, "-": LINE_DELETE, " ": LINE_NORMAL}


def split_file_blocks(raw_diff_text: str) -> list[str]:
    segments = FILE_BLOCK_RE.split(raw_diff_text)
    return [f"diff --git {segment}" for segment in segments[1:]]


def normalize_marker_path(raw: str) -> str | None:
    value = raw.strip().strip('"')
    if "\t" in value:
        value = value.split("\t", 1)[0]
    if value == NULL_PATH:
        return None
    if len(value) > 2 and value[1] == "/" and value[0].isalpha() and value[0].islower():
        return value[2:]
    return value


def parse_file_header(header_line: str) -> tuple[str, str] | None:
    match = FILE_HEADER_RE.match(header_line) or FILE_HEADER_PLAIN_RE.match(header_line)
    if not match:
        return None
    return match.group("old"), match.group("new")


def _metadata_lines(lines: Sequence[str]) -> list[str]:
    meta: list[str] = []
    for line in lines[1:]:
        if line.startswith("@@"):
            break
        meta.append(line)
    return meta


def determine_status(
    old_path: str,
    new_path: str,
    meta_lines: Sequence[str],
    summary: FileSummary,
    *,
    has_hunks: bool = False,
) -> str:
    old_marker_seen = False
    new_marker_seen = False
    old_is_null = False
    new_is_null = False
    new_file_mode = False
    deleted_file_mode = False
    for line in meta_lines:
        if line.startswith("new file mode"):
            new_file_mode = True
        elif line.startswith("deleted file mode"):
            deleted_file_mode = True
        elif line.startswith("--- "):
            old_marker_seen = True
            old_is_null = normalize_marker_path(line[4:]) is None
        elif line.startswith("+++ "):
            new_marker_seen = True
            new_is_null = normalize_marker_path(line[4:]) is None
        else:
            binary = BINARY_FILES_RE.match(line)
            if binary:
                old_marker_seen = new_marker_seen = True
                old_is_null = normalize_marker_path(binary.group("old")) is None
                new_is_null = normalize_marker_path(binary.group("new")) is None

    # File-mode markers are authoritative; counts are only a last resort.
    if new_file_mode or old_is_null:
        return STATUS_ADDED
    if deleted_file_mode or new_is_null:
        return STATUS_DELETED
    if old_path != new_path:
        return STATUS_RENAMED
    if old_marker_seen or new_marker_seen or has_hunks:
        # Both sides resolve to live files; hunks without a deletion marker imply a live new side.
        return STATUS_MODIFIED
    if summary.insertions > 0 and summary.deletions == 0:
        return STATUS_ADDED
    if summary.deletions > 0 and summary.insertions == 0:
        return STATUS_DELETED
    return STATUS_MODIFIED


def parse_chunks(lines: Sequence[str]) -> list[DiffChunk]:
    chunks: list[DiffChunk] = []
    current: DiffChunk | None = None
    old_cursor = 0
    new_cursor = 0

    for line in lines:
        if line.startswith("@@"):
            match = HUNK_HEADER_RE.match(line)
            if not match:
                current = None
                continue
            old_start = int(match.group("old_start"))
            new_start = int(match.group("new_start"))
            current = DiffChunk(
                header=line,
                old_start=old_start,
                old_lines=int(match.group("old_count") or "1"),
                new_start=new_start,
                new_lines=int(match.group("new_count") or "1"),
                lines=[],
            )
            chunks.append(current)
            old_cursor = old_start
            new_cursor = new_start
            continue

        if current is None:
            continue
        line_type = LINE_TYPE_BY_PREFIX.get(line[:1])
        if line_type is None:
            continue
        current.lines.append(
            DiffLine(
                type=line_type,
                content=line[1:],
                old_line_number=None if line_type == LINE_ADD else old_cursor,
                new_line_number=None if line_type == LINE_DELETE else new_cursor,
            )
        )
        if line_type != LINE_ADD:
            old_cursor += 1
        if line_type != LINE_DELETE:
            new_cursor += 1
    return chunks


def count_lines_from_chunks(chunks: Sequence[DiffChunk]) -> dict[str, int]:
    additions = 0
    deletions = 0
    for chunk in chunks:
        for line in chunk.lines:
            if line.type == LINE_ADD:
                additions += 1
            elif line.type == LINE_DELETE:
                deletions += 1
    return {"additions": additions, "deletions": deletions}


def coerce_summary(value: FileSummary | Mapping[str, Any]) -> FileSummary:
    if isinstance(value, FileSummary):
        return value
    return FileSummary(
        insertions=int(value.get("insertions") or 0),
        deletions=int(value.get("deletions") or 0),
        binary=bool(value.get("binary", False)),
    )


def parse_file_block(block: str, summary: FileSummary) -> DiffFile | None:
    lines = block.split("\n")
    paths = parse_file_header(lines[0])
    if paths is None:
        return None
    old_path, new_path = paths

    has_hunks = any(HUNK_HEADER_RE.match(line) for line in lines[1:])
    status = determine_status(old_path, new_path, _metadata_lines(lines), summary, has_hunks=has_hunks)
    chunks = [] if summary.binary else parse_chunks(lines[1:])
    return DiffFile(
        path=new_path,
        old_path=old_path if old_path != new_path else None,
        status=status,
        additions=summary.insertions,
        deletions=summary.deletions,
        chunks=chunks,
    )


def summaries_from_diff_text(raw_diff_text: str) -> list[FileSummary]:
    summaries: list[FileSummary] = []
    for block in split_file_blocks(raw_diff_text):
        lines = block.split("\n")
        binary = any(
            BINARY_FILES_RE.match(line) or line.startswith("GIT binary patch")
            for line in _metadata_lines(lines)
        )
        counts = count_lines_from_chunks(parse_chunks(lines[1:]))
        summaries.append(
            FileSummary(
                insertions=0 if binary else counts["additions"],
                deletions=0 if binary else counts["deletions"],
                binary=binary,
            )
        )
    return summaries


def build_model(
    raw_diff_text: str,
    per_file_summary: Sequence[FileSummary | Mapping[str, Any]] | None = None,
) -> DiffModel:
    if not raw_diff_text:
        return DiffModel(files=[], is_empty=True)
    if per_file_summary is None:
        per_file_summary = summaries_from_diff_text(raw_diff_text)

    files: list[DiffFile] = []
    for index, block in enumerate(split_file_blocks(raw_diff_text)):
        if index >= len(per_file_summary):
            continue
        parsed = parse_file_block(block, coerce_summary(per_file_summary[index]))
        if parsed is not None:
            files.append(parsed)
    return DiffModel(files=files, is_empty=not files)


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def file_fingerprint(diff_file: DiffFile) -> str:
    payload = {
        "path": diff_file.path,
        "status": diff_file.status,
        "chunks": [
            {
                "header": chunk.header,
                "lines": [[line.type, line.content] for line in chunk.lines],
            }
            for chunk in diff_file.chunks
        ],
    }
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
