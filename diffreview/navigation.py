from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from .comment_index import build_index, comment_key
from .model import (
    LINE_ADD,
    LINE_DELETE,
    LINE_NORMAL,
    SIDE_LEFT,
    SIDE_RIGHT,
    VALID_VIEW_MODES,
    VIEW_INLINE,
    VIEW_SIDE_BY_SIDE,
    Comment,
    CursorPosition,
    DiffFile,
    DiffLine,
    opposite_side,
)

DIRECTION_NEXT = "next"
DIRECTION_PREV = "prev"
VALID_DIRECTIONS = {DIRECTION_NEXT, DIRECTION_PREV}

PositionPredicate = Callable[[CursorPosition, Sequence[DiffFile]], bool]


@dataclass(frozen=True)
class NavigationResult:
    position: CursorPosition | None
    scroll_target: str | None

    @property
    def found(self) -> bool:
        return self.position is not None


NO_MATCH = NavigationResult(position=None, scroll_target=None)


@dataclass(frozen=True)
class VisiblePosition:
    position: CursorPosition
    vertical_center: float


def element_id(position: CursorPosition, view_mode: str) -> str:
    base_id = f"file-{position.file_index}-chunk-{position.chunk_index}-line-{position.line_index}"
    if view_mode == VIEW_SIDE_BY_SIDE:
        return f"{base_id}-{position.side}"
    return base_id


def get_line(position: CursorPosition, files: Sequence[DiffFile]) -> DiffLine | None:
    if not 0 <= position.file_index < len(files):
        return None
    chunks = files[position.file_index].chunks
    if not 0 <= position.chunk_index < len(chunks):
        return None
    lines = chunks[position.chunk_index].lines
    if not 0 <= position.line_index < len(lines):
        return None
    return lines[position.line_index]


def get_line_type(position: CursorPosition, files: Sequence[DiffFile]) -> str | None:
    line = get_line(position, files)
    if line is None or line.type not in {LINE_ADD, LINE_DELETE, LINE_NORMAL}:
        return None
    return line.type


def has_content_on_side(position: CursorPosition, files: Sequence[DiffFile]) -> bool:
    line_type = get_line_type(position, files)
    if line_type == LINE_NORMAL:
        return True
    if line_type == LINE_DELETE:
        return position.side == SIDE_LEFT
    if line_type == LINE_ADD:
        return position.side == SIDE_RIGHT
    return False


def fix_side(position: CursorPosition, files: Sequence[DiffFile]) -> CursorPosition:
    if not has_content_on_side(position, files):
        return position.with_side(opposite_side(position.side))
    return position


def start_position(cursor: CursorPosition | None) -> CursorPosition:
    # "Just before the first line"; stepping back from it wraps to the last line.
    return cursor or CursorPosition(0, 0, -1, SIDE_RIGHT)


def _line_exists(files: Sequence[DiffFile], file_index: int, chunk_index: int, line_index: int) -> bool:
    if not 0 <= file_index < len(files):
        return False
    chunks = files[file_index].chunks
    return 0 <= chunk_index < len(chunks) and 0 <= line_index < len(chunks[chunk_index].lines)


def advance_position(
    position: CursorPosition,
    direction: str,
    files: Sequence[DiffFile],
) -> CursorPosition | None:
    """Step one line, rolling over chunk and file boundaries and wrapping at the ends.

    Returns ``None`` only when the model contains no line at all.
    """
    total = len(files)
    if total == 0:
        return None
    file_index = min(max(position.file_index, 0), total - 1)
    chunk_index = position.chunk_index
    line_index = position.line_index
    wraps = 0

    if direction == DIRECTION_NEXT:
        line_index += 1
        while not _line_exists(files, file_index, chunk_index, line_index):
            chunk_index += 1
            line_index = 0
            while chunk_index >= len(files[file_index].chunks):
                file_index += 1
                chunk_index = 0
                if file_index >= total:
                    file_index = 0
                    wraps += 1
                    if wraps > 1:
                        return None
        return CursorPosition(file_index, chunk_index, line_index, position.side)

    line_index -= 1
    while not _line_exists(files, file_index, chunk_index, line_index):
        chunk_index -= 1
        while chunk_index < 0:
            file_index -= 1
            if file_index < 0:
                file_index = total - 1
                wraps += 1
                if wraps > 1:
                    return None
            chunk_index = len(files[file_index].chunks) - 1
        line_index = len(files[file_index].chunks[chunk_index].lines) - 1
    return CursorPosition(file_index, chunk_index, line_index, position.side)


def find_next_matching_position(
    start: CursorPosition,
    direction: str,
    predicate: PositionPredicate,
    files: Sequence[DiffFile],
    view_mode: str,
) -> NavigationResult:
    if direction not in VALID_DIRECTIONS:
        raise ValueError(f"Unknown navigation direction: {direction}")

    current: CursorPosition | None = start
    first_visited: CursorPosition | None = None
    while current is not None:
        current = advance_position(current, direction, files)
        if current is None or current.same_line(start):
            break
        # The synthetic start is never revisited, so a full cycle ends back at the first step.
        if first_visited is None:
            first_visited = current
        elif current.same_line(first_visited):
            break
        if predicate(current, files):
            fixed = fix_side(current, files)
            return NavigationResult(position=fixed, scroll_target=element_id(fixed, view_mode))
    return NO_MATCH


@dataclass(frozen=True)
class NavigationPredicates:
    line: PositionPredicate
    chunk: PositionPredicate
    comment: PositionPredicate
    file: PositionPredicate


def _hide_collapsed(predicate: PositionPredicate, collapsed: frozenset[str]) -> PositionPredicate:
    if not collapsed:
        return predicate

    def visible(position: CursorPosition, files: Sequence[DiffFile]) -> bool:
        if 0 <= position.file_index < len(files) and files[position.file_index].path in collapsed:
            return False
        return predicate(position, files)

    return visible


def _hide_unrendered(predicate: PositionPredicate, max_lines_per_chunk: int | None) -> PositionPredicate:
    if max_lines_per_chunk is None:
        return predicate

    def rendered(position: CursorPosition, files: Sequence[DiffFile]) -> bool:
        if position.line_index >= max_lines_per_chunk:
            return False
        return predicate(position, files)

    return rendered


def build_predicates(
    comment_index: dict[str, list[Comment]],
    view_mode: str,
    collapsed: Iterable[str] = (),
    max_lines_per_chunk: int | None = None,
) -> NavigationPredicates:
    def line(position: CursorPosition, files: Sequence[DiffFile]) -> bool:
        return view_mode == VIEW_INLINE or has_content_on_side(position, files)

    def chunk(position: CursorPosition, files: Sequence[DiffFile]) -> bool:
        current = get_line(position, files)
        if current is None or current.type == LINE_NORMAL:
            return False
        if position.line_index == 0:
            return True
        previous = files[position.file_index].chunks[position.chunk_index].lines[position.line_index - 1]
        return previous.type == LINE_NORMAL

    def comment(position: CursorPosition, files: Sequence[DiffFile]) -> bool:
        current = get_line(position, files)
        if current is None or current.type == LINE_DELETE or current.new_line_number is None:
            return False
        return comment_key(files[position.file_index].path, current.new_line_number) in comment_index

    def file(position: CursorPosition, files: Sequence[DiffFile]) -> bool:
        return position.chunk_index == 0 and position.line_index == 0

    hidden = frozenset(collapsed)

    def visible(predicate: PositionPredicate) -> PositionPredicate:
        return _hide_unrendered(_hide_collapsed(predicate, hidden), max_lines_per_chunk)

    return NavigationPredicates(
        line=visible(line),
        chunk=visible(chunk),
        comment=visible(comment),
        file=visible(file),
    )


def find_center_position(
    visible_positions: Iterable[VisiblePosition],
    viewport_center: float,
) -> CursorPosition | None:
    best: VisiblePosition | None = None
    for candidate in visible_positions:
        if best is None or abs(candidate.vertical_center - viewport_center) < abs(
            best.vertical_center - viewport_center
        ):
            best = candidate
    return None if best is None else best.position


def _nearest_in_chunk(
    files: Sequence[DiffFile],
    file_index: int,
    chunk_index: int,
    around: int,
    side: str,
) -> CursorPosition | None:
    lines = files[file_index].chunks[chunk_index].lines
    ordered = list(range(around + 1, len(lines))) + list(range(min(around, len(lines)) - 1, -1, -1))
    for line_index in ordered:
        candidate = CursorPosition(file_index, chunk_index, line_index, side)
        if has_content_on_side(candidate, files):
            return candidate
    return None


def find_side_target(
    position: CursorPosition,
    target_side: str,
    files: Sequence[DiffFile],
) -> CursorPosition | None:
    """Resolve where the cursor lands when moved to ``target_side`` without leaving the file."""
    line = get_line(position, files)
    if line is None:
        return None
    lines = files[position.file_index].chunks[position.chunk_index].lines

    # Paired delete/add rows sit next to each other in the side-by-side view.
    if line.type == LINE_ADD and target_side == SIDE_LEFT and position.line_index > 0:
        if lines[position.line_index - 1].type == LINE_DELETE:
            return CursorPosition(position.file_index, position.chunk_index, position.line_index - 1, SIDE_LEFT)
    if line.type == LINE_DELETE and target_side == SIDE_RIGHT and position.line_index + 1 < len(lines):
        if lines[position.line_index + 1].type == LINE_ADD:
            return CursorPosition(position.file_index, position.chunk_index, position.line_index + 1, SIDE_RIGHT)

    moved = position.with_side(target_side)
    if has_content_on_side(moved, files):
        return moved

    found = _nearest_in_chunk(files, position.file_index, position.chunk_index, position.line_index, target_side)
    if found is not None:
        return found

    chunk_count = len(files[position.file_index].chunks)
    for chunk_index in range(position.chunk_index + 1, chunk_count):
        found = _nearest_in_chunk(files, position.file_index, chunk_index, -1, target_side)
        if found is not None:
            return found
    for chunk_index in range(position.chunk_index - 1, -1, -1):
        chunk_length = len(files[position.file_index].chunks[chunk_index].lines)
        found = _nearest_in_chunk(files, position.file_index, chunk_index, chunk_length, target_side)
        if found is not None:
            return found
    return None


class NavigationEngine:
    """Single review cursor over a diff model.

    The engine is either without cursor or at one position; every command
    either moves it to a matching position or leaves it untouched.
    """

    def __init__(
        self,
        files: Sequence[DiffFile],
        comments: Iterable[Comment] = (),
        view_mode: str = VIEW_INLINE,
        collapsed: Iterable[str] = (),
        max_lines_per_chunk: int | None = None,
    ) -> None:
        if view_mode not in VALID_VIEW_MODES:
            raise ValueError(f"Unknown view mode: {view_mode}")
        if max_lines_per_chunk is not None and max_lines_per_chunk < 1:
            raise ValueError("max_lines_per_chunk must be >= 1")
        self.files: list[DiffFile] = list(files)
        self.view_mode = view_mode
        self.collapsed: set[str] = set(collapsed)
        # Lines past this index in a chunk are not shown, so no predicate may land on them.
        self.max_lines_per_chunk = max_lines_per_chunk
        self.cursor: CursorPosition | None = None
        self.comments: list[Comment] = []
        self.comment_index: dict[str, list[Comment]] = {}
        self.set_comments(comments)

    @property
    def predicates(self) -> NavigationPredicates:
        return build_predicates(self.comment_index, self.view_mode, self.collapsed, self.max_lines_per_chunk)

    def set_comments(self, comments: Iterable[Comment]) -> None:
        self.comments = list(comments)
        self.comment_index = build_index(self.comments)

    def set_files(self, files: Sequence[DiffFile]) -> None:
        self.files = list(files)
        if self.cursor is not None and get_line(self.cursor, self.files) is None:
            self.cursor = None

    def set_view_mode(self, view_mode: str) -> None:
        if view_mode not in VALID_VIEW_MODES:
            raise ValueError(f"Unknown view mode: {view_mode}")
        self.view_mode = view_mode
        if self.cursor is not None and view_mode == VIEW_SIDE_BY_SIDE:
            self.cursor = fix_side(self.cursor, self.files)

    def toggle_collapsed(self, path: str) -> bool:
        if path in self.collapsed:
            self.collapsed.discard(path)
            return False
        self.collapsed.add(path)
        return True

    def scroll_target(self) -> str | None:
        if self.cursor is None:
            return None
        return element_id(self.cursor, self.view_mode)

    def current_file(self) -> DiffFile | None:
        if self.cursor is None or not 0 <= self.cursor.file_index < len(self.files):
            return None
        return self.files[self.cursor.file_index]

    def current_line(self) -> DiffLine | None:
        if self.cursor is None:
            return None
        return get_line(self.cursor, self.files)

    def comment_target(self) -> tuple[str, int] | None:
        diff_file = self.current_file()
        line = self.current_line()
        if diff_file is None or line is None or line.type == LINE_DELETE or line.new_line_number is None:
            return None
        return diff_file.path, line.new_line_number

    def comments_at_cursor(self) -> list[Comment]:
        target = self.comment_target()
        if target is None:
            return []
        return list(self.comment_index.get(comment_key(*target), []))

    def navigate(self, direction: str, predicate: PositionPredicate) -> NavigationResult:
        cursor = self.cursor
        if cursor is not None and get_line(cursor, self.files) is None:
            cursor = None
        result = find_next_matching_position(
            start_position(cursor),
            direction,
            predicate,
            self.files,
            self.view_mode,
        )
        if result.position is not None:
            self.cursor = result.position
        return result

    def move_line(self, direction: str) -> NavigationResult:
        return self.navigate(direction, self.predicates.line)

    def move_chunk(self, direction: str) -> NavigationResult:
        return self.navigate(direction, self.predicates.chunk)

    def move_comment(self, direction: str) -> NavigationResult:
        return self.navigate(direction, self.predicates.comment)

    def move_file(self, direction: str) -> NavigationResult:
        return self.navigate(direction, self.predicates.file)

    def switch_side(self, target_side: str) -> NavigationResult:
        if target_side not in {SIDE_LEFT, SIDE_RIGHT}:
            raise ValueError(f"Unknown side: {target_side}")
        if self.cursor is None or self.view_mode != VIEW_SIDE_BY_SIDE:
            return NO_MATCH
        target = find_side_target(self.cursor, target_side, self.files)
        if target is None:
            return NO_MATCH
        self.cursor = target
        return NavigationResult(position=target, scroll_target=element_id(target, self.view_mode))

    def move_to_center(self, visible_positions: Iterable[VisiblePosition], viewport_center: float) -> NavigationResult:
        position = find_center_position(visible_positions, viewport_center)
        if position is None:
            return NO_MATCH
        if self.view_mode == VIEW_SIDE_BY_SIDE:
            position = fix_side(position, self.files)
        self.cursor = position
        return NavigationResult(position=position, scroll_target=element_id(position, self.view_mode))

    def set_cursor_position(self, position: CursorPosition) -> NavigationResult:
        if get_line(position, self.files) is None:
            raise LookupError(f"Cursor position does not address a diff line: {position}")
        if self.view_mode == VIEW_SIDE_BY_SIDE:
            position = fix_side(position, self.files)
        self.cursor = position
        return NavigationResult(position=position, scroll_target=element_id(position, self.view_mode))
