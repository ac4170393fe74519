from __future__ import annotations

import datetime as dt
from collections.abc import Callable, Sequence

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.coordinate import Coordinate
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Header, Input, Static

from .comment_index import comment_key, format_comments_prompt
from .diff_model import file_fingerprint
from .model import (
    LINE_ADD,
    LINE_DELETE,
    SIDE_LEFT,
    SIDE_RIGHT,
    VIEW_INLINE,
    VIEW_SIDE_BY_SIDE,
    Comment,
    CursorPosition,
    DiffFile,
    DiffLine,
    DiffModel,
)
from .navigation import (
    DIRECTION_NEXT,
    DIRECTION_PREV,
    NavigationEngine,
    NavigationResult,
    VisiblePosition,
    element_id,
    has_content_on_side,
)
from .viewer_render import KEY_HELP, line_prefix


def iso_utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def file_row_key(file_index: int) -> str:
    return f"file-{file_index}"


def line_row_key(position: CursorPosition) -> str:
    return element_id(position, VIEW_INLINE)


def row_key_for_target(scroll_target: str) -> str:
    for suffix in (f"-{SIDE_LEFT}", f"-{SIDE_RIGHT}"):
        if scroll_target.endswith(suffix):
            return scroll_target[: -len(suffix)]
    return scroll_target


class CommentModal(ModalScreen[str | None]):
    CSS = """
    CommentModal {
        align: center middle;
    }
    #dialog {
        width: 70%;
        max-width: 90;
        border: round #8338ec;
        padding: 1 2;
        background: #0b0f19;
    }
    #buttons {
        height: auto;
        layout: horizontal;
        align: right middle;
        padding-top: 1;
    }
    """

    def __init__(self, title: str, initial: str = "") -> None:
        super().__init__()
        self.dialog_title = title
        self.initial = initial

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static(f"[b]{self.dialog_title}[/b]")
            yield Input(value=self.initial, placeholder="Comment (empty to cancel)", id="comment_input")
            with Horizontal(id="buttons"):
                yield Button("Cancel", id="cancel")
                yield Button("OK", id="ok", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#comment_input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        stripped = event.value.strip()
        self.dismiss(stripped if stripped else None)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
            return
        stripped = self.query_one("#comment_input", Input).value.strip()
        self.dismiss(stripped if stripped else None)


class HelpModal(ModalScreen[None]):
    CSS = """
    HelpModal {
        align: center middle;
    }
    #help {
        width: 60;
        height: auto;
        border: round #3a86ff;
        padding: 1 2;
        background: #0b0f19;
    }
    """

    def compose(self) -> ComposeResult:
        lines = ["[b]Keyboard shortcuts[/b]", ""]
        lines.extend(f"[cyan]{key:<10}[/cyan] {description}" for key, description in KEY_HELP)
        yield Static("\n".join(lines), id="help")

    def on_key(self, event: events.Key) -> None:
        event.stop()
        self.dismiss(None)


class DiffTable(DataTable):
    """Routes the arrow keys to the review cursor instead of the table cursor."""

    def on_key(self, event: events.Key) -> None:
        actions = {
            "down": ("action_move_line", DIRECTION_NEXT),
            "up": ("action_move_line", DIRECTION_PREV),
            "left": ("action_switch_side", SIDE_LEFT),
            "right": ("action_switch_side", SIDE_RIGHT),
        }
        target = actions.get(event.key)
        if target is None:
            return
        handler = getattr(self.app, target[0], None)
        if callable(handler):
            handler(target[1])
        event.prevent_default()
        event.stop()


class DiffReviewApp(App[None]):
    CSS = """
    Screen { layout: vertical; }
    #topbar { height: 3; border: round #3a86ff; padding: 0 1; }
    #diff { height: 1fr; }
    #status { height: 3; border: round #8338ec; padding: 0 1; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("j", "move_line('next')", "Next Line"),
        Binding("k", "move_line('prev')", "Prev Line"),
        Binding("n", "move_chunk('next')", "Next Change"),
        Binding("p", "move_chunk('prev')", "Prev Change"),
        Binding("N", "move_comment('next')", "Next Comment"),
        Binding("P", "move_comment('prev')", "Prev Comment"),
        Binding("]", "move_file('next')", "Next File"),
        Binding("[", "move_file('prev')", "Prev File"),
        Binding("h", "switch_side('left')", "Left", show=False),
        Binding("l", "switch_side('right')", "Right", show=False),
        Binding(".", "move_to_center", "Center", show=False),
        Binding("r", "toggle_reviewed", "Reviewed"),
        Binding("c", "add_comment", "Comment"),
        Binding("y", "copy_prompt", "Copy Prompt"),
        Binding("t", "toggle_view_mode", "View Mode"),
        Binding("ctrl+r", "reload", "Reload", show=False),
        Binding("?", "show_help", "Help"),
    ]

    def __init__(
        self,
        label: str,
        model: DiffModel,
        comments: Sequence[Comment] = (),
        *,
        view_mode: str = VIEW_INLINE,
        max_lines_per_chunk: int = 400,
        reload: Callable[[], DiffModel] | None = None,
    ) -> None:
        super().__init__()
        self.label = label
        self.engine = NavigationEngine(model.files, comments, view_mode, max_lines_per_chunk=max_lines_per_chunk)
        self.max_lines_per_chunk = max_lines_per_chunk
        self.reload_model = reload
        self.reviewed_fingerprints: dict[str, str] = {}
        self._position_by_row: dict[str, CursorPosition] = {}
        self._painted_cursor: CursorPosition | None = None
        self._programmatic_rows: set[str] = set()

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("", id="topbar")
        yield DiffTable(id="diff", cursor_type="row", zebra_stripes=False)
        yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        self._render_rows()
        self.query_one("#diff", DiffTable).focus()

    # Rendering

    def _render_rows(self) -> None:
        table = self.query_one("#diff", DiffTable)
        table.clear(columns=True)
        if self.engine.view_mode == VIEW_SIDE_BY_SIDE:
            table.add_column("old#", key="old_no", width=6)
            table.add_column("old", key="old")
            table.add_column("new#", key="new_no", width=6)
            table.add_column("new", key="new")
        else:
            table.add_column("old#", key="old_no", width=6)
            table.add_column("new#", key="new_no", width=6)
            table.add_column("content", key="content")

        self._position_by_row = {}
        self._painted_cursor = None
        self._programmatic_rows = set()
        if not self.engine.files:
            table.add_row(*self._blank_cells(Text("(no changes)", style="italic")), key="empty")
        for file_index, diff_file in enumerate(self.engine.files):
            table.add_row(*self._blank_cells(self._file_header_text(diff_file)), key=file_row_key(file_index))
            if diff_file.path in self.engine.collapsed:
                continue
            if not diff_file.chunks:
                table.add_row(
                    *self._blank_cells(Text("(no textual changes)", style="italic #9db0c8")),
                    key=f"{file_row_key(file_index)}-empty",
                )
            for chunk_index, chunk in enumerate(diff_file.chunks):
                table.add_row(
                    *self._blank_cells(Text(chunk.header, style="bold #bcd7ff on #1a2f54")),
                    key=f"{file_row_key(file_index)}-chunk-{chunk_index}",
                )
                for line_index, line in enumerate(chunk.lines[: self.max_lines_per_chunk]):
                    position = CursorPosition(file_index, chunk_index, line_index)
                    row_key = line_row_key(position)
                    self._position_by_row[row_key] = position
                    table.add_row(*self._line_cells(position, line), key=row_key)
                hidden = len(chunk.lines) - self.max_lines_per_chunk
                if hidden > 0:
                    table.add_row(
                        *self._blank_cells(Text(f"... {hidden} more lines", style="italic #9db0c8")),
                        key=f"{file_row_key(file_index)}-chunk-{chunk_index}-more",
                    )
        self._sync_table_cursor()
        self._refresh_topbar()

    def _blank_cells(self, text: Text) -> tuple[object, ...]:
        if self.engine.view_mode == VIEW_SIDE_BY_SIDE:
            return ("", text, "", "")
        return ("", "", text)

    def _file_header_text(self, diff_file: DiffFile) -> Text:
        mark = "[x]" if diff_file.path in self.engine.collapsed else "[ ]"
        path = diff_file.path if diff_file.old_path is None else f"{diff_file.old_path} -> {diff_file.path}"
        return Text(
            f"{mark} {diff_file.status.upper():<8} {path}  +{diff_file.additions} -{diff_file.deletions}",
            style="bold #09111d on #8fb4ff",
        )

    def _comment_marker(self, position: CursorPosition, line: DiffLine) -> str:
        diff_file = self.engine.files[position.file_index]
        if line.type == LINE_DELETE or line.new_line_number is None:
            return ""
        if comment_key(diff_file.path, line.new_line_number) in self.engine.comment_index:
            return " *"
        return ""

    def _line_cells(self, position: CursorPosition, line: DiffLine, highlight_side: str | None = None) -> tuple[object, ...]:
        old_no = "" if line.old_line_number is None else str(line.old_line_number)
        new_no = "" if line.new_line_number is None else str(line.new_line_number) + self._comment_marker(position, line)
        style = {LINE_ADD: "bold #c4f8d1", LINE_DELETE: "bold #ffd3d7"}.get(line.type, "#c7d4e8")
        if self.engine.view_mode != VIEW_SIDE_BY_SIDE:
            return (old_no, new_no, Text(line_prefix(line.type) + line.content, style=style))

        old_text = Text("") if line.type == LINE_ADD else Text(line_prefix(line.type) + line.content, style=style)
        new_text = Text("") if line.type == LINE_DELETE else Text(line_prefix(line.type) + line.content, style=style)
        if highlight_side == SIDE_LEFT:
            old_text.stylize("reverse")
        elif highlight_side == SIDE_RIGHT:
            new_text.stylize("reverse")
        return (old_no, old_text, new_no, new_text)

    def _repaint_line(self, position: CursorPosition, highlight_side: str | None) -> None:
        row_key = line_row_key(position)
        if row_key not in self._position_by_row:
            return
        line = self.engine.files[position.file_index].chunks[position.chunk_index].lines[position.line_index]
        table = self.query_one("#diff", DiffTable)
        cells = self._line_cells(position, line, highlight_side)
        column_keys = ["old_no", "old", "new_no", "new"]
        for column_key, value in zip(column_keys, cells):
            table.update_cell(row_key, column_key, value)

    def _sync_table_cursor(self) -> None:
        table = self.query_one("#diff", DiffTable)
        cursor = self.engine.cursor
        if self.engine.view_mode == VIEW_SIDE_BY_SIDE:
            if self._painted_cursor is not None and self._painted_cursor != cursor:
                self._repaint_line(self._painted_cursor, None)
            if cursor is not None:
                self._repaint_line(cursor, cursor.side)
            self._painted_cursor = cursor
        scroll_target = self.engine.scroll_target()
        if cursor is None or scroll_target is None:
            return
        row_key = row_key_for_target(scroll_target)
        if row_key not in self._position_by_row:
            row_key = file_row_key(cursor.file_index)
        try:
            row_index = table.get_row_index(row_key)
        except Exception:  # noqa: BLE001
            return
        if row_index != table.cursor_row:
            self._programmatic_rows.add(row_key)
            table.move_cursor(row=row_index)

    def _refresh_topbar(self) -> None:
        files = self.engine.files
        reviewed = sum(1 for item in files if item.path in self.engine.collapsed)
        self.query_one("#topbar", Static).update(
            f"[b]{self.label}[/b]  mode={self.engine.view_mode}  files={len(files)}  "
            f"reviewed={reviewed}/{len(files)}  comments={len(self.engine.comments)}"
        )
        status = "No cursor. Press j or n to start."
        diff_file = self.engine.current_file()
        line = self.engine.current_line()
        if diff_file is not None and line is not None and self.engine.cursor is not None:
            number = line.new_line_number if line.new_line_number is not None else line.old_line_number
            status = f"{diff_file.path} L{number} ({line.type}, {self.engine.cursor.side})"
            comments = self.engine.comments_at_cursor()
            if comments:
                status += f"  COMMENT: {comments[0].body}"
        self.query_one("#status", Static).update(status)

    def _apply_result(self, result: NavigationResult) -> None:
        if not result.found:
            return
        self._sync_table_cursor()
        self._refresh_topbar()

    # Navigation actions

    def action_move_line(self, direction: str) -> None:
        self._apply_result(self.engine.move_line(direction))

    def action_move_chunk(self, direction: str) -> None:
        self._apply_result(self.engine.move_chunk(direction))

    def action_move_comment(self, direction: str) -> None:
        result = self.engine.move_comment(direction)
        if not result.found:
            self.notify("No comments to jump to", timeout=1.2)
        self._apply_result(result)

    def action_move_file(self, direction: str) -> None:
        self._apply_result(self.engine.move_file(direction))

    def action_switch_side(self, side: str) -> None:
        self._apply_result(self.engine.switch_side(side))

    def _visible_positions(self) -> list[VisiblePosition]:
        table = self.query_one("#diff", DiffTable)
        first = int(table.scroll_y)
        last = first + max(1, table.size.height)
        side = self.engine.cursor.side if self.engine.cursor is not None else SIDE_RIGHT
        visible: list[VisiblePosition] = []
        for row_index in range(first, min(last, table.row_count)):
            row_key = table.coordinate_to_cell_key(Coordinate(row_index, 0)).row_key.value
            position = self._position_by_row.get(str(row_key))
            if position is None:
                continue
            candidate = position.with_side(side)
            if self.engine.view_mode == VIEW_SIDE_BY_SIDE and not has_content_on_side(candidate, self.engine.files):
                candidate = candidate.with_side(SIDE_LEFT if side == SIDE_RIGHT else SIDE_RIGHT)
            visible.append(VisiblePosition(candidate, row_index + 0.5))
        return visible

    def action_move_to_center(self) -> None:
        table = self.query_one("#diff", DiffTable)
        center = table.scroll_y + max(1, table.size.height) / 2
        self._apply_result(self.engine.move_to_center(self._visible_positions(), center))

    # Review actions

    def action_toggle_reviewed(self) -> None:
        diff_file = self.engine.current_file()
        if diff_file is None:
            return
        collapsed = self.engine.toggle_collapsed(diff_file.path)
        if collapsed:
            self.reviewed_fingerprints[diff_file.path] = file_fingerprint(diff_file)
        else:
            self.reviewed_fingerprints.pop(diff_file.path, None)
        self._render_rows()
        self.notify(f"{'Reviewed' if collapsed else 'Unreviewed'}: {diff_file.path}", timeout=1.2)

    def action_add_comment(self) -> None:
        target = self.engine.comment_target()
        line = self.engine.current_line()
        if target is None or line is None:
            self.notify("Comments can only be added on unchanged or added lines", severity="warning", timeout=1.5)
            return
        file_path, line_number = target

        def _on_dismiss(result: str | None) -> None:
            if not result:
                return
            created_at = iso_utc_now()
            comment = Comment(
                file=file_path,
                line=line_number,
                body=result,
                id=f"{file_path}:{line_number}:{created_at}",
                created_at=created_at,
                code_content=line.content,
            )
            self.engine.set_comments([*self.engine.comments, comment])
            self._render_rows()
            self.notify("Comment added", timeout=1.1)

        self.push_screen(CommentModal(f"Comment on {file_path} L{line_number}"), callback=_on_dismiss)

    def action_copy_prompt(self) -> None:
        if not self.engine.comments:
            self.notify("No comments to copy", timeout=1.2)
            return
        self.copy_to_clipboard(format_comments_prompt(self.engine.comments, self.engine.files))
        self.notify(f"Copied {len(self.engine.comments)} comment(s)", timeout=1.2)

    def action_toggle_view_mode(self) -> None:
        next_mode = VIEW_INLINE if self.engine.view_mode == VIEW_SIDE_BY_SIDE else VIEW_SIDE_BY_SIDE
        self.engine.set_view_mode(next_mode)
        self._render_rows()

    def action_reload(self) -> None:
        if self.reload_model is None:
            return
        try:
            model = self.reload_model()
        except Exception as error:  # noqa: BLE001
            self.notify(f"Reload failed: {error}", severity="error", timeout=3.0)
            return
        self.apply_model(model)
        self.notify("Diff reloaded", timeout=1.1)

    def apply_model(self, model: DiffModel) -> None:
        fingerprints = {item.path: file_fingerprint(item) for item in model.files}
        for path, fingerprint in list(self.reviewed_fingerprints.items()):
            # A reviewed file whose diff changed needs another look.
            if fingerprints.get(path) != fingerprint:
                self.reviewed_fingerprints.pop(path)
                self.engine.collapsed.discard(path)
        self.engine.set_files(model.files)
        self._render_rows()

    def action_show_help(self) -> None:
        self.push_screen(HelpModal())

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        row_key = str(event.row_key.value)
        if row_key in self._programmatic_rows:
            self._programmatic_rows.discard(row_key)
            return
        position = self._position_by_row.get(row_key)
        if position is None:
            return
        cursor = self.engine.cursor
        if cursor is not None and cursor.same_line(position):
            return
        side = cursor.side if cursor is not None else SIDE_RIGHT
        self.engine.set_cursor_position(position.with_side(side))
        self._sync_table_cursor()
        self._refresh_topbar()


def launch_review_app(
    label: str,
    model: DiffModel,
    comments: Sequence[Comment],
    *,
    view_mode: str,
    max_lines_per_chunk: int,
    reload: Callable[[], DiffModel] | None = None,
) -> int:
    app = DiffReviewApp(
        label,
        model,
        comments,
        view_mode=view_mode,
        max_lines_per_chunk=max_lines_per_chunk,
        reload=reload,
    )
    app.run()
    return 0
