"""Cursor model shared by the transcript and input panes.

A :class:`Pane` pairs a :class:`~tllm.tui.buffer.TextBuffer` with a
viewport-relative :class:`Cursor`.  Both panes run the same clamping,
paging and motion code; the interaction :class:`Mode` only decides which
pane has focus and whether the cursor may rest on the append position.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

import grapheme

from tllm.tui.buffer import TextBuffer


class Mode(enum.Enum):
    NORMAL = "normal"
    INSERT = "insert"

    @property
    def label(self) -> str:
        return "Command" if self is Mode.NORMAL else "Insert"


@dataclass
class Cursor:
    """Position relative to the pane's text area.

    ``row`` indexes the visible rows (``0 .. buffer.rows - 1``); ``col`` is a
    byte offset into the visual line under the cursor.
    """

    row: int = 0
    col: int = 0


def _is_space(byte: int) -> bool:
    return byte in b" \t\n\r\x0b\x0c"


class Pane:
    """One independently paged buffer region with its own cursor."""

    def __init__(self, buffer: TextBuffer, *, title: str = "") -> None:
        self.buffer = buffer
        self.cursor = Cursor()
        self.pending_page_up = False
        self.title = title

    def __repr__(self) -> str:
        return f"Pane({self.title!r}, cursor={self.cursor}, page={self.buffer.page})"

    # -- offsets ------------------------------------------------------------

    @property
    def line(self) -> int:
        """Absolute visual line under the cursor."""
        return self.buffer.page + self.cursor.row

    def offset(self) -> int:
        return self.buffer.flat_offset(self.line, self.cursor.col)

    def set_offset(self, offset: int) -> None:
        """Move the cursor to a flat byte offset, scrolling to keep it visible."""
        line, col = self.buffer.position_of(offset)
        rows = self.buffer.rows
        if line < self.buffer.page:
            self.buffer.page = line
        elif line >= self.buffer.page + rows:
            self.buffer.page = line - rows + 1
        self.cursor.row = line - self.buffer.page
        self.cursor.col = col
        self.pending_page_up = False

    # -- clamping and paging ------------------------------------------------

    def scroll_into_view(self) -> None:
        """Apply the paging-overflow rule.

        A row below the last visible row advances the page by the overflow
        (never past the final window) and pins the cursor to the last row.
        A pending page-up at row 0 scrolls back one line instead.
        """
        buf = self.buffer
        last_row = buf.rows - 1
        if self.cursor.row > last_row:
            overflow = self.cursor.row - last_row
            buf.page = min(buf.max_page, buf.page + overflow)
            self.cursor.row = last_row
        elif self.cursor.row < 0:
            self.cursor.row = 0
        if self.pending_page_up:
            if self.cursor.row == 0 and buf.page > 0:
                buf.page -= 1
            self.pending_page_up = False

    def clamp(self, insert_mode: bool) -> None:
        """Pull the cursor back inside the content and onto a boundary.

        Insert mode may rest one past the last character of the line (the
        append position); Normal mode rests on the last character.
        """
        buf = self.buffer
        last_line = buf.line_count - 1
        max_row = max(0, min(last_line - buf.page, buf.rows - 1))
        self.cursor.row = max(0, min(self.cursor.row, max_row))

        line = self.line
        max_col = buf.line_lengths[line] if insert_mode else buf.last_char_col(line)
        col = max(0, min(self.cursor.col, max_col))
        start = buf.line_start(line)
        self.cursor.col = buf.prev_boundary(start + col) - start

    # -- motions ------------------------------------------------------------

    def move_left(self) -> None:
        if self.cursor.col <= 0:
            return
        before = self.buffer.line_bytes(self.line)[: self.cursor.col].decode("utf-8", errors="ignore")
        clusters = list(grapheme.graphemes(before))
        step = len(clusters[-1].encode("utf-8")) if clusters else 1
        self.cursor.col = max(0, self.cursor.col - step)

    def move_right(self) -> None:
        data = self.buffer.line_bytes(self.line)
        if self.cursor.col >= len(data):
            return
        after = data[self.cursor.col :].decode("utf-8", errors="ignore")
        first = next(iter(grapheme.graphemes(after)), "")
        self.cursor.col += len(first.encode("utf-8")) if first else 1

    def move_up(self) -> None:
        if self.cursor.row > 0:
            self.cursor.row -= 1
        else:
            self.pending_page_up = True
        self.scroll_into_view()

    def move_down(self) -> None:
        if self.line < self.buffer.line_count - 1:
            self.cursor.row += 1
        self.scroll_into_view()

    def line_home(self) -> None:
        self.cursor.col = 0

    def line_end(self) -> None:
        self.cursor.col = self.buffer.line_lengths[min(self.line, self.buffer.line_count - 1)]

    def word_forward(self) -> None:
        data = self.buffer.raw
        pos = self.offset()
        while pos < len(data) and _is_space(data[pos]):
            pos += 1
        while pos < len(data) and not _is_space(data[pos]):
            pos += 1
        self.set_offset(pos)

    def word_backward(self) -> None:
        data = self.buffer.raw
        pos = self.offset()
        while pos > 0 and _is_space(data[pos - 1]):
            pos -= 1
        while pos > 0 and not _is_space(data[pos - 1]):
            pos -= 1
        self.set_offset(pos)

    # -- paging -------------------------------------------------------------

    def page_up(self) -> None:
        self.buffer.page_up()

    def page_down(self) -> None:
        self.buffer.page_down()
        self.cursor.row = self.buffer.rows - 1

    def scroll_to_end(self) -> None:
        """Show the final window with the cursor on the last visual line."""
        self.buffer.scroll_to_end()
        self.cursor.row = self.buffer.line_count - 1 - self.buffer.page
        self.cursor.col = 0
