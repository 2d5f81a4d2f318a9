"""Screen layout and differential rendering of the chat session.

The screen is split top to bottom into the transcript pane (66% of the
rows), the input pane (the rest, at least three rows) and a one-row mode
bar.  Each frame is rendered to a list of screen lines and only lines that
differ from the previous frame are rewritten.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tllm.tui.buffer import cell_width
from tllm.tui.cursor import Mode, Pane

if TYPE_CHECKING:
    from tllm.chat.session import ChatSession
    from tllm.tui.terminal import Terminal

TRANSCRIPT_PERCENT = 66
MIN_INPUT_ROWS = 3
STATUS_ROWS = 1

_RESET = "\x1b[0m"
# Black text on light yellow (Insert) or light cyan (Command)
_MODE_STYLE = {
    Mode.INSERT: "\x1b[30;103m",
    Mode.NORMAL: "\x1b[30;106m",
}

# C0/C1 controls and DEL would move the terminal cursor or start escapes
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_REPLACEMENT = "�"


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True)
class Layout:
    transcript: Rect
    input: Rect
    status: Rect


def compute_layout(columns: int, rows: int) -> Layout:
    columns = max(0, columns)
    rows = max(0, rows)
    status_rows = min(STATUS_ROWS, rows)
    available = rows - status_rows
    transcript_rows = rows * TRANSCRIPT_PERCENT // 100
    input_rows = available - transcript_rows
    if input_rows < MIN_INPUT_ROWS:
        input_rows = min(MIN_INPUT_ROWS, available)
        transcript_rows = available - input_rows
    return Layout(
        transcript=Rect(0, 0, columns, transcript_rows),
        input=Rect(0, transcript_rows, columns, input_rows),
        status=Rect(0, transcript_rows + input_rows, columns, status_rows),
    )


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def sanitize(text: str) -> str:
    return _CONTROL_RE.sub(_REPLACEMENT, text)


def text_width(text: str) -> int:
    return sum(cell_width(ch) for ch in text)


def fit(text: str, width: int) -> str:
    """Truncate or pad *text* to exactly *width* cells."""
    out: list[str] = []
    used = 0
    for ch in text:
        w = cell_width(ch)
        if used + w > width:
            break
        out.append(ch)
        used += w
    return "".join(out) + " " * max(0, width - used)


def _border(left: str, fill: str, right: str, width: int, title: str = "") -> str:
    if width <= 0:
        return ""
    if width == 1:
        return left
    label = fit(title, width - 2).rstrip()
    return left + label + fill * (width - 2 - text_width(label)) + right


def pane_lines(pane: Pane, rect: Rect) -> list[str]:
    """The boxed pane as ``rect.height`` screen lines."""
    if rect.height <= 0 or rect.width <= 0:
        return []
    inner = max(0, rect.width - 2)
    lines = [_border("┌", "─", "┐", rect.width, pane.title)]
    text = pane.buffer.visible_lines()
    for row in range(max(0, rect.height - 2)):
        body = fit(sanitize(text[row]) if row < len(text) else "", inner)
        lines.append(("│" + body + "│") if rect.width > 1 else "│")
    if rect.height > 1:
        lines.append(_border("└", "─", "┘", rect.width))
    return lines[: rect.height]


def status_line(session: ChatSession, width: int) -> str:
    parts = [session.mode.label, session.model or session.provider]
    if session.in_flight:
        parts.append("waiting for reply")
    if session.status:
        parts.append(sanitize(session.status))
    return _MODE_STYLE[session.mode] + fit(" " + " | ".join(parts), width) + _RESET


def cursor_position(pane: Pane, rect: Rect) -> tuple[int, int]:
    """Screen ``(row, col)`` of the pane cursor, measured in cells."""
    before = pane.buffer.line_bytes(pane.line)[: pane.cursor.col].decode("utf-8", errors="ignore")
    col = rect.x + 1 + text_width(sanitize(before))
    row = rect.y + 1 + pane.cursor.row
    return (
        max(0, min(row, rect.y + rect.height - 1)),
        max(0, min(col, rect.x + rect.width - 1)),
    )


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class Renderer:
    """Draws frames onto a :class:`Terminal`, rewriting only changed lines."""

    def __init__(self, terminal: Terminal) -> None:
        self.terminal = terminal
        self._previous_lines: list[str] = []
        self._full_redraw_count = 0

    @property
    def full_redraws(self) -> int:
        return self._full_redraw_count

    def invalidate(self) -> None:
        """Force the next frame to repaint the whole screen."""
        self._previous_lines = []

    def render(self, session: ChatSession, layout: Layout) -> list[str]:
        lines = pane_lines(session.transcript, layout.transcript)
        lines += pane_lines(session.input, layout.input)
        if layout.status.height:
            lines.append(status_line(session, layout.status.width))
        return lines

    def draw(self, session: ChatSession, layout: Layout) -> None:
        lines = self.render(session, layout)
        full = not self._previous_lines
        out: list[str] = []

        if full:
            self._full_redraw_count += 1
            out.append("\x1b[2J")
        for i, line in enumerate(lines):
            old = self._previous_lines[i] if i < len(self._previous_lines) else None
            if full or line != old:
                out.append(f"\x1b[{i + 1};1H{line}\x1b[K")
        self._previous_lines = lines

        if out:
            self.terminal.hide_cursor()
            self.terminal.write("".join(out))

        focused = layout.input if session.mode is Mode.INSERT else layout.transcript
        row, col = cursor_position(session.focused, focused)
        self.terminal.move_to(row, col)
        if out:
            self.terminal.show_cursor()
