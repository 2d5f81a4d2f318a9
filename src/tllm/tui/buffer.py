"""Paged, wrapped text buffer with UTF-8 byte-boundary safety.

Content is held as UTF-8 bytes.  ``line_lengths`` records the byte length of
every *visual* line (wrapped for display) and ``line_breaks`` records whether
that visual line is terminated by a newline byte in the content.  Soft wraps
carry no byte, so at all times::

    sum(line_lengths) + sum(line_breaks) == len(content)

Every offset that is used to slice the content is snapped to a code point
boundary first, so no public operation can split a multi-byte character.
"""

from __future__ import annotations

import logging

import wcwidth

from tllm.errors import BufferInvariantError

logger = logging.getLogger(__name__)

TAB_EXPANSION = "    "

# ASCII whitespace bytes; never continuation bytes, so always boundaries
_WHITESPACE = frozenset(b" \t\n\r\x0b\x0c")


def _utf8_len(ch: str) -> int:
    cp = ord(ch)
    if cp < 0x80:
        return 1
    if cp < 0x800:
        return 2
    if cp < 0x10000:
        return 3
    return 4


def cell_width(ch: str) -> int:
    """Terminal cells occupied by *ch*; control characters count as one."""
    w = wcwidth.wcwidth(ch)
    return 1 if w < 0 else w


def normalize_text(text: str) -> str:
    """Normalize line endings and expand tabs before text enters a buffer."""
    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", TAB_EXPANSION)


class TextBuffer:
    """Raw content plus its wrapped line table, page offset and viewport.

    ``viewport`` is the full pane size ``(width, height)`` including the one
    cell border on every side, so the text area is ``width - 2`` cells wide and
    :attr:`rows` lines high.
    """

    def __init__(
        self,
        content: str = "",
        *,
        viewport: tuple[int, int] = (80, 24),
        debug: bool = False,
    ) -> None:
        self._data = bytearray(normalize_text(content).encode("utf-8"))
        self.line_lengths: list[int] = [0]
        self.line_breaks: list[bool] = [False]
        self.page: int = 0
        self.viewport: tuple[int, int] = viewport
        self.debug = debug
        if self._data:
            self.rewrap()

    # -- basic accessors ----------------------------------------------------

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return (
            f"TextBuffer(len={len(self._data)}, lines={len(self.line_lengths)}, "
            f"page={self.page}, viewport={self.viewport})"
        )

    @property
    def content(self) -> str:
        return self._data.decode("utf-8")

    @property
    def raw(self) -> bytes:
        return bytes(self._data)

    @property
    def rows(self) -> int:
        """Number of visible text rows (viewport height minus borders)."""
        return max(1, self.viewport[1] - 2)

    @property
    def wrap_width(self) -> int:
        return max(1, self.viewport[0] - 2)

    @property
    def line_count(self) -> int:
        return len(self.line_lengths)

    @property
    def max_page(self) -> int:
        return max(0, len(self.line_lengths) - self.rows)

    # -- byte boundaries ----------------------------------------------------

    def is_boundary(self, offset: int) -> bool:
        return offset <= 0 or offset >= len(self._data) or (self._data[offset] & 0xC0) != 0x80

    def prev_boundary(self, offset: int) -> int:
        offset = max(0, min(offset, len(self._data)))
        while offset > 0 and not self.is_boundary(offset):
            offset -= 1
        return offset

    def next_boundary(self, offset: int) -> int:
        offset = max(0, min(offset, len(self._data)))
        while offset < len(self._data) and not self.is_boundary(offset):
            offset += 1
        return offset

    # -- line <-> offset mapping -------------------------------------------

    def line_start(self, line: int) -> int:
        """Byte offset of the first byte of visual line *line*."""
        line = max(0, min(line, len(self.line_lengths)))
        return sum(self.line_lengths[:line]) + sum(self.line_breaks[:line])

    def flat_offset(self, line: int, col: int) -> int:
        """Flatten a (visual line, byte column) pair to a boundary offset."""
        if line >= len(self.line_lengths):
            return len(self._data)
        offset = self.line_start(line) + max(0, col)
        return self.prev_boundary(offset)

    def position_of(self, offset: int) -> tuple[int, int]:
        """Map a flat byte offset back to ``(visual line, byte column)``.

        An offset sitting exactly on a soft wrap belongs to the start of the
        following visual line; one sitting before a newline byte stays at the
        end of its own line.
        """
        offset = self.prev_boundary(offset)
        start = 0
        last = len(self.line_lengths) - 1
        for i, length in enumerate(self.line_lengths):
            end = start + length
            if offset < end or (offset == end and (self.line_breaks[i] or i == last)):
                return i, offset - start
            start = end + (1 if self.line_breaks[i] else 0)
        return last, self.line_lengths[last]

    def line_bytes(self, line: int) -> bytes:
        if not 0 <= line < len(self.line_lengths):
            return b""
        start = self.prev_boundary(self.line_start(line))
        end = self.next_boundary(start + self.line_lengths[line])
        return bytes(self._data[start:end])

    def line_text(self, line: int) -> str:
        return self.line_bytes(line).decode("utf-8")

    def last_char_col(self, line: int) -> int:
        """Byte column of the first byte of the last character on *line*."""
        data = self.line_bytes(line)
        if not data:
            return 0
        col = len(data) - 1
        while col > 0 and (data[col] & 0xC0) == 0x80:
            col -= 1
        return col

    # -- mutation -----------------------------------------------------------

    def insert(self, text: str, line: int, col: int) -> int:
        """Insert *text* at the flattened position of ``(line, col)``.

        Returns the byte offset just past the inserted text.  Offsets past the
        end of the content append.  The line table is not updated until the
        next :meth:`rewrap`.
        """
        encoded = normalize_text(text).encode("utf-8")
        offset = self.flat_offset(line, col)
        if offset >= len(self._data):
            offset = len(self._data)
            self._data.extend(encoded)
        else:
            self._data[offset:offset] = encoded
        return offset + len(encoded)

    def append(self, text: str) -> None:
        self._data.extend(normalize_text(text).encode("utf-8"))

    def delete_range(self, start: int, end: int) -> str:
        """Remove the bytes between two offsets, widened to whole characters."""
        start = self.prev_boundary(start)
        end = self.next_boundary(end)
        if end <= start:
            return ""
        removed = bytes(self._data[start:end])
        del self._data[start:end]
        return removed.decode("utf-8")

    def delete_before(self, offset: int, count: int) -> tuple[str, int]:
        """Delete up to *count* characters before *offset*.

        The count is clamped to the characters actually available, so a
        burst of queued backspaces at the start of the buffer is a no-op
        rather than an underflow.  Returns ``(removed_text, new_offset)``.
        """
        end = self.prev_boundary(offset)
        start = end
        remaining = max(0, count)
        while remaining > 0 and start > 0:
            start = self.prev_boundary(start - 1)
            remaining -= 1
        return self.delete_range(start, end), start

    def delete_word(self, line: int, col: int) -> str:
        """Delete the word before ``(line, col)`` and return the removed text.

        Whitespace directly before the cursor is removed together with the
        word, stopping at the nearest preceding whitespace byte.  The caller
        checks the returned text for ``"\\n"`` to re-join visual lines.
        """
        end = self.flat_offset(line, col)
        if end == 0:
            return ""
        begin = end
        while begin > 0 and self._data[begin - 1] in _WHITESPACE:
            begin -= 1
        while begin > 0 and self._data[begin - 1] not in _WHITESPACE:
            begin -= 1
        return self.delete_range(begin, end)

    def clear(self) -> None:
        self._data = bytearray()
        self.line_lengths = [0]
        self.line_breaks = [False]
        self.page = 0

    # -- wrapping -----------------------------------------------------------

    def rewrap(self, viewport_width: int | None = None) -> None:
        """Rebuild the visual line table for *viewport_width*.

        A visual line ends at a newline or once it fills ``width - 2`` cells.
        The table always ends with a (possibly empty) trailing line, which
        gives the cursor a resting place after a final newline or a full
        line.
        """
        if viewport_width is not None:
            self.viewport = (viewport_width, self.viewport[1])
        wrap = self.wrap_width

        lengths: list[int] = []
        breaks: list[bool] = []
        length = 0
        column = 0
        full = False

        for ch in self._data.decode("utf-8"):
            if ch == "\n":
                lengths.append(length)
                breaks.append(True)
                length = column = 0
                full = False
                continue

            cells = cell_width(ch)
            if full and cells > 0:
                lengths.append(length)
                breaks.append(False)
                length = column = 0
                full = False
            elif column and column + cells > wrap:
                lengths.append(length)
                breaks.append(False)
                length = column = 0

            length += _utf8_len(ch)
            column += cells
            if column >= wrap:
                full = True

        if full:
            lengths.append(length)
            breaks.append(False)
            length = 0
        lengths.append(length)
        breaks.append(False)

        self.line_lengths = lengths
        self.line_breaks = breaks
        self.page = min(self.page, self.max_page)

        if self.debug:
            self.check_invariants()

    def check_invariants(self) -> None:
        """Raise :class:`BufferInvariantError` if the line table is inconsistent."""
        if not self.line_lengths or len(self.line_lengths) != len(self.line_breaks):
            raise BufferInvariantError(f"malformed line table: {self!r}")
        total = sum(self.line_lengths) + sum(self.line_breaks)
        if total != len(self._data):
            raise BufferInvariantError(f"line table covers {total} bytes, content has {len(self._data)}")
        offset = 0
        for i, length in enumerate(self.line_lengths):
            if not self.is_boundary(offset):
                raise BufferInvariantError(f"visual line {i} starts inside a character at byte {offset}")
            offset += length + (1 if self.line_breaks[i] else 0)

    # -- paging -------------------------------------------------------------

    def page_up(self) -> None:
        self.page = max(0, self.page - self.rows)

    def page_down(self) -> None:
        self.page = min(self.max_page, self.page + self.rows)

    def scroll_to_end(self) -> None:
        self.page = self.max_page

    # -- display ------------------------------------------------------------

    def display(self) -> str:
        """Content from the first visible visual line to the end, right-trimmed."""
        begin = self.prev_boundary(self.line_start(self.page))
        return self._data[begin:].decode("utf-8").rstrip()

    def visible_lines(self) -> list[str]:
        """The visual lines inside the current window, top to bottom."""
        last = min(len(self.line_lengths), self.page + self.rows)
        return [self.line_text(i) for i in range(self.page, last)]
