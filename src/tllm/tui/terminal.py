"""Terminal abstraction for raw-mode stdin/stdout interaction.

Provides a ``Terminal`` protocol and a concrete ``ProcessTerminal``
implementation that manages raw mode, the alternate screen, bracketed paste
and SIGWINCH-based resize detection.  Input is read synchronously with
:func:`select.select` so the render loop can poll with a timeout.
"""

from __future__ import annotations

import codecs
import logging
import os
import select
import signal
import sys
import termios
import tty
from typing import Protocol

from tllm.tui.stdin_buffer import InputEvent, StdinBuffer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# ANSI escape constants
# ---------------------------------------------------------------------------

_ALT_SCREEN_ENABLE = "\x1b[?1049h"
_ALT_SCREEN_DISABLE = "\x1b[?1049l"
_BRACKETED_PASTE_ENABLE = "\x1b[?2004h"
_BRACKETED_PASTE_DISABLE = "\x1b[?2004l"

_HIDE_CURSOR = "\x1b[?25l"
_SHOW_CURSOR = "\x1b[?25h"
_CLEAR_SCREEN = "\x1b[2J\x1b[H"
_MOVE_TO_FMT = "\x1b[{};{}H"
_SET_TITLE_FMT = "\x1b]0;{}\x07"

# Escape-sequence completion window after the first poll timeout
_ESCAPE_TIMEOUT = 0.01


# ---------------------------------------------------------------------------
# Terminal protocol
# ---------------------------------------------------------------------------


class Terminal(Protocol):
    """Interface for terminal I/O operations."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def poll(self, timeout: float) -> InputEvent | None: ...

    def consume_resize(self) -> bool: ...

    def write(self, data: str) -> None: ...

    @property
    def columns(self) -> int: ...

    @property
    def rows(self) -> int: ...

    def move_to(self, row: int, col: int) -> None: ...

    def hide_cursor(self) -> None: ...

    def show_cursor(self) -> None: ...

    def clear_screen(self) -> None: ...

    def set_title(self, title: str) -> None: ...


# ---------------------------------------------------------------------------
# ProcessTerminal implementation
# ---------------------------------------------------------------------------


class ProcessTerminal:
    """Concrete terminal implementation backed by ``sys.stdin``/``sys.stdout``.

    Manages raw mode via :mod:`tty` and :mod:`termios`, the alternate
    screen, bracketed paste mode, and SIGWINCH-based resize detection.
    """

    def __init__(self) -> None:
        self._stdin_buffer = StdinBuffer()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending: list[InputEvent] = []
        self._original_termios: list | None = None
        self._prev_sigwinch_handler: signal.Handlers | None = None
        self._resized = False
        self._write_log_path: str = os.environ.get("TLLM_WRITE_LOG", "")

    # -- properties ---------------------------------------------------------

    @property
    def columns(self) -> int:
        try:
            return os.get_terminal_size(sys.stdout.fileno()).columns
        except (ValueError, OSError):
            return 80

    @property
    def rows(self) -> int:
        try:
            return os.get_terminal_size(sys.stdout.fileno()).lines
        except (ValueError, OSError):
            return 24

    # -- start / stop -------------------------------------------------------

    def start(self) -> None:
        """Enable raw mode, the alternate screen and bracketed paste."""
        fd = sys.stdin.fileno()

        self._original_termios = termios.tcgetattr(fd)
        tty.setraw(fd)

        self._raw_write(_ALT_SCREEN_ENABLE + _BRACKETED_PASTE_ENABLE + _CLEAR_SCREEN)

        self._prev_sigwinch_handler = signal.getsignal(signal.SIGWINCH)
        signal.signal(signal.SIGWINCH, self._on_sigwinch)
        logger.debug("terminal started at %dx%d", self.columns, self.rows)

    def stop(self) -> None:
        """Restore terminal state and clean up all handlers."""
        self._raw_write(_BRACKETED_PASTE_DISABLE + _SHOW_CURSOR + _ALT_SCREEN_DISABLE)
        self._stdin_buffer.clear()

        if self._prev_sigwinch_handler is not None:
            signal.signal(signal.SIGWINCH, self._prev_sigwinch_handler)
            self._prev_sigwinch_handler = None

        if self._original_termios is not None:
            termios.tcsetattr(sys.stdin.fileno(), termios.TCSADRAIN, self._original_termios)
            self._original_termios = None

    # -- input --------------------------------------------------------------

    def poll(self, timeout: float) -> InputEvent | None:
        """Wait up to *timeout* seconds for one input event."""
        if self._pending:
            return self._pending.pop(0)

        fd = sys.stdin.fileno()
        wait = timeout
        while True:
            readable, _, _ = select.select([fd], [], [], wait)
            if not readable:
                self._pending.extend(self._stdin_buffer.flush())
                break
            raw = os.read(fd, 4096)
            if not raw:
                break
            self._pending.extend(self._stdin_buffer.process(self._decoder.decode(raw)))
            if self._pending or not self._stdin_buffer.pending:
                break
            wait = _ESCAPE_TIMEOUT

        return self._pending.pop(0) if self._pending else None

    def consume_resize(self) -> bool:
        resized, self._resized = self._resized, False
        return resized

    # -- output -------------------------------------------------------------

    def write(self, data: str) -> None:
        """Write data to stdout and optionally to the write log."""
        self._raw_write(data)

        if self._write_log_path:
            try:
                with open(self._write_log_path, "a", encoding="utf-8") as f:
                    f.write(data)
            except OSError:
                logger.warning("cannot append to write log %s", self._write_log_path)

    def move_to(self, row: int, col: int) -> None:
        self._raw_write(_MOVE_TO_FMT.format(row + 1, col + 1))

    def hide_cursor(self) -> None:
        self._raw_write(_HIDE_CURSOR)

    def show_cursor(self) -> None:
        self._raw_write(_SHOW_CURSOR)

    def clear_screen(self) -> None:
        self._raw_write(_CLEAR_SCREEN)

    def set_title(self, title: str) -> None:
        self._raw_write(_SET_TITLE_FMT.format(title))

    # -- private ------------------------------------------------------------

    def _on_sigwinch(self, signum: int, frame: object) -> None:
        self._resized = True

    def _raw_write(self, data: str) -> None:
        """Write directly to stdout, bypassing buffering."""
        try:
            sys.stdout.write(data)
            sys.stdout.flush()
        except OSError:
            logger.debug("stdout write failed", exc_info=True)
