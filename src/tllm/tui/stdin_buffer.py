"""StdinBuffer buffers input and emits complete sequences.

Terminal reads can end in the middle of an escape sequence.  Without
buffering, a partial ``ESC [ 1 ; 2`` would be misread as an Escape keypress
followed by literal text.  The buffer is synchronous: the poll loop feeds it
each read and calls :meth:`StdinBuffer.flush` when the poll times out, which
is how a lone Escape keypress is told apart from the start of a sequence.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

ESC = "\x1b"
BRACKETED_PASTE_START = "\x1b[200~"
BRACKETED_PASTE_END = "\x1b[201~"

_SGR_MOUSE_RE = re.compile(r"^<\d+;\d+;\d+[Mm]$")


@dataclass(frozen=True)
class InputEvent:
    """One complete key sequence or one bracketed paste."""

    kind: Literal["key", "paste"]
    data: str


def _is_complete_sequence(data: str) -> str:
    """Check if a string is a complete escape sequence or needs more data.

    Returns 'complete', 'incomplete', or 'not-escape'.
    """
    if not data.startswith(ESC):
        return "not-escape"

    if len(data) == 1:
        return "incomplete"

    after_esc = data[1:]

    # CSI sequences: ESC [
    if after_esc.startswith("["):
        if after_esc.startswith("[M"):
            return "complete" if len(data) >= 6 else "incomplete"
        return _is_complete_csi_sequence(data)

    # OSC sequences: ESC ]
    if after_esc.startswith("]"):
        if data.endswith(f"{ESC}\\") or data.endswith("\x07"):
            return "complete"
        return "incomplete"

    # SS3 sequences: ESC O
    if after_esc.startswith("O"):
        return "complete" if len(after_esc) >= 2 else "incomplete"

    # Meta + arrow: ESC ESC [ X
    if after_esc.startswith(ESC):
        if len(after_esc) == 1:
            return "incomplete"
        return _is_complete_sequence(after_esc)

    # Meta key sequences: ESC followed by a single character
    return "complete"


def _is_complete_csi_sequence(data: str) -> str:
    if len(data) < 3:
        return "incomplete"

    payload = data[2:]
    last_char = payload[-1]

    if 0x40 <= ord(last_char) <= 0x7E:
        if payload.startswith("<"):
            return "complete" if _SGR_MOUSE_RE.match(payload) else "incomplete"
        return "complete"

    return "incomplete"


def _extract_complete_sequences(buffer: str) -> tuple[list[str], str]:
    """Split accumulated buffer into complete sequences.

    Returns (sequences, remainder).
    """
    sequences: list[str] = []
    pos = 0

    while pos < len(buffer):
        remaining = buffer[pos:]

        if not remaining.startswith(ESC):
            sequences.append(remaining[0])
            pos += 1
            continue

        seq_end = 1
        while seq_end <= len(remaining):
            candidate = remaining[:seq_end]
            if _is_complete_sequence(candidate) == "incomplete":
                seq_end += 1
                continue
            sequences.append(candidate)
            pos += seq_end
            break
        else:
            return sequences, remaining

    return sequences, ""


class StdinBuffer:
    """Accumulates decoded stdin text and yields complete input events."""

    def __init__(self) -> None:
        self._buffer: str = ""
        self._paste_mode: bool = False
        self._paste_buffer: str = ""

    def process(self, data: str) -> list[InputEvent]:
        """Feed *data* and return every event that is now complete."""
        events: list[InputEvent] = []
        self._buffer += data

        while self._buffer:
            if self._paste_mode:
                self._paste_buffer += self._buffer
                self._buffer = ""
                end_index = self._paste_buffer.find(BRACKETED_PASTE_END)
                if end_index == -1:
                    break
                events.append(InputEvent("paste", self._paste_buffer[:end_index]))
                self._buffer = self._paste_buffer[end_index + len(BRACKETED_PASTE_END) :]
                self._paste_buffer = ""
                self._paste_mode = False
                continue

            start_index = self._buffer.find(BRACKETED_PASTE_START)
            if start_index != -1:
                sequences, _ = _extract_complete_sequences(self._buffer[:start_index])
                events.extend(InputEvent("key", seq) for seq in sequences)
                self._buffer = self._buffer[start_index + len(BRACKETED_PASTE_START) :]
                self._paste_mode = True
                continue

            sequences, remainder = _extract_complete_sequences(self._buffer)
            events.extend(InputEvent("key", seq) for seq in sequences)
            self._buffer = remainder
            break

        return events

    def flush(self) -> list[InputEvent]:
        """Emit whatever is pending as a single key event (lone ESC and friends)."""
        if not self._buffer or self._paste_mode:
            return []
        event = InputEvent("key", self._buffer)
        self._buffer = ""
        return [event]

    @property
    def pending(self) -> bool:
        return bool(self._buffer) and not self._paste_mode

    def clear(self) -> None:
        self._buffer = ""
        self._paste_mode = False
        self._paste_buffer = ""

    def get_buffer(self) -> str:
        return self._buffer
