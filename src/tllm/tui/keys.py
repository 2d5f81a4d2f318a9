"""Keyboard input parsing for the chat terminal.

Maps raw legacy terminal sequences (xterm CSI/SS3, control bytes and
ESC-prefixed meta keys) to key identifiers such as ``"up"``,
``"shift+pageUp"`` or ``"ctrl+w"``.
"""

from __future__ import annotations

KeyId = str

# ---------------------------------------------------------------------------
# Key helper object
# ---------------------------------------------------------------------------


class Key:
    """Named key constants and modifier combinators."""

    escape = "escape"
    enter = "enter"
    tab = "tab"
    space = "space"
    backspace = "backspace"
    delete = "delete"
    home = "home"
    end = "end"
    page_up = "pageUp"
    page_down = "pageDown"
    up = "up"
    down = "down"
    left = "left"
    right = "right"

    @staticmethod
    def ctrl(key: str) -> str:
        return f"ctrl+{key}"

    @staticmethod
    def shift(key: str) -> str:
        return f"shift+{key}"

    @staticmethod
    def alt(key: str) -> str:
        return f"alt+{key}"


# ---------------------------------------------------------------------------
# Legacy escape sequences
# ---------------------------------------------------------------------------

LEGACY_KEY_SEQUENCES: dict[str, str] = {
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1b[C": "right",
    "\x1b[D": "left",
    "\x1b[H": "home",
    "\x1b[F": "end",
    "\x1bOA": "up",
    "\x1bOB": "down",
    "\x1bOC": "right",
    "\x1bOD": "left",
    "\x1bOH": "home",
    "\x1bOF": "end",
    "\x1b[3~": "delete",
    "\x1b[5~": "pageUp",
    "\x1b[6~": "pageDown",
    "\x1b[1~": "home",
    "\x1b[4~": "end",
    "\x1b[7~": "home",
    "\x1b[8~": "end",
}

LEGACY_SHIFT_SEQUENCES: dict[str, str] = {
    "\x1b[1;2A": "up",
    "\x1b[1;2B": "down",
    "\x1b[1;2C": "right",
    "\x1b[1;2D": "left",
    "\x1b[1;2H": "home",
    "\x1b[1;2F": "end",
    "\x1b[5;2~": "pageUp",
    "\x1b[6;2~": "pageDown",
    "\x1b[a": "up",
    "\x1b[b": "down",
    "\x1b[Z": "tab",
}

LEGACY_CTRL_SEQUENCES: dict[str, str] = {
    "\x1b[1;5A": "up",
    "\x1b[1;5B": "down",
    "\x1b[1;5C": "right",
    "\x1b[1;5D": "left",
    "\x1b[1;5H": "home",
    "\x1b[1;5F": "end",
    "\x1b[5;5~": "pageUp",
    "\x1b[6;5~": "pageDown",
}

LEGACY_ALT_SEQUENCES: dict[str, str] = {
    "\x1b[1;3A": "up",
    "\x1b[1;3B": "down",
    "\x1b[1;3C": "right",
    "\x1b[1;3D": "left",
    "\x1b[1;3H": "home",
    "\x1b[1;3F": "end",
    "\x1bb": "left",
    "\x1bf": "right",
    "\x1b\x1b[D": "left",
    "\x1b\x1b[C": "right",
}


# ---------------------------------------------------------------------------
# parse_key
# ---------------------------------------------------------------------------


def parse_key(data: str) -> KeyId | None:
    """Parse raw terminal input and return the key identifier, or ``None``.

    Returned identifiers look like ``"a"``, ``"ctrl+w"``, ``"shift+up"`` or
    ``"alt+left"``.  Printable characters are returned unchanged (including
    case), so ``"Q"`` and ``"q"`` are distinct.
    """
    if not data:
        return None

    for seq_dict, mod_prefix in [
        (LEGACY_CTRL_SEQUENCES, "ctrl+"),
        (LEGACY_SHIFT_SEQUENCES, "shift+"),
        (LEGACY_ALT_SEQUENCES, "alt+"),
        (LEGACY_KEY_SEQUENCES, ""),
    ]:
        if data in seq_dict:
            return mod_prefix + seq_dict[data]

    # --- Simple single-byte keys ---
    if data == "\x1b":
        return "escape"
    if data == "\r" or data == "\n":
        return "enter"
    if data == "\t":
        return "tab"
    if data == " ":
        return "space"
    if data == "\x7f" or data == "\x08":
        return "backspace"
    if data == "\x00":
        return "ctrl+space"

    # --- Ctrl + letter (0x01 - 0x1a) ---
    if len(data) == 1 and 1 <= ord(data) <= 26:
        return "ctrl+" + chr(ord(data) + ord("a") - 1)

    # --- Alt + key (ESC prefix) ---
    if len(data) == 2 and data[0] == "\x1b":
        ch = data[1]
        if ch == "\r" or ch == "\n":
            return "alt+enter"
        if ch == "\x7f" or ch == "\x08":
            return "alt+backspace"
        if 1 <= ord(ch) <= 26:
            return "ctrl+alt+" + chr(ord(ch) + ord("a") - 1)
        if ch.isprintable():
            return "alt+" + ch.lower()

    # --- Plain printable character (one code point) ---
    if len(data) == 1 and data.isprintable():
        return data

    return None


def is_printable(data: str) -> bool:
    """True when *data* is text to insert rather than a control sequence."""
    return bool(data) and not data.startswith("\x1b") and all(
        ch.isprintable() or ch == "\n" for ch in data
    )
