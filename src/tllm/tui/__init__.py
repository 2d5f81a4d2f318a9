"""tllm.tui: paged text buffer, cursor model and raw terminal input."""

# Text buffer
from tllm.tui.buffer import TextBuffer, cell_width, normalize_text

# Cursor model
from tllm.tui.cursor import Cursor, Mode, Pane

# Keyboard input handling
from tllm.tui.keys import Key, KeyId, is_printable, parse_key

# Input buffering
from tllm.tui.stdin_buffer import InputEvent, StdinBuffer

# Terminal interface
from tllm.tui.terminal import ProcessTerminal, Terminal

__all__ = [
    "Cursor",
    "InputEvent",
    "Key",
    "KeyId",
    "Mode",
    "Pane",
    "ProcessTerminal",
    "StdinBuffer",
    "Terminal",
    "TextBuffer",
    "cell_width",
    "is_printable",
    "normalize_text",
    "parse_key",
]
