"""System clipboard access for Ctrl+V in the input pane."""

from __future__ import annotations

import logging

import pyperclip

_logger = logging.getLogger(__name__)


def get_contents(logger: logging.Logger | None = None) -> str:
    """Current clipboard text, or ``""`` when no clipboard is available."""
    try:
        text = pyperclip.paste()
    except pyperclip.PyperclipException as exc:
        (logger or _logger).warning("clipboard unavailable: %s", exc)
        return ""
    return text or ""
