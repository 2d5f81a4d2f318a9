"""Conversation persistence as a JSON array of messages."""

from __future__ import annotations

import re
import time
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from tllm.ai.types import Message
from tllm.errors import ConfigError

_CONVERSATION = TypeAdapter(list[Message])

_UNSAFE = re.compile(r"[^\w.-]+")

# Generated names stay well under the file system's 255-byte name limit
MAX_NAME_WORDS = 5
MAX_NAME_BYTES = 64


def load(path: str | Path) -> list[Message]:
    """Read a saved conversation; raises :class:`ConfigError` if unusable."""
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"cannot read conversation {path}: {exc}") from exc
    try:
        return _CONVERSATION.validate_json(raw)
    except ValidationError as exc:
        raise ConfigError(f"{path} is not a saved conversation: {exc.error_count()} error(s)") from exc


def save(path: str | Path, messages: list[Message]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(_CONVERSATION.dump_json(messages))
    return path


def timestamp_name() -> str:
    """Microseconds since the epoch, used when a conversation has no name."""
    return str(time.time_ns() // 1000)


def slugify_name(text: str) -> str:
    # "Rust Borrow Checker Tips" -> "rust_borrow_checker_tips"
    words = text.strip().lower().split()[:MAX_NAME_WORDS]
    slug = _UNSAFE.sub("", "_".join(words))
    slug = slug.encode("utf-8")[:MAX_NAME_BYTES].decode("utf-8", "ignore")
    return slug.strip("._")


def conversation_path(directory: str | Path, name: str) -> Path:
    return Path(directory) / f"{name}.json"
