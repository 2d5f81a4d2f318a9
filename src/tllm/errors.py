"""Exception hierarchy shared by the buffer engine and the protocol clients.

Transport, protocol and payload failures are fatal to a single request only;
the chat session turns them into a status message and keeps running.
"""

from __future__ import annotations


class TllmError(Exception):
    """Base class for every error raised by tllm."""


class ConfigError(TllmError):
    """Missing API key, unknown provider or unreadable configuration."""


class TransportError(TllmError):
    """TCP connect, TLS handshake or socket I/O failure."""


class ProtocolError(TllmError):
    """Malformed HTTP framing, bad chunk size or a non-2xx response."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class PayloadError(TllmError):
    """A response body that is not the JSON shape the provider promises."""


class BufferInvariantError(TllmError):
    """Internal bug: a text buffer invariant no longer holds.

    Only raised by debug-mode invariant checks; never shown to the user.
    """
