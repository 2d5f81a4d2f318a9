"""tllm: terminal chat client for LLM providers."""

from tllm.errors import (
    BufferInvariantError,
    ConfigError,
    PayloadError,
    ProtocolError,
    TllmError,
    TransportError,
)

__version__ = "0.3.0"

__all__ = [
    "BufferInvariantError",
    "ConfigError",
    "PayloadError",
    "ProtocolError",
    "TllmError",
    "TransportError",
    "__version__",
]
