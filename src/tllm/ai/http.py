"""Hand-framed HTTP/1.1 over TLS.

Requests are assembled byte by byte: CRLF line endings, a ``Content-Length``
equal to the encoded body length and ``Connection: close`` so the server
ends the response by closing the socket.  Responses are read from a binary
file object (``sock.makefile("rb")``) and decoded from either
``Transfer-Encoding: chunked`` or ``Content-Length`` framing.
"""

from __future__ import annotations

import logging
import socket
import ssl
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import BinaryIO, Protocol

from tllm.errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)

CRLF = "\r\n"
MAX_HEADER_LINE = 65536


class LineSource(Protocol):
    def readline(self, size: int = -1, /) -> bytes: ...


# ---------------------------------------------------------------------------
# Request framing
# ---------------------------------------------------------------------------


def build_request(
    host: str,
    path: str,
    body: bytes,
    headers: list[tuple[str, str]] | None = None,
    *,
    accept: str = "*/*",
) -> bytes:
    """Frame a ``POST`` request with a JSON *body*."""
    lines = [
        f"POST {path} HTTP/1.1",
        f"Host: {host}",
        "Content-Type: application/json",
        f"Content-Length: {len(body)}",
        f"Accept: {accept}",
    ]
    lines.extend(f"{name}: {value}" for name, value in headers or [])
    lines.append("Connection: close")
    return (CRLF.join(lines) + CRLF + CRLF).encode("utf-8") + body


def connect(host: str, port: int, timeout: float) -> ssl.SSLSocket:
    """Open a TLS connection to ``host:port`` with SNI and certificate checks."""
    context = ssl.create_default_context()
    try:
        raw = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        raise TransportError(f"cannot connect to {host}:{port}: {exc}") from exc
    try:
        return context.wrap_socket(raw, server_hostname=host)
    except OSError as exc:
        raw.close()
        raise TransportError(f"TLS handshake with {host} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Response head
# ---------------------------------------------------------------------------


@dataclass
class ResponseHead:
    status: int
    reason: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def chunked(self) -> bool:
        return "chunked" in self.headers.get("transfer-encoding", "").lower()

    @property
    def content_length(self) -> int | None:
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value.strip())
        except ValueError:
            raise ProtocolError(f"bad Content-Length header: {value!r}") from None


def _read_line(reader: LineSource) -> bytes:
    line = reader.readline(MAX_HEADER_LINE)
    if line and not line.endswith(b"\n") and len(line) >= MAX_HEADER_LINE:
        raise ProtocolError("response header line too long")
    return line


def read_head(reader: LineSource) -> ResponseHead:
    """Read the status line and headers up to the bare CRLF."""
    status_line = _read_line(reader)
    if not status_line:
        raise ProtocolError("connection closed before a response was received")

    parts = status_line.decode("latin-1").strip().split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/"):
        raise ProtocolError(f"malformed status line: {status_line!r}")
    try:
        status = int(parts[1])
    except ValueError:
        raise ProtocolError(f"malformed status code in {status_line!r}") from None
    reason = parts[2] if len(parts) > 2 else ""

    headers: dict[str, str] = {}
    while True:
        line = _read_line(reader)
        if not line:
            raise ProtocolError("connection closed inside response headers")
        if line in (b"\r\n", b"\n"):
            break
        name, sep, value = line.decode("latin-1").partition(":")
        if not sep:
            raise ProtocolError(f"malformed header line: {line!r}")
        headers[name.strip().lower()] = value.strip()

    logger.debug("response %d %s headers=%s", status, reason, headers)
    return ResponseHead(status=status, reason=reason, headers=headers)


# ---------------------------------------------------------------------------
# Body decoding
# ---------------------------------------------------------------------------


class ChunkedReader:
    """File-like view of a ``Transfer-Encoding: chunked`` body.

    Supports :meth:`read` and :meth:`readline`, so the same code reads both
    complete JSON bodies and line-oriented event streams.
    """

    def __init__(self, reader: BinaryIO) -> None:
        self._reader = reader
        self._remaining = 0
        self._started = False
        self._done = False

    def _read_size(self) -> int:
        line = self._reader.readline(MAX_HEADER_LINE)
        if not line:
            raise ProtocolError("connection closed before chunk size")
        size_text = line.split(b";", 1)[0].strip()
        try:
            size = int(size_text, 16)
        except ValueError:
            raise ProtocolError(f"undecodable chunk size: {line!r}") from None
        if size < 0:
            raise ProtocolError(f"negative chunk size: {line!r}")
        return size

    def _fill(self) -> bool:
        """Make sure a chunk with unread bytes is current; False at the end."""
        if self._done:
            return False
        if self._remaining == 0:
            if self._started and self._reader.readline(MAX_HEADER_LINE).strip():
                raise ProtocolError("chunk data not followed by CRLF")
            self._started = True
            size = self._read_size()
            if size == 0:
                self._done = True
                # Trailer section ends at an empty line (or EOF)
                while self._reader.readline(MAX_HEADER_LINE).strip():
                    pass
                return False
            self._remaining = size
        return True

    def read(self, size: int = -1) -> bytes:
        out = bytearray()
        while size < 0 or len(out) < size:
            if not self._fill():
                break
            want = self._remaining if size < 0 else min(self._remaining, size - len(out))
            data = self._reader.read(want)
            if not data:
                raise ProtocolError("connection closed inside a chunk")
            out += data
            self._remaining -= len(data)
        return bytes(out)

    def readline(self, size: int = -1) -> bytes:
        out = bytearray()
        while not out.endswith(b"\n") and (size < 0 or len(out) < size):
            if not self._fill():
                break
            limit = self._remaining if size < 0 else min(self._remaining, size - len(out))
            data = self._reader.readline(limit)
            if not data:
                raise ProtocolError("connection closed inside a chunk")
            out += data
            self._remaining -= len(data)
        return bytes(out)


def body_reader(reader: BinaryIO, head: ResponseHead) -> LineSource:
    """The de-chunked body stream for *head*."""
    return ChunkedReader(reader) if head.chunked else reader


def read_body(reader: BinaryIO, head: ResponseHead) -> bytes:
    """Read the complete response body according to its framing."""
    if head.chunked:
        return ChunkedReader(reader).read()
    length = head.content_length
    if length is None:
        return reader.read()
    data = reader.read(length)
    if len(data) < length:
        raise ProtocolError(f"response body truncated at {len(data)} of {length} bytes")
    return data


def iter_lines(source: LineSource) -> Iterator[str]:
    """Yield body lines as text, without their line terminators."""
    while True:
        line = source.readline()
        if not line:
            return
        yield line.decode("utf-8", errors="replace").rstrip("\r\n")
