"""Streaming and non-streaming completion clients.

Both clients open one TLS connection per request, write a hand-framed
request and read the response from the same socket.  They never touch UI
state: the streaming client reports each text fragment through a callback
as soon as it is decoded.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from contextlib import closing
from typing import Any

from tllm.ai import http
from tllm.ai.providers import (
    RequestParams,
    build_request_params,
    error_message,
    extract_content,
    request_body,
    request_headers,
)
from tllm.ai.sse import iter_deltas
from tllm.ai.types import Message
from tllm.errors import PayloadError, ProtocolError, TransportError

_logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

Connector = Callable[[str, int, float], Any]


def _frame(params: RequestParams) -> bytes:
    body = json.dumps(request_body(params), ensure_ascii=False).encode("utf-8")
    accept = "text/event-stream" if params.stream else "*/*"
    return http.build_request(params.host, params.path, body, request_headers(params), accept=accept)


def _error_detail(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace").strip()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text
    return error_message(payload) or text


def _raise_for_status(reader: Any, head: http.ResponseHead) -> None:
    if head.ok:
        return
    detail = _error_detail(http.read_body(reader, head))
    raise ProtocolError(f"HTTP {head.status} {head.reason}: {detail[:500]}", status=head.status)


def prompt(
    provider: str,
    system_prompt: str,
    messages: list[Message],
    *,
    model: str | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    connect: Connector | None = None,
    logger: logging.Logger | None = None,
) -> Message:
    """Send *messages* and return the complete assistant reply."""
    log = logger or _logger
    params = build_request_params(
        provider, system_prompt, messages, stream=False, api_key=api_key, model=model, max_tokens=max_tokens
    )
    request = _frame(params)
    log.info("POST %s%s (%s, %d bytes)", params.host, params.display_path, params.model, len(request))

    sock = (connect or http.connect)(params.host, params.port, timeout)
    try:
        with closing(sock), sock.makefile("rb") as reader:
            sock.sendall(request)
            head = http.read_head(reader)
            _raise_for_status(reader, head)
            body = http.read_body(reader, head)
    except OSError as exc:
        raise TransportError(f"connection to {params.host} failed: {exc}") from exc

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        log.error("undecodable response body: %.500r", body)
        raise PayloadError(f"response from {provider} is not valid JSON: {exc}") from exc

    content = extract_content(params.shape, payload)
    log.debug("received %d characters from %s", len(content), provider)
    return Message.assistant(content)


def prompt_stream(
    provider: str,
    system_prompt: str,
    messages: list[Message],
    on_delta: Callable[[str], None],
    *,
    model: str | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    connect: Connector | None = None,
    logger: logging.Logger | None = None,
) -> str:
    """Stream a reply, calling *on_delta* per fragment; return the full text."""
    log = logger or _logger
    params = build_request_params(
        provider, system_prompt, messages, stream=True, api_key=api_key, model=model, max_tokens=max_tokens
    )
    request = _frame(params)
    log.info("POST %s%s (%s, stream, %d bytes)", params.host, params.display_path, params.model, len(request))

    parts: list[str] = []
    sock = (connect or http.connect)(params.host, params.port, timeout)
    try:
        with closing(sock), sock.makefile("rb") as reader:
            sock.sendall(request)
            head = http.read_head(reader)
            _raise_for_status(reader, head)
            lines = http.iter_lines(http.body_reader(reader, head))
            for delta in iter_deltas(lines, params.shape, log):
                on_delta(delta)
                parts.append(delta)
    except OSError as exc:
        raise TransportError(f"stream from {params.host} failed: {exc}") from exc

    log.debug("stream from %s finished with %d deltas", provider, len(parts))
    return "".join(parts)
