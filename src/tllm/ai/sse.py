"""Server-Sent Event parsing for streamed completions.

Only the ``event:`` and ``data:`` fields matter here.  Each ``data:``
payload is one JSON event; the provider's response shape decides where the
text fragment lives inside it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator

from tllm.ai.providers import ResponseShape, error_message, extract_delta
from tllm.errors import ProtocolError

_logger = logging.getLogger(__name__)

STOP_EVENT = "message_stop"
DONE_SENTINEL = "[DONE]"


def _field(line: str, name: str) -> str | None:
    prefix = name + ":"
    if not line.startswith(prefix):
        return None
    value = line[len(prefix) :]
    return value[1:] if value.startswith(" ") else value


def iter_deltas(
    lines: Iterable[str],
    shape: ResponseShape,
    logger: logging.Logger | None = None,
) -> Iterator[str]:
    """Yield text deltas from SSE *lines* until the stream terminates.

    The stream ends at an ``event: message_stop`` line, a ``data: [DONE]``
    payload, an empty ``data:`` payload or the end of input.  An event that
    is not valid JSON is logged and skipped.  An Anthropic ``error`` event
    raises :class:`ProtocolError`.
    """
    log = logger or _logger
    for line in lines:
        event = _field(line, "event")
        if event is not None:
            if event.strip() == STOP_EVENT:
                log.debug("stream stopped by %s event", STOP_EVENT)
                return
            continue

        payload = _field(line, "data")
        if payload is None:
            continue
        payload = payload.strip()
        if not payload or payload == DONE_SENTINEL:
            return

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            log.warning("skipping undecodable stream event (%s): %.200s", exc, payload)
            continue

        if isinstance(data, dict) and data.get("type") == "error":
            raise ProtocolError(error_message(data) or "provider reported a stream error")

        delta = extract_delta(shape, data)
        if delta:
            yield delta
