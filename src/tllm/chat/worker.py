"""Background request workers and the items they send to the render loop.

A worker owns nothing but its request snapshot and the channel.  Every
item it puts on the channel is tagged with the generation of the
submission that started it, so the session can drop results from a
request it no longer cares about.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from tllm.ai.client import DEFAULT_TIMEOUT, Connector, prompt, prompt_stream
from tllm.ai.types import Message
from tllm.errors import TllmError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delta:
    generation: int
    text: str


@dataclass(frozen=True)
class Done:
    generation: int


@dataclass(frozen=True)
class Failed:
    generation: int
    message: str


ChannelItem = Delta | Done | Failed
Channel = queue.Queue


@dataclass
class WorkerRequest:
    """Snapshot of everything one request needs."""

    generation: int
    provider: str
    system_prompt: str
    messages: list[Message] = field(default_factory=list)
    model: str | None = None
    max_tokens: int | None = None
    timeout: float = DEFAULT_TIMEOUT
    stream: bool = True
    connect: Connector | None = None


def run_request(request: WorkerRequest, channel: Channel, logger: logging.Logger | None = None) -> None:
    """Perform *request*, reporting deltas and the outcome on *channel*."""
    log = logger or _logger
    gen = request.generation

    def forward(text: str) -> None:
        channel.put(Delta(gen, text))

    options = dict(
        model=request.model,
        max_tokens=request.max_tokens,
        timeout=request.timeout,
        connect=request.connect,
        logger=log,
    )
    try:
        if request.stream:
            prompt_stream(request.provider, request.system_prompt, request.messages, forward, **options)
        else:
            reply = prompt(request.provider, request.system_prompt, request.messages, **options)
            if reply.content:
                forward(reply.content)
    except TllmError as exc:
        log.error("request %d to %s failed: %s", gen, request.provider, exc)
        channel.put(Failed(gen, str(exc)))
        return
    except Exception as exc:
        log.exception("request %d to %s crashed", gen, request.provider)
        channel.put(Failed(gen, f"unexpected error: {exc}"))
        return

    log.info("request %d to %s finished", gen, request.provider)
    channel.put(Done(gen))


def start_worker(
    request: WorkerRequest,
    channel: Channel,
    logger: logging.Logger | None = None,
) -> threading.Thread:
    thread = threading.Thread(
        target=run_request,
        args=(request, channel, logger),
        name=f"tllm-request-{request.generation}",
        daemon=True,
    )
    thread.start()
    return thread


Spawner = Callable[[WorkerRequest, Channel, logging.Logger | None], object]
