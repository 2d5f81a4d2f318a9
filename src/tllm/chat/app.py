"""The render loop: drives a :class:`ChatSession` against a terminal."""

from __future__ import annotations

import logging

from tllm.ai.types import Message
from tllm.chat.render import Layout, Renderer, compute_layout
from tllm.chat.session import ChatSession
from tllm.tui.terminal import ProcessTerminal, Terminal

_logger = logging.getLogger(__name__)


class App:
    def __init__(
        self,
        session: ChatSession,
        terminal: Terminal | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.terminal: Terminal = terminal if terminal is not None else ProcessTerminal()
        self.renderer = Renderer(self.terminal)
        self._log = logger or _logger
        self._size: tuple[int, int] | None = None
        self._layout: Layout | None = None

    def _check_size(self) -> Layout:
        size = (self.terminal.columns, self.terminal.rows)
        resized = self.terminal.consume_resize()
        if self._layout is None or resized or size != self._size:
            self._size = size
            self._layout = compute_layout(*size)
            self.session.set_viewports(self._layout.transcript.size, self._layout.input.size)
            self.renderer.invalidate()
            self._log.debug("layout %dx%d: %s", size[0], size[1], self._layout)
        return self._layout

    def tick(self) -> None:
        """One frame: update, draw, drain one channel item, handle one input."""
        layout = self._check_size()
        self.session.update()
        self.renderer.draw(self.session, layout)
        self.session.drain()
        event = self.terminal.poll(self.session.poll_timeout())
        self.session.handle_event(event)

    def run(self) -> list[Message]:
        """Run until the user quits and return the conversation."""
        self.terminal.start()
        self.terminal.set_title(f"tllm ({self.session.provider})")
        try:
            while self.session.running:
                self.tick()
        finally:
            self.terminal.stop()
        self._log.info("session ended with %d messages", len(self.session.conversation))
        return self.session.conversation
