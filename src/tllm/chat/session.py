"""Chat session state and the per-tick update pipeline.

The session owns both panes, the conversation and the channel that
request workers report on.  Everything here runs on the render thread;
workers only ever see a snapshot of the conversation and the channel.

One tick of the render loop is::

    session.update()          # paging, transcript flush, deletions, clamp
    renderer.draw(session)    # panes, mode bar, status
    session.drain()           # at most one channel item
    session.handle_event(terminal.poll(session.poll_timeout()))
"""

from __future__ import annotations

import logging
import queue
import time
from collections.abc import Callable

from tllm.ai.client import DEFAULT_TIMEOUT, Connector
from tllm.ai.types import Message
from tllm.chat.clipboard import get_contents
from tllm.chat.worker import ChannelItem, Delta, Done, Spawner, WorkerRequest, start_worker
from tllm.tui.buffer import TextBuffer
from tllm.tui.cursor import Cursor, Mode, Pane
from tllm.tui.keys import Key, KeyId, is_printable, parse_key
from tllm.tui.stdin_buffer import InputEvent

_logger = logging.getLogger(__name__)

SEPARATOR = "\n───\n"

# Poll intervals: fast while a reply is arriving, relaxed once it goes quiet
STREAMING_POLL = 0.005
IDLE_POLL = 0.025
QUIET_AFTER = 5.0


def transcript_text(messages: list[Message]) -> str:
    """Render a loaded conversation the way the transcript pane shows it."""
    parts: list[str] = []
    for i, message in enumerate(messages):
        if i > 0:
            parts.append(SEPARATOR)
        parts.append(message.content)
        parts.append(SEPARATOR)
    return "".join(parts)


class ChatSession:
    def __init__(
        self,
        *,
        provider: str,
        system_prompt: str = "",
        conversation: list[Message] | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        stream: bool = True,
        debug: bool = False,
        spawn: Spawner = start_worker,
        clipboard: Callable[[], str] | None = None,
        clock: Callable[[], float] = time.monotonic,
        connect: Connector | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.provider = provider
        self.system_prompt = system_prompt
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.stream = stream

        self.transcript = Pane(TextBuffer(debug=debug), title="Chat")
        self.input = Pane(TextBuffer(debug=debug), title="Input")
        self.mode = Mode.NORMAL

        self.conversation: list[Message] = list(conversation or [])
        self.pending_update = transcript_text(self.conversation)
        self.pending_deletions = 0

        self.channel: queue.Queue[ChannelItem] = queue.Queue()
        self.generation = 0
        self.in_flight = False
        self.status = ""
        self.running = True

        self._reply: Message | None = None
        # Time of the last submit or delta; drives the poll interval
        self._last_activity: float | None = None
        self._follow_transcript = True

        self._log = logger or _logger
        self._spawn = spawn
        self._clipboard = clipboard or (lambda: get_contents(self._log))
        self._clock = clock
        self._connect = connect

    @property
    def focused(self) -> Pane:
        return self.input if self.mode is Mode.INSERT else self.transcript

    # -- layout ---------------------------------------------------------------

    def set_viewports(self, transcript_size: tuple[int, int], input_size: tuple[int, int]) -> None:
        """Resize both panes, rewrapping and keeping each cursor on its character."""
        for pane, size in ((self.transcript, transcript_size), (self.input, input_size)):
            if pane.buffer.viewport == size:
                continue
            offset = pane.offset()
            pane.buffer.viewport = size
            pane.buffer.rewrap()
            pane.set_offset(offset)
        if self._follow_transcript:
            self.transcript.scroll_to_end()

    # -- per-tick pipeline ----------------------------------------------------

    def update(self) -> None:
        """Bring buffers and cursors up to date before a frame is drawn."""
        self.focused.scroll_into_view()

        if self.pending_update:
            buf = self.transcript.buffer
            buf.append(self.pending_update)
            self.pending_update = ""
            buf.rewrap()
            if self._follow_transcript:
                self.transcript.scroll_to_end()

        if self.pending_deletions:
            self._apply_deletions()

        self.transcript.clamp(insert_mode=False)
        self.input.clamp(insert_mode=True)

    def _apply_deletions(self) -> None:
        count, self.pending_deletions = self.pending_deletions, 0
        buf = self.input.buffer
        removed, offset = buf.delete_before(self.input.offset(), count)
        if removed:
            buf.rewrap()
            self.input.set_offset(offset)
        self._log.debug("deleted %d of %d queued characters", len(removed), count)

    def drain(self) -> ChannelItem | None:
        """Apply at most one item from the worker channel."""
        try:
            item = self.channel.get_nowait()
        except queue.Empty:
            return None

        if item.generation != self.generation:
            self._log.debug("dropping %s from stale request %d", type(item).__name__, item.generation)
            return None

        if isinstance(item, Delta):
            if self._reply is not None:
                self._reply.content += item.text
            self.pending_update += item.text
            self._last_activity = self._clock()
        elif isinstance(item, Done):
            self.in_flight = False
            self._reply = None
        else:
            self.in_flight = False
            self._reply = None
            self.status = f"Request failed: {item.message}"
        return item

    def poll_timeout(self) -> float:
        """Fast polling until QUIET_AFTER seconds pass without a submit or delta."""
        if self._last_activity is not None and self._clock() - self._last_activity < QUIET_AFTER:
            return STREAMING_POLL
        return IDLE_POLL

    # -- submission -----------------------------------------------------------

    def submit(self) -> bool:
        """Send the input pane as a user message; False if nothing was sent."""
        text = self.input.buffer.content
        if not text:
            return False
        if self.in_flight:
            self.status = "Still waiting for the previous reply"
            return False

        self.conversation.append(Message.user(text))
        prefix = SEPARATOR if len(self.conversation) > 1 else ""
        self.pending_update += prefix + text + SEPARATOR
        snapshot = [message.model_copy() for message in self.conversation]

        self._reply = Message.assistant()
        self.conversation.append(self._reply)

        self.input.buffer.clear()
        self.input.cursor = Cursor()
        self.generation += 1
        self.in_flight = True
        self._last_activity = self._clock()
        self._follow_transcript = True

        request = WorkerRequest(
            generation=self.generation,
            provider=self.provider,
            system_prompt=self.system_prompt,
            messages=snapshot,
            model=self.model,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
            stream=self.stream,
            connect=self._connect,
        )
        self._log.info("submitting request %d (%d messages) to %s", self.generation, len(snapshot), self.provider)
        self._spawn(request, self.channel, self._log)
        return True

    # -- input ----------------------------------------------------------------

    def handle_event(self, event: InputEvent | None) -> None:
        if event is None:
            return
        # Status messages last until the next keypress or paste
        self.status = ""
        if event.kind == "paste":
            if self.mode is Mode.INSERT:
                self._insert(event.data)
            return

        key = parse_key(event.data)
        if self.mode is Mode.NORMAL:
            self._handle_normal_key(key)
        else:
            self._handle_insert_key(key, event.data)

    def _handle_normal_key(self, key: KeyId | None) -> None:
        pane = self.transcript
        buf = pane.buffer

        if key == "q":
            self.running = False
        elif key in ("i", "a"):
            self.mode = Mode.INSERT
        elif key == Key.enter:
            self.submit()
        elif key == Key.tab:
            self._log.info("input %r cursor=%s content=%r", self.input.buffer, self.input.cursor, self.input.buffer.content)
        elif key == Key.left:
            pane.move_left()
        elif key == Key.right:
            pane.move_right()
        elif key == Key.up:
            pane.move_up()
            self._follow_transcript = False
        elif key == Key.down:
            pane.move_down()
            self._follow_transcript = pane.line >= buf.line_count - 1
        elif key in (Key.shift(Key.up), Key.page_up):
            pane.page_up()
            self._follow_transcript = False
        elif key in (Key.shift(Key.down), Key.page_down):
            pane.page_down()
            self._follow_transcript = buf.page >= buf.max_page
        elif key == Key.home:
            pane.line_home()
        elif key == Key.end:
            pane.line_end()
        elif key == "w":
            pane.word_forward()
        elif key == "b":
            pane.word_backward()

    def _handle_insert_key(self, key: KeyId | None, data: str) -> None:
        pane = self.input

        if key == Key.escape:
            self.mode = Mode.NORMAL
        elif key == Key.enter:
            self._insert("\n")
        elif key == Key.tab:
            self._insert("\t")
        elif key == Key.space:
            self._insert(" ")
        elif key == Key.backspace:
            # Applied once per tick, after the frame's other edits
            if len(pane.buffer) > 0:
                self.pending_deletions += 1
        elif key == Key.ctrl("w"):
            self._delete_word()
        elif key == Key.ctrl("v"):
            text = self._clipboard()
            if text:
                self._insert(text)
        elif key == Key.left:
            pane.move_left()
        elif key == Key.right:
            pane.move_right()
        elif key == Key.up:
            pane.move_up()
        elif key == Key.down:
            pane.move_down()
        elif key == Key.home:
            pane.line_home()
        elif key == Key.end:
            pane.line_end()
        elif key == Key.alt(Key.left):
            pane.word_backward()
        elif key == Key.alt(Key.right):
            pane.word_forward()
        elif key is not None and len(key) == 1 and key.isprintable():
            self._insert(key)
        elif key is None and is_printable(data):
            self._insert(data)

    def _insert(self, text: str) -> None:
        pane = self.input
        end = pane.buffer.insert(text, pane.line, pane.cursor.col)
        pane.buffer.rewrap()
        pane.set_offset(end)

    def _delete_word(self) -> None:
        pane = self.input
        end = pane.offset()
        removed = pane.buffer.delete_word(pane.line, pane.cursor.col)
        if not removed:
            return
        pane.buffer.rewrap()
        pane.set_offset(end - len(removed.encode("utf-8")))
