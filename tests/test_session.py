"""Tests for the chat session: key handling, submission and the tick pipeline."""

from __future__ import annotations

import logging
import os
import time
from unittest.mock import patch

from tllm.ai.types import Message
from tllm.chat import store
from tllm.chat.session import IDLE_POLL, SEPARATOR, STREAMING_POLL, ChatSession, transcript_text
from tllm.chat.worker import Delta, Done, Failed
from tllm.tui.cursor import Mode
from tllm.tui.stdin_buffer import InputEvent

from .fake_socket import Connector, FakeSocket, sse_response

ESC = "\x1b"
ENTER = "\r"
BACKSPACE = "\x7f"
CTRL_W = "\x17"
CTRL_V = "\x16"
TAB = "\t"
UP = "\x1b[A"
DOWN = "\x1b[B"
SHIFT_UP = "\x1b[1;2A"
PAGE_DOWN = "\x1b[6~"
ALT_LEFT = "\x1bb"


class FakeSpawner:
    def __init__(self) -> None:
        self.requests = []

    def __call__(self, request, channel, logger=None) -> None:
        self.requests.append(request)


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def make_session(**kwargs) -> tuple[ChatSession, FakeSpawner]:
    spawner = FakeSpawner()
    kwargs.setdefault("clipboard", lambda: "clip")
    session = ChatSession(provider="openai", spawn=spawner, **kwargs)
    # Transcript text area 18x6, input text area 18x3
    session.set_viewports((20, 8), (20, 5))
    session.update()
    return session, spawner


def press(session: ChatSession, *keys: str) -> None:
    for key in keys:
        session.handle_event(InputEvent("key", key))
        session.update()


def type_text(session: ChatSession, text: str) -> None:
    press(session, *text)


def submit(session: ChatSession, text: str) -> None:
    press(session, "i")
    type_text(session, text)
    press(session, ESC, ENTER)


# ---------------------------------------------------------------------------
# Transcript text
# ---------------------------------------------------------------------------


def test_transcript_text_separators():
    messages = [Message.user("hi"), Message.assistant("yo")]
    assert transcript_text(messages) == "hi" + SEPARATOR + SEPARATOR + "yo" + SEPARATOR
    assert transcript_text([]) == ""


def test_loaded_conversation_is_shown():
    session, _ = make_session(conversation=[Message.user("hi"), Message.assistant("yo")])
    assert session.pending_update == ""
    assert session.transcript.buffer.content == transcript_text(session.conversation)


# ---------------------------------------------------------------------------
# Modes and editing
# ---------------------------------------------------------------------------


class TestEditing:
    def test_insert_and_escape(self) -> None:
        session, _ = make_session()
        assert session.mode is Mode.NORMAL
        press(session, "i")
        assert session.mode is Mode.INSERT
        press(session, ESC)
        assert session.mode is Mode.NORMAL
        press(session, "a")
        assert session.mode is Mode.INSERT

    def test_typing_moves_cursor_by_bytes(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "héllo")
        assert session.input.buffer.content == "héllo"
        assert session.input.cursor.col == 6

    def test_space_and_tab(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "a b")
        press(session, TAB)
        assert session.input.buffer.content == "a b    "

    def test_enter_inserts_newline(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "a")
        press(session, ENTER)
        type_text(session, "b")
        assert session.input.buffer.content == "a\nb"
        assert (session.input.cursor.row, session.input.cursor.col) == (1, 1)

    def test_insert_in_the_middle(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "ac")
        press(session, "\x1b[D")
        type_text(session, "b")
        assert session.input.buffer.content == "abc"
        assert session.input.cursor.col == 2

    def test_backspaces_are_batched_per_tick(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "abc")
        session.handle_event(InputEvent("key", BACKSPACE))
        session.handle_event(InputEvent("key", BACKSPACE))
        assert session.pending_deletions == 2
        assert session.input.buffer.content == "abc"
        session.update()
        assert session.pending_deletions == 0
        assert session.input.buffer.content == "a"
        assert session.input.cursor.col == 1

    def test_backspace_on_empty_input_is_ignored(self) -> None:
        session, _ = make_session()
        press(session, "i", BACKSPACE)
        assert session.pending_deletions == 0

    def test_excess_deletions_are_clamped(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "ab")
        session.pending_deletions = 10
        session.update()
        assert session.input.buffer.content == ""
        assert session.input.cursor.col == 0

    def test_backspace_removes_whole_character(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "a日")
        press(session, BACKSPACE)
        assert session.input.buffer.content == "a"

    def test_ctrl_w_deletes_word(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "foo bar  ")
        press(session, CTRL_W)
        assert session.input.buffer.content == "foo "
        assert session.input.cursor.col == 4

    def test_ctrl_v_pastes_clipboard(self) -> None:
        session, _ = make_session()
        press(session, "i", CTRL_V)
        assert session.input.buffer.content == "clip"

    def test_empty_clipboard_is_noop(self) -> None:
        session, _ = make_session(clipboard=lambda: "")
        press(session, "i", CTRL_V)
        assert session.input.buffer.content == ""

    def test_bracketed_paste(self) -> None:
        session, _ = make_session()
        session.handle_event(InputEvent("paste", "ignored in normal mode"))
        assert session.input.buffer.content == ""
        press(session, "i")
        session.handle_event(InputEvent("paste", "line one\r\nline two"))
        assert session.input.buffer.content == "line one\nline two"

    def test_alt_left_moves_by_word(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "foo bar")
        press(session, ALT_LEFT)
        assert session.input.cursor.col == 4

    def test_long_input_wraps(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "x" * 20)
        assert session.input.buffer.line_lengths == [18, 2]
        assert (session.input.line, session.input.cursor.col) == (1, 2)

    def test_resize_keeps_cursor_on_its_character(self) -> None:
        session, _ = make_session()
        press(session, "i")
        type_text(session, "abcdefghijkl")
        session.set_viewports((10, 8), (10, 5))
        session.update()
        assert (session.input.line, session.input.cursor.col) == (1, 4)


# ---------------------------------------------------------------------------
# Normal mode
# ---------------------------------------------------------------------------


class TestNormalMode:
    def test_q_quits(self) -> None:
        session, _ = make_session()
        press(session, "q")
        assert not session.running

    def test_q_in_insert_mode_is_text(self) -> None:
        session, _ = make_session()
        press(session, "i", "q")
        assert session.running
        assert session.input.buffer.content == "q"

    def test_tab_logs_input_state(self, caplog) -> None:
        session, _ = make_session()
        with caplog.at_level(logging.INFO, logger="tllm.chat.session"):
            press(session, TAB)
        assert "TextBuffer(" in caplog.text

    def test_transcript_follows_and_stops_following(self) -> None:
        lines = "\n".join(str(i) for i in range(10))
        session, _ = make_session(conversation=[Message.user(lines)])
        buf = session.transcript.buffer
        assert buf.line_count == 12
        assert buf.page == buf.max_page == 6

        press(session, UP)
        press(session, SHIFT_UP)
        assert buf.page == 0

        session.pending_update = "more"
        session.update()
        assert buf.page == 0

        press(session, PAGE_DOWN)
        assert buf.page == buf.max_page

    def test_word_motion_in_transcript(self) -> None:
        session, _ = make_session(conversation=[Message.user("one two three")])
        press(session, SHIFT_UP)
        session.transcript.cursor.row = 0
        session.transcript.cursor.col = 0
        press(session, "w")
        assert session.transcript.cursor.col == 3
        press(session, "w")
        assert session.transcript.cursor.col == 7
        press(session, "b")
        assert session.transcript.cursor.col == 4

    def test_down_stops_at_last_line(self) -> None:
        session, _ = make_session(conversation=[Message.user("a")])
        press(session, DOWN, DOWN, DOWN)
        assert session.transcript.line == session.transcript.buffer.line_count - 1


# ---------------------------------------------------------------------------
# Submission and the channel
# ---------------------------------------------------------------------------


class TestSubmission:
    def test_submit_spawns_one_worker(self) -> None:
        session, spawner = make_session(system_prompt="be brief", model="gpt-4o")
        submit(session, "2+2?")

        (request,) = spawner.requests
        assert request.generation == 1
        assert request.messages == [Message.user("2+2?")]
        assert request.system_prompt == "be brief"
        assert request.model == "gpt-4o"
        assert session.conversation == [Message.user("2+2?"), Message.assistant("")]
        assert session.in_flight
        assert session.input.buffer.content == ""
        assert session.transcript.buffer.content == "2+2?" + SEPARATOR

    def test_empty_input_is_not_submitted(self) -> None:
        session, spawner = make_session()
        press(session, ENTER)
        assert spawner.requests == []
        assert session.conversation == []

    def test_second_submit_waits_for_reply(self) -> None:
        session, spawner = make_session()
        submit(session, "first")
        submit(session, "second")
        assert len(spawner.requests) == 1
        assert session.status
        assert session.input.buffer.content == "second"

    def test_later_submissions_are_separated(self) -> None:
        session, _ = make_session()
        submit(session, "one")
        session.channel.put(Delta(1, "reply"))
        session.channel.put(Done(1))
        session.drain()
        session.drain()
        submit(session, "two")
        assert session.transcript.buffer.content == "one" + SEPARATOR + "reply" + SEPARATOR + "two" + SEPARATOR

    def test_snapshot_is_independent_of_the_conversation(self) -> None:
        session, spawner = make_session()
        submit(session, "q")
        session.channel.put(Delta(1, "partial"))
        session.drain()
        assert spawner.requests[0].messages == [Message.user("q")]

    def test_deltas_append_to_placeholder(self) -> None:
        session, _ = make_session()
        submit(session, "2+2?")
        session.channel.put(Delta(1, "4"))
        session.channel.put(Delta(1, "!"))
        assert session.drain() == Delta(1, "4")
        assert session.conversation[-1].content == "4"
        session.drain()
        session.update()
        assert session.conversation[-1].content == "4!"
        assert session.transcript.buffer.content.endswith(SEPARATOR + "4!")

    def test_stale_generation_is_dropped(self) -> None:
        session, _ = make_session()
        submit(session, "q")
        session.channel.put(Delta(0, "old"))
        assert session.drain() is None
        assert session.conversation[-1].content == ""
        assert session.in_flight

    def test_done_clears_in_flight(self) -> None:
        session, _ = make_session()
        submit(session, "q")
        session.channel.put(Done(1))
        session.drain()
        assert not session.in_flight

    def test_failure_sets_status_and_keeps_placeholder(self) -> None:
        session, _ = make_session()
        submit(session, "q")
        session.channel.put(Failed(1, "HTTP 401 Unauthorized: bad key"))
        session.drain()
        assert not session.in_flight
        assert "bad key" in session.status
        assert session.conversation == [Message.user("q"), Message.assistant("")]

    def test_status_clears_on_next_key(self) -> None:
        session, _ = make_session()
        submit(session, "q")
        session.channel.put(Failed(1, "boom"))
        session.drain()
        assert session.status == "Request failed: boom"
        press(session, DOWN)
        assert session.status == ""

    def test_waiting_status_shows_until_next_key(self) -> None:
        session, _ = make_session()
        submit(session, "first")
        submit(session, "second")
        assert session.status == "Still waiting for the previous reply"
        press(session, "i")
        assert session.status == ""

    def test_drain_empty_channel(self) -> None:
        session, _ = make_session()
        assert session.drain() is None


def test_poll_timeout_follows_stream_activity():
    clock = FakeClock()
    session, _ = make_session(clock=clock)
    assert session.poll_timeout() == IDLE_POLL

    submit(session, "q")
    assert session.poll_timeout() == STREAMING_POLL

    session.channel.put(Delta(1, "a"))
    session.channel.put(Done(1))
    session.drain()
    session.drain()
    clock.now += 1.0
    assert session.poll_timeout() == STREAMING_POLL
    clock.now += 5.0
    assert session.poll_timeout() == IDLE_POLL


def test_silent_request_relaxes_polling():
    clock = FakeClock()
    session, _ = make_session(clock=clock)
    submit(session, "q")
    clock.now += 4.0
    assert session.poll_timeout() == STREAMING_POLL

    clock.now += 26.0
    assert session.in_flight
    assert session.poll_timeout() == IDLE_POLL

    session.channel.put(Delta(1, "late"))
    session.drain()
    assert session.poll_timeout() == STREAMING_POLL


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


def test_streamed_reply_end_to_end(tmp_path):
    sock = FakeSocket(
        sse_response(
            'data: {"choices":[{"delta":{"role":"assistant"}}]}',
            'data: {"choices":[{"delta":{"content":"2+2 "}}]}',
            'data: {"choices":[{"delta":{"content":"is 4."}}]}',
            "data: [DONE]",
        )
    )
    session = ChatSession(provider="openai", connect=Connector(sock))
    session.set_viewports((40, 10), (40, 5))

    deltas = []
    with patch.dict(os.environ, {"OPENAI_API_KEY": "K"}):
        submit(session, "2+2?")
        deadline = time.monotonic() + 5
        while session.in_flight and time.monotonic() < deadline:
            item = session.drain()
            if isinstance(item, Delta):
                deltas.append(item.text)
            elif item is None:
                time.sleep(0.001)
            session.update()

    assert not session.in_flight
    assert "".join(deltas) == "2+2 is 4."
    assert session.transcript.buffer.content == "2+2?" + SEPARATOR + "2+2 is 4."

    path = store.save(tmp_path / "c.json", session.conversation)
    assert store.load(path) == [Message.user("2+2?"), Message.assistant("2+2 is 4.")]
