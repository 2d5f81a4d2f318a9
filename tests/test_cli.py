"""Tests for the command-line entry point."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from tllm import cli
from tllm.ai.providers import build_request_params, request_body
from tllm.ai.types import Message
from tllm.chat import store
from tllm.chat.session import transcript_text
from tllm.errors import TransportError


@pytest.fixture
def home(tmp_path):
    env = {"HOME": str(tmp_path), "OPENAI_API_KEY": "K"}
    with patch.dict(os.environ, env, clear=True), patch.object(cli, "configure_logging"):
        yield tmp_path


def conversations(home) -> list:
    found = (home / ".local" / "tllm" / "conversations").glob("*.json")
    return sorted(path for path in found if path.is_file())


# --- Arguments ---


def test_parse_args():
    args = cli.parse_args(["-a", "groq", "-n", "-l", "c.json"])
    assert args.api == "groq"
    assert args.name is True
    assert args.load == "c.json"
    assert args.adhoc is None


def test_parse_args_long_forms():
    args = cli.parse_args(["--api", "gemini", "--adhoc", "hi"])
    assert args.api == "gemini"
    assert args.adhoc == "hi"
    assert args.name is False


# --- Startup checks ---


def test_unknown_provider(home, capsys):
    assert cli.main(["-a", "bard"]) == 1
    assert "invalid API" in capsys.readouterr().err


def test_no_keys_at_all(home, capsys):
    del os.environ["OPENAI_API_KEY"]
    assert cli.main(["-a", "openai"]) == 1
    assert "set at least one of" in capsys.readouterr().err


def test_selected_provider_needs_its_key(home, capsys):
    assert cli.main(["-a", "anthropic"]) == 1
    assert "ANTHROPIC_API_KEY" in capsys.readouterr().err


def test_load_missing_file(home, capsys):
    assert cli.main(["-a", "openai", "-l", str(home / "nope.json")]) == 1
    assert "does not exist" in capsys.readouterr().err


# --- Ad hoc prompt ---


def test_adhoc_prints_and_saves(home, capsys):
    with patch.object(cli, "prompt", return_value=Message.assistant("4")) as send:
        assert cli.main(["-a", "openai", "-i", "2+2?"]) == 0

    assert send.call_args.args[0] == "openai"
    assert send.call_args.args[2] == [Message.user("2+2?")]
    out = capsys.readouterr().out
    assert "\n\n4\n\n" in out
    assert "Conversation saved to" in out
    (path,) = conversations(home)
    assert store.load(path) == [Message.user("2+2?"), Message.assistant("4")]


def test_adhoc_failure_exits_nonzero(home, capsys):
    with patch.object(cli, "prompt", side_effect=TransportError("cannot connect")):
        assert cli.main(["-a", "openai", "-i", "hi"]) == 1
    assert "cannot connect" in capsys.readouterr().err
    assert conversations(home) == []


# --- Interactive ---


def test_interactive_saves_conversation(home):
    result = [Message.user("2+2?"), Message.assistant("4")]
    with patch.object(cli, "App") as app_cls:
        app_cls.return_value.run.return_value = result
        assert cli.main(["-a", "openai"]) == 0

    session = app_cls.call_args.args[0]
    assert session.provider == "openai"
    (path,) = conversations(home)
    assert path.stem.isdigit()
    assert store.load(path) == result


def test_interactive_nothing_to_save(home):
    with patch.object(cli, "App") as app_cls:
        app_cls.return_value.run.return_value = []
        assert cli.main(["-a", "openai"]) == 0
    assert conversations(home) == []


def test_interactive_generates_name(home):
    result = [Message.user("2+2?"), Message.assistant("4")]
    with patch.object(cli, "App") as app_cls, patch.object(
        cli, "prompt", return_value=Message.assistant("Simple Math Question")
    ) as send:
        app_cls.return_value.run.return_value = result
        assert cli.main(["-a", "openai", "-n"]) == 0

    assert send.call_args.args[1] == cli.NAME_PROMPT
    assert send.call_args.args[2] == [Message.user(transcript_text(result))]
    (path,) = conversations(home)
    assert path.name == "simple_math_question.json"


def test_name_failure_falls_back_to_timestamp(home):
    result = [Message.user("hi"), Message.assistant("yo")]
    with patch.object(cli, "App") as app_cls, patch.object(cli, "prompt", side_effect=TransportError("down")):
        app_cls.return_value.run.return_value = result
        assert cli.main(["-a", "openai", "-n"]) == 0
    (path,) = conversations(home)
    assert path.stem.isdigit()


def test_loaded_conversation_is_saved_back(home):
    path = store.save(home / "old.json", [Message.user("hi"), Message.assistant("yo")])
    updated = [Message.user("hi"), Message.assistant("yo"), Message.user("more"), Message.assistant("sure")]
    with patch.object(cli, "App") as app_cls:
        app_cls.return_value.run.return_value = updated
        assert cli.main(["-a", "openai", "-l", str(path)]) == 0

    session = app_cls.call_args.args[0]
    assert session.conversation == [Message.user("hi"), Message.assistant("yo")]
    assert store.load(path) == updated
    assert conversations(home) == []


def test_long_generated_name_is_capped(home):
    result = [Message.user("2+2?"), Message.assistant("4")]
    rambling = Message.assistant("Sure here is a name for the conversation " * 12)
    with patch.object(cli, "App") as app_cls, patch.object(cli, "prompt", return_value=rambling):
        app_cls.return_value.run.return_value = result
        assert cli.main(["-a", "openai", "-n"]) == 0
    (path,) = conversations(home)
    assert path.name == "sure_here_is_a_name.json"
    assert store.load(path) == result


def test_unwritable_name_falls_back_to_timestamp(home, capsys):
    result = [Message.user("2+2?"), Message.assistant("4")]
    taken = home / ".local" / "tllm" / "conversations" / "simple_math_question.json"
    taken.mkdir(parents=True)
    with patch.object(cli, "App") as app_cls, patch.object(
        cli, "prompt", return_value=Message.assistant("Simple Math Question")
    ):
        app_cls.return_value.run.return_value = result
        assert cli.main(["-a", "openai", "-n"]) == 0

    (path,) = conversations(home)
    assert path.stem.isdigit()
    assert store.load(path) == result
    assert "Cannot save to" in capsys.readouterr().err


def test_naming_request_ends_on_a_user_turn(home):
    result = [Message.user("2+2?"), Message.assistant("4")]
    settings = cli.load_settings()
    with patch.object(cli, "prompt", return_value=Message.assistant("Math")) as send:
        assert cli.generate_name("anthropic", result, settings) == "math"

    provider, system_prompt, messages = send.call_args.args
    params = build_request_params(provider, system_prompt, messages, stream=False, api_key="K")
    body = request_body(params)
    assert body["system"] == cli.NAME_PROMPT
    assert [turn["role"] for turn in body["messages"]] == ["user"]
    assert "2+2?" in body["messages"][0]["content"]
    assert "4" in body["messages"][0]["content"]
