"""CLI entry point for tllm.

Without ``-i`` this opens the interactive chat; on exit the conversation is
saved under ``~/.local/tllm/conversations`` (or back to the ``-l`` file it
was loaded from).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from tllm.ai.client import prompt
from tllm.ai.env import ENV_KEYS, configured_providers, get_env_api_key
from tllm.ai.providers import PROVIDERS
from tllm.ai.types import Message
from tllm.chat import store
from tllm.chat.app import App
from tllm.chat.session import ChatSession, transcript_text
from tllm.config import Settings, configure_logging, ensure_dirs, load_settings
from tllm.errors import ConfigError, TllmError

logger = logging.getLogger(__name__)

NAME_PROMPT = """
you will receive as input a conversation.
respond _only_ with a name for the conversation.
respond with no more than 5 words.
use no punctuation or formatting
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tllm",
        description="Chat with an LLM provider from the terminal",
    )
    parser.add_argument("-a", "--api", help=f"Provider to use ({', '.join(PROVIDERS)})")
    parser.add_argument("-l", "--load", metavar="PATH", help="Continue a saved conversation")
    parser.add_argument("-i", "--adhoc", metavar="PROMPT", help="Send one prompt, print the reply and exit")
    parser.add_argument(
        "-n",
        "--name",
        action="store_true",
        help="Ask the provider to name the conversation before saving it",
    )
    return parser.parse_args(argv)


def _error(message: object) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _check_keys(provider: str) -> None:
    if not configured_providers():
        raise ConfigError(f"set at least one of {', '.join(ENV_KEYS.values())}")
    if not get_env_api_key(provider):
        raise ConfigError(f"{ENV_KEYS[provider]} environment variable not set")


def generate_name(provider: str, messages: list[Message], settings: Settings) -> str | None:
    """A short file-safe name for *messages*, or ``None`` if naming failed."""
    # One user turn holding the whole transcript, so the request never ends
    # on an assistant turn the provider would continue instead of answering
    request = [Message.user(transcript_text(messages))]
    try:
        reply = prompt(
            provider,
            NAME_PROMPT,
            request,
            model=settings.model_for(provider),
            timeout=settings.timeout,
        )
    except TllmError as exc:
        logger.error("failed to generate a conversation name: %s", exc)
        return None
    return store.slugify_name(reply.content) or None


def _save(messages: list[Message], destination: Path, fallback: Path) -> int:
    try:
        store.save(destination, messages)
    except OSError as exc:
        if destination == fallback:
            return _error(f"cannot save conversation to {destination}: {exc}")
        logger.warning("cannot save conversation to %s (%s), using %s", destination, exc, fallback)
        print(f"Cannot save to {destination}: {exc}", file=sys.stderr)
        return _save(messages, fallback, fallback)
    print(f"Conversation saved to {destination}")
    return 0


def _persist(args: argparse.Namespace, provider: str, messages: list[Message], settings: Settings) -> int:
    """Save *messages*, falling back to a timestamped file if the chosen path fails."""
    fallback = store.conversation_path(settings.conversations_dir, store.timestamp_name())
    destination = fallback
    if args.load:
        destination = Path(args.load)
    elif args.name:
        print("Generating name...")
        name = generate_name(provider, messages, settings)
        if name:
            destination = store.conversation_path(settings.conversations_dir, name)
    return _save(messages, destination, fallback)


def run_adhoc(args: argparse.Namespace, provider: str, settings: Settings) -> int:
    messages = [Message.user(args.adhoc)]
    reply = prompt(
        provider,
        settings.system_prompt,
        messages,
        model=settings.model_for(provider),
        max_tokens=settings.max_tokens,
        timeout=settings.timeout,
    )
    print(f"\n\n{reply.content}\n\n")
    messages.append(reply)
    return _persist(args, provider, messages, settings)


def run_interactive(args: argparse.Namespace, provider: str, settings: Settings) -> int:
    conversation = store.load(args.load) if args.load else []
    session = ChatSession(
        provider=provider,
        system_prompt=settings.system_prompt,
        conversation=conversation,
        model=settings.model_for(provider),
        max_tokens=settings.max_tokens,
        timeout=settings.timeout,
        stream=settings.stream,
        debug=settings.debug,
    )
    messages = App(session).run()
    if not messages:
        return 0
    return _persist(args, provider, messages, settings)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings()
        provider = args.api or settings.provider
        if provider not in PROVIDERS:
            raise ConfigError(f"invalid API {provider!r} (expected one of: {', '.join(PROVIDERS)})")
        _check_keys(provider)
        if args.load and not Path(args.load).exists():
            raise ConfigError(f"file does not exist: {args.load}")
        ensure_dirs(settings)
    except (ConfigError, OSError) as exc:
        return _error(exc)

    configure_logging(settings)
    logger.info("starting with provider %s", provider)

    try:
        if args.adhoc:
            return run_adhoc(args, provider, settings)
        return run_interactive(args, provider, settings)
    except TllmError as exc:
        logger.error("%s", exc)
        return _error(exc)


if __name__ == "__main__":
    sys.exit(main())
