"""Environment-based API key resolution for LLM providers."""

from __future__ import annotations

import os

ENV_KEYS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def get_env_api_key(provider: str) -> str | None:
    """Get API key for a provider from environment variables.

    Returns None for unknown providers or when the variable is unset or empty.
    """
    env_var = ENV_KEYS.get(provider)
    if not env_var:
        return None
    return os.environ.get(env_var) or None


def configured_providers() -> list[str]:
    """Providers whose API key is present, in preference order."""
    return [provider for provider in ENV_KEYS if get_env_api_key(provider)]
