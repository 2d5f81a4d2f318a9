"""Settings, directories and logging setup.

Settings come from ``~/.config/tllm/settings.json`` deep-merged over the
defaults below.  The system prompt is the trimmed contents of
``~/.config/tllm/system_prompt``.  Conversations and logs live under
``~/.local/tllm``.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tllm.ai.client import DEFAULT_TIMEOUT
from tllm.ai.providers import PROVIDERS
from tllm.errors import ConfigError

DEFAULT_PROVIDER = "anthropic"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _settings_defaults() -> dict[str, Any]:
    return {
        "provider": DEFAULT_PROVIDER,
        "models": {},
        "max_tokens": None,
        "timeout": DEFAULT_TIMEOUT,
        "stream": True,
    }


def deep_merge_settings(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge overrides into base settings.

    Nested dicts merge key by key; any other override value replaces the
    base value.  ``None`` overrides are skipped.
    """
    result = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge_settings(result[key], value)
        else:
            result[key] = value
    return result


@dataclass
class Settings:
    config_dir: Path
    data_dir: Path
    provider: str = DEFAULT_PROVIDER
    models: dict[str, str] = field(default_factory=dict)
    max_tokens: int | None = None
    timeout: float = DEFAULT_TIMEOUT
    stream: bool = True
    system_prompt: str = ""
    debug: bool = False

    @property
    def conversations_dir(self) -> Path:
        return self.data_dir / "conversations"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def log_file(self) -> Path:
        return self.logs_dir / "debug.log"

    def model_for(self, provider: str) -> str | None:
        return self.models.get(provider)


def _read_settings_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


def _validate(raw: dict[str, Any], path: Path) -> None:
    if raw["provider"] not in PROVIDERS:
        raise ConfigError(f"{path}: unknown provider {raw['provider']!r}")
    models = raw["models"]
    if not isinstance(models, dict) or not all(isinstance(v, str) for v in models.values()):
        raise ConfigError(f"{path}: 'models' must map provider names to model ids")
    if raw["max_tokens"] is not None and (not isinstance(raw["max_tokens"], int) or raw["max_tokens"] <= 0):
        raise ConfigError(f"{path}: 'max_tokens' must be a positive integer")
    if isinstance(raw["timeout"], bool) or not isinstance(raw["timeout"], (int, float)) or raw["timeout"] <= 0:
        raise ConfigError(f"{path}: 'timeout' must be a positive number of seconds")
    if not isinstance(raw["stream"], bool):
        raise ConfigError(f"{path}: 'stream' must be true or false")


def load_settings(home: str | Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Load settings for the user whose home directory is *home*."""
    home = Path(home) if home is not None else Path.home()
    env = os.environ if env is None else env
    config_dir = home / ".config" / "tllm"
    data_dir = home / ".local" / "tllm"

    settings_path = config_dir / "settings.json"
    raw = deep_merge_settings(_settings_defaults(), _read_settings_file(settings_path))
    _validate(raw, settings_path)

    prompt_path = config_dir / "system_prompt"
    system_prompt = ""
    if prompt_path.exists():
        try:
            system_prompt = prompt_path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"cannot read {prompt_path}: {exc}") from exc

    return Settings(
        config_dir=config_dir,
        data_dir=data_dir,
        provider=raw["provider"],
        models=dict(raw["models"]),
        max_tokens=raw["max_tokens"],
        timeout=float(raw["timeout"]),
        stream=raw["stream"],
        system_prompt=system_prompt,
        debug=bool(env.get("TLLM_DEBUG")),
    )


def ensure_dirs(settings: Settings) -> None:
    for directory in (settings.config_dir, settings.conversations_dir, settings.logs_dir):
        directory.mkdir(parents=True, exist_ok=True)


def configure_logging(settings: Settings) -> logging.Handler:
    """Send the ``tllm`` logger to the debug log file.

    The terminal belongs to the UI, so nothing is logged to stdout or stderr.
    """
    handler = logging.FileHandler(settings.log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger("tllm")
    root.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    root.addHandler(handler)
    return handler
