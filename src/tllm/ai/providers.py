"""Provider descriptors and their JSON wire shapes.

Each supported provider is described by a :class:`ProviderSpec`: where to
connect, how to authenticate, where the system prompt goes and which JSON
shape the responses use.  :func:`build_request_params` resolves a spec plus
a conversation into the concrete :class:`RequestParams` for one request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from tllm.ai.env import get_env_api_key
from tllm.ai.types import Message
from tllm.errors import ConfigError, PayloadError

AuthStyle = Literal["bearer", "x-api-key", "query"]
SystemPlacement = Literal["message", "field", "instruction"]
ResponseShape = Literal["openai", "anthropic", "gemini"]

DEFAULT_MAX_TOKENS = 4096


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    host: str
    path: str
    default_model: str
    auth: AuthStyle
    system: SystemPlacement
    shape: ResponseShape
    port: int = 443
    max_tokens: int | None = None
    extra_headers: tuple[tuple[str, str], ...] = ()
    # Gemini puts the model and method in the path
    stream_path: str | None = None


PROVIDERS: dict[str, ProviderSpec] = {
    "openai": ProviderSpec(
        name="openai",
        host="api.openai.com",
        path="/v1/chat/completions",
        default_model="gpt-4o-mini",
        auth="bearer",
        system="message",
        shape="openai",
    ),
    "groq": ProviderSpec(
        name="groq",
        host="api.groq.com",
        path="/openai/v1/chat/completions",
        default_model="llama-3.3-70b-versatile",
        auth="bearer",
        system="message",
        shape="openai",
    ),
    "anthropic": ProviderSpec(
        name="anthropic",
        host="api.anthropic.com",
        path="/v1/messages",
        default_model="claude-3-5-sonnet-latest",
        auth="x-api-key",
        system="field",
        shape="anthropic",
        max_tokens=DEFAULT_MAX_TOKENS,
        extra_headers=(("anthropic-version", "2023-06-01"),),
    ),
    "gemini": ProviderSpec(
        name="gemini",
        host="generativelanguage.googleapis.com",
        path="/v1beta/models/{model}:generateContent",
        default_model="gemini-1.5-flash-latest",
        auth="query",
        system="instruction",
        shape="gemini",
        stream_path="/v1beta/models/{model}:streamGenerateContent?alt=sse",
    ),
}


def get_provider(name: str) -> ProviderSpec:
    try:
        return PROVIDERS[name]
    except KeyError:
        known = ", ".join(sorted(PROVIDERS))
        raise ConfigError(f"unknown provider {name!r} (expected one of: {known})") from None


@dataclass
class RequestParams:
    """Everything needed to frame one request to one provider."""

    spec: ProviderSpec
    host: str
    path: str
    port: int
    model: str
    api_key: str
    stream: bool
    system_prompt: str
    messages: list[Message] = field(default_factory=list)
    max_tokens: int | None = None

    @property
    def shape(self) -> ResponseShape:
        return self.spec.shape

    @property
    def display_path(self) -> str:
        """Path without the query string, safe to log."""
        return self.path.split("?", 1)[0]


def build_request_params(
    provider: str,
    system_prompt: str,
    messages: list[Message],
    *,
    stream: bool,
    api_key: str | None = None,
    model: str | None = None,
    max_tokens: int | None = None,
) -> RequestParams:
    spec = get_provider(provider)
    key = api_key or get_env_api_key(provider)
    if not key:
        raise ConfigError(f"no API key configured for {provider}")

    model = model or spec.default_model
    template = spec.stream_path if stream and spec.stream_path else spec.path
    path = template.format(model=model)
    if spec.auth == "query":
        path += ("&" if "?" in path else "?") + f"key={key}"

    return RequestParams(
        spec=spec,
        host=spec.host,
        path=path,
        port=spec.port,
        model=model,
        api_key=key,
        stream=stream,
        system_prompt=system_prompt,
        messages=list(messages),
        max_tokens=max_tokens if max_tokens is not None else spec.max_tokens,
    )


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


def _conversation(messages: list[Message]) -> list[Message]:
    # Empty assistant placeholders and stray system turns never go on the wire
    return [
        m
        for m in messages
        if m.message_type != "system" and not (m.message_type == "assistant" and not m.content)
    ]


def request_body(params: RequestParams) -> dict[str, Any]:
    """The provider-specific JSON body for *params*."""
    turns = _conversation(params.messages)
    spec = params.spec

    if spec.shape == "gemini":
        body: dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m.message_type == "assistant" else "user",
                    "parts": [{"text": m.content}],
                }
                for m in turns
            ],
        }
        if params.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": params.system_prompt}]}
        return body

    wire = [{"role": m.message_type, "content": m.content} for m in turns]
    if spec.system == "message" and params.system_prompt:
        wire.insert(0, {"role": "system", "content": params.system_prompt})

    body = {"model": params.model, "messages": wire, "stream": params.stream}
    if params.max_tokens is not None:
        body["max_tokens"] = params.max_tokens
    if spec.system == "field" and params.system_prompt:
        body["system"] = params.system_prompt
    return body


def request_headers(params: RequestParams) -> list[tuple[str, str]]:
    """Authentication and provider-specific headers."""
    headers: list[tuple[str, str]] = []
    if params.spec.auth == "bearer":
        headers.append(("Authorization", f"Bearer {params.api_key}"))
    elif params.spec.auth == "x-api-key":
        headers.append(("x-api-key", params.api_key))
    headers.extend(params.spec.extra_headers)
    return headers


# ---------------------------------------------------------------------------
# Response extraction
# ---------------------------------------------------------------------------


def _dig(payload: Any, *path: str | int) -> Any:
    node = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return None
        elif not isinstance(node, dict):
            return None
        node = node[step] if isinstance(step, int) else node.get(step)
    return node


def extract_content(shape: ResponseShape, payload: Any) -> str:
    """Text of a complete (non-streamed) response.

    Raises :class:`PayloadError` when the response does not carry text at
    the path the provider documents.
    """
    if shape == "openai":
        text = _dig(payload, "choices", 0, "message", "content")
    elif shape == "anthropic":
        text = _dig(payload, "content", 0, "text")
    else:
        text = _dig(payload, "candidates", 0, "content", "parts", 0, "text")

    if not isinstance(text, str):
        raise PayloadError(f"{shape} response carries no text content")
    return text


def extract_delta(shape: ResponseShape, event: Any) -> str | None:
    """Text fragment carried by one streamed event, if any."""
    if shape == "openai":
        text = _dig(event, "choices", 0, "delta", "content")
    elif shape == "anthropic":
        if _dig(event, "type") != "content_block_delta":
            return None
        text = _dig(event, "delta", "text")
    else:
        text = _dig(event, "candidates", 0, "content", "parts", 0, "text")
    return text if isinstance(text, str) else None


def error_message(payload: Any) -> str | None:
    """The human-readable message from a provider error body."""
    message = _dig(payload, "error", "message")
    if isinstance(message, str):
        return message
    if isinstance(payload, list) and payload:
        return error_message(payload[0])
    return None
