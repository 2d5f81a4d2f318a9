"""tllm.ai: provider descriptors, raw HTTP/TLS framing and completion clients."""

from tllm.ai.client import prompt, prompt_stream
from tllm.ai.env import configured_providers, get_env_api_key
from tllm.ai.providers import PROVIDERS, ProviderSpec, RequestParams, build_request_params, get_provider
from tllm.ai.types import Conversation, Message, MessageType

__all__ = [
    "PROVIDERS",
    "Conversation",
    "Message",
    "MessageType",
    "ProviderSpec",
    "RequestParams",
    "build_request_params",
    "configured_providers",
    "get_env_api_key",
    "get_provider",
    "prompt",
    "prompt_stream",
]
