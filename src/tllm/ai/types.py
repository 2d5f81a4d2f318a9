"""Message types for conversations with an LLM provider.

Messages are Pydantic models so a conversation can be validated and
serialized to the persisted JSON shape ``{"message_type", "content"}``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

MessageType = Literal["system", "user", "assistant"]


class Message(BaseModel):
    """One turn of a conversation."""

    model_config = ConfigDict(extra="ignore")

    message_type: MessageType
    content: str = ""

    @field_validator("message_type", mode="before")
    @classmethod
    def _lowercase_type(cls, value: Any) -> Any:
        # Older conversation files stored "User"/"Assistant"
        return value.lower() if isinstance(value, str) else value

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(message_type="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(message_type="user", content=content)

    @classmethod
    def assistant(cls, content: str = "") -> Message:
        return cls(message_type="assistant", content=content)


Conversation = list[Message]
