"""
Immutable chat message model.

Messages are stored and windowed as ``Message`` values and converted to
LangChain messages at the edges (persistence and the chat history adapter).
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    messages_from_dict,
    messages_to_dict,
)


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


_LANGCHAIN_TYPES = {
    Role.USER: HumanMessage,
    Role.ASSISTANT: AIMessage,
    Role.SYSTEM: SystemMessage,
}


@dataclass(frozen=True)
class Message:
    """A single chat message with optional metadata."""

    role: Role
    content: str
    timestamp: Optional[datetime] = None
    token_count: Optional[int] = None  # cached estimate, informational only

    @classmethod
    def user(cls, content: str, **metadata) -> "Message":
        return cls(Role.USER, content, **metadata)

    @classmethod
    def assistant(cls, content: str, **metadata) -> "Message":
        return cls(Role.ASSISTANT, content, **metadata)

    @classmethod
    def system(cls, content: str, **metadata) -> "Message":
        return cls(Role.SYSTEM, content, **metadata)

    @property
    def is_system(self) -> bool:
        return self.role is Role.SYSTEM

    def with_token_count(self, token_count: int) -> "Message":
        return replace(self, token_count=token_count)

    def stamped(self) -> "Message":
        """Return a copy carrying the current UTC time if it has no timestamp."""
        if self.timestamp is not None:
            return self
        return replace(self, timestamp=datetime.now(timezone.utc))

    def to_langchain(self) -> BaseMessage:
        metadata = {}
        if self.timestamp is not None:
            metadata["timestamp"] = self.timestamp.isoformat()
        if self.token_count is not None:
            metadata["token_count"] = self.token_count
        kwargs = {"metadata": metadata} if metadata else {}
        return _LANGCHAIN_TYPES[self.role](
            content=self.content, additional_kwargs=kwargs
        )

    @classmethod
    def from_langchain(cls, msg: BaseMessage) -> "Message":
        if isinstance(msg, HumanMessage):
            role = Role.USER
        elif isinstance(msg, AIMessage):
            role = Role.ASSISTANT
        elif isinstance(msg, SystemMessage):
            role = Role.SYSTEM
        else:
            raise ValueError(f"Unsupported message type: {type(msg).__name__}")

        content = msg.content
        if isinstance(content, list):
            # Keep only text blocks
            parts = []
            for block in content:
                if isinstance(block, str):
                    parts.append(block)
                elif isinstance(block, dict) and block.get("type") == "text":
                    parts.append(block.get("text", ""))
            content = "\n".join(parts)

        metadata = msg.additional_kwargs.get("metadata") or {}
        timestamp = metadata.get("timestamp")
        return cls(
            role=role,
            content=content,
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
            token_count=metadata.get("token_count"),
        )


def messages_to_dicts(messages) -> list[dict]:
    """Serialize messages to LangChain's JSON-compatible dict form."""
    return messages_to_dict([m.to_langchain() for m in messages])


def messages_from_dicts(data: list[dict]) -> list[Message]:
    """Inverse of ``messages_to_dicts``."""
    return [Message.from_langchain(m) for m in messages_from_dict(data)]
