"""
LangChain chat history backed by a token-window memory.

Lets a ``TokenWindowChatMemory`` be used wherever LangChain expects a
``BaseChatMessageHistory`` (e.g. ``RunnableWithMessageHistory``). Every added
message goes through the window, so the history a chain reads back is
always the pruned one.
"""

from typing import Sequence

from langchain_core.chat_history import BaseChatMessageHistory
from langchain_core.messages import BaseMessage

from .messages import Message
from .window import TokenWindowChatMemory


class TokenWindowChatMessageHistory(BaseChatMessageHistory):
    """Chat history for one conversation id."""

    def __init__(self, memory: TokenWindowChatMemory, conversation_id: str):
        self.memory = memory
        self.conversation_id = conversation_id

    @property
    def messages(self) -> list[BaseMessage]:
        return [m.to_langchain() for m in self.memory.get_all(self.conversation_id)]

    def add_messages(self, messages: Sequence[BaseMessage]) -> None:
        # Convert everything first so an unsupported message type adds nothing
        converted = [Message.from_langchain(m) for m in messages]
        for message in converted:
            self.memory.add(self.conversation_id, message)

    def clear(self) -> None:
        self.memory.clear(self.conversation_id)
