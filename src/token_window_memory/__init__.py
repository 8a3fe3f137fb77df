"""
Token-window short-term memory for chat agents.

Stores each conversation's messages and keeps them within a token budget:

- Token Estimator: model-aware local approximation of token counts
- Memory Store: durable conversation id → message list (in memory or PostgreSQL)
- Token-Window Chat Memory: adds messages and evicts the oldest
  user/assistant pairs when the budget is exceeded, never the system prompt
"""

from .config import MemoryConfig
from .errors import (
    BudgetOverflowRetained,
    ChatMemoryError,
    EstimationFallback,
    InvalidConfiguration,
    StoreUnavailable,
    VersionConflict,
)
from .factory import create_chat_memory, create_store
from .history import TokenWindowChatMessageHistory
from .messages import Message, Role
from .store import InMemoryMemoryStore, MemoryStore
from .token_budget import TokenEstimator, TokenizerRuleset, estimate_tokens
from .window import ConversationMemory, TokenWindowChatMemory, WindowUpdate

__all__ = [
    "BudgetOverflowRetained",
    "ChatMemoryError",
    "ConversationMemory",
    "EstimationFallback",
    "InMemoryMemoryStore",
    "InvalidConfiguration",
    "MemoryConfig",
    "MemoryStore",
    "Message",
    "Role",
    "StoreUnavailable",
    "TokenEstimator",
    "TokenWindowChatMemory",
    "TokenWindowChatMessageHistory",
    "TokenizerRuleset",
    "VersionConflict",
    "WindowUpdate",
    "create_chat_memory",
    "create_store",
    "estimate_tokens",
]
