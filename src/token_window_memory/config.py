"""
Memory configuration and model context window mappings.
"""

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .errors import InvalidConfiguration

if TYPE_CHECKING:
    from .store import MemoryStore

# Model → context window size (tokens)
MODEL_CONTEXT_WINDOWS: dict[str, int] = {
    # Anthropic
    "claude-sonnet-4-5-20250929": 200_000,
    "claude-sonnet-4-20250514": 200_000,
    "claude-opus-4-20250514": 200_000,
    "claude-opus-4-5-20251101": 200_000,
    "claude-3-5-sonnet": 200_000,
    "claude-3-haiku": 200_000,
    # OpenAI
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4": 8_192,
    "gpt-3.5-turbo": 16_385,
    # DeepSeek
    "deepseek-chat": 64_000,
    "deepseek-reasoner": 64_000,
    # GLM
    "glm-4": 128_000,
    "glm-4-flash": 128_000,
    "glm-4.7-flash": 128_000,
}

DEFAULT_CONTEXT_WINDOW = 128_000


def match_model(model_name: str, table: dict, reverse: bool = True):
    """
    Look up a model in a name-keyed table: exact match first, then prefix.

    With ``reverse`` a key that merely starts with ``model_name`` also matches
    (so "gpt-4o" finds "gpt-4o-mini"); otherwise only ``model_name`` extending
    a key counts.
    """
    if not model_name:
        return None
    if model_name in table:
        return table[model_name]
    # Longest key wins so "gpt-4o-mini-2024" does not resolve to "gpt-4"
    for key in sorted(table, key=len, reverse=True):
        if model_name.startswith(key) or (reverse and key.startswith(model_name)):
            return table[key]
    return None


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class MemoryConfig:
    """Configuration for the token-window chat memory."""

    # Eviction threshold (required, > 0)
    max_tokens: int = 0

    # Tokenizer ruleset selector (required)
    model_name: str = ""

    # Injected store; None lets the factory build one from database_url
    store: Optional["MemoryStore"] = None

    # Postgres DSN, empty = in-memory store
    database_url: str = ""

    # Upper bound (seconds) for any single store call
    store_timeout: float = 5.0

    # Retries of a whole add() after an optimistic version conflict
    max_conflict_retries: int = 3

    # Whether the exempt system prompt counts toward max_tokens
    count_system_prompt: bool = False

    @classmethod
    def from_env(cls) -> "MemoryConfig":
        """Load configuration from environment variables."""
        try:
            return cls(
                max_tokens=int(os.getenv("MEMORY_MAX_TOKENS", "0")),
                model_name=os.getenv("MEMORY_MODEL_NAME", ""),
                database_url=os.getenv("DATABASE_URL", ""),
                store_timeout=float(os.getenv("MEMORY_STORE_TIMEOUT", "5.0")),
                max_conflict_retries=int(
                    os.getenv("MEMORY_MAX_CONFLICT_RETRIES", "3")
                ),
                count_system_prompt=_env_bool("MEMORY_COUNT_SYSTEM_PROMPT", "false"),
            )
        except ValueError as e:
            raise InvalidConfiguration(f"Malformed memory setting: {e}") from e

    def validate(self) -> "MemoryConfig":
        """Raise InvalidConfiguration if any setting is out of range."""
        if isinstance(self.max_tokens, bool) or not isinstance(self.max_tokens, int):
            raise InvalidConfiguration(
                f"max_tokens must be an integer, got {self.max_tokens!r}"
            )
        if self.max_tokens <= 0:
            raise InvalidConfiguration(
                f"max_tokens must be positive, got {self.max_tokens}"
            )
        if not self.model_name:
            raise InvalidConfiguration("model_name is required")
        if self.store_timeout <= 0:
            raise InvalidConfiguration(
                f"store_timeout must be positive, got {self.store_timeout}"
            )
        if self.max_conflict_retries < 0:
            raise InvalidConfiguration(
                f"max_conflict_retries must be >= 0, got {self.max_conflict_retries}"
            )
        return self

    def get_context_window(self, model_name: Optional[str] = None) -> int:
        """Resolve context window size from the model name."""
        size = match_model(model_name or self.model_name, MODEL_CONTEXT_WINDOWS)
        return size if size is not None else DEFAULT_CONTEXT_WINDOW
