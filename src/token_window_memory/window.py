"""
Token-window chat memory.

Keeps each conversation within a token budget by evicting the oldest
user/assistant pairs (FIFO). A leading system message is the exempt prompt:
it is never evicted and, unless configured otherwise, does not count toward
the budget.

Usage:
    memory = TokenWindowChatMemory(MemoryConfig(
        max_tokens=4000, model_name="gpt-4o", store=InMemoryMemoryStore(),
    ))
    memory.add("user-42", Message.user("Hello"))
    memory.get_all("user-42")

The store is the source of truth. Every ``add`` reloads the conversation,
mutates a local copy and writes it back with one conditional ``replace``;
a version conflict restarts the whole add, up to ``max_conflict_retries``.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

from .config import MemoryConfig
from .errors import BudgetOverflowRetained, InvalidConfiguration, VersionConflict
from .messages import Message, Role
from .store import MemoryStore
from .token_budget import TokenEstimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowUpdate:
    """Outcome of one ``add``."""

    conversation_id: str
    messages: tuple  # persisted window, exempt prompt first if present
    evicted: tuple  # (user, assistant) pairs removed, oldest first
    total_tokens: int  # budgeted tokens of the persisted window
    overflow: bool  # over budget with nothing left that may be evicted

    @property
    def evicted_pairs(self) -> int:
        return len(self.evicted)


def split_prompt(messages: list) -> tuple[Optional[Message], list]:
    """
    Separate the exempt prompt from the pairable messages.

    Only one system message is kept: if several are stored, the latest wins
    and is treated as the leading prompt.
    """
    prompt = None
    window = []
    for msg in messages:
        if msg.is_system:
            prompt = msg
        else:
            window.append(msg)
    return prompt, window


class TokenWindowChatMemory:
    """Bounded short-term memory for many conversations sharing one store."""

    def __init__(self, config: MemoryConfig, estimator=None):
        config.validate()
        if config.store is None:
            raise InvalidConfiguration("A store is required")
        self.config = config
        self.max_tokens = config.max_tokens
        self.model_name = config.model_name
        self.store: MemoryStore = config.store
        self.estimator = estimator or TokenEstimator()

        context_window = config.get_context_window()
        if self.max_tokens > context_window:
            logger.warning(
                "max_tokens %d exceeds the %d token context window of %s",
                self.max_tokens, context_window, self.model_name,
            )

    def add(self, conversation_id: str, message: Message) -> WindowUpdate:
        """
        Add a message and prune the conversation back under budget.

        Raises StoreUnavailable if the store fails, in which case nothing was
        written, and VersionConflict if concurrent writers keep winning after
        all retries.
        """
        _check_id(conversation_id)
        # The only estimate in this add that may report EstimationFallback;
        # budget recomputations below stay quiet.
        message = message.stamped().with_token_count(
            self.estimator.estimate(message, self.model_name)
        )
        retries = 0

        while True:
            stored, version = self.store.load_versioned(conversation_id)
            update = self._apply(conversation_id, stored, message)
            try:
                self.store.replace(
                    conversation_id, list(update.messages), expected_version=version
                )
                break
            except VersionConflict:
                if retries >= self.config.max_conflict_retries:
                    logger.warning(
                        "Giving up on %s after %d version conflicts",
                        conversation_id, retries + 1,
                    )
                    raise
                retries += 1
                logger.info(
                    "Version conflict on %s, retrying add (%d/%d)",
                    conversation_id, retries, self.config.max_conflict_retries,
                )

        if update.overflow:
            warnings.warn(
                BudgetOverflowRetained(
                    f"Conversation {conversation_id!r} holds {update.total_tokens} "
                    f"tokens (limit {self.max_tokens}) with no evictable pair left"
                ),
                stacklevel=2,
            )
        return update

    def get_all(self, conversation_id: str) -> list[Message]:
        """Return the stored window. Reads never prune."""
        _check_id(conversation_id)
        return self.store.load(conversation_id)

    def clear(self, conversation_id: str) -> None:
        _check_id(conversation_id)
        self.store.delete(conversation_id)
        logger.info("Cleared conversation %s", conversation_id)

    def for_conversation(self, conversation_id: str) -> "ConversationMemory":
        _check_id(conversation_id)
        return ConversationMemory(self, conversation_id)

    def count_tokens(self, messages: list) -> int:
        """Budgeted token count of a window (honours count_system_prompt)."""
        prompt, window = split_prompt(messages)
        return self._total(prompt, window, report_fallback=True)

    def _total(
        self, prompt: Optional[Message], window: list, report_fallback: bool = False
    ) -> int:
        counted = window
        if prompt is not None and self.config.count_system_prompt:
            counted = [prompt] + window
        return self.estimator.estimate_messages(
            counted, self.model_name, report_fallback=report_fallback
        )

    def _apply(
        self, conversation_id: str, stored: list, message: Message
    ) -> WindowUpdate:
        prompt, window = split_prompt(stored)
        if message.is_system:
            if prompt is None or prompt.content != message.content:
                prompt = message
        else:
            window.append(message)

        total = self._total(prompt, window)
        logger.debug(
            "Conversation %s: %d messages, %d/%d tokens",
            conversation_id, len(window), total, self.max_tokens,
        )

        evicted = []
        # Pairs are positional: (0, 1), (2, 3), ... An odd trailing message
        # is never evicted on its own.
        while total > self.max_tokens and len(window) // 2 > 1:
            pair = (window[0], window[1])
            if pair[0].role is not Role.USER or pair[1].role is not Role.ASSISTANT:
                logger.debug(
                    "Evicting non user/assistant pair (%s, %s) from %s",
                    pair[0].role.value, pair[1].role.value, conversation_id,
                )
            del window[:2]
            evicted.append(pair)
            total = self._total(prompt, window)

        if evicted:
            logger.info(
                "Evicted %d pair(s) from %s, %d tokens remain (limit %d)",
                len(evicted), conversation_id, total, self.max_tokens,
            )

        messages = ([prompt] if prompt is not None else []) + window
        return WindowUpdate(
            conversation_id=conversation_id,
            messages=tuple(messages),
            evicted=tuple(evicted),
            total_tokens=total,
            overflow=total > self.max_tokens,
        )


class ConversationMemory:
    """A ``TokenWindowChatMemory`` bound to a single conversation id."""

    def __init__(self, memory: TokenWindowChatMemory, conversation_id: str):
        self.memory = memory
        self.id = conversation_id

    def add(self, message: Message) -> WindowUpdate:
        return self.memory.add(self.id, message)

    def messages(self) -> list[Message]:
        return self.memory.get_all(self.id)

    def clear(self) -> None:
        self.memory.clear(self.id)


def _check_id(conversation_id: str):
    if not conversation_id or not isinstance(conversation_id, str):
        raise ValueError(f"conversation_id must be a non-empty string, got {conversation_id!r}")
