"""
Error taxonomy for the token-window memory.

Exceptions propagate to the caller; the two warnings are non-fatal conditions
reported through the ``warnings`` module so callers can filter or escalate them.
"""


class ChatMemoryError(Exception):
    """Base class for all chat memory failures."""


class StoreUnavailable(ChatMemoryError):
    """The persistence backend could not be reached or timed out."""


class VersionConflict(ChatMemoryError):
    """A conditional replace lost a race with another writer."""

    def __init__(self, conversation_id: str, expected: int, actual=None):
        self.conversation_id = conversation_id
        self.expected = expected
        self.actual = actual
        detail = f", found {actual}" if actual is not None else ""
        super().__init__(
            f"Version conflict for conversation {conversation_id!r}: "
            f"expected {expected}{detail}"
        )


class InvalidConfiguration(ChatMemoryError, ValueError):
    """Configuration rejected at construction time."""


class EstimationFallback(UserWarning):
    """Model name not recognized; the default tokenizer ruleset was used."""


class BudgetOverflowRetained(UserWarning):
    """The newest exchange alone exceeds max_tokens and was kept anyway."""
