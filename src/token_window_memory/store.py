"""
Conversation message stores.

A store maps a conversation id to its ordered message list. ``replace`` is a
whole-list swap and may be made conditional on the version returned by
``load_versioned``; that is the primitive the window uses to detect lost
updates between concurrent writers of the same conversation.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Optional

from .errors import StoreUnavailable, VersionConflict
from .messages import Message

logger = logging.getLogger(__name__)


class MemoryStore(ABC):
    """Durable conversation id → message list mapping."""

    def load(self, conversation_id: str) -> list[Message]:
        """Return the stored messages, or an empty list for an unknown id."""
        messages, _ = self.load_versioned(conversation_id)
        return messages

    @abstractmethod
    def load_versioned(self, conversation_id: str) -> tuple[list[Message], int]:
        """Return (messages, version). Version 0 means nothing is stored yet."""

    @abstractmethod
    def append(self, conversation_id: str, message: Message) -> None:
        """Add one message to the end of the stored list."""

    @abstractmethod
    def replace(
        self,
        conversation_id: str,
        messages: list[Message],
        expected_version: Optional[int] = None,
    ) -> None:
        """
        Atomically swap the stored list.

        With ``expected_version`` the swap only happens if the stored version
        still matches, otherwise ``VersionConflict`` is raised.
        """

    @abstractmethod
    def delete(self, conversation_id: str) -> None:
        """Forget a conversation. Unknown ids are ignored."""


class InMemoryMemoryStore(MemoryStore):
    """
    Process-local store.

    Each conversation has its own lock, so calls for different ids never wait
    on each other. A lock lives only while some call holds or waits on it, or
    while the conversation has stored messages, so deleted and unknown ids do
    not accumulate locks. Lists are stored as tuples and swapped by reference,
    so a reader sees either the old list or the new one.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._data: dict[str, tuple[tuple[Message, ...], int]] = {}
        # conversation id → [lock, number of calls holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _locked(self, conversation_id: str):
        with self._locks_guard:
            entry = self._locks.get(conversation_id)
            if entry is None:
                entry = self._locks[conversation_id] = [threading.Lock(), 0]
            entry[1] += 1
        lock = entry[0]
        try:
            if not lock.acquire(timeout=self.timeout):
                raise StoreUnavailable(
                    f"Timed out after {self.timeout}s waiting for conversation "
                    f"{conversation_id!r}"
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0 and conversation_id not in self._data:
                    del self._locks[conversation_id]

    def load_versioned(self, conversation_id: str) -> tuple[list[Message], int]:
        messages, version = self._data.get(conversation_id, ((), 0))
        logger.debug(
            "Loaded %d messages for %s (version %d)",
            len(messages), conversation_id, version,
        )
        return list(messages), version

    def append(self, conversation_id: str, message: Message) -> None:
        with self._locked(conversation_id):
            messages, version = self._data.get(conversation_id, ((), 0))
            self._data[conversation_id] = (messages + (message,), version + 1)

    def replace(
        self,
        conversation_id: str,
        messages: list[Message],
        expected_version: Optional[int] = None,
    ) -> None:
        with self._locked(conversation_id):
            _, version = self._data.get(conversation_id, ((), 0))
            if expected_version is not None and expected_version != version:
                raise VersionConflict(conversation_id, expected_version, version)
            self._data[conversation_id] = (tuple(messages), version + 1)

    def delete(self, conversation_id: str) -> None:
        with self._locked(conversation_id):
            self._data.pop(conversation_id, None)

    def conversation_ids(self) -> list[str]:
        return list(self._data)
