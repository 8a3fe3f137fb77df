"""
Shared pytest setup.

Puts ``src`` on ``sys.path`` so the tests import the package without an
install, and provides the test doubles used across the test modules.
"""

import sys
from pathlib import Path

import pytest

# Add src to PYTHONPATH
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from token_window_memory.store import InMemoryMemoryStore  # noqa: E402


class FixedTokenEstimator:
    """Counts every message as ``per_message`` tokens, no shared overhead."""

    def __init__(self, per_message: int = 40):
        self.per_message = per_message
        self.calls = 0

    def estimate(self, message, model_name: str, report_fallback: bool = True) -> int:
        return self.per_message

    def estimate_messages(
        self, messages, model_name: str, report_fallback: bool = True
    ) -> int:
        self.calls += 1
        return self.per_message * len(list(messages))


class LengthTokenEstimator:
    """One token per character of content."""

    def estimate(self, message, model_name: str, report_fallback: bool = True) -> int:
        return len(message.content)

    def estimate_messages(
        self, messages, model_name: str, report_fallback: bool = True
    ) -> int:
        return sum(len(m.content) for m in messages)


@pytest.fixture
def store():
    return InMemoryMemoryStore(timeout=0.5)


@pytest.fixture
def fixed_estimator():
    return FixedTokenEstimator(per_message=40)
