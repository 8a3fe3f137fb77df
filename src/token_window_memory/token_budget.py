"""
Model-aware token estimation.

Counts are a local approximation: no tokenizer files are downloaded and the
same inputs always give the same result. Each model family has its own ruleset
for text density and for the formatting overhead that the chat format adds.
"""

import math
import warnings
from dataclasses import dataclass

from .config import match_model
from .errors import EstimationFallback


@dataclass(frozen=True)
class TokenizerRuleset:
    """Approximation parameters for one model family."""

    name: str
    chars_per_token: float  # non-CJK text density
    cjk_tokens_per_char: float  # CJK ideographs and kana tokenize near 1:1
    tokens_per_message: int  # role delimiters and separators per message
    priming_tokens: int = 0  # fixed cost once per conversation (reply priming)


# Rough default: ~3 chars per token for mixed CJK/English, +4 per message
DEFAULT_RULESET = TokenizerRuleset(
    name="default",
    chars_per_token=3.0,
    cjk_tokens_per_char=1.0,
    tokens_per_message=4,
)

_OPENAI = TokenizerRuleset(
    name="openai",
    chars_per_token=4.0,
    cjk_tokens_per_char=1.0,
    tokens_per_message=3,
    priming_tokens=3,  # every reply is primed with <|start|>assistant<|message|>
)

_ANTHROPIC = TokenizerRuleset(
    name="anthropic",
    chars_per_token=3.5,
    cjk_tokens_per_char=1.2,
    tokens_per_message=5,
    priming_tokens=1,
)

_DEEPSEEK = TokenizerRuleset(
    name="deepseek",
    chars_per_token=3.3,
    cjk_tokens_per_char=0.6,
    tokens_per_message=4,
    priming_tokens=2,
)

_GLM = TokenizerRuleset(
    name="glm",
    chars_per_token=3.5,
    cjk_tokens_per_char=0.7,
    tokens_per_message=4,
    priming_tokens=2,
)

# Model name prefix → ruleset
MODEL_RULESETS: dict[str, TokenizerRuleset] = {
    "gpt-": _OPENAI,
    "o1": _OPENAI,
    "o3": _OPENAI,
    "o4": _OPENAI,
    "claude": _ANTHROPIC,
    "deepseek": _DEEPSEEK,
    "glm": _GLM,
}


def _is_cjk(ch: str) -> bool:
    code = ord(ch)
    return (
        0x4E00 <= code <= 0x9FFF  # CJK unified ideographs
        or 0x3400 <= code <= 0x4DBF  # extension A
        or 0x3040 <= code <= 0x30FF  # hiragana, katakana
        or 0xAC00 <= code <= 0xD7AF  # hangul syllables
        or 0xF900 <= code <= 0xFAFF  # compatibility ideographs
    )


def estimate_tokens(text: str, ruleset: TokenizerRuleset = DEFAULT_RULESET) -> int:
    """Approximate the token count of a plain string."""
    if not text:
        return 0
    cjk = sum(1 for ch in text if _is_cjk(ch))
    other = len(text) - cjk
    tokens = math.ceil(other / ruleset.chars_per_token) + math.ceil(
        cjk * ruleset.cjk_tokens_per_char
    )
    return max(1, tokens)


class TokenEstimator:
    """
    Estimates token usage of messages for a given model.

    Usage:
        estimator = TokenEstimator()
        estimator.estimate(Message.user("hi"), "gpt-4o")
        estimator.estimate_messages(window, "gpt-4o")  # adds priming once

    Unknown model names fall back to ``DEFAULT_RULESET`` and emit one
    ``EstimationFallback`` warning per call. Callers that estimate the same
    conversation repeatedly within one operation pass ``report_fallback=False``
    on all but one of those calls.
    """

    def __init__(self, rulesets: dict[str, TokenizerRuleset] = None):
        self.rulesets = dict(MODEL_RULESETS if rulesets is None else rulesets)

    def resolve(self, model_name: str) -> tuple[TokenizerRuleset, bool]:
        """Return (ruleset, fell_back) for a model name."""
        ruleset = match_model(model_name, self.rulesets, reverse=False)
        if ruleset is None:
            return DEFAULT_RULESET, True
        return ruleset, False

    def _ruleset_for_call(self, model_name: str, report_fallback: bool) -> TokenizerRuleset:
        ruleset, fell_back = self.resolve(model_name)
        if fell_back and report_fallback:
            warnings.warn(
                EstimationFallback(
                    f"Unrecognized model {model_name!r}, "
                    f"using {ruleset.name} tokenizer ruleset"
                ),
                stacklevel=3,
            )
        return ruleset

    @staticmethod
    def _message_tokens(message, ruleset: TokenizerRuleset) -> int:
        return ruleset.tokens_per_message + estimate_tokens(message.content, ruleset)

    def estimate_text(self, text: str, model_name: str, report_fallback: bool = True) -> int:
        """Token count of bare text, without any message overhead."""
        return estimate_tokens(text, self._ruleset_for_call(model_name, report_fallback))

    def estimate(self, message, model_name: str, report_fallback: bool = True) -> int:
        """Token count of a single message including its per-message overhead."""
        return self._message_tokens(
            message, self._ruleset_for_call(model_name, report_fallback)
        )

    def estimate_messages(
        self, messages, model_name: str, report_fallback: bool = True
    ) -> int:
        """
        Token count of a conversation.

        Per-message costs are summed and the per-conversation priming cost is
        added once, rather than once per message.
        """
        ruleset = self._ruleset_for_call(model_name, report_fallback)
        messages = list(messages)
        if not messages:
            return 0
        total = sum(self._message_tokens(m, ruleset) for m in messages)
        return total + ruleset.priming_tokens
