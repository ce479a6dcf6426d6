"""
Token counting and response budget calculation.

Estimates prompt sizes with the model tokenizer and derives the largest safe
max_tokens value for a completion.
"""

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Callable, Optional

import structlog
import tiktoken

if TYPE_CHECKING:
    from .pricing import ModelProfile

logger = structlog.get_logger(__name__)

# Share of the context window held back for tokenizer estimation error
PADDING_RATIO = 0.01
FALLBACK_ENCODING = "cl100k_base"

TokenCounter = Callable[[str, Optional[str]], int]


class InputTooLargeError(ValueError):
    """Raised when the input leaves no room for a response in the context window."""

    def __init__(self, model: str, input_tokens: int, context_window: int):
        super().__init__(
            f"Input text is too large to fit within the context window of {model} "
            f"({input_tokens} tokens, window {context_window})"
        )
        self.model = model
        self.input_tokens = input_tokens
        self.context_window = context_window


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported for a completed request."""
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens


@lru_cache(maxsize=None)
def _encoding_for(model: Optional[str]) -> tiktoken.Encoding:
    if model:
        try:
            return tiktoken.encoding_for_model(model)
        except KeyError:
            pass
    return tiktoken.get_encoding(FALLBACK_ENCODING)


def count_tokens(text: str, model: Optional[str] = None) -> int:
    """Estimate the number of tokens in text using the model's tokenizer."""
    return len(_encoding_for(model).encode(text, disallowed_special=()))


def compute_max_tokens(
    input_text: str,
    profile: "ModelProfile",
    counter: TokenCounter = count_tokens,
) -> int:
    """Compute the response token ceiling for input_text.

    Reserves 1% of the context window as padding and caps the result at the
    model's maximum output size.

    Args:
        input_text: Full prompt text (system + user)
        profile: Profile of the target model
        counter: Token estimator, defaults to the tiktoken counter

    Returns:
        min(context_window - input_tokens - padding, max_output_tokens)

    Raises:
        InputTooLargeError: If no tokens are left for the response
    """
    input_tokens = counter(input_text, profile.name)
    padding = math.ceil(profile.context_window * PADDING_RATIO)
    budget = profile.context_window - input_tokens - padding
    if budget <= 0:
        raise InputTooLargeError(profile.name, input_tokens, profile.context_window)
    return min(budget, profile.max_output_tokens)


def fallback_max_tokens(profile: "ModelProfile") -> int:
    """Half the context window, rounded half-up."""
    return math.floor(profile.context_window / 2 + 0.5)


def get_max_tokens_for_response(
    input_text: str,
    profile: "ModelProfile",
    counter: TokenCounter = count_tokens,
) -> int:
    """Response token ceiling, degrading to half the context window on overflow."""
    try:
        return compute_max_tokens(input_text, profile, counter)
    except InputTooLargeError as e:
        fallback = fallback_max_tokens(profile)
        logger.warning(
            "token_budget_fallback",
            model=profile.name,
            input_tokens=e.input_tokens,
            context_window=profile.context_window,
            max_tokens=fallback,
        )
        return fallback
