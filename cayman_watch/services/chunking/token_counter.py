"""Token estimation and per-call budgets.

Counts are approximations from a fixed characters-per-token ratio, with no
tokenizer dependency. Treat them as upper-bound estimates and keep the
safety buffer when sizing oracle calls.
"""

import math
from dataclasses import dataclass

from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TokenCounter:
    """Estimate token counts for text spans."""

    CHARS_PER_TOKEN = 4.0

    def count_tokens(self, text: str) -> int:
        """Estimate tokens in text.

        Args:
            text: Text to count tokens for

        Returns:
            int: Estimated token count

        Example:
            >>> TokenCounter().count_tokens("Voluntary Liquidator")
            5
        """
        if not text:
            return 0
        return math.ceil(len(text) / self.CHARS_PER_TOKEN)

    def can_fit_in_limit(self, text: str, limit: int) -> bool:
        return self.count_tokens(text) <= limit


@dataclass(frozen=True)
class TokenBudget:
    """Context-window arithmetic for one oracle call.

    Attributes:
        context_limit: Global context ceiling of the oracle
        safety_buffer: Tokens never handed out; at least 1% of the ceiling
        min_output_tokens: Output budget always reserved for the response
        max_output_tokens: Upper clamp for the response budget
    """

    context_limit: int = 200000
    safety_buffer: int = 2000
    min_output_tokens: int = 8000
    max_output_tokens: int = 16000

    def __post_init__(self):
        if self.safety_buffer < math.ceil(self.context_limit * 0.01):
            raise ValueError("safety_buffer must be at least 1% of context_limit")
        if self.min_output_tokens > self.max_output_tokens:
            raise ValueError("min_output_tokens cannot exceed max_output_tokens")

    def input_budget(self, configured_max: int) -> int:
        """Largest input an oracle call may carry.

        Args:
            configured_max: Configured ``max_tokens_per_batch``

        Returns:
            int: Input token budget
        """
        ceiling = self.context_limit - self.safety_buffer - self.min_output_tokens
        return max(0, min(configured_max, ceiling))

    def output_budget(self, estimated_input_tokens: int) -> int:
        """Dynamic response budget for a call carrying the given input.

        Args:
            estimated_input_tokens: Estimated input size, prompt included

        Returns:
            int: Output tokens clamped to [min_output_tokens, max_output_tokens]
        """
        available = self.context_limit - estimated_input_tokens - self.safety_buffer
        max_tokens = max(self.min_output_tokens, min(self.max_output_tokens, available))

        LOGGER.debug(
            f"Token calculation: input={estimated_input_tokens}, "
            f"available={available}, max_tokens={max_tokens}"
        )
        return max_tokens
