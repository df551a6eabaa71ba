"""
Shared embedding cost tracking utilities for the maintenance jobs.

Single source of truth for OpenAI embedding pricing.
All prices: USD per 1M input tokens.
"""
import logging
from dataclasses import dataclass

log = logging.getLogger("jobs")

# Prices as of Oct 2026 (OpenAI official)
COST_PER_1M: dict[str, float] = {
    "text-embedding-3-small": 0.02,
    "text-embedding-3-large": 0.13,
    "text-embedding-ada-002": 0.10,
}

# Rough chars-per-token ratio for English prose, used before any API call
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate token count of a text without calling the tokenizer."""
    if not text:
        return 0
    return max(1, len(text) // CHARS_PER_TOKEN)


def estimate_cost(tokens: int, model: str) -> float:
    """Return estimated cost in USD for embedding `tokens` input tokens.

    Unknown models are priced like text-embedding-3-small.
    """
    rate = COST_PER_1M.get(model, COST_PER_1M["text-embedding-3-small"])
    return tokens / 1e6 * rate


@dataclass
class CostTracker:
    """Accumulates token usage across embedding calls."""
    model: str
    tokens: int = 0
    calls: int = 0

    def add(self, tokens: int | None) -> None:
        self.calls += 1
        self.tokens += tokens or 0

    @property
    def cost(self) -> float:
        return estimate_cost(self.tokens, self.model)


def log_cost_line(label: str, tokens: int, model: str, *, calls: int | None = None) -> float:
    """Log a formatted cost line and return the cost in USD.

    Example output:
        Embeddings (text-embedding-3-small): tokens=12,345 (60 calls) ~$0.0002
    """
    cost = estimate_cost(tokens, model)
    parts = f"{label} ({model}): tokens={tokens:,}"
    if calls is not None:
        parts += f" ({calls} calls)"
    parts += f" ~${cost:.4f}"
    log.info(parts)
    return cost
