"""Per-provider token pricing (USD per 1M tokens)."""
import logging
from typing import Dict, Optional, Tuple

_logger = logging.getLogger("planner")

# (input, output) USD per 1M tokens; "default" applies when no model prefix matches.
PRICING: Dict[str, Dict[str, Tuple[float, float]]] = {
    "anthropic": {
        "default": (3.0, 15.0),
        "claude-3-5-haiku": (0.8, 4.0),
        "claude-haiku-4": (1.0, 5.0),
        "claude-opus-4": (15.0, 75.0),
    },
    "google": {
        "default": (0.075, 0.30),
        "gemini-1.5-pro": (1.25, 5.0),
        "gemini-2.0-flash": (0.10, 0.40),
        "gemini-2.5-pro": (1.25, 10.0),
    },
    "openai": {
        "default": (5.0, 15.0),
        "gpt-4o-mini": (0.15, 0.60),
        "gpt-4o": (2.5, 10.0),
        "gpt-4.1-mini": (0.40, 1.60),
    },
}


def rates_for(provider: str, model: Optional[str], table: Optional[Dict] = None) -> Tuple[float, float]:
    """Longest model-prefix match within the provider's table."""
    rates = (table or PRICING)[provider]
    best = None
    for prefix in rates:
        if prefix != "default" and model and model.startswith(prefix):
            if best is None or len(prefix) > len(best):
                best = prefix
    return rates[best or "default"]


def estimate_cost(
    provider: str,
    model: Optional[str],
    input_tokens: int,
    output_tokens: int,
    table: Optional[Dict] = None,
) -> float:
    """Cost of one call in USD. Never raises; unknown pricing costs 0.0."""
    try:
        input_rate, output_rate = rates_for(provider, model, table)
        return (input_tokens / 1_000_000) * input_rate + (output_tokens / 1_000_000) * output_rate
    except Exception as e:
        _logger.warning(f"PRICING: Could not price {provider}/{model}, recording 0.0: {e!r}")
        return 0.0
