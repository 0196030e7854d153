"""LLM provider adapters for the function-calling loop."""
from typing import Dict, Type

from shared.config import AgentConfig, normalize_provider
from .anthropic import AnthropicAdapter
from .base import ProviderError, ProviderReply, TokenUsage, ToolProtocolAdapter
from .google import GoogleAdapter
from .openai import OpenAIAdapter
from .pricing import PRICING, estimate_cost

ADAPTERS: Dict[str, Type[ToolProtocolAdapter]] = {
    "anthropic": AnthropicAdapter,
    "google": GoogleAdapter,
    "openai": OpenAIAdapter,
}


def get_adapter(config: AgentConfig, **kwargs) -> ToolProtocolAdapter:
    """Build the adapter for config.provider (aliases accepted).

    Keyword arguments (timeout, max_retries, backoff, base_url, http_client,
    pricing) are passed through to the adapter.
    """
    return ADAPTERS[normalize_provider(config.provider)](config, **kwargs)


__all__ = [
    "ADAPTERS",
    "AnthropicAdapter",
    "GoogleAdapter",
    "OpenAIAdapter",
    "PRICING",
    "ProviderError",
    "ProviderReply",
    "TokenUsage",
    "ToolProtocolAdapter",
    "estimate_cost",
    "get_adapter",
]
