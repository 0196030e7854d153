"""Provider-neutral function-calling protocol.

The conversation is a list of langchain_core messages:

- HumanMessage: the task description
- AIMessage: a model turn, free text plus zero or more tool_calls
- ToolMessage: one function result (JSON content), keyed by tool_call_id

Each adapter only encodes that list into its provider's wire format and
decodes the provider's reply back into a ProviderReply.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from langchain_core.messages import AIMessage, BaseMessage, ToolMessage
from langchain_core.messages.tool import ToolCall, tool_call
from pydantic import BaseModel

from shared.config import AgentConfig
from shared.logs import log_conversation, preview
from .pricing import estimate_cost

_logger = logging.getLogger("planner")

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}
MAX_OUTPUT_TOKENS = 4096


class ProviderError(RuntimeError):
    """Non-2xx (or unreachable) provider response.

    `body` holds the provider's raw error text. The agent loop attaches
    `usage`, the token/cost totals of every turn that completed before the
    failure.
    """

    def __init__(self, provider: str, status_code: Optional[int], body: str):
        super().__init__(f"{provider} API error ({status_code if status_code is not None else 'no response'}): {body}")
        self.provider = provider
        self.status_code = status_code
        self.body = body
        self.usage: Optional[TokenUsage] = None


class TokenUsage(BaseModel):
    """Running token and cost totals."""
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cost_usd=self.cost_usd + other.cost_usd,
        )


@dataclass
class ProviderReply:
    """One decoded model turn."""
    text: str
    function_calls: List[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(input_tokens=self.input_tokens, output_tokens=self.output_tokens, cost_usd=self.cost_usd)

    def to_message(self) -> AIMessage:
        return AIMessage(
            content=self.text,
            tool_calls=list(self.function_calls),
            usage_metadata={
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "total_tokens": self.input_tokens + self.output_tokens,
            },
            response_metadata={"cost_usd": self.cost_usd},
        )


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def make_call(name: str, args: Optional[Dict[str, Any]], call_id: Optional[str] = None) -> ToolCall:
    return tool_call(name=name, args=dict(args or {}), id=call_id or new_call_id())


def tool_payload(message: ToolMessage) -> Any:
    """Decode a ToolMessage's JSON content; plain text is returned unchanged."""
    content = message.content
    if isinstance(content, str):
        try:
            return json.loads(content)
        except ValueError:
            return content
    return content


def message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


class ToolProtocolAdapter(ABC):
    """Sends a neutral conversation plus function declarations to one provider.

    Function declarations use the neutral {"name", "description", "parameters"}
    shape (JSON schema parameters).
    """

    provider: str = ""
    base_url: str = ""

    def __init__(
        self,
        config: AgentConfig,
        *,
        timeout: float = 60.0,
        max_retries: int = 1,
        backoff: float = 2.0,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        pricing: Optional[Dict] = None,
    ):
        self.config = config
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff = backoff
        if base_url:
            self.base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._pricing = pricing

    async def send(self, messages: Sequence[BaseMessage], functions: Sequence[Dict[str, Any]]) -> ProviderReply:
        """Ask the model for its next turn."""
        log_conversation(self.provider, messages)
        url, headers, payload = self.build_request(messages, functions)
        data = await self._post(url, headers, payload)
        reply = self.parse_response(data)
        reply.cost_usd = estimate_cost(self.provider, self.config.model,
                                       reply.input_tokens, reply.output_tokens, self._pricing)
        _logger.info(
            f"LLM RESP ({self.provider}/{self.config.model}): text={len(reply.text)} chars | "
            f"calls={[c['name'] for c in reply.function_calls]} | "
            f"tokens in={reply.input_tokens} out={reply.output_tokens} | cost=${reply.cost_usd:.6f}"
        )
        return reply

    @abstractmethod
    def build_request(
        self, messages: Sequence[BaseMessage], functions: Sequence[Dict[str, Any]]
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, json payload) for one call."""

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> ProviderReply:
        """Decode the provider's JSON reply (cost is filled in by send())."""

    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                if self._http_client is not None:
                    response = await self._http_client.post(url, headers=headers, json=payload, timeout=self.timeout)
                else:
                    async with httpx.AsyncClient(timeout=self.timeout) as client:
                        response = await client.post(url, headers=headers, json=payload)
            except httpx.TransportError as e:
                if attempt < attempts:
                    _logger.info(f"LLM RETRY {attempt}/{attempts} ({self.provider}) due to transport error: {e!r}")
                    await asyncio.sleep(self.backoff * 2 ** (attempt - 1))
                    continue
                raise ProviderError(self.provider, None, str(e)) from e

            if response.status_code in RETRYABLE_STATUS and attempt < attempts:
                _logger.info(f"LLM RETRY {attempt}/{attempts} ({self.provider}) due to HTTP {response.status_code}")
                await asyncio.sleep(self.backoff * 2 ** (attempt - 1))
                continue

            if not response.is_success:
                _logger.error(f"LLM ERROR ({self.provider}): HTTP {response.status_code} {preview(response.text, 500)}")
                raise ProviderError(self.provider, response.status_code, response.text)

            try:
                return response.json()
            except ValueError as e:
                raise ProviderError(self.provider, response.status_code, response.text) from e

        raise ProviderError(self.provider, None, "retries exhausted")
