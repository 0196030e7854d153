"""Anthropic Messages API adapter."""
import logging
from typing import Any, Dict, List, Sequence, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from .base import MAX_OUTPUT_TOKENS, ProviderReply, ToolProtocolAdapter, make_call, message_text

_logger = logging.getLogger("planner")

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(ToolProtocolAdapter):
    provider = "anthropic"
    base_url = "https://api.anthropic.com"

    def encode_messages(self, messages: Sequence[BaseMessage]) -> Tuple[str, List[Dict[str, Any]]]:
        system_parts: List[str] = []
        encoded: List[Dict[str, Any]] = []
        for message in messages:
            if isinstance(message, SystemMessage):
                system_parts.append(message_text(message))
            elif isinstance(message, ToolMessage):
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message_text(message),
                }
                if message.status == "error":
                    block["is_error"] = True
                # consecutive results share one user message
                last = encoded[-1] if encoded else None
                if (last and last["role"] == "user" and isinstance(last["content"], list)
                        and all(b.get("type") == "tool_result" for b in last["content"])):
                    last["content"].append(block)
                else:
                    encoded.append({"role": "user", "content": [block]})
            elif isinstance(message, AIMessage):
                blocks = []
                text = message_text(message)
                if text:
                    blocks.append({"type": "text", "text": text})
                for call in message.tool_calls:
                    blocks.append({"type": "tool_use", "id": call["id"], "name": call["name"], "input": call["args"]})
                if blocks:
                    encoded.append({"role": "assistant", "content": blocks})
            elif isinstance(message, HumanMessage):
                encoded.append({"role": "user", "content": message_text(message)})
        return "\n\n".join(system_parts), encoded

    @staticmethod
    def encode_functions(functions: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {
                "name": fn["name"],
                "description": fn.get("description", ""),
                "input_schema": fn.get("parameters") or {"type": "object", "properties": {}},
            }
            for fn in functions
        ]

    def build_request(self, messages, functions):
        system, encoded = self.encode_messages(messages)
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "messages": encoded,
        }
        if system:
            payload["system"] = system
        if functions:
            payload["tools"] = self.encode_functions(functions)
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        return f"{self.base_url}/v1/messages", headers, payload

    def parse_response(self, data: Dict[str, Any]) -> ProviderReply:
        text_parts = []
        calls = []
        for block in data.get("content") or []:
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                calls.append(make_call(block.get("name", ""), block.get("input"), block.get("id")))
        usage = data.get("usage") or {}
        return ProviderReply(
            text="".join(text_parts),
            function_calls=calls,
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
        )
