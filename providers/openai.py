"""OpenAI Chat Completions adapter."""
import json
import logging
from typing import Any, Dict, List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from .base import MAX_OUTPUT_TOKENS, ProviderReply, ToolProtocolAdapter, make_call, message_text

_logger = logging.getLogger("planner")


def decode_arguments(raw: Any) -> Dict[str, Any]:
    """Arguments arrive as a JSON string; anything unparsable becomes {}."""
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw or "{}")
    except (TypeError, ValueError):
        _logger.warning(f"OPENAI: Malformed tool arguments, passing {{}}: {raw!r}")
        return {}
    return decoded if isinstance(decoded, dict) else {}


class OpenAIAdapter(ToolProtocolAdapter):
    provider = "openai"
    base_url = "https://api.openai.com"

    @staticmethod
    def encode_messages(messages: Sequence[BaseMessage]) -> List[Dict[str, Any]]:
        encoded = []
        for message in messages:
            if isinstance(message, SystemMessage):
                encoded.append({"role": "system", "content": message_text(message)})
            elif isinstance(message, ToolMessage):
                encoded.append({
                    "role": "tool",
                    "tool_call_id": message.tool_call_id,
                    "content": message_text(message),
                })
            elif isinstance(message, AIMessage):
                entry: Dict[str, Any] = {"role": "assistant", "content": message_text(message) or None}
                if message.tool_calls:
                    entry["tool_calls"] = [
                        {
                            "id": call["id"],
                            "type": "function",
                            "function": {"name": call["name"], "arguments": json.dumps(call["args"])},
                        }
                        for call in message.tool_calls
                    ]
                encoded.append(entry)
            elif isinstance(message, HumanMessage):
                encoded.append({"role": "user", "content": message_text(message)})
        return encoded

    @staticmethod
    def encode_functions(functions: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [{"type": "function", "function": dict(fn)} for fn in functions]

    def build_request(self, messages, functions):
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": self.encode_messages(messages),
            "max_tokens": MAX_OUTPUT_TOKENS,
        }
        if functions:
            payload["tools"] = self.encode_functions(functions)
            payload["tool_choice"] = "auto"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        return f"{self.base_url}/v1/chat/completions", headers, payload

    def parse_response(self, data: Dict[str, Any]) -> ProviderReply:
        choices = data.get("choices") or []
        message = (choices[0].get("message") or {}) if choices else {}
        calls = []
        for call in message.get("tool_calls") or []:
            fn = call.get("function") or {}
            calls.append(make_call(fn.get("name", ""), decode_arguments(fn.get("arguments")), call.get("id")))
        usage = data.get("usage") or {}
        return ProviderReply(
            text=message.get("content") or "",
            function_calls=calls,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )
