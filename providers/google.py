"""Gemini generateContent adapter."""
import logging
from typing import Any, Dict, List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from .base import MAX_OUTPUT_TOKENS, ProviderReply, ToolProtocolAdapter, make_call, message_text, tool_payload

_logger = logging.getLogger("planner")

# JSON-schema keywords the Gemini function declaration schema rejects.
UNSUPPORTED_SCHEMA_KEYS = {"title", "default", "$defs", "definitions", "additionalProperties",
                           "format", "examples", "$schema"}


def sanitize_schema(schema: Any) -> Any:
    """Drop unsupported keywords; property names themselves are kept."""
    if isinstance(schema, list):
        return [sanitize_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema
    cleaned = {}
    for key, value in schema.items():
        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {name: sanitize_schema(prop) for name, prop in value.items()}
        elif key in UNSUPPORTED_SCHEMA_KEYS:
            continue
        else:
            cleaned[key] = sanitize_schema(value)
    return cleaned


class GoogleAdapter(ToolProtocolAdapter):
    """Gemini has no call ids; ids are generated locally and results are matched by name."""

    provider = "google"
    base_url = "https://generativelanguage.googleapis.com"

    def encode_messages(self, messages: Sequence[BaseMessage]):
        system_parts: List[str] = []
        contents: List[Dict[str, Any]] = []
        pending_results: List[Dict[str, Any]] = []

        def flush():
            if pending_results:
                contents.append({"role": "user", "parts": list(pending_results)})
                pending_results.clear()

        for message in messages:
            if isinstance(message, ToolMessage):
                name = message.name or ""
                pending_results.append({
                    "functionResponse": {
                        "name": name,
                        "response": {"name": name, "content": tool_payload(message)},
                    }
                })
                continue
            flush()
            if isinstance(message, SystemMessage):
                system_parts.append(message_text(message))
            elif isinstance(message, AIMessage):
                parts = []
                text = message_text(message)
                if text:
                    parts.append({"text": text})
                for call in message.tool_calls:
                    parts.append({"functionCall": {"name": call["name"], "args": call["args"]}})
                if parts:
                    contents.append({"role": "model", "parts": parts})
            elif isinstance(message, HumanMessage):
                contents.append({"role": "user", "parts": [{"text": message_text(message)}]})
        flush()
        return "\n\n".join(system_parts), contents

    @staticmethod
    def encode_functions(functions: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        declarations = []
        for fn in functions:
            declaration = {"name": fn["name"], "description": fn.get("description", "")}
            parameters = fn.get("parameters")
            if parameters and parameters.get("properties"):
                declaration["parameters"] = sanitize_schema(parameters)
            declarations.append(declaration)
        return [{"function_declarations": declarations}]

    def build_request(self, messages, functions):
        system, contents = self.encode_messages(messages)
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"temperature": 0.7, "maxOutputTokens": MAX_OUTPUT_TOKENS},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if functions:
            payload["tools"] = self.encode_functions(functions)
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.config.api_key}
        url = f"{self.base_url}/v1beta/models/{self.config.model}:generateContent"
        return url, headers, payload

    def parse_response(self, data: Dict[str, Any]) -> ProviderReply:
        candidates = data.get("candidates") or []
        if not candidates:
            _logger.warning(f"GEMINI: No candidates returned (promptFeedback={data.get('promptFeedback')})")
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []

        text_parts = []
        calls = []
        for part in parts:
            if "text" in part:
                text_parts.append(part["text"])
            elif "functionCall" in part:
                fc = part["functionCall"]
                calls.append(make_call(fc.get("name", ""), fc.get("args")))
        usage = data.get("usageMetadata") or {}
        return ProviderReply(
            text="".join(text_parts),
            function_calls=calls,
            input_tokens=int(usage.get("promptTokenCount") or 0),
            output_tokens=int(usage.get("candidatesTokenCount") or 0),
        )
