"""Provider adapters: wire encoding, reply decoding, errors, retries and cost."""
import json

import httpx
import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from providers import (
    AnthropicAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    ProviderError,
    estimate_cost,
    get_adapter,
)
from providers.google import sanitize_schema
from shared.config import AgentConfig
from workflows.study_plan.tools import function_declarations


def _conversation():
    """Task, a model turn with two calls, and both results."""
    return [
        HumanMessage(content="Plan 5 sessions"),
        AIMessage(
            content="Checking the calendar first.",
            tool_calls=[
                {"name": "get_calendar_overview", "args": {"limit": 5}, "id": "call_a", "type": "tool_call"},
                {"name": "submit_complete_plan", "args": {"sessions": []}, "id": "call_b", "type": "tool_call"},
            ],
        ),
        ToolMessage(content=json.dumps({"busy_periods": [], "total_days_in_range": 10}),
                    name="get_calendar_overview", tool_call_id="call_a"),
        ToolMessage(content=json.dumps({"error": "sessions must not be empty"}),
                    name="submit_complete_plan", tool_call_id="call_b", status="error"),
    ]


class Recorder:
    """MockTransport handler returning queued responses and keeping requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.pop(0)
        if isinstance(body, Exception):
            raise body
        return httpx.Response(status, json=body) if isinstance(body, dict) else httpx.Response(status, text=body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def _adapter(cls, provider, recorder, **kwargs):
    config = AgentConfig(provider=provider, model=kwargs.pop("model", "test-model"), api_key="sk-test")
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return cls(config, http_client=client, backoff=0.0, **kwargs)


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_anthropic_round_trip_encoding():
    recorder = Recorder((200, {
        "content": [
            {"type": "text", "text": "Submitting now."},
            {"type": "tool_use", "id": "toolu_1", "name": "submit_complete_plan", "input": {"sessions": []}},
        ],
        "usage": {"input_tokens": 1200, "output_tokens": 300},
    }))
    adapter = _adapter(AnthropicAdapter, "anthropic", recorder, model="claude-sonnet-4-5")

    reply = await adapter.send(_conversation(), function_declarations())

    request = recorder.requests[0]
    assert request.url == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "sk-test"
    assert request.headers["anthropic-version"] == "2023-06-01"

    body = recorder.last_json
    assert body["max_tokens"] == 4096
    assert [t["name"] for t in body["tools"]] == ["get_calendar_overview", "submit_complete_plan"]
    assert "input_schema" in body["tools"][1]
    messages = body["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[1]["content"][0] == {"type": "text", "text": "Checking the calendar first."}
    assert messages[1]["content"][1] == {
        "type": "tool_use", "id": "call_a", "name": "get_calendar_overview", "input": {"limit": 5},
    }
    results = messages[2]["content"]
    assert [r["tool_use_id"] for r in results] == ["call_a", "call_b"]
    assert results[1]["is_error"] is True

    assert reply.text == "Submitting now."
    assert reply.function_calls[0]["id"] == "toolu_1"
    assert reply.function_calls[0]["args"] == {"sessions": []}
    assert (reply.input_tokens, reply.output_tokens) == (1200, 300)
    assert reply.cost_usd == pytest.approx(1200 / 1e6 * 3.0 + 300 / 1e6 * 15.0)


# ---------------------------------------------------------------------------
# Google
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_google_round_trip_encoding():
    recorder = Recorder((200, {
        "candidates": [{"content": {"role": "model", "parts": [
            {"functionCall": {"name": "get_calendar_overview", "args": {"limit": 3}}},
        ]}}],
        "usageMetadata": {"promptTokenCount": 800, "candidatesTokenCount": 40},
    }))
    adapter = _adapter(GoogleAdapter, "google", recorder, model="gemini-2.0-flash")

    reply = await adapter.send(_conversation(), function_declarations())

    request = recorder.requests[0]
    assert request.url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
    assert request.headers["x-goog-api-key"] == "sk-test"

    body = recorder.last_json
    assert body["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 4096}
    declarations = body["tools"][0]["function_declarations"]
    assert [d["name"] for d in declarations] == ["get_calendar_overview", "submit_complete_plan"]

    contents = body["contents"]
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[1]["parts"][1] == {"functionCall": {"name": "get_calendar_overview", "args": {"limit": 5}}}
    responses = [p["functionResponse"] for p in contents[2]["parts"]]
    assert responses[0] == {
        "name": "get_calendar_overview",
        "response": {"name": "get_calendar_overview", "content": {"busy_periods": [], "total_days_in_range": 10}},
    }
    assert responses[1]["response"]["content"] == {"error": "sessions must not be empty"}

    call = reply.function_calls[0]
    assert call["name"] == "get_calendar_overview" and call["args"] == {"limit": 3}
    assert call["id"]  # synthesised locally
    assert (reply.input_tokens, reply.output_tokens) == (800, 40)


def test_google_schema_sanitizer_keeps_property_names():
    schema = {
        "type": "object",
        "title": "Args",
        "properties": {
            "title": {"type": "string", "title": "Title"},
            "date": {"type": "string", "format": "date"},
            "limit": {"type": "integer", "default": 20},
        },
        "additionalProperties": False,
        "required": ["title"],
    }

    cleaned = sanitize_schema(schema)

    assert cleaned == {
        "type": "object",
        "properties": {
            "title": {"type": "string"},
            "date": {"type": "string"},
            "limit": {"type": "integer"},
        },
        "required": ["title"],
    }


def test_google_no_candidates_is_an_empty_turn():
    adapter = GoogleAdapter(AgentConfig(provider="gemini", model="gemini-2.0-flash", api_key="k"))

    reply = adapter.parse_response({"promptFeedback": {"blockReason": "SAFETY"}})

    assert reply.text == "" and reply.function_calls == []


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_openai_round_trip_encoding():
    recorder = Recorder((200, {
        "choices": [{"message": {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "call_xyz",
                "type": "function",
                "function": {"name": "submit_complete_plan", "arguments": "{\"sessions\": []}"},
            }],
        }}],
        "usage": {"prompt_tokens": 500, "completion_tokens": 60},
    }))
    adapter = _adapter(OpenAIAdapter, "openai", recorder, model="gpt-4o")

    reply = await adapter.send(_conversation(), function_declarations())

    request = recorder.requests[0]
    assert request.url == "https://api.openai.com/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"

    body = recorder.last_json
    assert body["tool_choice"] == "auto"
    assert body["tools"][0]["type"] == "function"
    messages = body["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant", "tool", "tool"]
    assert messages[1]["tool_calls"][0] == {
        "id": "call_a",
        "type": "function",
        "function": {"name": "get_calendar_overview", "arguments": "{\"limit\": 5}"},
    }
    assert [m["tool_call_id"] for m in messages[2:]] == ["call_a", "call_b"]

    assert reply.text == ""
    assert reply.function_calls[0]["id"] == "call_xyz"
    assert reply.function_calls[0]["args"] == {"sessions": []}
    assert reply.cost_usd == pytest.approx(500 / 1e6 * 2.5 + 60 / 1e6 * 10.0)


def test_openai_malformed_arguments_become_empty_dict():
    adapter = OpenAIAdapter(AgentConfig(provider="openai", model="gpt-4o", api_key="k"))

    reply = adapter.parse_response({"choices": [{"message": {"tool_calls": [
        {"id": "c1", "type": "function", "function": {"name": "submit_complete_plan", "arguments": "{not json"}},
    ]}}]})

    assert reply.function_calls[0]["args"] == {}


# ---------------------------------------------------------------------------
# Errors, retries, cost
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_non_2xx_raises_provider_error_with_body():
    recorder = Recorder((401, '{"error": {"message": "invalid x-api-key"}}'))
    adapter = _adapter(AnthropicAdapter, "anthropic", recorder)

    with pytest.raises(ProviderError) as excinfo:
        await adapter.send(_conversation(), [])

    assert excinfo.value.status_code == 401
    assert "invalid x-api-key" in excinfo.value.body
    assert excinfo.value.provider == "anthropic"
    assert len(recorder.requests) == 1  # client errors are not retried


@pytest.mark.asyncio
async def test_rate_limit_is_retried_once():
    ok = {"choices": [{"message": {"content": "done"}}], "usage": {"prompt_tokens": 1, "completion_tokens": 1}}
    recorder = Recorder((429, "slow down"), (200, ok))
    adapter = _adapter(OpenAIAdapter, "openai", recorder, max_retries=1)

    reply = await adapter.send([HumanMessage(content="hi")], [])

    assert reply.text == "done"
    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_retries_are_bounded():
    recorder = Recorder((503, "unavailable"), (503, "still unavailable"))
    adapter = _adapter(OpenAIAdapter, "openai", recorder, max_retries=1)

    with pytest.raises(ProviderError) as excinfo:
        await adapter.send([HumanMessage(content="hi")], [])

    assert excinfo.value.status_code == 503
    assert excinfo.value.body == "still unavailable"
    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_transport_error_becomes_provider_error():
    recorder = Recorder((0, httpx.ConnectError("connection refused")))
    adapter = _adapter(GoogleAdapter, "google", recorder, max_retries=0)

    with pytest.raises(ProviderError) as excinfo:
        await adapter.send([HumanMessage(content="hi")], [])

    assert excinfo.value.status_code is None
    assert "connection refused" in excinfo.value.body


def test_cost_lookup_never_raises():
    assert estimate_cost("nonexistent", "model", 1000, 1000) == 0.0
    assert estimate_cost("openai", None, 1_000_000, 0) == pytest.approx(5.0)
    assert estimate_cost("openai", "gpt-4o-mini-2024-07-18", 1_000_000, 1_000_000) == pytest.approx(0.75)


@pytest.mark.parametrize("tag, expected", [
    ("claude", AnthropicAdapter),
    ("anthropic", AnthropicAdapter),
    ("gemini", GoogleAdapter),
    ("google", GoogleAdapter),
    ("openai", OpenAIAdapter),
])
def test_get_adapter_selects_by_provider_tag(tag, expected):
    adapter = get_adapter(AgentConfig(provider=tag, model="m", api_key="k"))

    assert isinstance(adapter, expected)


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError):
        AgentConfig(provider="mistral", model="m", api_key="k")
