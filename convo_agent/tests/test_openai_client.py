import json

import httpx
import pytest
import respx
from httpx import Response

from convo_agent.domain.exceptions import ApiError, NetworkError, RateLimitError, UpstreamError
from convo_agent.domain.models import ChatMessage
from convo_agent.providers.openai_client import OpenAIClient
from convo_agent.providers.registry import CompletionOptions
from convo_agent.tools.definitions import ToolCall, ToolDef, ToolParam

URL = "http://llm.test/v1/chat/completions"


def _client(**overrides) -> OpenAIClient:
    opts = dict(model="test-model", base_url="http://llm.test/v1", api_key="sk-test-0000", timeout=1.0)
    opts.update(overrides)
    return OpenAIClient(CompletionOptions(**opts))


def _tool() -> ToolDef:
    return ToolDef(
        name="get_channel_info",
        description="Get channel information.",
        params={"channel_id": ToolParam(name="channel_id", description="Channel id.", required=True, schema={"type": "integer"})},
    )


MSGS = [ChatMessage(role="system", content="sys"), ChatMessage(role="user", content="hi")]


@pytest.mark.asyncio
async def test_complete_payload_and_parse():
    client = _client(temperature=0.5)
    captured = {}
    try:
        with respx.mock(assert_all_called=True) as respx_mock:

            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                captured["auth"] = request.headers.get("authorization")
                return Response(200, json={"choices": [{"message": {"role": "assistant", "content": "ok"}}]})

            respx_mock.post(URL).mock(side_effect=handler)
            assert await client.complete(MSGS) == "ok"
    finally:
        await client.aclose()
    payload = captured["json"]
    assert payload["model"] == "test-model"
    assert payload["temperature"] == 0.5
    assert "top_p" not in payload and "max_tokens" not in payload
    assert "tools" not in payload and "tool_choice" not in payload
    assert payload["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]
    assert captured["auth"] == "Bearer sk-test-0000"


@pytest.mark.asyncio
async def test_complete_with_tools_payload_and_tool_calls():
    client = _client()
    captured = {}
    body = {
        "choices": [
            {
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {"id": "call_1", "type": "function", "function": {"name": "get_channel_info", "arguments": '{"channel_id": 42}'}}
                    ],
                }
            }
        ]
    }
    try:
        with respx.mock(assert_all_called=True) as respx_mock:

            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                return Response(200, json=body)

            respx_mock.post(URL).mock(side_effect=handler)
            text, calls = await client.complete_with_tools(MSGS, [_tool()])
    finally:
        await client.aclose()
    assert text == ""
    assert calls == [ToolCall(id="call_1", name="get_channel_info", arguments='{"channel_id": 42}')]
    payload = captured["json"]
    assert payload["tool_choice"] == "auto"
    fn = payload["tools"][0]["function"]
    assert fn["name"] == "get_channel_info"
    assert fn["parameters"]["required"] == ["channel_id"]


@pytest.mark.asyncio
async def test_complete_with_tools_final_answer():
    client = _client()
    try:
        with respx.mock() as respx_mock:
            respx_mock.post(URL).mock(return_value=Response(200, json={"choices": [{"message": {"content": "final"}}]}))
            text, calls = await client.complete_with_tools(MSGS, [_tool()], tool_choice="required")
    finally:
        await client.aclose()
    assert text == "final"
    assert calls is None


@pytest.mark.asyncio
async def test_tool_intent_messages_are_serialized():
    client = _client()
    captured = {}
    msgs = MSGS + [
        ChatMessage(role="assistant", content="", tool_calls=[ToolCall(id="c1", name="x", arguments="{bad")]),
        ChatMessage(role="tool", content="result", tool_call_id="c1"),
    ]
    try:
        with respx.mock() as respx_mock:

            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                return Response(200, json={"choices": [{"message": {"content": "done"}}]})

            respx_mock.post(URL).mock(side_effect=handler)
            await client.complete_with_tools(msgs, [_tool()])
    finally:
        await client.aclose()
    assistant, tool = captured["json"]["messages"][2:]
    assert assistant["content"] is None
    assert assistant["tool_calls"][0] == {"id": "c1", "type": "function", "function": {"name": "x", "arguments": "{bad"}}
    assert tool == {"role": "tool", "content": "result", "tool_call_id": "c1"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body,code",
    [
        ({"choices": []}, "NO_CHOICE"),
        ({"choices": [{"message": {"content": ""}}]}, "EMPTY_CONTENT"),
        ({"choices": [{"message": {"content": None}}]}, "EMPTY_CONTENT"),
        ({"choices": [{}]}, "BAD_RESPONSE"),
        ({"choices": [{"message": {"content": {"x": 1}}}]}, "BAD_RESPONSE"),
        ({"choices": [{"message": {"content": ["a", "b"]}}]}, "BAD_RESPONSE"),
    ],
)
async def test_unusable_responses_raise_upstream_error(body, code):
    client = _client()
    try:
        with respx.mock() as respx_mock:
            respx_mock.post(URL).mock(return_value=Response(200, json=body))
            with pytest.raises(UpstreamError) as exc_info:
                await client.complete(MSGS)
    finally:
        await client.aclose()
    assert exc_info.value.code == code


@pytest.mark.asyncio
async def test_http_errors_are_classified():
    client = _client()
    try:
        with respx.mock() as respx_mock:
            route = respx_mock.post(URL)
            route.mock(return_value=Response(429, json={"error": "slow down"}))
            with pytest.raises(RateLimitError):
                await client.complete(MSGS)
            route.mock(return_value=Response(500, text="internal"))
            with pytest.raises(ApiError) as exc_info:
                await client.complete_with_tools(MSGS, [_tool()])
            assert exc_info.value.http_status == 500
            route.mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(NetworkError) as net_info:
                await client.complete(MSGS)
            assert net_info.value.code == "NETWORK_ERROR"
            route.mock(side_effect=httpx.ReadTimeout("slow"))
            with pytest.raises(NetworkError) as timeout_info:
                await client.complete(MSGS)
            assert timeout_info.value.code == "MODEL_TIMEOUT"
            route.mock(return_value=Response(200, text="not json"))
            with pytest.raises(UpstreamError) as bad_info:
                await client.complete(MSGS)
            assert bad_info.value.code == "BAD_RESPONSE"
    finally:
        await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message",
    [
        {"content": None, "tool_calls": ["oops"]},
        {"content": None, "tool_calls": {"id": "c1"}},
        {"content": None, "tool_calls": [{"id": "c1", "function": "weather"}]},
        {"content": None, "function_call": "weather"},
        {"content": {"text": "hi"}, "tool_calls": [{"id": "c1", "function": {"name": "x", "arguments": "{}"}}]},
        {"content": 42},
    ],
)
async def test_malformed_tool_responses_raise_upstream_error(message):
    client = _client()
    try:
        with respx.mock() as respx_mock:
            respx_mock.post(URL).mock(return_value=Response(200, json={"choices": [{"message": message}]}))
            with pytest.raises(UpstreamError) as exc_info:
                await client.complete_with_tools(MSGS, [_tool()])
    finally:
        await client.aclose()
    assert exc_info.value.code == "BAD_RESPONSE"
