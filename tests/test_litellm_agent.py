"""Tests for the litellm connector. All mock litellm.acompletion (no real API calls)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from determinishtic.agent import SessionEnded, ToolCallEvent, ToolManifestEntry, ToolResponse
from determinishtic.builder import ThinkBuilder
from determinishtic.errors import NoResultError, TransportFailure
from determinishtic.litellm_agent import (
    NUDGE_MESSAGE,
    LiteLLMAgentConnector,
    _extract_tool_calls,
)


class Query(BaseModel):
    term: str


def lookup(q: Query) -> str:
    return f"found {q.term}"


def _tool_call(call_id: str, name: str, arguments: dict) -> MagicMock:
    tc = MagicMock()
    tc.id = call_id
    tc.type = "function"
    tc.function.name = name
    tc.function.arguments = json.dumps(arguments)
    return tc


def _mock_response(
    content: str = "",
    tool_calls: list | None = None,
    finish_reason: str = "stop",
) -> MagicMock:
    """Build a mock litellm response."""
    mock = MagicMock()
    mock.choices = [MagicMock()]
    mock.choices[0].message.content = content
    mock.choices[0].message.tool_calls = tool_calls
    mock.choices[0].finish_reason = finish_reason
    return mock


MANIFEST = [ToolManifestEntry("lookup", "Look up a term", {"type": "object", "properties": {}})]


class TestExtractToolCalls:
    def test_no_tool_calls(self) -> None:
        assert _extract_tool_calls(_mock_response().choices[0].message) == []

    def test_plain_dicts(self) -> None:
        message = _mock_response(tool_calls=[_tool_call("c1", "lookup", {"term": "x"})]).choices[0].message
        assert _extract_tool_calls(message) == [
            {
                "id": "c1",
                "type": "function",
                "function": {"name": "lookup", "arguments": '{"term": "x"}'},
            }
        ]


class TestChannel:
    @pytest.mark.asyncio
    @patch("determinishtic.litellm_agent.litellm.acompletion", new_callable=AsyncMock)
    async def test_request_shape(self, mock_acomp: AsyncMock) -> None:
        mock_acomp.return_value = _mock_response(
            tool_calls=[_tool_call("c1", "lookup", {"term": "x"})], finish_reason="tool_calls"
        )
        connector = LiteLLMAgentConnector("gpt-4o", timeout=30, temperature=0)
        channel = await connector.open_session("Do it", MANIFEST, instructions="Be brief")
        event = await channel.next_event()

        assert event == ToolCallEvent("lookup", "c1", '{"term": "x"}')
        kwargs = mock_acomp.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["timeout"] == 30
        assert kwargs["temperature"] == 0
        assert kwargs["tools"] == [MANIFEST[0].to_openai()]
        assert kwargs["messages"][:2] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Do it"},
        ]

    @pytest.mark.asyncio
    @patch("determinishtic.litellm_agent.litellm.acompletion", new_callable=AsyncMock)
    async def test_must_answer_before_next_event(self, mock_acomp: AsyncMock) -> None:
        mock_acomp.return_value = _mock_response(tool_calls=[_tool_call("c1", "lookup", {})])
        channel = await LiteLLMAgentConnector("m").open_session("p", MANIFEST)
        await channel.next_event()
        with pytest.raises(TransportFailure, match="unanswered"):
            await channel.next_event()

    @pytest.mark.asyncio
    async def test_respond_unknown_call(self) -> None:
        channel = await LiteLLMAgentConnector("m").open_session("p", MANIFEST)
        with pytest.raises(TransportFailure, match="nope"):
            await channel.respond(ToolResponse("nope", output="x"))

    @pytest.mark.asyncio
    @patch("determinishtic.litellm_agent.litellm.acompletion", new_callable=AsyncMock)
    async def test_error_response_is_json(self, mock_acomp: AsyncMock) -> None:
        mock_acomp.return_value = _mock_response(tool_calls=[_tool_call("c1", "lookup", {})])
        channel = await LiteLLMAgentConnector("m").open_session("p", MANIFEST)
        await channel.next_event()
        await channel.respond(ToolResponse("c1", error={"error": "bad", "type": "X"}))
        last = channel.messages[-1]  # type: ignore[attr-defined]
        assert last["role"] == "tool"
        assert last["tool_call_id"] == "c1"
        assert json.loads(last["content"]) == {"error": "bad", "type": "X"}

    @pytest.mark.asyncio
    async def test_closed_channel(self) -> None:
        channel = await LiteLLMAgentConnector("m").open_session("p", MANIFEST)
        await channel.close()
        await channel.close()
        with pytest.raises(TransportFailure, match="closed"):
            await channel.next_event()

    @pytest.mark.asyncio
    @patch("determinishtic.litellm_agent.litellm.acompletion", new_callable=AsyncMock)
    async def test_max_turns(self, mock_acomp: AsyncMock) -> None:
        mock_acomp.return_value = _mock_response(tool_calls=[_tool_call("c1", "lookup", {})])
        channel = await LiteLLMAgentConnector("m", max_turns=1).open_session("p", MANIFEST)
        await channel.next_event()
        await channel.respond(ToolResponse("c1", output="ok"))
        assert await channel.next_event() == SessionEnded("max_turns")
        assert mock_acomp.call_count == 1


class TestThinkOverLiteLLM:
    @pytest.mark.asyncio
    @patch("determinishtic.litellm_agent.litellm.acompletion", new_callable=AsyncMock)
    async def test_tool_then_result_in_one_turn(self, mock_acomp: AsyncMock) -> None:
        mock_acomp.return_value = _mock_response(
            tool_calls=[
                _tool_call("c1", "lookup", {"term": "cats"}),
                _tool_call("c2", "return_result", {"result": 3}),
            ],
            finish_reason="tool_calls",
        )
        result = await (
            ThinkBuilder(LiteLLMAgentConnector("gpt-4o"), int)
            .text("Count results from")
            .tool("lookup", "Look up a term", lookup)
        )
        assert result == 3
        assert mock_acomp.call_count == 1
        messages = mock_acomp.call_args.kwargs["messages"]
        tool_messages = [m for m in messages if m["role"] == "tool"]
        assert [m["tool_call_id"] for m in tool_messages] == ["c1", "c2"]
        assert tool_messages[0]["content"] == "found cats"
        assert json.loads(tool_messages[1]["content"]) == {"success": True}

    @pytest.mark.asyncio
    @patch("determinishtic.litellm_agent.litellm.acompletion", new_callable=AsyncMock)
    async def test_nudge_then_result(self, mock_acomp: AsyncMock) -> None:
        mock_acomp.side_effect = [
            _mock_response(content="The answer is 42"),
            _mock_response(tool_calls=[_tool_call("c1", "return_result", {"result": 42})]),
        ]
        result = await ThinkBuilder(LiteLLMAgentConnector("gpt-4o"), int).text("What is 6 x 7?")
        assert result == 42
        assert mock_acomp.call_count == 2
        messages = mock_acomp.call_args.kwargs["messages"]
        assert {"role": "user", "content": NUDGE_MESSAGE} in messages

    @pytest.mark.asyncio
    @patch("determinishtic.litellm_agent.litellm.acompletion", new_callable=AsyncMock)
    async def test_no_result_after_nudges(self, mock_acomp: AsyncMock) -> None:
        mock_acomp.return_value = _mock_response(content="I refuse")
        with pytest.raises(NoResultError) as info:
            await ThinkBuilder(LiteLLMAgentConnector("gpt-4o", max_nudges=1), int).text("Go")
        assert info.value.reason == "stop"
        assert mock_acomp.call_count == 2

    @pytest.mark.asyncio
    @patch("determinishtic.litellm_agent.litellm.acompletion", new_callable=AsyncMock)
    async def test_api_error_is_transport_failure(self, mock_acomp: AsyncMock) -> None:
        mock_acomp.side_effect = RuntimeError("rate limited")
        with pytest.raises(TransportFailure, match="rate limited"):
            await ThinkBuilder(LiteLLMAgentConnector("gpt-4o")).text("Go")
