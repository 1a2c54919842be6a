"""Agent connector for any litellm chat model.

Runs an OpenAI function-calling loop: the prompt goes out with the tool
manifest as ``tools=``, every tool call in the model's reply becomes one
``ToolCallEvent`` (in the order the model issued them), and the driver's
responses are appended as ``role="tool"`` messages before the next model
turn.

Usage:
    connector = LiteLLMAgentConnector("gpt-4o", max_turns=20)
    async with Determinishtic(connector) as d:
        answer = await d.think(int).text("What is 6 x 7?").run()
"""

from __future__ import annotations

import collections
import logging
from typing import Any

import litellm

from determinishtic.agent import (
    AgentChannel,
    AgentConnector,
    AgentEvent,
    SessionEnded,
    ToolCallEvent,
    ToolManifestEntry,
    ToolResponse,
)
from determinishtic.errors import TransportFailure

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS: int = 20
"""Maximum model turns per think block before the session ends."""

DEFAULT_MAX_NUDGES: int = 1
"""Reminders sent when the model answers in text instead of calling return_result."""

NUDGE_MESSAGE = (
    "You have not called a tool. When the task is complete you must invoke the "
    "`return_result` tool with the requested result."
)


def _extract_tool_calls(message: Any) -> list[dict[str, Any]]:
    """Extract tool calls from response message into plain dicts."""
    if not getattr(message, "tool_calls", None):
        return []
    result: list[dict[str, Any]] = []
    for tc in message.tool_calls:
        result.append({
            "id": tc.id,
            "type": getattr(tc, "type", None) or "function",
            "function": {
                "name": tc.function.name,
                "arguments": tc.function.arguments,
            },
        })
    return result


class LiteLLMAgentChannel(AgentChannel):
    def __init__(
        self,
        connector: "LiteLLMAgentConnector",
        prompt: str,
        manifest: list[ToolManifestEntry],
        instructions: str | None,
    ) -> None:
        self._connector = connector
        self._tools = [entry.to_openai() for entry in manifest]
        self.messages: list[dict[str, Any]] = []
        if instructions:
            self.messages.append({"role": "system", "content": instructions})
        self.messages.append({"role": "user", "content": prompt})
        self._queued: collections.deque[dict[str, Any]] = collections.deque()
        self._awaiting: set[str] = set()
        self.turns = 0
        self.nudges = 0
        self._closed = False

    async def next_event(self) -> AgentEvent:
        if self._closed:
            raise TransportFailure("litellm channel is closed")
        if self._awaiting:
            raise TransportFailure(
                "next_event called with unanswered tool calls: " + ", ".join(sorted(self._awaiting))
            )

        while not self._queued:
            if self.turns >= self._connector.max_turns:
                logger.warning("litellm agent exhausted max_turns=%d", self._connector.max_turns)
                return SessionEnded("max_turns")
            self.turns += 1
            message, finish_reason = await self._complete()
            tool_calls = _extract_tool_calls(message)
            self.messages.append({
                "role": "assistant",
                "content": getattr(message, "content", None) or "",
                **({"tool_calls": tool_calls} if tool_calls else {}),
            })
            if tool_calls:
                self._queued.extend(tool_calls)
                break
            if self.nudges < self._connector.max_nudges:
                self.nudges += 1
                logger.info("model answered without a tool call; nudging (turn %d)", self.turns)
                self.messages.append({"role": "user", "content": NUDGE_MESSAGE})
                continue
            return SessionEnded(finish_reason or "end_turn")

        tc = self._queued.popleft()
        self._awaiting.add(tc["id"])
        return ToolCallEvent(
            tool_name=tc["function"]["name"],
            call_id=tc["id"],
            input_payload=tc["function"]["arguments"],
        )

    async def _complete(self) -> tuple[Any, str | None]:
        response = await litellm.acompletion(
            model=self._connector.model,
            messages=self.messages,
            tools=self._tools,
            timeout=self._connector.timeout,
            **self._connector.completion_kwargs,
        )
        choice = response.choices[0]
        logger.debug(
            "litellm turn %d: finish_reason=%s", self.turns, getattr(choice, "finish_reason", None)
        )
        return choice.message, getattr(choice, "finish_reason", None)

    async def respond(self, response: ToolResponse) -> None:
        if response.call_id not in self._awaiting:
            raise TransportFailure(f"No outstanding tool call with id {response.call_id!r}")
        self._awaiting.discard(response.call_id)
        self.messages.append({
            "role": "tool",
            "tool_call_id": response.call_id,
            "content": response.content,
        })

    async def close(self) -> None:
        self._closed = True
        self._queued.clear()
        self._awaiting.clear()


class LiteLLMAgentConnector(AgentConnector):
    """Connector that turns a litellm chat model into a tool-calling agent."""

    def __init__(
        self,
        model: str,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
        max_nudges: int = DEFAULT_MAX_NUDGES,
        timeout: float = 60,
        **completion_kwargs: Any,
    ) -> None:
        self.model = model
        self.max_turns = max_turns
        self.max_nudges = max_nudges
        self.timeout = timeout
        self.completion_kwargs = completion_kwargs

    async def open_session(
        self,
        prompt: str,
        manifest: list[ToolManifestEntry],
        *,
        instructions: str | None = None,
        server_name: str = "determinishtic",
    ) -> AgentChannel:
        logger.debug("opening litellm session on %s with %d tools", self.model, len(manifest))
        return LiteLLMAgentChannel(self, prompt, manifest, instructions)
