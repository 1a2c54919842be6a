"""Agent collaborator interface.

determinishtic never talks to a model directly. A connector opens one
channel per think block; over that channel the driver pulls events (tool
calls, or the end of the session) and pushes tool responses back:

    channel = await connector.open_session(prompt, manifest, instructions=...)
    while True:
        event = await channel.next_event()
        if isinstance(event, SessionEnded):
            break
        await channel.respond(ToolResponse(event.call_id, output="..."))
    await channel.close()

Concrete connectors live in ``claude_agent`` (Claude Agent SDK) and
``litellm_agent`` (any litellm chat model).
"""

from __future__ import annotations

import abc
import json as _json
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class ToolManifestEntry:
    """One tool offered to the agent."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_openai(self) -> dict[str, Any]:
        """OpenAI function-calling format, as accepted by litellm ``tools=``."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


@dataclass(frozen=True)
class ToolCallEvent:
    """The agent asked to invoke a tool."""

    tool_name: str
    call_id: str
    input_payload: Any = None


@dataclass(frozen=True)
class SessionEnded:
    """The agent finished its turn or the transport went away."""

    reason: str
    error: BaseException | None = None


AgentEvent = Union[ToolCallEvent, SessionEnded]


@dataclass(frozen=True)
class ToolResponse:
    """Outcome of one tool call, sent back to the agent."""

    call_id: str
    output: str | None = None
    error: dict[str, Any] | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def content(self) -> str:
        if self.error is not None:
            return _json.dumps(self.error, ensure_ascii=False)
        return self.output or ""


class AgentChannel(abc.ABC):
    """Bidirectional exchange with an agent for a single think block."""

    @abc.abstractmethod
    async def next_event(self) -> AgentEvent:
        """Wait for the next tool call or the end of the session.

        Transport problems are raised (or returned as ``SessionEnded`` with
        ``error`` set); either way the driver treats them as fatal.
        """

    @abc.abstractmethod
    async def respond(self, response: ToolResponse) -> None:
        """Deliver the result of a previously issued tool call."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Tear the session down. Must be safe to call more than once."""


class AgentConnector(abc.ABC):
    """Factory for agent channels."""

    @abc.abstractmethod
    async def open_session(
        self,
        prompt: str,
        manifest: list[ToolManifestEntry],
        *,
        instructions: str | None = None,
        server_name: str = "determinishtic",
    ) -> AgentChannel:
        """Send the prompt and tool manifest to the agent."""

    async def aclose(self) -> None:
        """Release connector-wide resources. Default: nothing to release."""
        return None
