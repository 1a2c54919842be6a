"""Scripted in-memory agent for driving think sessions in tests.

Each script is a list of steps consumed one per ``next_event`` call:

- ``("tool_name", payload)`` issues a tool call
- ``SessionEnded(...)`` ends the session
- an exception instance is raised from ``next_event`` (transport failure)
- ``HANG`` blocks forever (for cancellation tests)
- a callable receives the channel and returns one of the above

When a script runs out the agent ends its turn.
"""

from __future__ import annotations

import asyncio
import collections
from typing import Any

from determinishtic.agent import (
    AgentChannel,
    AgentConnector,
    AgentEvent,
    SessionEnded,
    ToolCallEvent,
    ToolManifestEntry,
    ToolResponse,
)

HANG = object()


class ScriptedChannel(AgentChannel):
    def __init__(
        self,
        script: list[Any],
        prompt: str,
        manifest: list[ToolManifestEntry],
        instructions: str | None,
    ) -> None:
        self._script = collections.deque(script)
        self.prompt = prompt
        self.manifest = manifest
        self.instructions = instructions
        self.issued: list[ToolCallEvent] = []
        self.responses: list[ToolResponse] = []
        self.close_count = 0

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    @property
    def tool_names(self) -> list[str]:
        return [entry.name for entry in self.manifest]

    async def next_event(self) -> AgentEvent:
        if not self._script:
            return SessionEnded("end_turn")
        step = self._script.popleft()
        if callable(step) and not isinstance(step, type):
            step = step(self)
        if step is HANG:
            await asyncio.Event().wait()
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, SessionEnded):
            return step
        name, payload = step
        event = ToolCallEvent(name, f"call_{len(self.issued)}", payload)
        self.issued.append(event)
        return event

    async def respond(self, response: ToolResponse) -> None:
        self.responses.append(response)

    async def close(self) -> None:
        self.close_count += 1


class ScriptedConnector(AgentConnector):
    """Hands out one scripted channel per opened session, in order."""

    def __init__(self, *scripts: list[Any]) -> None:
        self._scripts = collections.deque(scripts)
        self.channels: list[ScriptedChannel] = []
        self.closed = False

    async def open_session(
        self,
        prompt: str,
        manifest: list[ToolManifestEntry],
        *,
        instructions: str | None = None,
        server_name: str = "determinishtic",
    ) -> AgentChannel:
        script = self._scripts.popleft() if self._scripts else []
        channel = ScriptedChannel(script, prompt, manifest, instructions)
        self.channels.append(channel)
        return channel

    async def aclose(self) -> None:
        self.closed = True


class FailingConnector(AgentConnector):
    """open_session always raises."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def open_session(
        self,
        prompt: str,
        manifest: list[ToolManifestEntry],
        *,
        instructions: str | None = None,
        server_name: str = "determinishtic",
    ) -> AgentChannel:
        raise self.error
