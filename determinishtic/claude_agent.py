"""Agent connector for the Claude Agent SDK.

The tool manifest is exposed to Claude Code as an in-process SDK MCP
server. Each MCP tool handler turns the call into a ``ToolCallEvent`` on the
channel's queue and waits for the driver's ``ToolResponse``; when the SDK
reports its result message the channel yields ``SessionEnded``.

Usage:
    connector = ClaudeAgentConnector(model="sonnet")
    async with Determinishtic(connector) as d:
        summary = await d.think(Summary).text("Summarize").display(text).run()

Requires ``claude-agent-sdk`` and a working Claude Code CLI.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import uuid
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
from determinishtic.errors import TransportFailure

logger = logging.getLogger(__name__)

MCP_SERVER_VERSION = "1.0.0"


def _import_sdk() -> tuple[Any, ...]:
    """Lazily import claude_agent_sdk components.

    Returns:
        (ClaudeAgentOptions, ClaudeSDKClient, ResultMessage, create_sdk_mcp_server, tool)
    """
    try:
        from claude_agent_sdk import (
            ClaudeAgentOptions,
            ClaudeSDKClient,
            ResultMessage,
            create_sdk_mcp_server,
            tool,
        )
    except ImportError:
        raise ImportError(
            "claude-agent-sdk is required for ClaudeAgentConnector. "
            "Install with: pip install claude-agent-sdk"
        ) from None
    return ClaudeAgentOptions, ClaudeSDKClient, ResultMessage, create_sdk_mcp_server, tool


def mcp_tool_name(server_name: str, tool_name: str) -> str:
    """Name Claude Code uses for a tool on an SDK MCP server."""
    return f"mcp__{server_name}__{tool_name}"


class ClaudeAgentChannel(AgentChannel):
    def __init__(self) -> None:
        self._events: asyncio.Queue[AgentEvent] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future[ToolResponse]] = {}
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    def handler_for(self, tool_name: str) -> Any:
        """MCP handler that forwards one tool call to the driver."""

        async def _handle(args: dict[str, Any]) -> dict[str, Any]:
            call_id = uuid.uuid4().hex
            future: asyncio.Future[ToolResponse] = asyncio.get_running_loop().create_future()
            self._pending[call_id] = future
            await self._events.put(ToolCallEvent(tool_name, call_id, args))
            try:
                response = await future
            finally:
                self._pending.pop(call_id, None)
            return {
                "content": [{"type": "text", "text": response.content}],
                "is_error": response.is_error,
            }

        _handle.__name__ = f"handle_{tool_name}"
        return _handle

    def start(self, client_cls: Any, options: Any, result_message_cls: type, prompt: str) -> None:
        self._task = asyncio.create_task(self._run(client_cls, options, result_message_cls, prompt))

    async def _run(self, client_cls: Any, options: Any, result_message_cls: type, prompt: str) -> None:
        ended: SessionEnded | None = None
        try:
            async with client_cls(options=options) as client:
                await client.query(prompt)
                async for message in client.receive_response():
                    if isinstance(message, result_message_cls):
                        subtype = getattr(message, "subtype", None) or "result"
                        logger.debug(
                            "claude session stopped (subtype=%s, is_error=%s)",
                            subtype,
                            getattr(message, "is_error", None),
                        )
                        if getattr(message, "is_error", False):
                            ended = SessionEnded(
                                subtype,
                                error=TransportFailure(f"Claude agent reported an error: {subtype}"),
                            )
                        else:
                            ended = SessionEnded(subtype)
        except Exception as exc:
            logger.warning("claude agent transport failed: %s", exc)
            ended = SessionEnded("transport_error", error=exc)
        await self._events.put(ended or SessionEnded("closed"))

    async def next_event(self) -> AgentEvent:
        if self._closed:
            raise TransportFailure("claude channel is closed")
        return await self._events.get()

    async def respond(self, response: ToolResponse) -> None:
        future = self._pending.get(response.call_id)
        if future is None or future.done():
            raise TransportFailure(f"No outstanding tool call with id {response.call_id!r}")
        future.set_result(response)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for future in self._pending.values():
            future.cancel()
        self._pending.clear()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task


class ClaudeAgentConnector(AgentConnector):
    """Connector that runs each think block as a Claude Code session."""

    def __init__(
        self,
        *,
        model: str | None = None,
        cwd: str | None = None,
        max_turns: int | None = None,
        permission_mode: str | None = None,
        allowed_tools: list[str] | None = None,
    ) -> None:
        self.model = model
        self.cwd = cwd
        self.max_turns = max_turns
        self.permission_mode = permission_mode
        self.extra_allowed_tools = list(allowed_tools or [])

    def _build_options(
        self,
        options_cls: Any,
        server_name: str,
        server: Any,
        manifest: list[ToolManifestEntry],
        instructions: str | None,
    ) -> Any:
        options_kw: dict[str, Any] = {
            "mcp_servers": {server_name: server},
            # Pre-approve every manifest tool.
            "allowed_tools": [mcp_tool_name(server_name, e.name) for e in manifest]
            + self.extra_allowed_tools,
            "cwd": self.cwd or os.getcwd(),
        }
        if self.model is not None:
            options_kw["model"] = self.model
        if instructions:
            options_kw["system_prompt"] = instructions
        if self.max_turns is not None:
            options_kw["max_turns"] = self.max_turns
        if self.permission_mode is not None:
            options_kw["permission_mode"] = self.permission_mode
        # CLAUDECODE makes a nested CLI refuse to start.
        if os.environ.get("CLAUDECODE"):
            options_kw["env"] = {"CLAUDECODE": ""}
        return options_cls(**options_kw)

    async def open_session(
        self,
        prompt: str,
        manifest: list[ToolManifestEntry],
        *,
        instructions: str | None = None,
        server_name: str = "determinishtic",
    ) -> AgentChannel:
        options_cls, client_cls, result_message_cls, create_server, tool = _import_sdk()
        channel = ClaudeAgentChannel()
        sdk_tools = [
            tool(entry.name, entry.description, entry.input_schema)(channel.handler_for(entry.name))
            for entry in manifest
        ]
        server = create_server(name=server_name, version=MCP_SERVER_VERSION, tools=sdk_tools)
        options = self._build_options(options_cls, server_name, server, manifest, instructions)
        logger.info("opening claude session with %d tools on server %r", len(manifest), server_name)
        channel.start(client_cls, options, result_message_cls, prompt)
        return channel
