"""Determinishtic: blend deterministic Python with LLM-powered reasoning.

A think block is a typed expression: compose a prompt from program values,
expose Python callables as tools the agent may call mid-reasoning, and get a
validated result back once the agent calls ``return_result``.

Usage:
    from determinishtic import Determinishtic
    from determinishtic.claude_agent import ClaudeAgentConnector

    async with Determinishtic(ClaudeAgentConnector()) as d:
        name = "Alice"
        greeting: str = await (
            d.think(str)
            .text("Say hello to")
            .display(name)
            .text("in a friendly way.")
        )

Connectors: ``claude_agent.ClaudeAgentConnector`` (Claude Agent SDK) and
``litellm_agent.LiteLLMAgentConnector`` (any litellm chat model).
"""

from determinishtic.agent import (
    AgentChannel,
    AgentConnector,
    SessionEnded,
    ToolCallEvent,
    ToolManifestEntry,
    ToolResponse,
)
from determinishtic.builder import ThinkBuilder
from determinishtic.client import Determinishtic
from determinishtic.config import ThinkConfig
from determinishtic.errors import (
    BuilderConsumedError,
    CallableError,
    DanglingToolReferenceError,
    DeterminishticError,
    DuplicateToolNameError,
    InputDecodeError,
    NoResultError,
    OutputEncodeError,
    ResultDecodeError,
    SessionCancelledError,
    SpacingConfigurationError,
    TransportFailure,
    UnknownToolError,
    wrap_error,
)
from determinishtic.prompts import render_prompt
from determinishtic.result import RESULT_TOOL_NAME, ResultContract
from determinishtic.segments import (
    LiteralSegment,
    RenderedSegment,
    RenderMode,
    SpacingMode,
    ToolReferenceSegment,
    needs_space,
    render_segments,
)
from determinishtic.session import SessionState, ThinkSession
from determinishtic.tools import (
    ToolCallRecord,
    ToolContext,
    ToolDefinition,
    ToolRegistry,
)

__all__ = [
    "AgentChannel",
    "AgentConnector",
    "BuilderConsumedError",
    "CallableError",
    "DanglingToolReferenceError",
    "Determinishtic",
    "DeterminishticError",
    "DuplicateToolNameError",
    "InputDecodeError",
    "LiteralSegment",
    "NoResultError",
    "OutputEncodeError",
    "RESULT_TOOL_NAME",
    "RenderMode",
    "RenderedSegment",
    "ResultContract",
    "ResultDecodeError",
    "SessionCancelledError",
    "SessionEnded",
    "SessionState",
    "SpacingConfigurationError",
    "SpacingMode",
    "ThinkBuilder",
    "ThinkConfig",
    "ThinkSession",
    "ToolCallEvent",
    "ToolCallRecord",
    "ToolContext",
    "ToolDefinition",
    "ToolManifestEntry",
    "ToolReferenceSegment",
    "ToolRegistry",
    "ToolResponse",
    "TransportFailure",
    "UnknownToolError",
    "needs_space",
    "render_prompt",
    "render_segments",
    "wrap_error",
]
