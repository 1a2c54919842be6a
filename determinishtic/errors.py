"""Structured error types for determinishtic.

Callers catch specific error types instead of inspecting raw transport or
validation exceptions:

    from determinishtic.errors import ResultDecodeError, TransportFailure

    try:
        summary = await d.think(Summary).text("Summarize").display(doc)
    except ResultDecodeError:
        # The agent kept returning payloads that don't match Summary
        ...
    except TransportFailure:
        # Agent process died or the session ended without a result
        ...

Two families exist. Construction-time misuse (duplicate tool names,
dangling references, spacing changes, reusing a builder) is raised
immediately. Tool-boundary errors (unknown tool, bad input, bad output,
callable failure, bad result) are first reported to the agent as a tool
error and only raised once the retry budget is exhausted.
"""

from __future__ import annotations

from typing import Any


class DeterminishticError(Exception):
    """Base for all determinishtic errors."""

    def __init__(self, message: str, original: BaseException | None = None) -> None:
        super().__init__(message)
        self.original = original

    def to_payload(self) -> dict[str, Any]:
        """JSON error object sent back to the agent as a tool result."""
        return {"error": str(self), "type": type(self).__name__}


# ---------------------------------------------------------------------------
# Construction-time errors (never sent to the agent)
# ---------------------------------------------------------------------------


class DuplicateToolNameError(DeterminishticError):
    """A tool with this name is already registered (or the name is reserved)."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Duplicate tool name {name!r}")
        self.name = name


class DanglingToolReferenceError(DeterminishticError):
    """The prompt references a tool that was never registered."""

    def __init__(self, names: list[str]) -> None:
        super().__init__(
            "Prompt references unregistered tool(s): " + ", ".join(repr(n) for n in names)
        )
        self.names = names


class SpacingConfigurationError(DeterminishticError):
    """Spacing mode changed after segments were appended, or set twice."""


class BuilderConsumedError(DeterminishticError):
    """A think builder was used after it was run."""


# ---------------------------------------------------------------------------
# Tool-boundary errors (reported to the agent, escalated after retries)
# ---------------------------------------------------------------------------


class UnknownToolError(DeterminishticError):
    """The agent called a tool that is not in the manifest."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class InputDecodeError(DeterminishticError):
    """Tool call arguments don't match the tool's input schema."""


class OutputEncodeError(DeterminishticError):
    """A tool callable returned a value that doesn't match its output type."""


class CallableError(DeterminishticError):
    """A user-supplied tool callable raised."""

    def __init__(self, tool: str, original: BaseException) -> None:
        super().__init__(f"{type(original).__name__}: {original}", original=original)
        self.tool = tool


class ResultDecodeError(DeterminishticError):
    """The return_result payload doesn't match the expected output type."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        original: BaseException | None = None,
    ) -> None:
        super().__init__(message, original=original)
        self.attempts = attempts


# ---------------------------------------------------------------------------
# Terminal session errors
# ---------------------------------------------------------------------------


class TransportFailure(DeterminishticError):
    """The agent channel closed or errored. Fatal to the session."""


class NoResultError(TransportFailure):
    """The agent ended the session without calling return_result."""

    def __init__(self, reason: str | None = None) -> None:
        detail = f" (reason: {reason})" if reason else ""
        super().__init__(f"Agent ended the session without returning a result{detail}")
        self.reason = reason


class SessionCancelledError(DeterminishticError):
    """A tool invocation was attempted after its session was cancelled or finished."""


def wrap_error(error: BaseException) -> DeterminishticError:
    """Wrap an exception raised by an agent transport.

    If the error is already a DeterminishticError, returns it unchanged.
    Anything else is a transport failure.
    """
    if isinstance(error, DeterminishticError):
        return error
    return TransportFailure(f"{type(error).__name__}: {error}", original=error)
