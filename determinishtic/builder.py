"""ThinkBuilder: compose a prompt with embedded tools, then run it.

Created via ``Determinishtic.think``. Every method returns the builder so
calls chain; the builder is awaitable and is consumed by running it:

    results: list[str] = []

    def record(item: str) -> str:
        results.append(item)
        return "ok"

    summary = await (
        d.think(Summary)
        .text("Summarize")
        .display(path)
        .text("and pass each key point to")
        .tool("record", "Record one key point", record)
    )
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from typing import Any, Generator, Generic, TypeVar

from determinishtic.agent import AgentConnector
from determinishtic.config import ThinkConfig
from determinishtic.errors import (
    BuilderConsumedError,
    DanglingToolReferenceError,
    SpacingConfigurationError,
)
from determinishtic.prompts import think_framing
from determinishtic.result import RESULT_TOOL_NAME, ResultContract
from determinishtic.segments import (
    LiteralSegment,
    RenderedSegment,
    RenderMode,
    Segment,
    SpacingMode,
    ToolReferenceSegment,
    referenced_tools,
    render_segments,
)
from determinishtic.session import ThinkSession
from determinishtic.tools import ToolDefinition, ToolFn, ToolRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_sync(coro: Any) -> Any:
    """Run a coroutine synchronously, handling nested event loops."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is not None and loop.is_running():
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()
    return asyncio.run(coro)


class ThinkBuilder(Generic[T]):
    """Builder for one think block returning ``output_type``."""

    def __init__(
        self,
        connector: AgentConnector,
        output_type: Any = str,
        *,
        config: ThinkConfig | None = None,
    ) -> None:
        self._connector = connector
        self._output_type = output_type
        self._config = config or ThinkConfig()
        self._segments: list[Segment] = []
        self._registry = ToolRegistry(reserved=frozenset({RESULT_TOOL_NAME}))
        self._spacing = SpacingMode.SMART
        self._spacing_set = False
        self._consumed = False

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    def _append(self, segment: Segment) -> "ThinkBuilder[T]":
        self._check_open()
        self._segments.append(segment)
        return self

    def text(self, text: str) -> "ThinkBuilder[T]":
        """Add literal text to the prompt."""
        return self._append(LiteralSegment(text))

    def textln(self, text: str = "") -> "ThinkBuilder[T]":
        """Add literal text to the prompt followed by a newline."""
        return self._append(LiteralSegment(f"{text}\n"))

    def display(self, value: Any) -> "ThinkBuilder[T]":
        """Interpolate a value using ``str()``."""
        return self._append(RenderedSegment.of(value, RenderMode.DISPLAY))

    def debug(self, value: Any) -> "ThinkBuilder[T]":
        """Interpolate a value using ``repr()``.

        Useful for paths, strings that should appear quoted, or structures.
        """
        return self._append(RenderedSegment.of(value, RenderMode.DEBUG))

    def reference(self, name: str) -> "ThinkBuilder[T]":
        """Mention a tool inline without registering it.

        The tool must be registered (e.g. via ``define_tool``) before the
        block runs.
        """
        self._append(ToolReferenceSegment(name))
        self._registry.mark_referenced(name)
        return self

    def explicit_spacing(self) -> "ThinkBuilder[T]":
        """Disable automatic spacing between segments.

        By default a space is inserted between segments unless the previous
        one ends in whitespace or an opening bracket, or the next one starts
        with punctuation. Must be called before any segment is added.
        """
        return self.spacing(SpacingMode.EXPLICIT)

    def spacing(self, mode: SpacingMode) -> "ThinkBuilder[T]":
        self._check_open()
        if self._segments:
            raise SpacingConfigurationError(
                "Spacing mode must be chosen before any text is added"
            )
        if self._spacing_set:
            raise SpacingConfigurationError("Spacing mode was already set for this block")
        self._spacing = mode
        self._spacing_set = True
        return self

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def tool(
        self,
        name: str,
        description: str,
        func: ToolFn,
        *,
        input_type: Any = None,
        output_type: Any = None,
        input_schema: dict[str, Any] | None = None,
    ) -> "ThinkBuilder[T]":
        """Register a tool and embed a reference to it in the prompt.

        ``func`` receives the decoded input (and, if it takes a second
        argument, a ``ToolContext``) and returns the output. It may be sync
        or async and may capture and mutate local state: tool invocations
        are serialized.

        Raises:
            DuplicateToolNameError: a tool with this name already exists, or
                the name is ``return_result``.
        """
        self.define_tool(
            name,
            description,
            func,
            input_type=input_type,
            output_type=output_type,
            input_schema=input_schema,
        )
        return self.reference(name)

    def define_tool(
        self,
        name: str,
        description: str,
        func: ToolFn,
        *,
        input_type: Any = None,
        output_type: Any = None,
        input_schema: dict[str, Any] | None = None,
    ) -> "ThinkBuilder[T]":
        """Register a tool without embedding a reference in the prompt.

        The tool is still offered to the agent.
        """
        self._check_open()
        definition = ToolDefinition.from_callable(
            name,
            description,
            func,
            input_type=input_type,
            output_type=output_type,
            input_schema=input_schema,
        )
        self._registry.register(definition)
        logger.debug("registering tool %r", name)
        return self

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    @property
    def segments(self) -> tuple[Segment, ...]:
        return tuple(self._segments)

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def consumed(self) -> bool:
        return self._consumed

    def render(self) -> str:
        """The composed prompt body, without the think preamble."""
        return render_segments(self._segments, self._spacing)

    def prompt(self) -> str:
        """The full prompt the agent will receive."""
        body = self.render()
        if not self._config.include_preamble:
            return body
        return think_framing(RESULT_TOOL_NAME).apply(body)

    def finalize(self) -> ThinkSession[T]:
        """Consume the builder and hand its prompt and tools to a new session.

        Raises:
            BuilderConsumedError: already finalized.
            DanglingToolReferenceError: the prompt mentions unregistered tools.
        """
        self._check_open()
        dangling = [n for n in referenced_tools(self._segments) if n not in self._registry]
        if dangling:
            raise DanglingToolReferenceError(dangling)

        prompt = self.prompt()
        instructions = think_framing(RESULT_TOOL_NAME).instructions if self._config.include_preamble else None
        contract: ResultContract[T] = ResultContract(
            self._output_type, max_retries=self._config.max_result_retries
        )
        self._consumed = True
        return ThinkSession(
            prompt,
            self._registry,
            contract,
            self._connector,
            config=self._config,
            instructions=instructions,
        )

    async def run(self) -> T:
        """Render, run the session against the agent, and return the result."""
        session = self.finalize()
        return await session.run()

    def run_sync(self) -> T:
        """Blocking wrapper around ``run``."""
        return _run_sync(self.run())  # type: ignore[no-any-return]

    def __await__(self) -> Generator[Any, None, T]:
        return self.run().__await__()

    def _check_open(self) -> None:
        if self._consumed:
            raise BuilderConsumedError("This think block has already been run")
