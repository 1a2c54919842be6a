"""Tool definitions and the per-block tool registry.

Tools are plain Python callables (sync or async) taking a typed input and,
optionally, a ``ToolContext``:

    class Lookup(BaseModel):
        key: str

    async def lookup(req: Lookup, ctx: ToolContext) -> str:
        '''Look up a value.'''
        return table[req.key]

The input type (and so the JSON schema shown to the agent) comes from the
first parameter's annotation unless ``input_type`` or ``input_schema`` is
given; the output type comes from the return annotation. Callables may
close over and mutate local state: the registry runs at most one tool body
at a time.
"""

from __future__ import annotations

import asyncio
import inspect
import json as _json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, get_type_hints

from determinishtic import codec
from determinishtic.agent import AgentConnector, ToolManifestEntry
from determinishtic.errors import (
    CallableError,
    DuplicateToolNameError,
    InputDecodeError,
    OutputEncodeError,
    SessionCancelledError,
    UnknownToolError,
)

if TYPE_CHECKING:
    from determinishtic.builder import ThinkBuilder
    from determinishtic.config import ThinkConfig

logger = logging.getLogger(__name__)

ToolFn = Callable[..., Any]


def _truncate(text: str, max_length: int) -> str:
    """Truncate text if it exceeds max_length, appending a notice."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"\n... [truncated at {max_length} chars]"


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@dataclass
class ToolCallRecord:
    """Record of a single tool call during a think session."""

    tool: str
    call_id: str
    arguments: Any
    result: str | None = None
    error: str | None = None
    error_type: str | None = None
    latency_s: float = 0.0


@dataclass
class ToolContext:
    """Handed to tool callables that accept a second parameter.

    ``think()`` opens a nested think block on the same agent connector. The
    nested block has its own registry and invocation slot and runs to
    completion before the outer tool call returns.
    """

    tool_name: str
    call_id: str
    session_id: str
    connector: AgentConnector | None = None
    config: "ThinkConfig | None" = None

    def think(self, output_type: Any = str) -> "ThinkBuilder":
        from determinishtic.builder import ThinkBuilder

        if self.connector is None:
            raise RuntimeError(
                f"Tool {self.tool_name!r} was invoked outside a think session; "
                f"no agent connector to open a nested block on"
            )
        return ThinkBuilder(self.connector, output_type, config=self.config)


@dataclass
class ToolDefinition:
    """A named operation the agent may invoke.

    ``input_schema`` is what the agent sees and is always an object schema.
    When the underlying type isn't an object, its schema is nested under
    ``wrapped_field`` and unwrapped again before decoding.
    """

    name: str
    description: str
    func: ToolFn
    input_schema: dict[str, Any]
    input_type: Any = None
    output_type: Any = Any
    raw_schema: dict[str, Any] | None = None
    wrapped_field: str | None = None
    accepts_context: bool = False

    @classmethod
    def from_callable(
        cls,
        name: str,
        description: str,
        func: ToolFn,
        *,
        input_type: Any = None,
        output_type: Any = None,
        input_schema: dict[str, Any] | None = None,
    ) -> "ToolDefinition":
        """Build a definition, inferring types from annotations where not given.

        Raises:
            ValueError: If no input type can be determined, or the callable
                can't accept an input argument.
        """
        if not name or not isinstance(name, str):
            raise ValueError("Tool name must be a non-empty string")
        if input_type is not None and input_schema is not None:
            raise ValueError(f"Tool {name!r}: pass input_type or input_schema, not both")

        first_param, accepts_context = _inspect_params(func, name)
        hints: dict[str, Any] = {}
        if (input_type is None and input_schema is None) or output_type is None:
            try:
                hints = get_type_hints(func)
            except NameError as exc:
                raise ValueError(
                    f"Can't resolve type annotations of tool {name!r}: {exc}. "
                    f"Define the types at module level or pass input_type=/output_type=."
                ) from exc
            except TypeError:
                # Not annotatable (e.g. functools.partial).
                hints = {}

        raw_schema: dict[str, Any] | None = None
        if input_schema is not None:
            raw_schema = dict(input_schema)
            schema = raw_schema
        else:
            if input_type is None:
                if first_param is None or first_param not in hints:
                    raise ValueError(
                        f"Parameter {first_param!r} of tool {name!r} has no type annotation. "
                        f"Annotate it or pass input_type=/input_schema=."
                    )
                input_type = hints[first_param]
            schema = codec.schema_of(input_type)

        if output_type is None:
            output_type = hints.get("return", Any)
            if output_type is type(None):
                output_type = Any

        wrapped_field: str | None = None
        if not codec.is_object_schema(schema):
            wrapped_field = codec.WRAPPED_INPUT_FIELD
            schema = codec.wrap_schema(schema, wrapped_field)

        return cls(
            name=name,
            description=description,
            func=func,
            input_schema=schema,
            input_type=input_type,
            output_type=output_type,
            raw_schema=raw_schema,
            wrapped_field=wrapped_field,
            accepts_context=accepts_context,
        )

    def manifest_entry(self) -> ToolManifestEntry:
        return ToolManifestEntry(self.name, self.description, self.input_schema)

    def decode_input(self, payload: Any) -> Any:
        """Turn raw agent arguments into the callable's input value."""
        if isinstance(payload, str):
            try:
                payload = _json.loads(payload) if payload.strip() else {}
            except _json.JSONDecodeError as exc:
                raise InputDecodeError(f"Invalid JSON arguments for {self.name!r}: {exc}") from exc
        if payload is None:
            payload = {}

        if self.wrapped_field is not None:
            if not isinstance(payload, dict) or self.wrapped_field not in payload:
                raise InputDecodeError(
                    f"Arguments for {self.name!r} must be an object with a "
                    f"{self.wrapped_field!r} property"
                )
            payload = payload[self.wrapped_field]

        try:
            if self.raw_schema is not None:
                return codec.validate_schema(payload, self.raw_schema)
            return codec.decode(payload, self.input_type)
        except codec.DecodeError as exc:
            raise InputDecodeError(f"Invalid arguments for {self.name!r}: {exc}", original=exc) from exc

    def encode_output(self, value: Any) -> str:
        try:
            return codec.to_text(codec.encode(value, self.output_type))
        except codec.EncodeError as exc:
            raise OutputEncodeError(
                f"Tool {self.name!r} returned a value that can't be encoded: {exc}",
                original=exc,
            ) from exc


def _inspect_params(func: ToolFn, name: str) -> tuple[str | None, bool]:
    """Return (first parameter name, whether a context argument is required).

    A context is passed only when the callable needs a second positional
    argument: one without a default. Optional extra parameters keep their
    defaults.
    """
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return None, False

    positional: list[inspect.Parameter] = []
    var_positional = False
    for pname, param in sig.parameters.items():
        if pname in ("self", "cls"):
            continue
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional.append(param)
        elif param.kind == inspect.Parameter.VAR_POSITIONAL:
            var_positional = True

    if not positional and not var_positional:
        raise ValueError(f"Tool {name!r} callable must accept an input argument")
    first = positional[0].name if positional else None
    if len(positional) >= 2:
        return first, positional[1].default is inspect.Parameter.empty
    return first, var_positional


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """Name -> ToolDefinition table with a single invocation slot.

    ``invoke`` holds the slot for the whole decode/execute/encode cycle, so
    across the registry (not merely per tool) at most one callable body runs
    at a time.
    """

    def __init__(self, reserved: frozenset[str] = frozenset()) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._referenced: list[str] = []
        self._reserved = reserved
        self._slot = asyncio.Lock()
        self._sealed = False

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def referenced(self) -> list[str]:
        """Tools mentioned inline in the prompt, in first-mention order."""
        return list(self._referenced)

    @property
    def defined_only(self) -> list[str]:
        """Registered tools never mentioned inline (still offered to the agent)."""
        return [n for n in self._tools if n not in self._referenced]

    @property
    def in_use(self) -> bool:
        """True while a tool body is executing."""
        return self._slot.locked()

    @property
    def sealed(self) -> bool:
        return self._sealed

    def register(self, definition: ToolDefinition) -> ToolDefinition:
        """Add a tool. The registry is unchanged if this raises.

        Raises:
            DuplicateToolNameError: Name already registered or reserved.
        """
        if definition.name in self._tools or definition.name in self._reserved:
            raise DuplicateToolNameError(definition.name)
        self._tools[definition.name] = definition
        return definition

    def mark_referenced(self, name: str) -> None:
        if name not in self._referenced:
            self._referenced.append(name)

    def resolve(self, name: str) -> ToolDefinition:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def manifest(self) -> list[ToolManifestEntry]:
        return [d.manifest_entry() for d in self._tools.values()]

    def seal(self) -> None:
        """Refuse all further invocations."""
        self._sealed = True

    async def invoke(
        self,
        name: str,
        raw_input: Any,
        context: ToolContext | None = None,
    ) -> str:
        """Decode, execute and encode one tool call; returns result text.

        Raises:
            UnknownToolError, InputDecodeError, OutputEncodeError,
            CallableError: recoverable, the caller reports them to the agent.
            SessionCancelledError: the registry was sealed.
        """
        if self._sealed:
            raise SessionCancelledError(f"Session is closed; refusing to invoke {name!r}")
        definition = self.resolve(name)

        async with self._slot:
            if self._sealed:
                raise SessionCancelledError(f"Session is closed; refusing to invoke {name!r}")
            value = definition.decode_input(raw_input)
            if context is None:
                context = ToolContext(tool_name=name, call_id=uuid.uuid4().hex, session_id="")
            t0 = time.monotonic()
            try:
                if definition.accepts_context:
                    result = definition.func(value, context)
                else:
                    result = definition.func(value)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                raise CallableError(name, exc) from exc
            finally:
                logger.debug("tool %r ran in %.3fs", name, time.monotonic() - t0)
            return definition.encode_output(result)
