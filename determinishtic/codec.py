"""Schema derivation and payload (de)serialization.

Thin layer over pydantic ``TypeAdapter`` so tools and results can be typed
with anything pydantic understands: ``BaseModel`` subclasses, dataclasses,
``TypedDict``, builtins and generics. Tools that declare a raw JSON schema
dict instead of a type are validated with ``jsonschema``.
"""

from __future__ import annotations

import copy
import functools
import json as _json
from typing import Any

import jsonschema
from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

WRAPPED_INPUT_FIELD = "input"


class DecodeError(ValueError):
    """Payload does not match the expected type or schema."""


class EncodeError(ValueError):
    """Value cannot be serialized as the declared type."""


@functools.lru_cache(maxsize=256)
def _adapter(tp: Any) -> TypeAdapter[Any]:
    return TypeAdapter(tp)


def _get_adapter(tp: Any) -> TypeAdapter[Any]:
    try:
        return _adapter(tp)
    except TypeError:
        # Unhashable type descriptors (e.g. Annotated with dict metadata)
        return TypeAdapter(tp)


def schema_of(tp: Any) -> dict[str, Any]:
    """JSON schema for a type descriptor."""
    return _get_adapter(tp).json_schema()


def decode(payload: Any, tp: Any) -> Any:
    """Validate a JSON-compatible payload into an instance of ``tp``."""
    try:
        return _get_adapter(tp).validate_python(payload)
    except ValidationError as exc:
        raise DecodeError(_format_validation_error(exc)) from exc


def encode(value: Any, tp: Any = Any) -> Any:
    """Serialize ``value`` as ``tp`` to JSON-compatible Python data."""
    try:
        return _get_adapter(tp).dump_python(value, mode="json", warnings="error")
    except (PydanticSerializationError, ValueError, TypeError) as exc:
        raise EncodeError(str(exc)) from exc


def validate_schema(payload: Any, schema: dict[str, Any]) -> Any:
    """Validate ``payload`` against a raw JSON schema and return it unchanged."""
    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as exc:
        path = "/".join(str(p) for p in exc.absolute_path)
        where = f" at {path!r}" if path else ""
        raise DecodeError(f"{exc.message}{where}") from exc
    return payload


def to_text(payload: Any) -> str:
    """Render an encoded payload as tool-result text: str passed through, anything else JSON."""
    if isinstance(payload, str):
        return payload
    return _json.dumps(payload, ensure_ascii=False)


def is_object_schema(schema: dict[str, Any]) -> bool:
    """True for object schemas with declared properties.

    Free-form objects (``dict[str, int]``, bare ``{"type": "object"}``) don't
    count: MCP clients expect tool inputs to list their properties.
    """
    return schema.get("type") == "object" and "properties" in schema


def wrap_schema(schema: dict[str, Any], field: str, description: str | None = None) -> dict[str, Any]:
    """Nest ``schema`` under a single required property of an object schema.

    ``$defs`` are hoisted to the root so ``#/$defs/...`` references still resolve.
    """
    inner = copy.deepcopy(schema)
    defs = inner.pop("$defs", None)
    if description and "description" not in inner:
        inner["description"] = description
    wrapped: dict[str, Any] = {
        "type": "object",
        "properties": {field: inner},
        "required": [field],
    }
    if defs:
        wrapped["$defs"] = defs
    return wrapped


def _format_validation_error(exc: ValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts) or str(exc)
