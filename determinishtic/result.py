"""The return_result tool.

Every think block offers the agent one extra tool, ``return_result``, whose
input schema is ``{"result": <schema of the expected output type>}``.
Calling it with a payload that decodes is what completes the block; a
payload that doesn't decode is reported back as a tool error so the agent
can try again, up to ``max_retries`` times.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from determinishtic import codec
from determinishtic.agent import ToolManifestEntry
from determinishtic.errors import InputDecodeError, ResultDecodeError
from determinishtic.tools import ToolDefinition

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESULT_TOOL_NAME: str = "return_result"
RESULT_TOOL_DESCRIPTION: str = "Return the final result. Call this when you have completed the task."
RESULT_FIELD: str = "result"
RESULT_FIELD_DESCRIPTION: str = "The result value to return."
RESULT_ACK: dict[str, Any] = {"success": True}


def recognize_completion(tool_name: str) -> bool:
    return tool_name == RESULT_TOOL_NAME


class ResultContract(Generic[T]):
    """Decodes return_result payloads into ``output_type`` with a retry budget."""

    def __init__(self, output_type: Any, max_retries: int = 3) -> None:
        self.output_type = output_type
        self.max_retries = max_retries
        self.failures = 0
        self.completed = False
        self.value: T | None = None
        self.definition = self.build_result_tool()

    def build_result_tool(self) -> ToolDefinition:
        schema = codec.wrap_schema(
            codec.schema_of(self.output_type), RESULT_FIELD, RESULT_FIELD_DESCRIPTION
        )
        return ToolDefinition(
            name=RESULT_TOOL_NAME,
            description=RESULT_TOOL_DESCRIPTION,
            func=self._store,
            input_schema=schema,
            input_type=self.output_type,
            output_type=dict[str, bool],
            wrapped_field=RESULT_FIELD,
        )

    def manifest_entry(self) -> ToolManifestEntry:
        return self.definition.manifest_entry()

    @property
    def exhausted(self) -> bool:
        """True once failures exceed the retry budget."""
        return self.failures > self.max_retries

    def complete(self, payload: Any) -> str:
        """Decode ``payload``; on success store it and return the ack text.

        Raises:
            ResultDecodeError: payload didn't decode. Check ``exhausted`` to
                tell a retryable failure from the terminal one.
        """
        if self.completed:
            raise ResultDecodeError(f"{RESULT_TOOL_NAME} was already called")
        try:
            value = self.definition.decode_input(payload)
        except InputDecodeError as exc:
            self.failures += 1
            logger.warning(
                "%s payload rejected (%d/%d): %s",
                RESULT_TOOL_NAME,
                self.failures,
                self.max_retries + 1,
                exc,
            )
            raise ResultDecodeError(
                f"Result does not match the expected output type: {exc}",
                attempts=self.failures,
                original=exc,
            ) from exc
        return self.definition.encode_output(self.definition.func(value))

    def _store(self, value: T) -> dict[str, bool]:
        logger.debug("%s accepted", RESULT_TOOL_NAME)
        self.value = value
        self.completed = True
        return dict(RESULT_ACK)
