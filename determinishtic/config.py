"""Typed runtime configuration for determinishtic."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MAX_RESULT_RETRIES_ENV = "DETERMINISHTIC_MAX_RESULT_RETRIES"
MAX_UNKNOWN_TOOL_CALLS_ENV = "DETERMINISHTIC_MAX_UNKNOWN_TOOL_CALLS"
MAX_TOOL_ERRORS_ENV = "DETERMINISHTIC_MAX_TOOL_ERRORS"
TOOL_RESULT_MAX_LENGTH_ENV = "DETERMINISHTIC_TOOL_RESULT_MAX_LENGTH"
INCLUDE_PREAMBLE_ENV = "DETERMINISHTIC_INCLUDE_PREAMBLE"
SERVER_NAME_ENV = "DETERMINISHTIC_SERVER_NAME"

DEFAULT_MAX_RESULT_RETRIES: int = 3
"""Failed return_result decodes reported to the agent before escalating."""

DEFAULT_MAX_UNKNOWN_TOOL_CALLS: int = 3
"""Calls to unregistered tools tolerated before escalating."""

DEFAULT_MAX_TOOL_ERRORS: int = 10
"""Input/output/callable errors tolerated before escalating (None in ThinkConfig disables)."""

DEFAULT_TOOL_RESULT_MAX_LENGTH: int = 50_000
"""Maximum character length for a single tool result. Longer results are truncated."""

DEFAULT_SERVER_NAME: str = "determinishtic"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ThinkConfig:
    """Runtime policy resolved once and passed explicitly to each think block."""

    max_result_retries: int = DEFAULT_MAX_RESULT_RETRIES
    max_unknown_tool_calls: int = DEFAULT_MAX_UNKNOWN_TOOL_CALLS
    max_tool_errors: int | None = DEFAULT_MAX_TOOL_ERRORS
    tool_result_max_length: int = DEFAULT_TOOL_RESULT_MAX_LENGTH
    include_preamble: bool = True
    server_name: str = DEFAULT_SERVER_NAME

    def __post_init__(self) -> None:
        if self.max_result_retries < 0:
            raise ValueError("max_result_retries must be >= 0")
        if self.max_unknown_tool_calls < 0:
            raise ValueError("max_unknown_tool_calls must be >= 0")
        if self.max_tool_errors is not None and self.max_tool_errors < 0:
            raise ValueError("max_tool_errors must be >= 0 or None")
        if self.tool_result_max_length <= 0:
            raise ValueError("tool_result_max_length must be > 0")

    @classmethod
    def from_env(cls) -> "ThinkConfig":
        """Build typed config from DETERMINISHTIC_* environment variables."""
        include_raw = os.environ.get(INCLUDE_PREAMBLE_ENV, "on").strip().lower()
        if include_raw in _TRUE or include_raw == "":
            include_preamble = True
        elif include_raw in _FALSE:
            include_preamble = False
        else:
            logger.warning(
                "Invalid %s=%r; expected on/off boolean. Defaulting to on.",
                INCLUDE_PREAMBLE_ENV,
                include_raw,
            )
            include_preamble = True

        return cls(
            max_result_retries=_env_int(MAX_RESULT_RETRIES_ENV, DEFAULT_MAX_RESULT_RETRIES),
            max_unknown_tool_calls=_env_int(
                MAX_UNKNOWN_TOOL_CALLS_ENV, DEFAULT_MAX_UNKNOWN_TOOL_CALLS
            ),
            max_tool_errors=_env_optional_int(MAX_TOOL_ERRORS_ENV, DEFAULT_MAX_TOOL_ERRORS),
            tool_result_max_length=_env_int(
                TOOL_RESULT_MAX_LENGTH_ENV, DEFAULT_TOOL_RESULT_MAX_LENGTH, minimum=1
            ),
            include_preamble=include_preamble,
            server_name=os.environ.get(SERVER_NAME_ENV, "").strip() or DEFAULT_SERVER_NAME,
        )


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = minimum - 1
    if value < minimum:
        logger.warning(
            "Invalid %s=%r; expected integer >= %d. Defaulting to %d.",
            name,
            raw,
            minimum,
            default,
        )
        return default
    return value


def _env_optional_int(name: str, default: int) -> int | None:
    raw = os.environ.get(name, "").strip().lower()
    if raw in {"none", "off", "unlimited"}:
        return None
    return _env_int(name, default)
