"""Prompt template loading and rendering from YAML/Jinja2.

The framing every think block carries (the system instruction and the task
preamble placed before the composed prompt) is stored as a YAML template
with Jinja2 placeholders in ``determinishtic/templates/``. Projects can point
``render_prompt`` at their own files in the same format.

YAML format::

    name: think
    version: "1.0"
    messages:
      - role: system
        content: You have access to tools. Call {{ result_tool }} when done.
      - role: user
        content: |
          Please complete the following task ...
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from jinja2 import Environment, StrictUndefined

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
THINK_TEMPLATE = TEMPLATES_DIR / "think.yaml"


_env = Environment(undefined=StrictUndefined)


def _load_messages(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Prompt YAML must be a mapping, got {type(raw).__name__}: {path}")
    messages = raw.get("messages")
    if not messages:
        raise ValueError(f"Prompt YAML missing 'messages' key: {path}")
    if not isinstance(messages, list) or not all(
        isinstance(m, dict) and "role" in m and "content" in m for m in messages
    ):
        raise ValueError(f"'messages' must be a list of mappings with 'role' and 'content' keys: {path}")
    return messages


def render_prompt(template_path: str | Path, **context: Any) -> list[dict[str, str]]:
    """Render a YAML message template into ``[{"role", "content"}]`` dicts.

    Message contents are Jinja2 templates rendered with ``context``; a missing
    variable raises ``jinja2.UndefinedError``. Contents are stripped.
    """
    path = Path(template_path)
    rendered = [
        {
            "role": str(m["role"]),
            "content": _env.from_string(str(m["content"])).render(**context).strip(),
        }
        for m in _load_messages(path)
    ]
    logger.debug("rendered template %s (%d messages)", path.name, len(rendered))
    return rendered


@dataclass(frozen=True)
class ThinkFraming:
    """System instruction plus the preamble placed before a think prompt."""

    instructions: str
    preamble: str

    def apply(self, body: str) -> str:
        if not self.preamble:
            return body
        return f"{self.preamble}\n\n{body}" if body else self.preamble


@functools.lru_cache(maxsize=8)
def think_framing(result_tool: str, template_path: str | None = None) -> ThinkFraming:
    """Render the think template. Cached per result-tool name and path."""
    messages = render_prompt(template_path or THINK_TEMPLATE, result_tool=result_tool)
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    user = "\n\n".join(m["content"] for m in messages if m["role"] != "system")
    return ThinkFraming(instructions=system, preamble=user)
