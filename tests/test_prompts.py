"""Tests for template loading and the think framing."""

import textwrap
from pathlib import Path

import pytest

from determinishtic.prompts import THINK_TEMPLATE, ThinkFraming, render_prompt, think_framing


@pytest.fixture()
def template_dir(tmp_path: Path) -> Path:
    """Create a temporary templates directory."""
    d = tmp_path / "templates"
    d.mkdir()
    return d


def _write(path: Path, content: str) -> Path:
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


class TestRenderPrompt:
    """Core render_prompt functionality."""

    def test_simple_substitution(self, template_dir: Path) -> None:
        f = _write(
            template_dir / "simple.yaml",
            """\
            name: simple
            version: "1.0"
            messages:
              - role: system
                content: Call {{ result_tool }} when done.
              - role: user
                content: "Task: {{ task }}"
            """,
        )
        msgs = render_prompt(f, result_tool="finish", task="count files")
        assert msgs == [
            {"role": "system", "content": "Call finish when done."},
            {"role": "user", "content": "Task: count files"},
        ]

    def test_multiline_content_stripped(self, template_dir: Path) -> None:
        f = _write(
            template_dir / "whitespace.yaml",
            """\
            name: ws
            messages:
              - role: user
                content: |

                  Hello

            """,
        )
        assert render_prompt(f)[0]["content"] == "Hello"


class TestRenderPromptErrors:
    """Error cases: fail loud."""

    def test_missing_file(self) -> None:
        with pytest.raises(FileNotFoundError, match="not found"):
            render_prompt("/nonexistent/think.yaml")

    def test_missing_messages_key(self, template_dir: Path) -> None:
        f = _write(template_dir / "no_msgs.yaml", "name: broken\n")
        with pytest.raises(ValueError, match="missing 'messages'"):
            render_prompt(f)

    def test_message_missing_role(self, template_dir: Path) -> None:
        f = _write(
            template_dir / "no_role.yaml",
            """\
            name: broken
            messages:
              - content: no role here
            """,
        )
        with pytest.raises(ValueError, match="'role' and 'content'"):
            render_prompt(f)

    def test_undefined_variable_fails_loud(self, template_dir: Path) -> None:
        f = _write(
            template_dir / "undef.yaml",
            """\
            name: strict
            messages:
              - role: user
                content: "{{ missing_var }}"
            """,
        )
        with pytest.raises(Exception, match="missing_var"):
            render_prompt(f)

    def test_yaml_not_a_mapping(self, template_dir: Path) -> None:
        f = _write(template_dir / "scalar.yaml", "just a string\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            render_prompt(f)


class TestThinkFraming:
    def test_bundled_template_exists(self) -> None:
        assert THINK_TEMPLATE.exists()

    def test_framing_names_result_tool(self) -> None:
        framing = think_framing("return_result")
        assert framing.instructions == "You have access to tools. Call return_result when done."
        assert framing.preamble.startswith("Please complete the following task")
        assert framing.preamble.endswith(
            "IMPORTANT: When complete, invoke the `return_result` tool with the requested result."
        )

    def test_apply_places_body_after_preamble(self) -> None:
        framing = ThinkFraming(instructions="sys", preamble="Preamble.")
        assert framing.apply("Body") == "Preamble.\n\nBody"

    def test_apply_empty_body(self) -> None:
        framing = ThinkFraming(instructions="sys", preamble="Preamble.")
        assert framing.apply("") == "Preamble."

    def test_apply_without_preamble(self) -> None:
        assert ThinkFraming(instructions="", preamble="").apply("Body") == "Body"

    def test_custom_template(self, template_dir: Path) -> None:
        f = _write(
            template_dir / "custom.yaml",
            """\
            name: custom
            messages:
              - role: system
                content: Finish with {{ result_tool }}.
              - role: user
                content: Short preamble.
            """,
        )
        framing = think_framing("done", str(f))
        assert framing == ThinkFraming(instructions="Finish with done.", preamble="Short preamble.")
