"""Summarize every markdown file in a directory.

File discovery and reading are plain Python; the summary of each file comes
from an agent through a think block returning ``FileSummary``.

Usage:
    python examples/summarize_docs.py ./docs
    python examples/summarize_docs.py --model gpt-4o ./docs
    LOGLEVEL=DEBUG python examples/summarize_docs.py ./docs
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from pydantic import BaseModel, Field

from determinishtic import AgentConnector, Determinishtic, DeterminishticError
from determinishtic.claude_agent import ClaudeAgentConnector
from determinishtic.litellm_agent import LiteLLMAgentConnector


class FileSummary(BaseModel):
    summary: str = Field(description="A one-line summary of the file")
    topics: list[str] = Field(description="Key topics or concepts covered")


def find_markdown(directory: Path) -> list[Path]:
    return sorted(p for p in directory.rglob("*.md") if p.is_file())


def make_connector(args: argparse.Namespace) -> AgentConnector:
    if args.model:
        return LiteLLMAgentConnector(args.model)
    return ClaudeAgentConnector(model=args.claude_model, cwd=str(args.directory))


async def summarize(args: argparse.Namespace) -> int:
    md_files = find_markdown(args.directory)
    print(f"\nFound {len(md_files)} markdown files")
    if not md_files:
        print("No markdown files found.")
        return 0

    summaries: list[tuple[Path, FileSummary]] = []
    async with Determinishtic(make_connector(args)) as d:
        for path in md_files:
            print(f"\nSummarizing: {path}")
            contents = path.read_text(encoding="utf-8", errors="replace")
            try:
                summary: FileSummary = await (
                    d.think(FileSummary)
                    .textln("Summarize this markdown file in one sentence and list the key topics:")
                    .textln()
                    .display(contents)
                )
            except DeterminishticError as exc:
                print(f"  Failed: {exc}", file=sys.stderr)
                continue
            print(f"  Summary: {summary.summary}")
            print(f"  Topics: {', '.join(summary.topics)}")
            summaries.append((path, summary))

    print("\n=== Summary Report ===\n")
    for path, summary in summaries:
        print(path)
        print(f"  {summary.summary}")
        print(f"  Topics: {', '.join(summary.topics)}")
        print()
    return 0 if len(summaries) == len(md_files) else 1


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="summarize_docs",
        description="Summarize all markdown files in a directory using an LLM agent",
    )
    parser.add_argument("directory", nargs="?", type=Path, default=Path("."), help="Directory to scan")
    parser.add_argument("--model", help="litellm model id; uses the Claude Agent SDK when omitted")
    parser.add_argument("--claude-model", help="Model for the Claude Agent SDK (e.g. sonnet)")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.environ.get("LOGLEVEL", "WARNING").upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    print(f"Agent: {args.model or 'claude-agent-sdk'}")
    print(f"Directory: {args.directory}")
    sys.exit(asyncio.run(summarize(args)))


if __name__ == "__main__":
    main()
