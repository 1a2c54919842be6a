"""The Determinishtic entry point."""

from __future__ import annotations

import logging
from typing import Any

from determinishtic.agent import AgentConnector
from determinishtic.builder import ThinkBuilder
from determinishtic.config import ThinkConfig

logger = logging.getLogger(__name__)


class Determinishtic:
    """Wraps an agent connector and hands out think builders.

    Use as an async context manager so the connector is closed when done:

        async with Determinishtic(ClaudeAgentConnector()) as d:
            name = await d.think(str).text("Invent a name for a cat").run()
    """

    def __init__(self, connector: AgentConnector, config: ThinkConfig | None = None) -> None:
        self.connector = connector
        self.config = config or ThinkConfig.from_env()
        self._closed = False

    def think(self, output_type: Any = str) -> ThinkBuilder[Any]:
        """Start building a think block returning ``output_type``.

        The builder is consumed when awaited (or ``run()``).
        """
        if self._closed:
            raise RuntimeError("Determinishtic instance is closed")
        return ThinkBuilder(self.connector, output_type, config=self.config)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("closing agent connector %s", type(self.connector).__name__)
        await self.connector.aclose()

    async def __aenter__(self) -> "Determinishtic":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
