"""Tests for the Determinishtic entry point."""

from __future__ import annotations

import pytest

from fakes import ScriptedConnector
from determinishtic import Determinishtic, ThinkBuilder, ThinkConfig
from determinishtic.config import MAX_RESULT_RETRIES_ENV


class TestDeterminishtic:
    def test_think_returns_builder_with_config(self) -> None:
        cfg = ThinkConfig(max_result_retries=1)
        d = Determinishtic(ScriptedConnector(), cfg)
        builder = d.think(int)
        assert isinstance(builder, ThinkBuilder)
        session = builder.text("x").finalize()
        assert session.contract.max_retries == 1
        assert session.contract.output_type is int

    def test_config_from_env_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(MAX_RESULT_RETRIES_ENV, "7")
        assert Determinishtic(ScriptedConnector()).config.max_result_retries == 7

    def test_each_think_is_independent(self) -> None:
        d = Determinishtic(ScriptedConnector(), ThinkConfig())
        a = d.think().text("a")
        b = d.think().text("b")
        assert a is not b
        assert a.registry is not b.registry

    @pytest.mark.asyncio
    async def test_context_manager_closes_connector(self) -> None:
        connector = ScriptedConnector([("return_result", {"result": "hi"})])
        async with Determinishtic(connector, ThinkConfig()) as d:
            assert await d.think(str).text("Greet") == "hi"
        assert connector.closed
        with pytest.raises(RuntimeError, match="closed"):
            d.think(str)

    @pytest.mark.asyncio
    async def test_aclose_idempotent(self) -> None:
        d = Determinishtic(ScriptedConnector(), ThinkConfig())
        await d.aclose()
        await d.aclose()
