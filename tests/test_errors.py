"""Tests for the structured error taxonomy."""

from __future__ import annotations

import pytest

from determinishtic.errors import (
    CallableError,
    DanglingToolReferenceError,
    DeterminishticError,
    DuplicateToolNameError,
    NoResultError,
    ResultDecodeError,
    TransportFailure,
    UnknownToolError,
    wrap_error,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            DuplicateToolNameError("x"),
            DanglingToolReferenceError(["x"]),
            UnknownToolError("x"),
            CallableError("x", ValueError("boom")),
            ResultDecodeError("bad"),
            NoResultError(),
        ],
    )
    def test_all_are_determinishtic_errors(self, error: DeterminishticError) -> None:
        assert isinstance(error, DeterminishticError)

    def test_no_result_is_transport_failure(self) -> None:
        assert isinstance(NoResultError("end_turn"), TransportFailure)


class TestMessages:
    def test_unknown_tool(self) -> None:
        assert str(UnknownToolError("ghost")) == "Unknown tool: ghost"

    def test_dangling_lists_names(self) -> None:
        err = DanglingToolReferenceError(["a", "b"])
        assert "'a'" in str(err) and "'b'" in str(err)
        assert err.names == ["a", "b"]

    def test_callable_keeps_original(self) -> None:
        original = KeyError("k")
        err = CallableError("lookup", original)
        assert err.original is original
        assert err.tool == "lookup"
        assert str(err).startswith("KeyError:")

    def test_no_result_reason(self) -> None:
        assert "max_turns" in str(NoResultError("max_turns"))
        assert "reason" not in str(NoResultError())

    def test_payload(self) -> None:
        payload = UnknownToolError("ghost").to_payload()
        assert payload == {"error": "Unknown tool: ghost", "type": "UnknownToolError"}


class TestWrapError:
    def test_passthrough(self) -> None:
        err = UnknownToolError("x")
        assert wrap_error(err) is err

    def test_foreign_error_becomes_transport_failure(self) -> None:
        original = ConnectionResetError("peer gone")
        wrapped = wrap_error(original)
        assert isinstance(wrapped, TransportFailure)
        assert wrapped.original is original
        assert "ConnectionResetError" in str(wrapped)
