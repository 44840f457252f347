"""Tests for relkit.core.result module."""

import pytest

from relkit.core.result import Err, Ok, Result, is_err, is_ok


class TestOk:
    """Tests for Ok type."""

    def test_create_ok(self) -> None:
        result = Ok(42)
        assert result.value == 42

    def test_predicates(self) -> None:
        result = Ok(42)
        assert result.is_ok() is True
        assert result.is_err() is False

    def test_unwrap(self) -> None:
        assert Ok(42).unwrap() == 42

    def test_unwrap_or_ignores_default(self) -> None:
        assert Ok(42).unwrap_or(0) == 42

    def test_map(self) -> None:
        assert Ok(21).map(lambda x: x * 2) == Ok(42)

    def test_repr(self) -> None:
        assert repr(Ok("x")) == "Ok('x')"


class TestErr:
    """Tests for Err type."""

    def test_create_err(self) -> None:
        assert Err("boom").error == "boom"

    def test_predicates(self) -> None:
        result = Err("boom")
        assert result.is_ok() is False
        assert result.is_err() is True

    def test_unwrap_raises(self) -> None:
        with pytest.raises(ValueError, match="called unwrap on Err: boom"):
            Err("boom").unwrap()

    def test_unwrap_or_returns_default(self) -> None:
        assert Err("boom").unwrap_or(7) == 7

    def test_map_is_a_no_op(self) -> None:
        result = Err("boom")
        assert result.map(lambda x: x * 2) is result


class TestPatternMatching:
    """Results are meant to be consumed with match/isinstance."""

    @staticmethod
    def _describe(result: Result[int, str]) -> str:
        match result:
            case Ok(value):
                return f"value {value}"
            case Err(error):
                return f"error {error}"

    def test_match_ok(self) -> None:
        assert self._describe(Ok(1)) == "value 1"

    def test_match_err(self) -> None:
        assert self._describe(Err("nope")) == "error nope"


class TestTypeGuards:
    def test_is_ok(self) -> None:
        assert is_ok(Ok(1))
        assert not is_ok(Err("x"))

    def test_is_err(self) -> None:
        assert is_err(Err("x"))
        assert not is_err(Ok(1))


def test_results_are_frozen() -> None:
    result = Ok(1)
    with pytest.raises(AttributeError):
        result.value = 2  # type: ignore[misc]
