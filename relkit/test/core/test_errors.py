"""Tests for relkit.core.errors module."""

import pytest

from relkit.core.errors import ErrorCode


def test_values() -> None:
    assert ErrorCode.OK == 0
    assert ErrorCode.FAILURE == 1


def test_can_use_as_int() -> None:
    code: int = ErrorCode.FAILURE
    assert code == 1


def test_is_success() -> None:
    assert ErrorCode.OK.is_success is True
    assert ErrorCode.FAILURE.is_success is False


def test_str() -> None:
    assert str(ErrorCode.OK) == "ok"
    assert str(ErrorCode.FAILURE) == "failure"


def test_lookup_by_value() -> None:
    assert ErrorCode(1) is ErrorCode.FAILURE
    with pytest.raises(ValueError):
        ErrorCode(99)
