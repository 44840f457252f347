"""Tests for relkit.platform.process module."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from relkit.core.result import Err, Ok
from relkit.platform.process import TIMEOUT_RETURNCODE, ProcessError, run


class TestProcessError:
    """Test ProcessError dataclass."""

    def test_str_short_command(self) -> None:
        error = ProcessError(
            command=("git", "status"),
            returncode=1,
            stdout="",
            stderr="fatal: not a git repository",
        )
        assert str(error) == "git status failed (exit 1)"

    def test_str_long_command_truncated(self) -> None:
        error = ProcessError(
            command=("uv", "publish", "dist/*", "--token", "x"),
            returncode=1,
            stdout="",
            stderr="error",
        )
        assert str(error) == "uv publish dist/* ... failed (exit 1)"

    def test_str_timeout(self) -> None:
        error = ProcessError(("git", "push"), TIMEOUT_RETURNCODE, "", "", timed_out=True)
        assert str(error) == "git push timed out"

    def test_output_combines_streams(self) -> None:
        error = ProcessError(("x",), 1, stdout="out", stderr="err")
        assert error.output == "err\nout"

    def test_frozen(self) -> None:
        error = ProcessError(("cmd",), 1, "", "")
        with pytest.raises(AttributeError):
            error.returncode = 2  # type: ignore[misc]


class TestRun:
    """Test run function."""

    def test_success_returns_stdout(self, tmp_path: Path) -> None:
        result = run([sys.executable, "-c", "print('hello')"], cwd=tmp_path)

        assert isinstance(result, Ok)
        assert result.value.strip() == "hello"

    def test_runs_in_cwd(self, tmp_path: Path) -> None:
        result = run([sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path)

        assert isinstance(result, Ok)
        assert Path(result.value.strip()).resolve() == tmp_path.resolve()

    def test_failure_returns_error(self, tmp_path: Path) -> None:
        code = "import sys; sys.stderr.write('bad'); sys.exit(42)"
        result = run([sys.executable, "-c", code], cwd=tmp_path)

        assert isinstance(result, Err)
        assert result.error.returncode == 42
        assert result.error.stderr == "bad"
        assert result.error.timed_out is False

    def test_command_not_found(self, tmp_path: Path) -> None:
        result = run(["nonexistent_command_12345"], cwd=tmp_path)

        assert isinstance(result, Err)
        assert result.error.returncode == TIMEOUT_RETURNCODE

    def test_timeout(self, tmp_path: Path) -> None:
        result = run([sys.executable, "-c", "import time; time.sleep(5)"], cwd=tmp_path, timeout=0.2)

        assert isinstance(result, Err)
        assert result.error.timed_out is True
        assert "timed out after 0.2s" in result.error.stderr
