"""Shared helpers for CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, NoReturn, TypeVar, cast

import typer

from relkit.core.errors import ErrorCode
from relkit.core.result import Err, Result
from relkit.output.errors import error_to_dict, print_release_error
from relkit.release.errors import ReleaseError, cli_error
from relkit.release.state import BUMP_KINDS, BumpKind

T = TypeVar("T")

if TYPE_CHECKING:
    from relkit.cli.context import CLIContext
    from relkit.release.state import Phase


def fail(error: ReleaseError, ctx: CLIContext, *, phase: Phase | None = None) -> NoReturn:
    """Report ``error`` and exit with FAILURE.

    In JSON mode the error document goes to stdout as well.
    """
    print_release_error(error, ctx.console, verbose=ctx.verbose, phase=phase)
    if ctx.json_output:
        payload: dict[str, object] = {"ok": False, "error": error_to_dict(error)}
        if phase is not None:
            payload["phase"] = phase.value
        emit_json(payload)
    raise typer.Exit(code=int(ErrorCode.FAILURE))


def unwrap_or_exit(result: Result[T, ReleaseError], ctx: CLIContext) -> T:
    """Return the Ok value, or report the error and exit."""
    if isinstance(result, Err):
        fail(result.error, ctx)
    return result.value


def emit_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


def parse_bump(bump: str, version: str | None, ctx: CLIContext) -> BumpKind:
    """Validate a bump argument and its --version companion."""
    kind = bump.strip().lower()
    if kind not in BUMP_KINDS:
        fail(
            cli_error(
                "invalid_arguments",
                f"Unknown bump kind: {bump}",
                hint=", ".join(BUMP_KINDS),
            ),
            ctx,
        )
    if kind == "exact" and not version:
        fail(cli_error("missing_argument", "An exact bump needs --version", hint="relkit release exact --version 1.2.3"), ctx)
    if kind != "exact" and version:
        fail(cli_error("conflicting_arguments", f"--version only goes with an exact bump, not {kind}"), ctx)
    return cast(BumpKind, kind)
