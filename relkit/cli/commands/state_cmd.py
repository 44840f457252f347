"""Commands acting on an existing release: rollback, resume, status, cleanup."""

from __future__ import annotations

import typer

from relkit.cli.commands._helpers import emit_json, fail, unwrap_or_exit
from relkit.cli.context import build_context, cancel_on_interrupt
from relkit.cli.render import render_rollback, render_state
from relkit.core.errors import ErrorCode
from relkit.core.result import Err
from relkit.output.console import Style
from relkit.release.contracts import CancelToken
from relkit.release.errors import cli_error
from relkit.release.rollback import RollbackScope
from relkit.release.state import MAIN_TRACK, Phase, state_to_dict


def rollback(
    ctx: typer.Context,
    git_only: bool = typer.Option(False, "--git-only", help="Only undo the commit and tag"),
    packages_only: bool = typer.Option(False, "--packages-only", help="Only yank published packages"),
    force: bool = typer.Option(False, "--force", help="Roll back a completed release"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Undo the current release."""
    cli = build_context(ctx)
    if git_only and packages_only:
        fail(cli_error("conflicting_arguments", "--git-only and --packages-only are mutually exclusive"), cli)
    scope: RollbackScope = "git_only" if git_only else "packages_only" if packages_only else "full"

    machine = cli.machine()
    loaded = unwrap_or_exit(machine.status(), cli)
    if not yes and loaded.state.current_phase is not Phase.ROLLED_BACK:
        target = loaded.state.target_version
        if not typer.confirm(f"Roll back release {target} ({scope.replace('_', ' ')})?", default=False):
            cli.console.print("aborted", Style.DIM)
            raise typer.Exit(code=int(ErrorCode.FAILURE))

    outcome = machine.rollback(scope, force=force)
    if isinstance(outcome, Err):
        current = machine.state
        fail(outcome.error, cli, phase=current.current_phase if current is not None else None)

    if outcome.value.summary is not None:
        render_rollback(outcome.value.summary)
    if not outcome.value.success:
        cli.console.error("rollback incomplete; run rollback again once the failures are fixed")
        raise typer.Exit(code=int(ErrorCode.FAILURE))


def resume(
    ctx: typer.Context,
    reset_to: str | None = typer.Option(
        None,
        "--reset-to",
        help="Re-enter this phase: validation, version_update, git_operations, publishing or cleanup",
    ),
    force: bool = typer.Option(False, "--force", help="Resume even if the release is not resumable"),
) -> None:
    """Continue an interrupted or failed release from its last checkpoint."""
    cli = build_context(ctx)

    reset_phase: Phase | None = None
    if reset_to is not None:
        choices = [p.value for p in MAIN_TRACK if p is not Phase.COMPLETED]
        if reset_to not in choices:
            fail(cli_error("invalid_arguments", f"Unknown phase: {reset_to}", hint=", ".join(choices)), cli)
        reset_phase = Phase(reset_to)

    cancel = CancelToken()
    machine = cli.machine(cancel=cancel)
    with cancel_on_interrupt(cancel):
        result = machine.resume(reset_phase, force=force)
    if isinstance(result, Err):
        current = machine.state
        fail(result.error, cli, phase=current.current_phase if current is not None else None)


def status(
    ctx: typer.Context,
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show checkpoints and every error"),
    json_output: bool = typer.Option(False, "--json", help="Emit the release state as JSON"),
) -> None:
    """Show the current release."""
    cli = build_context(ctx, json_output=json_output)
    loaded = unwrap_or_exit(cli.machine().status(), cli)

    if json_output:
        payload = state_to_dict(loaded.state)
        payload["recovered_from_backup"] = loaded.recovered_from_backup
        payload["resumable"] = loaded.state.is_resumable()
        emit_json(payload)
        return

    render_state(loaded.state, detailed=detailed, recovered=loaded.recovered_from_backup)


def cleanup(
    ctx: typer.Context,
    all_: bool = typer.Option(False, "--all", help="Also delete every state backup"),
    force: bool = typer.Option(False, "--force", help="Remove the state even if the release is not finished"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Remove the release state once the release is completed or rolled back."""
    cli = build_context(ctx)
    machine = cli.machine()

    if force and not yes and machine.store.has_active_release():
        if not typer.confirm("Remove the release state even if the release is unfinished?", default=False):
            cli.console.print("aborted", Style.DIM)
            raise typer.Exit(code=int(ErrorCode.FAILURE))

    removed = unwrap_or_exit(machine.cleanup(include_backups=all_, force=force), cli)
    if removed is None:
        cli.console.print("no release state to remove", Style.DIM)
