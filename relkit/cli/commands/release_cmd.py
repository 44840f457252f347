from __future__ import annotations

import typer

from relkit.cli.commands._helpers import emit_json, fail, parse_bump, unwrap_or_exit
from relkit.cli.context import CLIContext, build_context, cancel_on_interrupt
from relkit.cli.render import render_preview
from relkit.core.result import Err
from relkit.output.console import Style
from relkit.release.contracts import CancelToken
from relkit.release.graph import build_graph, publish_order
from relkit.release.state import ReleaseConfig


def release_config(
    ctx: CLIContext,
    *,
    skip_validation: bool,
    allow_dirty: bool,
    no_push: bool,
    package_delay: float | None,
    max_retries: int | None,
    concurrency: int | None,
    timeout: float | None,
) -> ReleaseConfig:
    """relkit.toml [release] defaults with CLI overrides on top."""
    d = ctx.config.release
    return ReleaseConfig(
        push_to_remote=d.push and not no_push,
        remote=d.remote,
        inter_package_delay=d.package_delay if package_delay is None else package_delay,
        max_retries=d.max_retries if max_retries is None else max_retries,
        retry_backoff=d.retry_backoff,
        max_backoff=d.max_backoff,
        max_concurrent_per_tier=d.concurrency if concurrency is None else concurrency,
        timeout=d.timeout if timeout is None else timeout,
        allow_dirty=allow_dirty,
        skip_validation=skip_validation,
        reset_mode=d.reset_mode,
    )


def release(
    ctx: typer.Context,
    bump: str = typer.Argument(..., help="major, minor, patch, prerelease or exact"),
    version: str | None = typer.Option(None, "--version", help="Target version (exact bumps)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the plan without changing anything"),
    skip_validation: bool = typer.Option(False, "--skip-validation", help="Skip workspace and git checks"),
    allow_dirty: bool = typer.Option(False, "--allow-dirty", help="Allow uncommitted changes"),
    no_push: bool = typer.Option(False, "--no-push", help="Do not push the release commit and tag"),
    package_delay: float | None = typer.Option(None, "--package-delay", min=0, help="Seconds between package publishes"),
    max_retries: int | None = typer.Option(None, "--max-retries", min=0, help="Retries for transient publish failures"),
    concurrency: int | None = typer.Option(None, "--concurrency", min=1, help="Parallel publishes per tier"),
    timeout: float | None = typer.Option(None, "--timeout", min=0, help="Registry command timeout in seconds"),
    no_backup: bool = typer.Option(False, "--no-backup", help="Do not snapshot the state when starting"),
) -> None:
    """Start a release: bump, commit, tag, push and publish every package."""
    cli = build_context(ctx)
    kind = parse_bump(bump, version, cli)

    workspace = cli.workspace_collaborator()
    info = unwrap_or_exit(workspace.analyze(cli.workspace.root), cli)
    preview = unwrap_or_exit(cli.versions().preview_bump(info, kind, version), cli)

    if dry_run:
        plan = unwrap_or_exit(publish_order(unwrap_or_exit(build_graph(info), cli)), cli)
        render_preview(preview, plan)
        cli.console.print("dry run: nothing changed", Style.DIM)
        return

    config = release_config(
        cli,
        skip_validation=skip_validation,
        allow_dirty=allow_dirty,
        no_push=no_push,
        package_delay=package_delay,
        max_retries=max_retries,
        concurrency=concurrency,
        timeout=timeout,
    )

    cancel = CancelToken()
    machine = cli.machine(cancel=cancel)
    state = unwrap_or_exit(machine.start(preview.proposed, kind, config, backup=not no_backup), cli)

    with cancel_on_interrupt(cancel):
        result = machine.run(state)
    if isinstance(result, Err):
        current = machine.state
        fail(result.error, cli, phase=current.current_phase if current is not None else None)

    cli.console.success(f"released {preview.proposed}")
    cli.console.print("remove the release state with: relkit cleanup", Style.DIM)


def preview(
    ctx: typer.Context,
    bump: str = typer.Argument(..., help="major, minor, patch, prerelease or exact"),
    version: str | None = typer.Option(None, "--version", help="Target version (exact bumps)"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON"),
) -> None:
    """Show the version change, edited files and publish order."""
    cli = build_context(ctx, json_output=json_output)
    kind = parse_bump(bump, version, cli)

    info = unwrap_or_exit(cli.workspace_collaborator().analyze(cli.workspace.root), cli)
    bump_preview = unwrap_or_exit(cli.versions().preview_bump(info, kind, version), cli)
    plan = unwrap_or_exit(publish_order(unwrap_or_exit(build_graph(info), cli)), cli)

    if json_output:
        emit_json(
            {
                "current": bump_preview.current,
                "proposed": bump_preview.proposed,
                "bump": kind,
                "files_to_modify": [str(p) for p in bump_preview.files_to_modify],
                "tiers": [list(t) for t in plan.tiers],
            }
        )
        return

    render_preview(bump_preview, plan)
