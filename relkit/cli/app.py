from __future__ import annotations

import os
from pathlib import Path

import typer

from relkit import __version__
from relkit.cli.commands.release_cmd import preview, release
from relkit.cli.commands.state_cmd import cleanup, resume, rollback, status
from relkit.cli.commands.workspace_cmd import validate
from relkit.cli.context import CLIOptions
from relkit.core.errors import ErrorCode
from relkit.core.workspace import WORKSPACE_ENV_VAR, is_workspace_root

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(release)
app.command()(rollback)
app.command()(resume)
app.command()(status)
app.command()(cleanup)
app.command()(validate)
app.command()(preview)


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    workspace: Path | None = typer.Option(
        None,
        "--workspace",
        help="Workspace root (overrides auto detection)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress details and suggestions"),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)

    ctx.obj = CLIOptions(verbose=verbose)

    if workspace is not None:
        try:
            root = workspace.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --workspace: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.FAILURE))

        if not root.is_dir() or not is_workspace_root(root):
            typer.echo(
                f"error: --workspace '{root}' is not a valid workspace (missing relkit.toml)",
                err=True,
            )
            raise typer.Exit(code=int(ErrorCode.FAILURE))

        os.environ[WORKSPACE_ENV_VAR] = str(root)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)


def main() -> None:
    app()
