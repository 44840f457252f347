from __future__ import annotations

import signal
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from types import FrameType

import typer

from relkit.core.config import Config, load_config_or_default
from relkit.core.errors import ErrorCode
from relkit.core.result import Err
from relkit.core.workspace import Workspace, detect_workspace
from relkit.git import Repository
from relkit.output.console import ConsoleProtocol, RichConsole
from relkit.registry import CommandRegistry
from relkit.release.contracts import CancelToken
from relkit.release.machine import ReleaseStateMachine
from relkit.release.store import StateStore
from relkit.version import VersionManager
from relkit.workspace import PythonWorkspace


@dataclass(frozen=True, slots=True)
class CLIOptions:
    """Global options set by the app callback (``ctx.obj``)."""

    verbose: bool = False


@dataclass(frozen=True, slots=True)
class CLIContext:
    workspace: Workspace
    config: Config
    console: ConsoleProtocol
    verbose: bool
    json_output: bool

    def store(self) -> StateStore:
        return StateStore(
            self.workspace.state_path,
            self.workspace.backup_dir,
            max_backups=self.config.release.max_backups,
        )

    def workspace_collaborator(self) -> PythonWorkspace:
        return PythonWorkspace(self.config.workspace)

    def versions(self) -> VersionManager:
        return VersionManager(prerelease_label=self.config.release.prerelease_label)

    def machine(self, *, cancel: CancelToken | None = None) -> ReleaseStateMachine:
        root = self.workspace.root
        return ReleaseStateMachine(
            root=root,
            store=self.store(),
            workspace=self.workspace_collaborator(),
            versions=self.versions(),
            git=Repository(root, remote=self.config.release.remote, network_timeout=self.config.release.timeout),
            registry=CommandRegistry(self.config.registry, root),
            console=self.console,
            cancel=cancel,
        )


def options_from(ctx: typer.Context) -> CLIOptions:
    obj = ctx.find_root().obj
    return obj if isinstance(obj, CLIOptions) else CLIOptions()


def build_context(ctx: typer.Context, *, json_output: bool = False) -> CLIContext:
    options = options_from(ctx)

    workspace_result = detect_workspace()
    if isinstance(workspace_result, Err):
        typer.echo(f"error: {workspace_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.FAILURE))
    workspace = workspace_result.value

    config_result = load_config_or_default(workspace.config_path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.FAILURE))

    # In JSON mode stdout carries the document only.
    console = RichConsole(verbose=options.verbose, stderr=json_output)
    return CLIContext(
        workspace=workspace,
        config=config_result.value,
        console=console,
        verbose=options.verbose,
        json_output=json_output,
    )


@contextmanager
def cancel_on_interrupt(token: CancelToken) -> Iterator[None]:
    """Turn the first Ctrl-C into a cooperative cancellation.

    A second Ctrl-C falls back to the previous handler.
    """

    previous = signal.getsignal(signal.SIGINT)

    def handler(signum: int, frame: FrameType | None) -> None:
        token.cancel()
        signal.signal(signal.SIGINT, previous)

    try:
        signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not on the main thread (e.g. under a test runner): no handler.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)
