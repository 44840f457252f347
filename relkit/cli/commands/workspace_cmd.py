from __future__ import annotations

import typer

from relkit.cli.commands._helpers import emit_json, unwrap_or_exit
from relkit.cli.context import build_context
from relkit.cli.render import render_validation
from relkit.core.errors import ErrorCode


def validate(
    ctx: typer.Context,
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show every check"),
    json_output: bool = typer.Option(False, "--json", help="Emit the validation report as JSON"),
) -> None:
    """Check the workspace is ready to release."""
    cli = build_context(ctx, json_output=json_output)
    workspace = cli.workspace_collaborator()
    info = unwrap_or_exit(workspace.analyze(cli.workspace.root), cli)
    report = unwrap_or_exit(workspace.validate(info), cli)

    if json_output:
        emit_json(
            {
                "success": report.success,
                "critical_errors": list(report.critical_errors),
                "warnings": list(report.warnings),
                "checks": [
                    {"name": c.name, "passed": c.passed, "message": c.message, "critical": c.critical}
                    for c in report.checks
                ],
                "packages": [
                    {"name": p.name, "version": p.version, "dependencies": list(p.dependencies)}
                    for p in info.packages
                ],
            }
        )
    else:
        render_validation(report, detailed=detailed)

    if not report.success:
        raise typer.Exit(code=int(ErrorCode.FAILURE))
