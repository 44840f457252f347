"""Rich renderings of release records for the status/validate/preview commands."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table
from rich.text import Text

from relkit.release.contracts import BumpPreview, ValidationReport
from relkit.release.graph import TierPlan
from relkit.release.rollback import RollbackSummary
from relkit.release.state import Phase, PublishState, ReleaseState

_console = Console(highlight=False)

_PHASE_STYLE: dict[Phase, str] = {
    Phase.COMPLETED: "green",
    Phase.ROLLED_BACK: "yellow",
    Phase.ROLLING_BACK: "yellow bold",
}


def render_state(state: ReleaseState, *, detailed: bool = False, recovered: bool = False) -> None:
    header = Text()
    header.append(f"Release {state.target_version}", style="bold")
    header.append(f" ({state.version_bump})  ")
    header.append(state.current_phase.value, style=_PHASE_STYLE.get(state.current_phase, "cyan"))
    _console.print(header)
    _console.print(f"id: {state.release_id}", style="dim", markup=False)
    _console.print(
        f"started {state.started_at}, updated {state.updated_at} ({state.elapsed_seconds():.0f}s)",
        style="dim",
        markup=False,
    )
    if recovered:
        _console.print("state was recovered from a backup", style="yellow")

    resumable = state.is_resumable()
    _console.print(
        Text("resumable" if resumable else "not resumable", style="green" if resumable else "red")
    )

    if state.version_state is not None:
        vs = state.version_state
        _console.print(f"version: {vs.previous_version} -> {vs.new_version}", markup=False)
    if state.git_state is not None:
        gs = state.git_state
        parts = [f"commit {gs.commit_hash[:8]}" if gs.commit_hash else "no commit"]
        if gs.tag_name:
            parts.append(f"tag {gs.tag_name}")
        if gs.pushed:
            parts.append(f"pushed to {gs.remote}")
        _console.print("git: " + ", ".join(parts), markup=False)
    if state.publish_state is not None:
        _render_publish(state.publish_state)

    if detailed:
        _render_checkpoints(state)
    if state.errors:
        _render_errors(state, detailed=detailed)


def _render_publish(ps: PublishState) -> None:
    table = Table(title=f"publishing ({ps.tier_count} tiers)", show_header=True, header_style="bold")
    table.add_column("package")
    table.add_column("status")
    table.add_column("attempts", justify="right")
    for name, ok in ps.successful_publishes.items():
        status = "already published" if ok.already_published else "published"
        if name in ps.yanked:
            status = "yanked"
        table.add_row(name, Text(status, style="green" if name not in ps.yanked else "yellow"), str(ok.attempts))
    for name, failure in ps.failed_packages.items():
        table.add_row(name, Text(f"failed ({failure.kind})", style="red"), str(failure.attempts))
    _console.print(table)


def _render_checkpoints(state: ReleaseState) -> None:
    table = Table(title="checkpoints", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("name")
    table.add_column("phase")
    table.add_column("time")
    for i, cp in enumerate(state.checkpoints, start=1):
        name = Text(cp.name, style="green" if cp.completed else "")
        table.add_row(str(i), name, cp.phase.value, cp.timestamp)
    _console.print(table)


def _render_errors(state: ReleaseState, *, detailed: bool) -> None:
    errors = state.errors if detailed else state.errors[-1:]
    title = "errors" if detailed else f"last error (of {len(state.errors)})"
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("phase")
    table.add_column("kind")
    table.add_column("message")
    table.add_column("recoverable")
    for e in errors:
        table.add_row(
            e.phase.value,
            f"{e.category}.{e.kind}",
            e.message,
            Text("yes" if e.recoverable else "no", style="green" if e.recoverable else "red"),
        )
    _console.print(table)


def render_validation(report: ValidationReport, *, detailed: bool = False) -> None:
    if detailed:
        table = Table(show_header=True, header_style="bold")
        table.add_column("check")
        table.add_column("result")
        table.add_column("details")
        for check in report.checks:
            if check.passed:
                result = Text("ok", style="green")
            elif check.critical:
                result = Text("FAIL", style="red bold")
            else:
                result = Text("warn", style="yellow")
            table.add_row(check.name, result, check.message)
        _console.print(table)
    else:
        for check in report.checks:
            if not check.passed:
                _console.print(check.format_result(), markup=False)

    _console.print(Text(report.summary(), style="green" if report.success else "red"))


def render_preview(preview: BumpPreview, plan: TierPlan | None = None) -> None:
    _console.print(Text(preview.format_preview(), style="bold"))
    for path in preview.files_to_modify:
        _console.print(f"  {path}", style="dim", markup=False)
    if plan is not None:
        _console.print(f"publish order ({plan.tier_count} tiers):", markup=False)
        for i, tier in enumerate(plan.tiers, start=1):
            _console.print(f"  {i}. {', '.join(tier)}", markup=False)


def render_rollback(summary: RollbackSummary) -> None:
    if summary.packages is not None:
        _console.print(f"packages: {summary.packages.format_summary()}", markup=False)
    if summary.git is not None:
        _console.print(f"git: {summary.git.format_result()}", markup=False)
    if summary.manual_actions:
        _console.print(Text("manual actions required:", style="yellow bold"))
        for action in summary.manual_actions:
            _console.print(f"  - {action}", markup=False)
