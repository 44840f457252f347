"""Release state machine.

Drives one release through ``validation -> version_update ->
git_operations -> publishing -> cleanup -> completed``, writing the state
through the store after every sub-step. Re-entering a phase (resume, reset)
looks at the phase's sub-state first, so finished sub-steps are never
applied twice.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from relkit.core.result import Err, Ok, Result
from relkit.output.console import ConsoleProtocol, Style
from relkit.release.contracts import (
    CancelToken,
    GitOperations,
    Registry,
    RegistryReceipt,
    VersionCollaborator,
    WorkspaceCollaborator,
    WorkspaceInfo,
    release_commit_message,
    tag_name_for,
)
from relkit.release.errors import (
    ReleaseError,
    cli_error,
    git_error,
    publish_error,
    state_error,
    version_error,
    workspace_error,
)
from relkit.release.graph import build_graph, publish_order
from relkit.release.publish import PackageOutcome, PublishPipeline, PublishSettings
from relkit.release.rollback import RollbackCoordinator, RollbackScope, RollbackSummary
from relkit.release.state import (
    MAIN_TRACK,
    BumpKind,
    GitState,
    PackagePublish,
    Phase,
    PublishFailure,
    PublishState,
    ReleaseConfig,
    ReleaseState,
    VersionState,
    new_release_state,
    now_iso,
    touch,
    with_checkpoint,
    with_error,
)
from relkit.release.store import LoadedState, StateStore

__all__ = ["ReleaseStateMachine", "RollbackOutcome"]

_VALIDATION_DONE = ("validation_passed", "validation_skipped")

_COMPLETION_CHECKPOINTS: dict[Phase, str] = {
    Phase.VERSION_UPDATE: "version_updated",
    Phase.GIT_OPERATIONS: "git_operations_complete",
    Phase.PUBLISHING: "publishing_complete",
    Phase.CLEANUP: "cleanup_complete",
}


@dataclass(frozen=True, slots=True)
class RollbackOutcome:
    state: ReleaseState
    summary: RollbackSummary | None

    @property
    def success(self) -> bool:
        return self.summary is None or self.summary.success


class ReleaseStateMachine:
    """Top-level release orchestrator for one workspace.

    Every public operation returns ``Result``. Phase failures are appended
    to the state's error log and persisted before the error is returned, so
    ``state`` always reflects what is on disk.
    """

    def __init__(
        self,
        *,
        root: Path,
        store: StateStore,
        workspace: WorkspaceCollaborator,
        versions: VersionCollaborator,
        git: GitOperations,
        registry: Registry,
        console: ConsoleProtocol,
        cancel: CancelToken | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.root = root
        self.store = store
        self._workspace = workspace
        self._versions = versions
        self._git = git
        self._registry = registry
        self._console = console
        self._cancel = cancel
        self._sleep = sleep
        self._state: ReleaseState | None = None

    @property
    def state(self) -> ReleaseState | None:
        """Last state written to disk by this machine."""
        return self._state

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def start(
        self,
        target_version: str,
        bump: BumpKind,
        config: ReleaseConfig,
        *,
        backup: bool = True,
    ) -> Result[ReleaseState, ReleaseError]:
        """Create and persist a new release.

        Nothing is written when another release is active or the pre-flight
        checks fail.
        """
        if self.store.has_active_release():
            return Err(
                state_error(
                    "release_active",
                    "A release is already in progress for this workspace",
                    hint=str(self.store.path),
                )
            )

        info = self._workspace.analyze(self.root)
        if isinstance(info, Err):
            return info

        state = new_release_state(target_version=target_version, bump=bump, config=config)
        state = with_checkpoint(state, "release_started", Phase.VALIDATION, completed=False)

        if config.skip_validation:
            self._console.warning("validation skipped")
            state = with_checkpoint(state, "validation_skipped", Phase.VALIDATION, completed=True)
        else:
            checked = self._preflight(state, info.value)
            if isinstance(checked, Err):
                return checked
            state = with_checkpoint(state, "validation_passed", Phase.VALIDATION, completed=True)

        saved = self._commit(state)
        if isinstance(saved, Err):
            return saved
        if backup:
            snap = self.store.backup()
            if isinstance(snap, Err):
                self._console.warning(f"could not snapshot state: {snap.error.message}")

        self._console.success(f"release {state.release_id} started: {target_version} ({bump})")
        return Ok(state)

    def run(self, state: ReleaseState) -> Result[ReleaseState, ReleaseError]:
        """Drive ``state`` from its current phase to ``completed``."""
        self._state = state
        current = state

        while not current.current_phase.is_terminal:
            phase = current.current_phase
            if phase.is_rollback:
                return Err(
                    state_error(
                        "invalid_transition",
                        "A rollback is in progress; run rollback again to finish it",
                    )
                )
            if self._cancelled():
                return self._fail(state_error("cancelled", f"Release cancelled during {phase}"))

            self._console.header(phase.value.replace("_", " "))
            done = self._run_phase(current)
            if isinstance(done, Err):
                return self._fail(done.error)
            current = done.value

            nxt = MAIN_TRACK[MAIN_TRACK.index(phase) + 1]
            if nxt is Phase.COMPLETED:
                finished = self._commit(
                    with_checkpoint(current, "release_completed", Phase.COMPLETED, completed=True)
                )
                if isinstance(finished, Err):
                    return finished
                current = finished.value
            else:
                if self._cancelled():
                    return self._fail(state_error("cancelled", f"Release cancelled after {phase}"))
                advanced = self.advance(current, nxt)
                if isinstance(advanced, Err):
                    return self._fail(advanced.error)
                current = advanced.value

        self._console.success(f"release {current.target_version} completed")
        return Ok(current)

    def advance(self, state: ReleaseState, phase: Phase) -> Result[ReleaseState, ReleaseError]:
        """Enter ``phase`` on the main track (same phase or forward only)."""
        current = state.current_phase
        if current.is_terminal or current.is_rollback or phase.is_rollback:
            return Err(
                state_error("invalid_transition", f"Cannot move from {current} to {phase}")
            )
        if MAIN_TRACK.index(phase) < MAIN_TRACK.index(current):
            return Err(
                state_error(
                    "invalid_transition",
                    f"Cannot move backward from {current} to {phase}",
                    hint="use resume --reset-to",
                )
            )
        return self._commit(with_checkpoint(state, f"{phase}_started", phase, completed=False))

    def resume(
        self, reset_phase: Phase | None = None, *, force: bool = False
    ) -> Result[ReleaseState, ReleaseError]:
        loaded = self._load()
        if isinstance(loaded, Err):
            return loaded
        state = loaded.value

        if state.current_phase is Phase.ROLLING_BACK:
            return Err(
                state_error(
                    "invalid_transition",
                    "A rollback is in progress; run rollback again to finish it",
                )
            )
        if not state.is_resumable() and not force:
            reason = (
                f"release is {state.current_phase}"
                if state.current_phase.is_terminal
                else "release has non-recoverable errors"
            )
            return Err(state_error("not_resumable", f"Release cannot be resumed: {reason}"))

        if reset_phase is not None:
            if reset_phase not in MAIN_TRACK or reset_phase is Phase.COMPLETED:
                return Err(
                    cli_error("invalid_arguments", f"Cannot reset to {reset_phase}", hint="validation, version_update, git_operations, publishing or cleanup")
                )
            backup = self.store.backup()
            if isinstance(backup, Err):
                return backup
            reset = self._commit(
                with_checkpoint(state, f"reset_to_{reset_phase}", reset_phase, completed=False)
            )
            if isinstance(reset, Err):
                return reset
            state = reset.value
            self._console.warning(f"reset to {reset_phase}")

        self._console.print(f"resuming {state.release_id} at {state.current_phase}", Style.BOLD)
        return self.run(state)

    def rollback(
        self, scope: RollbackScope = "full", *, force: bool = False
    ) -> Result[RollbackOutcome, ReleaseError]:
        """Undo the release.

        Already rolled back: returns the state untouched. A completed release
        is only rolled back with ``force``. Failed yanks keep the phase at
        ``rolling_back`` so running rollback again retries just those.
        """
        loaded = self._load()
        if isinstance(loaded, Err):
            return loaded
        state = loaded.value

        if state.current_phase is Phase.ROLLED_BACK:
            self._console.print("release already rolled back", Style.DIM)
            return Ok(RollbackOutcome(state=state, summary=None))
        if state.current_phase is Phase.COMPLETED and not force:
            return Err(
                state_error(
                    "invalid_transition",
                    "Release already completed",
                    hint="pass --force to roll back a completed release",
                )
            )

        backup = self.store.backup()
        if isinstance(backup, Err):
            return backup

        if state.current_phase is not Phase.ROLLING_BACK:
            entered = self._commit(
                with_checkpoint(state, "rollback_started", Phase.ROLLING_BACK, completed=False)
            )
            if isinstance(entered, Err):
                return entered
            state = entered.value

        self._console.header(f"rollback ({scope.replace('_', ' ')})")
        coordinator = RollbackCoordinator(
            git=self._git,
            registry=self._registry,
            pipeline=self._pipeline(state.config),
            console=self._console,
            save=self._save_progress,
        )
        result = coordinator.rollback(state, scope)
        if isinstance(result, Err):
            return self._fail(result.error)
        state, summary = result.value

        if summary.packages is not None and not summary.packages.fully_successful:
            failed = ", ".join(summary.packages.failed)
            self._fail(publish_error("yank_failed", f"Could not yank: {failed}", hint="run rollback again"))
            return Ok(RollbackOutcome(state=self._state or state, summary=summary))

        done = self._commit(
            with_checkpoint(state, "rollback_completed", Phase.ROLLED_BACK, completed=True)
        )
        if isinstance(done, Err):
            return done
        self._console.success("rollback completed")
        return Ok(RollbackOutcome(state=done.value, summary=summary))

    def cleanup(
        self, *, include_backups: bool = False, backup: bool = True, force: bool = False
    ) -> Result[ReleaseState | None, ReleaseError]:
        """Remove the state file once the release is terminal.

        Returns the removed state, or None when there was nothing to remove.
        """
        loaded = self.store.load()
        state: ReleaseState | None = None
        if isinstance(loaded, Err):
            if loaded.error.kind == "not_found":
                if include_backups:
                    removed = self.store.cleanup(include_backups=True)
                    if isinstance(removed, Err):
                        return removed
                return Ok(None)
            if not force:
                return loaded
        else:
            state = loaded.value.state

        if state is not None and not state.current_phase.is_terminal and not force:
            return Err(
                state_error(
                    "release_active",
                    f"Release is still in progress (phase {state.current_phase})",
                    hint="finish it with resume or rollback, or pass --force",
                )
            )

        if backup and not include_backups:
            snap = self.store.backup()
            if isinstance(snap, Err):
                return snap

        removed = self.store.cleanup(include_backups=include_backups)
        if isinstance(removed, Err):
            return removed
        self._state = None
        self._console.success("release state removed")
        return Ok(state)

    def status(self) -> Result[LoadedState, ReleaseError]:
        return self.store.load()

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _run_phase(self, state: ReleaseState) -> Result[ReleaseState, ReleaseError]:
        match state.current_phase:
            case Phase.VALIDATION:
                return self._validation(state)
            case Phase.VERSION_UPDATE:
                work = self._version_update(state)
            case Phase.GIT_OPERATIONS:
                work = self._git_operations(state)
            case Phase.PUBLISHING:
                work = self._publishing(state)
            case Phase.CLEANUP:
                work = self._cleanup_phase(state)
            case _:
                return Err(state_error("invalid_transition", f"No work for phase {state.current_phase}"))

        if isinstance(work, Err):
            return work
        done = work.value
        return self._commit(
            with_checkpoint(
                done, _COMPLETION_CHECKPOINTS[done.current_phase], done.current_phase, completed=True
            )
        )

    def _validation(self, state: ReleaseState) -> Result[ReleaseState, ReleaseError]:
        last = state.last_checkpoint
        if last is not None and last.name in _VALIDATION_DONE:
            return Ok(state)

        if state.config.skip_validation:
            return self._commit(
                with_checkpoint(state, "validation_skipped", Phase.VALIDATION, completed=True)
            )

        info = self._workspace.analyze(self.root)
        if isinstance(info, Err):
            return info
        checked = self._preflight(state, info.value)
        if isinstance(checked, Err):
            return checked
        return self._commit(
            with_checkpoint(state, "validation_passed", Phase.VALIDATION, completed=True)
        )

    def _version_update(self, state: ReleaseState) -> Result[ReleaseState, ReleaseError]:
        vs = state.version_state
        if vs is not None and vs.new_version == state.target_version:
            self._console.print(f"versions already at {vs.new_version}", Style.DIM)
            return Ok(state)

        info = self._workspace.analyze(self.root)
        if isinstance(info, Err):
            return info

        outcome = self._versions.apply_bump(info.value, "exact", state.target_version)
        if isinstance(outcome, Err):
            return outcome
        bumped = outcome.value
        if bumped.new != state.target_version:
            return Err(
                version_error(
                    "update_failed",
                    f"Version update produced {bumped.new}, expected {state.target_version}",
                )
            )

        root = self.root
        files = tuple(_relative(p, root) for p in bumped.updated_files)
        self._console.success(f"version {bumped.summary}")
        return self._commit(
            touch(
                state,
                version_state=VersionState(
                    previous_version=bumped.previous,
                    new_version=bumped.new,
                    updated_files=files,
                    summary=bumped.summary,
                ),
            )
        )

    def _git_operations(self, state: ReleaseState) -> Result[ReleaseState, ReleaseError]:
        config = state.config
        gs = state.git_state or GitState(remote=config.remote)
        current = state

        if gs.commit_hash is None:
            # A crash between commit and save leaves the release commit at HEAD.
            head = self._git.head_commit()
            if isinstance(head, Err):
                return head
            if head.value.message == release_commit_message(state.target_version):
                info = head.value
                self._console.warning(f"release commit {info.short_hash} already exists, reusing it")
            else:
                commit = self._git.create_release_commit(state.target_version)
                if isinstance(commit, Err):
                    return commit
                info = commit.value
                self._console.success(f"commit {info.short_hash}: {info.message}")
            gs = replace(
                gs,
                commit_hash=info.hash,
                pre_release_commit=info.parents[0] if info.parents else None,
            )
            saved = self._commit(touch(current, git_state=gs))
            if isinstance(saved, Err):
                return saved
            current = saved.value

        if gs.tag_name is None:
            name = tag_name_for(state.target_version)
            exists = self._git.tag_exists(name)
            if isinstance(exists, Err):
                return exists
            if exists.value:
                self._console.warning(f"tag {name} already exists, reusing it")
            else:
                tag = self._git.create_version_tag(state.target_version)
                if isinstance(tag, Err):
                    return tag
                name = tag.value.name
                self._console.success(f"tag {name}")
            gs = replace(gs, tag_name=name)
            saved = self._commit(touch(current, git_state=gs))
            if isinstance(saved, Err):
                return saved
            current = saved.value

        if config.push_to_remote and not gs.pushed:
            pushed = self._git.push(config.remote, include_tags=True, timeout=config.timeout)
            if isinstance(pushed, Err):
                return pushed
            push = pushed.value
            for warning in push.warnings:
                self._console.warning(warning)
            gs = replace(
                gs,
                pushed=True,
                remote=push.remote,
                commits_pushed=push.commits_pushed,
                tags_pushed=push.tags_pushed,
            )
            self._console.success(
                f"pushed {push.commits_pushed} commits and {push.tags_pushed} tags to {push.remote}"
            )
            saved = self._commit(touch(current, git_state=gs))
            if isinstance(saved, Err):
                return saved
            current = saved.value
        elif not config.push_to_remote:
            self._console.print("push skipped", Style.DIM)

        return Ok(current)

    def _publishing(self, state: ReleaseState) -> Result[ReleaseState, ReleaseError]:
        info_result = self._workspace.analyze(self.root)
        if isinstance(info_result, Err):
            return info_result
        info = info_result.value

        graph = build_graph(info)
        if isinstance(graph, Err):
            return graph
        ordered = publish_order(graph.value)
        if isinstance(ordered, Err):
            return ordered
        plan = ordered.value

        ps = state.publish_state or PublishState(tier_count=plan.tier_count)
        if ps.tier_count != plan.tier_count:
            ps = replace(ps, tier_count=plan.tier_count)
        started = self._commit(touch(state, publish_state=ps))
        if isinstance(started, Err):
            return started
        current = started.value

        version = state.target_version
        timeout = state.config.timeout
        save_errors: list[ReleaseError] = []

        def publish_one(name: str) -> Result[RegistryReceipt, ReleaseError]:
            package = info.get(name)
            if package is None:
                return Err(workspace_error("package_not_found", f"Package not in workspace: {name}"))
            return self._registry.publish(package, version, timeout=timeout)

        def on_outcome(outcome: PackageOutcome) -> None:
            nonlocal current, ps
            if outcome.succeeded:
                updated = ps.with_success(
                    PackagePublish(
                        package=outcome.package,
                        version=version,
                        attempts=outcome.attempts,
                        published_at=now_iso(),
                        already_published=outcome.status == "already_published",
                    )
                )
            elif outcome.error is not None:
                updated = ps.with_failure(
                    PublishFailure(
                        package=outcome.package,
                        kind=outcome.error.kind,
                        message=outcome.error.message,
                        attempts=outcome.attempts,
                    )
                )
            else:
                return
            saved = self._commit(touch(current, publish_state=updated))
            if isinstance(saved, Err):
                save_errors.append(saved.error)
                return
            current, ps = saved.value, updated

        pipeline = self._pipeline(state.config)
        report = pipeline.publish_all(
            plan,
            publish_one,
            skip=frozenset(ps.successful_publishes),
            on_outcome=on_outcome,
        )
        self._console.print(report.format_summary(), Style.INFO)

        if save_errors:
            return Err(save_errors[0])
        if report.cancelled:
            return Err(state_error("cancelled", "Release cancelled during publishing"))
        if report.failed:
            names = ", ".join(report.failed)
            return Err(
                publish_error(
                    "publish_failed",
                    f"{len(report.failed)} of {len(plan.packages)} packages failed to publish: {names}",
                    hint="fix the cause, then resume",
                )
            )

        return Ok(current)

    def _cleanup_phase(self, state: ReleaseState) -> Result[ReleaseState, ReleaseError]:
        snap = self.store.backup()
        if isinstance(snap, Err):
            return snap
        if snap.value is not None:
            self._console.print(f"state snapshot: {snap.value.name}", Style.DIM)
        return Ok(state)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _preflight(self, state: ReleaseState, info: WorkspaceInfo) -> Result[None, ReleaseError]:
        """Workspace validation plus git readiness."""
        report_result = self._workspace.validate(info)
        if isinstance(report_result, Err):
            return report_result
        report = report_result.value
        for warning in report.warnings:
            self._console.warning(warning)
        if not report.success:
            return Err(
                workspace_error(
                    "invalid_structure",
                    "Workspace validation failed: " + "; ".join(report.critical_errors),
                    hint="relkit validate --detailed",
                )
            )

        readiness = self._git.validate_release_readiness()
        if isinstance(readiness, Err):
            return readiness
        for warning in readiness.value.warnings:
            self._console.warning(warning)
        if not readiness.value.is_ready:
            return Err(git_error("not_ready", "; ".join(readiness.value.blocking_issues)))

        # After the version update the tree holds our own edits.
        if state.version_state is None and not state.config.allow_dirty:
            clean = self._git.is_working_tree_clean()
            if isinstance(clean, Err):
                return clean
            if not clean.value:
                return Err(git_error("dirty_working_tree", "Working tree has uncommitted changes"))

        if state.git_state is None or state.git_state.tag_name is None:
            tag = tag_name_for(state.target_version)
            exists = self._git.tag_exists(tag)
            if isinstance(exists, Err):
                return exists
            if exists.value:
                return Err(git_error("tag_exists", f"Tag {tag} already exists", hint=tag))

        self._console.success(report.summary())
        return Ok(None)

    def _pipeline(self, config: ReleaseConfig) -> PublishPipeline:
        return PublishPipeline(
            PublishSettings.from_release_config(config),
            console=self._console,
            sleep=self._sleep,
            cancel=self._cancel,
        )

    def _load(self) -> Result[ReleaseState, ReleaseError]:
        loaded = self.store.load()
        if isinstance(loaded, Err):
            return loaded
        if loaded.value.recovered_from_backup:
            self._console.warning(f"state file unreadable, recovered from {loaded.value.source.name}")
            # Promote the backup so the primary file is valid again.
            saved = self._commit(loaded.value.state)
            if isinstance(saved, Err):
                return saved
        self._state = loaded.value.state
        return Ok(loaded.value.state)

    def _commit(self, state: ReleaseState) -> Result[ReleaseState, ReleaseError]:
        saved = self.store.save(state)
        if isinstance(saved, Err):
            return saved
        self._state = state
        return Ok(state)

    def _save_progress(self, state: ReleaseState) -> Result[None, ReleaseError]:
        saved = self._commit(state)
        if isinstance(saved, Err):
            return saved
        return Ok(None)

    def _fail(self, error: ReleaseError) -> Err[ReleaseError]:
        """Record ``error`` in the last persisted state and return it."""
        if self._state is not None:
            recorded = with_error(self._state, error)
            saved = self._commit(recorded)
            if isinstance(saved, Err):
                self._console.warning(f"could not record error: {saved.error.message}")
        self._console.error(error.pretty())
        return Err(error)

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.cancelled


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)
