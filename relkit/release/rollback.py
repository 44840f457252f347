"""Rollback coordinator.

Undoes whatever the release already did: yanks published packages, deletes
the release tag and resets the release commit. Each step records its
completion in the release state before moving on, so running a rollback a
second time (after a crash, or on an already rolled back release) repeats
nothing.

Version edits in manifests are never rewritten here: they are reported as
manual actions.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Literal

from relkit.core.result import Err, Ok, Result
from relkit.output.console import ConsoleProtocol
from relkit.release.contracts import GitOperations, Registry
from relkit.release.errors import ReleaseError
from relkit.release.publish import PublishPipeline, RollbackReport
from relkit.release.state import GitState, ReleaseState, touch

__all__ = [
    "GitRollbackReport",
    "RollbackCoordinator",
    "RollbackScope",
    "RollbackSummary",
]

RollbackScope = Literal["git_only", "packages_only", "full"]

SaveState = Callable[[ReleaseState], Result[None, ReleaseError]]


@dataclass(frozen=True, slots=True)
class GitRollbackReport:
    tag_deleted: bool = False
    reset_done: bool = False
    warnings: tuple[str, ...] = ()

    def format_result(self) -> str:
        parts = [
            "tag deleted" if self.tag_deleted else "no tag to delete",
            "commit reset" if self.reset_done else "no commit to reset",
        ]
        return ", ".join(parts)


@dataclass(frozen=True, slots=True)
class RollbackSummary:
    packages: RollbackReport | None
    git: GitRollbackReport | None
    manual_actions: tuple[str, ...]

    @property
    def success(self) -> bool:
        return self.packages is None or self.packages.fully_successful


class RollbackCoordinator:
    def __init__(
        self,
        *,
        git: GitOperations,
        registry: Registry,
        pipeline: PublishPipeline,
        console: ConsoleProtocol,
        save: SaveState,
    ) -> None:
        self._git = git
        self._registry = registry
        self._pipeline = pipeline
        self._console = console
        self._save = save

    def rollback(
        self, state: ReleaseState, scope: RollbackScope
    ) -> Result[tuple[ReleaseState, RollbackSummary], ReleaseError]:
        """Run the steps ``scope`` asks for: packages first, then git."""
        current = state
        packages_report: RollbackReport | None = None
        git_report: GitRollbackReport | None = None

        if scope in ("packages_only", "full"):
            packages = self.rollback_packages(current)
            if isinstance(packages, Err):
                return packages
            current, packages_report = packages.value

        if scope in ("git_only", "full"):
            git = self.rollback_git(current)
            if isinstance(git, Err):
                return git
            current, git_report = git.value

        manual: list[str] = []
        if git_report is not None:
            manual.extend(git_report.warnings)
        if scope != "packages_only":
            manual.extend(self.manual_version_actions(current))
        if packages_report is not None:
            for name in packages_report.failed:
                manual.append(f"yank {name} {current.target_version} by hand")

        return Ok((current, RollbackSummary(packages=packages_report, git=git_report, manual_actions=tuple(manual))))

    def rollback_packages(
        self, state: ReleaseState
    ) -> Result[tuple[ReleaseState, RollbackReport | None], ReleaseError]:
        if state.publish_state is None:
            return Ok((state, None))

        current = state
        published = state.publish_state
        save_errors: list[ReleaseError] = []

        def on_yanked(name: str) -> None:
            nonlocal current, published
            published = published.with_yanked(name)
            current = touch(current, publish_state=published)
            saved = self._save(current)
            if isinstance(saved, Err):
                save_errors.append(saved.error)

        timeout = state.config.timeout
        report = self._pipeline.rollback_published(
            state.publish_state,
            lambda name, version: self._registry.yank(name, version, timeout=timeout),
            on_yanked=on_yanked,
        )
        if save_errors:
            return Err(save_errors[0])
        return Ok((current, report))

    def rollback_git(
        self, state: ReleaseState
    ) -> Result[tuple[ReleaseState, GitRollbackReport | None], ReleaseError]:
        gs = state.git_state
        if gs is None:
            return Ok((state, None))

        current = state
        warnings: list[str] = []

        if gs.tag_name is not None and not gs.tag_deleted:
            exists = self._git.tag_exists(gs.tag_name)
            if isinstance(exists, Err):
                return exists
            # A pushed tag is deleted on the remote even when it is gone locally.
            if exists.value or gs.pushed:
                deleted = self._git.delete_tag(
                    gs.tag_name, also_remote=gs.pushed, remote=gs.remote, timeout=state.config.timeout
                )
                if isinstance(deleted, Err):
                    return deleted
                self._console.success(f"deleted tag {gs.tag_name}")
            gs = replace(gs, tag_deleted=True)
            saved = self._persist_git(current, gs)
            if isinstance(saved, Err):
                return saved
            current = saved.value

        if gs.commit_hash is not None and not gs.reset_done:
            if gs.pre_release_commit is None:
                warnings.append(
                    f"pre-release commit of {gs.commit_hash[:8]} is unknown; reset the branch by hand"
                )
            else:
                reset = self._git.reset_to(gs.pre_release_commit, state.config.reset_mode)
                if isinstance(reset, Err):
                    return reset
                self._console.success(
                    f"reset to {gs.pre_release_commit[:8]} ({state.config.reset_mode})"
                )
                gs = replace(gs, reset_done=True)
                saved = self._persist_git(current, gs)
                if isinstance(saved, Err):
                    return saved
                current = saved.value

        if gs.commit_hash is not None and gs.pushed:
            warnings.append(
                f"release commit {gs.commit_hash[:8]} was pushed to {gs.remote or 'the remote'}; "
                "revert it there by hand"
            )

        return Ok(
            (
                current,
                GitRollbackReport(tag_deleted=gs.tag_deleted, reset_done=gs.reset_done, warnings=tuple(warnings)),
            )
        )

    def manual_version_actions(self, state: ReleaseState) -> tuple[str, ...]:
        vs = state.version_state
        if vs is None:
            return ()
        files = ", ".join(vs.updated_files) or "workspace manifests"
        return (f"revert version {vs.previous_version} -> {vs.new_version} in: {files}",)

    def _persist_git(
        self, state: ReleaseState, git_state: GitState
    ) -> Result[ReleaseState, ReleaseError]:
        updated = touch(state, git_state=git_state)
        saved = self._save(updated)
        if isinstance(saved, Err):
            return saved
        return Ok(updated)
