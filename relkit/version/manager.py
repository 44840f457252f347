from __future__ import annotations

from pathlib import Path

from relkit.core.result import Err, Ok, Result
from relkit.platform.files import atomic_write_text
from relkit.release.contracts import BumpOutcome, BumpPreview, WorkspaceInfo
from relkit.release.errors import ReleaseError, version_error
from relkit.release.state import BumpKind
from relkit.version.semver import DEFAULT_PRERELEASE_LABEL, SemVer, parse_version
from relkit.workspace.manifest import replace_pins, replace_project_version

__all__ = ["VersionManager"]


class VersionManager:
    """Version collaborator: lockstep versions across every member.

    Every member carries the workspace version; internal ``==`` pins follow
    it. Manifests are edited in place with atomic writes.
    """

    def __init__(self, *, prerelease_label: str = DEFAULT_PRERELEASE_LABEL) -> None:
        self.prerelease_label = prerelease_label

    def current_version(self, info: WorkspaceInfo) -> Result[str, ReleaseError]:
        current = self._current(info)
        if isinstance(current, Err):
            return current
        return Ok(str(current.value))

    def preview_bump(
        self, info: WorkspaceInfo, kind: BumpKind, exact: str | None = None
    ) -> Result[BumpPreview, ReleaseError]:
        plan = self._plan(info, kind, exact)
        if isinstance(plan, Err):
            return plan
        current, target, edits = plan.value
        return Ok(
            BumpPreview(
                current=str(current),
                proposed=str(target),
                files_to_modify=tuple(path for path, _ in edits),
            )
        )

    def apply_bump(
        self, info: WorkspaceInfo, kind: BumpKind, exact: str | None = None
    ) -> Result[BumpOutcome, ReleaseError]:
        """Write the new version; bumping to the current version changes nothing."""
        plan = self._plan(info, kind, exact)
        if isinstance(plan, Err):
            return plan
        current, target, edits = plan.value

        updated: list[Path] = []
        for path, text in edits:
            try:
                atomic_write_text(path, text, encoding="utf-8")
            except OSError as e:
                return Err(
                    version_error(
                        "update_failed",
                        f"Failed to write {path.name}: {e}",
                        hint=str(path),
                    )
                )
            updated.append(path)

        return Ok(BumpOutcome(previous=str(current), new=str(target), updated_files=tuple(updated)))

    def next_version(self, current: SemVer, kind: BumpKind, exact: str | None) -> Result[SemVer, ReleaseError]:
        if kind != "exact":
            if exact is not None:
                return Err(version_error("unsupported_bump", f"An explicit version only goes with an exact bump, not {kind}"))
            return Ok(current.bump(kind, label=self.prerelease_label))

        if exact is None:
            return Err(version_error("unsupported_bump", "An exact bump needs an explicit version"))
        target = parse_version(exact)
        if target is None:
            return Err(version_error("invalid_version", f"Invalid version: {exact}", hint="MAJOR.MINOR.PATCH[-PRERELEASE]"))
        if target.sort_key() < current.sort_key():
            return Err(
                version_error(
                    "unsupported_bump",
                    f"{target} is lower than the current version {current}",
                )
            )
        return Ok(target)

    def _current(self, info: WorkspaceInfo) -> Result[SemVer, ReleaseError]:
        versions = sorted({p.version for p in info.packages if p.version})
        if not versions:
            return Err(version_error("invalid_version", "No member declares a version"))
        if len(versions) > 1:
            detail = ", ".join(f"{p.name}={p.version}" for p in info.packages)
            return Err(
                version_error(
                    "dependency_mismatch",
                    "Workspace members are at different versions",
                    hint=detail,
                )
            )
        parsed = parse_version(versions[0])
        if parsed is None:
            return Err(version_error("invalid_version", f"Invalid workspace version: {versions[0]}"))
        return Ok(parsed)

    def _plan(
        self, info: WorkspaceInfo, kind: BumpKind, exact: str | None
    ) -> Result[tuple[SemVer, SemVer, list[tuple[Path, str]]], ReleaseError]:
        """Current version, target version and the rewritten manifest texts."""
        current = self._current(info)
        if isinstance(current, Err):
            return current
        target = self.next_version(current.value, kind, exact)
        if isinstance(target, Err):
            return target

        old, new = str(current.value), str(target.value)
        edits: list[tuple[Path, str]] = []
        if old == new:
            return Ok((current.value, target.value, edits))

        names = info.package_names
        for package in info.packages:
            path = package.manifest_path
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                return Err(version_error("update_failed", f"Failed to read {path.name}: {e}", hint=str(path)))

            rewritten = replace_project_version(text, new)
            if rewritten is None:
                return Err(
                    version_error(
                        "update_failed",
                        f"{package.name}: no literal version in the [project] table",
                        hint=str(path),
                    )
                )
            rewritten = replace_pins(rewritten, names, old, new)
            if rewritten != text:
                edits.append((path, rewritten))

        return Ok((current.value, target.value, edits))
