"""Cross-layer contracts for the release bounded context.

The orchestration core (state machine, publish pipeline, rollback
coordinator) only talks to its collaborators through the protocols below.
``relkit.workspace``, ``relkit.version``, ``relkit.git`` and
``relkit.registry`` provide the production implementations; the tests use
in-memory fakes.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Protocol

from relkit.core.result import Result
from relkit.release.errors import ReleaseError
from relkit.release.state import BumpKind

ResetKind = Literal["soft", "mixed", "hard"]


class CancelToken:
    """Cooperative cancellation flag.

    Checked between phases and between packages, never while state is
    being written.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# -----------------------------------------------------------------------------
# Workspace
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PackageInfo:
    """One workspace member.

    Attributes:
        name: Canonical package name.
        version: Version declared in the manifest.
        path: Package directory.
        manifest_path: Its pyproject.toml.
        dependencies: Canonical names of the internal packages it depends on.
        requirements: Raw dependency strings from the manifest.
    """

    name: str
    version: str
    path: Path
    manifest_path: Path
    dependencies: tuple[str, ...] = ()
    requirements: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class WorkspaceInfo:
    root: Path
    packages: tuple[PackageInfo, ...]

    @property
    def package_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.packages)

    @property
    def internal_edges(self) -> tuple[tuple[str, str], ...]:
        """(dependent, dependency) pairs between members."""
        return tuple((p.name, d) for p in self.packages for d in p.dependencies)

    @property
    def manifest_paths(self) -> tuple[Path, ...]:
        return tuple(p.manifest_path for p in self.packages)

    def get(self, name: str) -> PackageInfo | None:
        for p in self.packages:
            if p.name == name:
                return p
        return None


@dataclass(frozen=True, slots=True)
class ValidationCheck:
    name: str
    passed: bool
    message: str
    critical: bool = True

    def format_result(self) -> str:
        mark = "ok" if self.passed else ("FAIL" if self.critical else "warn")
        return f"[{mark}] {self.name}: {self.message}"


@dataclass(frozen=True, slots=True)
class ValidationReport:
    success: bool
    critical_errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    checks: tuple[ValidationCheck, ...] = ()

    def summary(self) -> str:
        passed = sum(1 for c in self.checks if c.passed)
        verdict = "passed" if self.success else "failed"
        return (
            f"Validation {verdict}: {passed}/{len(self.checks)} checks passed, "
            f"{len(self.critical_errors)} critical, {len(self.warnings)} warnings"
        )


class WorkspaceCollaborator(Protocol):
    def analyze(self, root: Path) -> Result[WorkspaceInfo, ReleaseError]: ...

    def validate(self, info: WorkspaceInfo) -> Result[ValidationReport, ReleaseError]: ...


# -----------------------------------------------------------------------------
# Version
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BumpPreview:
    current: str
    proposed: str
    files_to_modify: tuple[Path, ...]

    def format_preview(self) -> str:
        return f"{self.current} -> {self.proposed} ({len(self.files_to_modify)} files)"


@dataclass(frozen=True, slots=True)
class BumpOutcome:
    previous: str
    new: str
    updated_files: tuple[Path, ...]

    @property
    def summary(self) -> str:
        return f"{self.previous} -> {self.new} in {len(self.updated_files)} files"


class VersionCollaborator(Protocol):
    def current_version(self, info: WorkspaceInfo) -> Result[str, ReleaseError]: ...

    def preview_bump(
        self, info: WorkspaceInfo, kind: BumpKind, exact: str | None = None
    ) -> Result[BumpPreview, ReleaseError]: ...

    def apply_bump(
        self, info: WorkspaceInfo, kind: BumpKind, exact: str | None = None
    ) -> Result[BumpOutcome, ReleaseError]: ...


# -----------------------------------------------------------------------------
# Version control
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CommitInfo:
    hash: str
    message: str
    author_name: str = ""
    author_email: str = ""
    timestamp: str = ""
    parents: tuple[str, ...] = ()

    @property
    def short_hash(self) -> str:
        return self.hash[:8]


@dataclass(frozen=True, slots=True)
class TagInfo:
    name: str
    target_commit: str
    message: str | None = None
    is_annotated: bool = True


@dataclass(frozen=True, slots=True)
class PushInfo:
    remote: str
    commits_pushed: int
    tags_pushed: int
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ReadinessReport:
    is_ready: bool
    blocking_issues: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


def tag_name_for(version: str) -> str:
    return f"v{version}"


def release_commit_message(version: str) -> str:
    return f"chore(release): {tag_name_for(version)}"


class GitOperations(Protocol):
    """Version-control capability used by the release core."""

    def head_commit(self) -> Result[CommitInfo, ReleaseError]: ...

    def create_release_commit(
        self, version: str, message: str | None = None
    ) -> Result[CommitInfo, ReleaseError]: ...

    def create_version_tag(
        self, version: str, message: str | None = None
    ) -> Result[TagInfo, ReleaseError]: ...

    def push(
        self, remote: str | None = None, *, include_tags: bool = True, timeout: float | None = None
    ) -> Result[PushInfo, ReleaseError]: ...

    def is_working_tree_clean(self) -> Result[bool, ReleaseError]: ...

    def reset_to(self, commit_id: str, mode: ResetKind) -> Result[None, ReleaseError]: ...

    def delete_tag(
        self, name: str, *, also_remote: bool, remote: str | None = None, timeout: float | None = None
    ) -> Result[None, ReleaseError]: ...

    def tag_exists(self, name: str) -> Result[bool, ReleaseError]: ...

    def validate_release_readiness(self) -> Result[ReadinessReport, ReleaseError]: ...


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RegistryReceipt:
    package: str
    version: str
    details: tuple[str, ...] = field(default_factory=tuple)


class Registry(Protocol):
    """Registry capability.

    ``publish`` fails with publish-category errors: ``already_published``,
    ``network``, ``rate_limited`` (with ``retry_after``), ``timeout``,
    ``auth`` or ``publish_failed``. ``yank`` fails with ``yank_failed``.
    """

    def publish(
        self, package: PackageInfo, version: str, *, timeout: float
    ) -> Result[RegistryReceipt, ReleaseError]: ...

    def yank(self, package: str, version: str, *, timeout: float) -> Result[None, ReleaseError]: ...
