"""Error payloads for the release bounded context.

``ReleaseError`` travels inside ``Err`` across every layer (collaborators,
pipeline, state machine, CLI). Whether an error is recoverable is derived
from its category and kind; the state machine stores that flag in the
release state so a later ``resume`` can refuse to continue past a
non-recoverable failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ErrorCategory = Literal["workspace", "version", "git", "publish", "state", "cli"]

ErrorKind = Literal[
    # workspace
    "root_not_found",
    "invalid_structure",
    "missing_manifest",
    "circular_dependency",
    "package_not_found",
    # version
    "invalid_version",
    "dependency_mismatch",
    "unsupported_bump",
    "update_failed",
    # git
    "not_repository",
    "not_ready",
    "dirty_working_tree",
    "auth_failed",
    "remote_failed",
    "tag_exists",
    "commit_failed",
    "push_failed",
    "reset_failed",
    # publish
    "already_published",
    "publish_failed",
    "rate_limited",
    "network",
    "timeout",
    "auth",
    "yank_failed",
    # state
    "corrupted",
    "not_found",
    "schema_mismatch",
    "save_failed",
    "load_failed",
    "release_active",
    "not_resumable",
    "invalid_transition",
    "cancelled",
    # cli
    "invalid_arguments",
    "missing_argument",
    "conflicting_arguments",
]

_NON_RECOVERABLE: frozenset[tuple[ErrorCategory, str]] = frozenset(
    {
        ("version", "invalid_version"),
        ("git", "not_repository"),
        ("state", "not_resumable"),
        ("state", "corrupted"),
    }
)

TRANSIENT_PUBLISH_KINDS: frozenset[str] = frozenset({"network", "rate_limited", "timeout"})


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical release error payload.

    Attributes:
        category: Which layer the error belongs to.
        kind: Stable machine-readable error kind.
        message: Human-readable description.
        hint: Optional one-line pointer (path, command, value).
        retry_after: Seconds the registry asked us to wait (rate limits only).
    """

    category: ErrorCategory
    kind: ErrorKind
    message: str
    hint: str | None = None
    retry_after: float | None = None

    @property
    def recoverable(self) -> bool:
        if self.category == "workspace":
            return False
        return (self.category, self.kind) not in _NON_RECOVERABLE

    @property
    def is_transient(self) -> bool:
        """True for publish failures worth retrying in place."""
        return self.category == "publish" and self.kind in TRANSIENT_PUBLISH_KINDS

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message

    def suggestions(self) -> tuple[str, ...]:
        """Actionable recovery steps for this error."""
        match (self.category, self.kind):
            case ("workspace", "root_not_found"):
                return (
                    "Run from a directory containing relkit.toml",
                    "Or pass --workspace / set RELKIT_WORKSPACE",
                )
            case ("workspace", "circular_dependency"):
                return (
                    f"Review dependencies between packages: {self.hint or 'see message'}",
                    "Break the cycle by restructuring package relationships",
                )
            case ("workspace", "missing_manifest"):
                return ("Add a pyproject.toml to the member or remove it from [workspace] members",)
            case ("git", "dirty_working_tree"):
                return (
                    "Commit pending changes: git add -A && git commit",
                    "Stash changes temporarily: git stash",
                    "Or re-run with --allow-dirty",
                )
            case ("git", "auth_failed"):
                return (
                    "Check SSH key configuration: ssh -T git@github.com",
                    "Verify the git remote URL: git remote -v",
                )
            case ("git", "tag_exists"):
                return (
                    "Pick a different version",
                    f"Or delete the existing tag: git tag -d {self.hint or '<tag>'}",
                )
            case ("publish", "auth"):
                return (
                    "Verify the registry token has publish permissions",
                    "Then run: relkit resume",
                )
            case ("publish", "rate_limited"):
                wait = f"{self.retry_after:g}" if self.retry_after is not None else "a few"
                return (
                    f"Wait {wait} seconds before retrying",
                    "Increase --package-delay to space out uploads",
                )
            case ("publish", _):
                return (
                    "Fix the failing packages, then run: relkit resume",
                    "Or undo the published packages: relkit rollback --packages-only",
                )
            case ("state", "release_active"):
                return (
                    "Continue it: relkit resume",
                    "Or undo it: relkit rollback",
                    "Or discard its state: relkit cleanup --force",
                )
            case ("state", "not_resumable"):
                return (
                    "Inspect the release: relkit status --detailed",
                    "Force it if you know the failure is fixed: relkit resume --force",
                )
            case ("state", "not_found"):
                return ("No release in progress. Start one with: relkit release <bump>",)
            case ("state", "corrupted") | ("state", "schema_mismatch"):
                return (
                    "Inspect .relkit/backups for an older snapshot",
                    "Or discard the state: relkit cleanup --force --all",
                )
            case _:
                return ("Check the error message above for specific details",)


def workspace_error(kind: ErrorKind, message: str, hint: str | None = None) -> ReleaseError:
    return ReleaseError(category="workspace", kind=kind, message=message, hint=hint)


def version_error(kind: ErrorKind, message: str, hint: str | None = None) -> ReleaseError:
    return ReleaseError(category="version", kind=kind, message=message, hint=hint)


def git_error(kind: ErrorKind, message: str, hint: str | None = None) -> ReleaseError:
    return ReleaseError(category="git", kind=kind, message=message, hint=hint)


def publish_error(
    kind: ErrorKind,
    message: str,
    hint: str | None = None,
    *,
    retry_after: float | None = None,
) -> ReleaseError:
    return ReleaseError(
        category="publish", kind=kind, message=message, hint=hint, retry_after=retry_after
    )


def state_error(kind: ErrorKind, message: str, hint: str | None = None) -> ReleaseError:
    return ReleaseError(category="state", kind=kind, message=message, hint=hint)


def cli_error(kind: ErrorKind, message: str, hint: str | None = None) -> ReleaseError:
    return ReleaseError(category="cli", kind=kind, message=message, hint=hint)
