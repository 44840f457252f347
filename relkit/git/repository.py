"""Git repository backed by the git CLI.

``Repository`` implements the ``GitOperations`` protocol used by the
release core. All operations return Result types; failures carry a
``ReleaseError`` of the ``git`` category.

Usage:
    repo = Repository(Path("/path/to/repo"))

    match repo.create_release_commit("1.2.0"):
        case Ok(commit):
            print(f"Committed {commit.short_hash}")
        case Err(e):
            print(f"Commit failed: {e.message}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from relkit.core.config import ResetMode
from relkit.core.result import Err, Ok, Result
from relkit.platform.process import ProcessError
from relkit.platform.process import run as run_process
from relkit.release.contracts import (
    CommitInfo,
    PushInfo,
    ReadinessReport,
    TagInfo,
    release_commit_message,
    tag_name_for,
)
from relkit.release.errors import ErrorKind, ReleaseError, git_error
from relkit.release.timeouts import GIT_NETWORK_TIMEOUT_SECONDS, GIT_TIMEOUT_SECONDS

__all__ = [
    "GitStatus",
    "Repository",
    "StatusEntry",
    "release_commit_message",
]

_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "clone", "ls-remote"})

_AUTH_MARKERS = (
    "permission denied",
    "authentication failed",
    "could not read username",
    "could not read password",
    "publickey",
    "access denied",
    "http 401",
    "http 403",
    "returned error: 403",
)

# NUL-separated: hash, parents, author name, author email, date, subject
_LOG_FORMAT = "%H%x00%P%x00%an%x00%ae%x00%aI%x00%s"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status.

    Attributes:
        xy: Two-character status code (e.g., "M ", " M", "??")
        path: File path
    """

    xy: str
    path: str

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"


@dataclass(frozen=True, slots=True)
class GitStatus:
    """Parsed ``git status --porcelain=v1 -b``.

    Attributes:
        branch: Current branch name ("HEAD" when detached)
        upstream: Upstream branch (e.g., "origin/main"), None if not set
        ahead: Number of commits ahead of upstream
        behind: Number of commits behind upstream
        entries: All status entries (staged, unstaged, untracked)
        initial: True on a branch with no commits yet
    """

    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)
    initial: bool = False

    @property
    def is_clean(self) -> bool:
        return len(self.entries) == 0

    @property
    def is_detached(self) -> bool:
        return self.branch in ("HEAD", "") or self.branch.startswith("HEAD (")


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root
        remote: Remote used when a caller does not name one
        network_timeout: Timeout for push and fetch when a caller does not give one
    """

    def __init__(
        self,
        path: Path,
        *,
        remote: str = "origin",
        network_timeout: float = GIT_NETWORK_TIMEOUT_SECONDS,
    ) -> None:
        self.path = path
        self.remote = remote
        self.network_timeout = network_timeout

    def exists(self) -> bool:
        """Check if this is a valid git repository."""
        return (self.path / ".git").exists()

    def status(self) -> Result[GitStatus, ReleaseError]:
        result = self._run(["status", "--porcelain=v1", "-b"])
        match result:
            case Err(e):
                return Err(self._failure("not_repository", "git status failed", e))
            case Ok(stdout):
                return Ok(self._parse_status(stdout))

    def is_working_tree_clean(self) -> Result[bool, ReleaseError]:
        result = self._run(["status", "--porcelain"])
        match result:
            case Err(e):
                return Err(self._failure("not_repository", "git status failed", e))
            case Ok(stdout):
                return Ok(stdout.strip() == "")

    def current_branch(self) -> str | None:
        """Current branch name; None if detached HEAD or error."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def head_commit(self) -> Result[CommitInfo, ReleaseError]:
        result = self._run(["log", "-1", f"--format={_LOG_FORMAT}"])
        match result:
            case Err(e):
                return Err(self._failure("commit_failed", "Could not read HEAD", e))
            case Ok(stdout):
                parts = stdout.rstrip("\n").split("\x00")
                if len(parts) < 6:
                    return Err(git_error("commit_failed", "Unexpected git log output", hint=stdout.strip()))
                return Ok(
                    CommitInfo(
                        hash=parts[0],
                        parents=tuple(parts[1].split()),
                        author_name=parts[2],
                        author_email=parts[3],
                        timestamp=parts[4],
                        message=parts[5],
                    )
                )

    def create_release_commit(
        self, version: str, message: str | None = None
    ) -> Result[CommitInfo, ReleaseError]:
        """Commit every tracked change as the release commit.

        The commit is created even when nothing changed, so a release
        always has its own commit to tag and to reset away from.
        """
        staged = self._run(["add", "--update"])
        if isinstance(staged, Err):
            return Err(self._failure("commit_failed", "git add failed", staged.error))

        text = message or release_commit_message(version)
        committed = self._run(["commit", "--allow-empty", "-m", text])
        if isinstance(committed, Err):
            return Err(self._failure("commit_failed", "git commit failed", committed.error))
        return self.head_commit()

    def create_version_tag(
        self, version: str, message: str | None = None
    ) -> Result[TagInfo, ReleaseError]:
        name = tag_name_for(version)
        exists = self.tag_exists(name)
        if isinstance(exists, Err):
            return exists
        if exists.value:
            return Err(git_error("tag_exists", f"Tag {name} already exists", hint=name))

        text = message or f"Release {name}"
        tagged = self._run(["tag", "-a", name, "-m", text])
        if isinstance(tagged, Err):
            return Err(self._failure("commit_failed", f"Could not create tag {name}", tagged.error))

        target = self._run(["rev-list", "-n", "1", name])
        if isinstance(target, Err):
            return Err(self._failure("commit_failed", f"Could not resolve tag {name}", target.error))
        return Ok(TagInfo(name=name, target_commit=target.value.strip(), message=text, is_annotated=True))

    def push(
        self, remote: str | None = None, *, include_tags: bool = True, timeout: float | None = None
    ) -> Result[PushInfo, ReleaseError]:
        """Push the current branch, with the annotated tags it reaches.

        Commit and tag counts are computed before pushing: commits missing
        from ``<remote>/<branch>`` and annotated tags pointing at HEAD.
        """
        target = remote or self.remote
        branch = self.current_branch()
        if branch is None:
            return Err(git_error("push_failed", "Cannot push from a detached HEAD"))

        warnings: list[str] = []
        counted = self._run(["rev-list", "--count", f"{target}/{branch}..HEAD"])
        if isinstance(counted, Ok):
            commits = _parse_count(counted.value)
        else:
            warnings.append(f"{target}/{branch} not found; counting every commit on {branch}")
            counted_all = self._run(["rev-list", "--count", "HEAD"])
            commits = _parse_count(counted_all.value) if isinstance(counted_all, Ok) else 0

        tags = 0
        if include_tags:
            at_head = self._run(["tag", "--points-at", "HEAD"])
            if isinstance(at_head, Ok):
                tags = len([t for t in at_head.value.splitlines() if t.strip()])

        args = ["push"]
        if include_tags:
            args.append("--follow-tags")
        args.extend([target, branch])
        pushed = self._run(args, timeout=timeout)
        if isinstance(pushed, Err):
            return Err(self._failure("push_failed", f"Push to {target} failed", pushed.error))

        return Ok(PushInfo(remote=target, commits_pushed=commits, tags_pushed=tags, warnings=tuple(warnings)))

    def reset_to(self, commit_id: str, mode: ResetMode) -> Result[None, ReleaseError]:
        result = self._run(["reset", f"--{mode}", commit_id])
        if isinstance(result, Err):
            return Err(self._failure("reset_failed", f"Reset to {commit_id[:8]} failed", result.error))
        return Ok(None)

    def delete_tag(
        self,
        name: str,
        *,
        also_remote: bool,
        remote: str | None = None,
        timeout: float | None = None,
    ) -> Result[None, ReleaseError]:
        """Delete a tag locally and optionally on the remote.

        A tag already missing on either side is not an error.
        """
        exists = self.tag_exists(name)
        if isinstance(exists, Err):
            return exists
        if exists.value:
            local = self._run(["tag", "-d", name])
            if isinstance(local, Err):
                return Err(self._failure("remote_failed", f"Could not delete tag {name}", local.error))

        if also_remote:
            target = remote or self.remote
            deleted = self._run(["push", target, "--delete", f"refs/tags/{name}"], timeout=timeout)
            if isinstance(deleted, Err):
                if "remote ref does not exist" in deleted.error.output.lower():
                    return Ok(None)
                return Err(self._failure("remote_failed", f"Could not delete tag {name} on {target}", deleted.error))
        return Ok(None)

    def tag_exists(self, name: str) -> Result[bool, ReleaseError]:
        result = self._run(["rev-parse", "-q", "--verify", f"refs/tags/{name}"])
        match result:
            case Ok(_):
                return Ok(True)
            case Err(e):
                if e.returncode == 1 and not e.stderr.strip():
                    return Ok(False)
                return Err(self._failure("not_repository", f"Could not look up tag {name}", e))

    def validate_release_readiness(self) -> Result[ReadinessReport, ReleaseError]:
        """Blocking issues: no commits, detached HEAD, behind upstream.

        Uncommitted changes are not checked here; the caller decides
        whether a dirty tree is acceptable.
        """
        if not self.exists():
            return Err(git_error("not_repository", f"Not a git repository: {self.path}", hint=str(self.path)))

        status = self.status()
        if isinstance(status, Err):
            return status
        st = status.value

        blocking: list[str] = []
        warnings: list[str] = []
        if st.initial:
            blocking.append("repository has no commits")
        elif st.is_detached:
            blocking.append("HEAD is detached; check out a branch")
        if st.behind:
            blocking.append(f"{st.branch} is {st.behind} commits behind {st.upstream}; pull first")
        if st.upstream is None and not st.initial and not st.is_detached:
            warnings.append(f"{st.branch} has no upstream branch")

        return Ok(ReadinessReport(is_ready=not blocking, blocking_issues=tuple(blocking), warnings=tuple(warnings)))

    def _run(self, args: list[str], *, timeout: float | None = None) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        if timeout is None:
            command = args[0] if args else ""
            timeout = self.network_timeout if command in _NETWORK_COMMANDS else GIT_TIMEOUT_SECONDS
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    def _failure(self, kind: ErrorKind, message: str, error: ProcessError) -> ReleaseError:
        """Map a failed git call to a release error, spotting auth and timeouts."""
        detail = error.stderr.strip() or error.stdout.strip() or str(error)
        text = error.output.lower()
        if error.timed_out:
            return git_error("remote_failed", f"{message}: timed out", hint=detail)
        if "not a git repository" in text:
            return git_error("not_repository", f"Not a git repository: {self.path}", hint=str(self.path))
        if any(marker in text for marker in _AUTH_MARKERS):
            return git_error("auth_failed", f"{message}: authentication failed", hint=detail)
        return git_error(kind, message, hint=detail)

    def _parse_status(self, output: str) -> GitStatus:
        lines = [ln for ln in output.splitlines() if ln.strip()]
        if not lines:
            return GitStatus(branch="")

        # First line is branch info: ## branch...upstream [ahead N, behind M]
        branch_line = lines[0]
        initial = False
        s = branch_line.strip()
        if s.startswith("##"):
            s = s[2:].lstrip()
        for prefix in ("No commits yet on ", "Initial commit on "):
            if s.startswith(prefix):
                initial = True
                s = s[len(prefix) :]

        branch, upstream = self._parse_branch(s)
        ahead, behind = self._parse_ahead_behind(branch_line)

        entries: list[StatusEntry] = []
        for line in lines[1:]:
            if len(line) < 4:
                continue
            entries.append(StatusEntry(xy=line[:2], path=line[3:]))

        return GitStatus(
            branch=branch,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            entries=tuple(entries),
            initial=initial,
        )

    def _parse_branch(self, s: str) -> tuple[str, str | None]:
        s = s.split(" [", 1)[0].strip()
        if "..." in s:
            left, right = s.split("...", 1)
            return (left.strip(), right.strip())
        return (s, None)

    def _parse_ahead_behind(self, line: str) -> tuple[int, int]:
        match = re.search(r"\[([^\]]+)\]", line)
        if not match:
            return (0, 0)

        inside = match.group(1)
        ahead_match = re.search(r"ahead\s+(\d+)", inside)
        behind_match = re.search(r"behind\s+(\d+)", inside)
        ahead = int(ahead_match.group(1)) if ahead_match else 0
        behind = int(behind_match.group(1)) if behind_match else 0
        return (ahead, behind)


def _parse_count(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0
