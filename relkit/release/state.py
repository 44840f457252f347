"""Release state: the single source of truth for one release attempt.

``ReleaseState`` is immutable; every mutation is a helper returning a new
state with ``updated_at`` refreshed. Checkpoints and errors are append-only.
The state round-trips through a schema-tagged JSON document.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal, cast
from uuid import uuid4

from relkit.core.config import ResetMode
from relkit.core.result import Err, Ok, Result
from relkit.core.structured import (
    StrDict,
    as_obj_list,
    as_str_dict,
    get_bool,
    get_float,
    get_int,
    get_str,
    get_str_list,
    get_table,
)
from relkit.release.errors import ReleaseError
from relkit.release.timeouts import (
    INTER_PACKAGE_DELAY_SECONDS,
    PUBLISH_MAX_BACKOFF_SECONDS,
    PUBLISH_RETRY_ATTEMPTS,
    PUBLISH_RETRY_BACKOFF_SECONDS,
    REGISTRY_TIMEOUT_SECONDS,
)

STATE_SCHEMA = 1

BumpKind = Literal["major", "minor", "patch", "prerelease", "exact"]
BUMP_KINDS: tuple[BumpKind, ...] = ("major", "minor", "patch", "prerelease", "exact")


class Phase(StrEnum):
    VALIDATION = "validation"
    VERSION_UPDATE = "version_update"
    GIT_OPERATIONS = "git_operations"
    PUBLISHING = "publishing"
    CLEANUP = "cleanup"
    COMPLETED = "completed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETED, Phase.ROLLED_BACK)

    @property
    def is_rollback(self) -> bool:
        return self in (Phase.ROLLING_BACK, Phase.ROLLED_BACK)


MAIN_TRACK: tuple[Phase, ...] = (
    Phase.VALIDATION,
    Phase.VERSION_UPDATE,
    Phase.GIT_OPERATIONS,
    Phase.PUBLISHING,
    Phase.CLEANUP,
    Phase.COMPLETED,
)

RESUMABLE_PHASES: tuple[Phase, ...] = MAIN_TRACK[:4]


def now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass(frozen=True, slots=True)
class Checkpoint:
    name: str
    phase: Phase
    timestamp: str
    completed: bool


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    message: str
    phase: Phase
    category: str
    kind: str
    recoverable: bool
    timestamp: str


@dataclass(frozen=True, slots=True)
class VersionState:
    previous_version: str
    new_version: str
    updated_files: tuple[str, ...]
    summary: str


@dataclass(frozen=True, slots=True)
class GitState:
    """What the GitOperations phase did, filled in sub-step by sub-step."""

    commit_hash: str | None = None
    pre_release_commit: str | None = None
    tag_name: str | None = None
    pushed: bool = False
    remote: str | None = None
    commits_pushed: int = 0
    tags_pushed: int = 0
    # rollback bookkeeping
    tag_deleted: bool = False
    reset_done: bool = False


@dataclass(frozen=True, slots=True)
class PackagePublish:
    package: str
    version: str
    attempts: int
    published_at: str
    already_published: bool = False


@dataclass(frozen=True, slots=True)
class PublishFailure:
    package: str
    kind: str
    message: str
    attempts: int


def _empty_successes() -> dict[str, PackagePublish]:
    return {}


def _empty_failures() -> dict[str, PublishFailure]:
    return {}


@dataclass(frozen=True, slots=True)
class PublishState:
    tier_count: int
    successful_publishes: dict[str, PackagePublish] = field(default_factory=_empty_successes)
    failed_packages: dict[str, PublishFailure] = field(default_factory=_empty_failures)
    yanked: tuple[str, ...] = ()

    def with_success(self, result: PackagePublish) -> PublishState:
        successes = dict(self.successful_publishes)
        successes[result.package] = result
        failures = {k: v for k, v in self.failed_packages.items() if k != result.package}
        return replace(self, successful_publishes=successes, failed_packages=failures)

    def with_failure(self, failure: PublishFailure) -> PublishState:
        if failure.package in self.successful_publishes:
            return self
        failures = dict(self.failed_packages)
        failures[failure.package] = failure
        return replace(self, failed_packages=failures)

    def with_yanked(self, package: str) -> PublishState:
        if package in self.yanked:
            return self
        return replace(self, yanked=(*self.yanked, package))


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    """Per-release settings, persisted so resume runs with the same values."""

    push_to_remote: bool = True
    remote: str = "origin"
    inter_package_delay: float = INTER_PACKAGE_DELAY_SECONDS
    max_retries: int = PUBLISH_RETRY_ATTEMPTS
    retry_backoff: float = PUBLISH_RETRY_BACKOFF_SECONDS
    max_backoff: float = PUBLISH_MAX_BACKOFF_SECONDS
    max_concurrent_per_tier: int = 1
    timeout: float = REGISTRY_TIMEOUT_SECONDS
    allow_dirty: bool = False
    skip_validation: bool = False
    reset_mode: ResetMode = "mixed"


def _no_checkpoints() -> tuple[Checkpoint, ...]:
    return ()


def _no_errors() -> tuple[ErrorRecord, ...]:
    return ()


@dataclass(frozen=True, slots=True)
class ReleaseState:
    release_id: str
    target_version: str
    version_bump: BumpKind
    current_phase: Phase
    started_at: str
    updated_at: str
    config: ReleaseConfig
    checkpoints: tuple[Checkpoint, ...] = field(default_factory=_no_checkpoints)
    errors: tuple[ErrorRecord, ...] = field(default_factory=_no_errors)
    version_state: VersionState | None = None
    git_state: GitState | None = None
    publish_state: PublishState | None = None

    def has_critical_errors(self) -> bool:
        return any(not e.recoverable for e in self.errors)

    def is_resumable(self) -> bool:
        return not self.current_phase.is_terminal and not self.has_critical_errors()

    @property
    def last_checkpoint(self) -> Checkpoint | None:
        return self.checkpoints[-1] if self.checkpoints else None

    def elapsed_seconds(self) -> float:
        started = datetime.fromisoformat(self.started_at)
        updated = datetime.fromisoformat(self.updated_at)
        return max(0.0, (updated - started).total_seconds())

    def summary(self) -> str:
        parts = [f"Release {self.target_version} ({self.version_bump})", f"phase: {self.current_phase}"]
        if self.publish_state is not None:
            ps = self.publish_state
            parts.append(
                f"published: {len(ps.successful_publishes)}, failed: {len(ps.failed_packages)}"
            )
        if self.errors:
            parts.append(f"errors: {len(self.errors)}")
        return " | ".join(parts)


def new_release_state(
    *, target_version: str, bump: BumpKind, config: ReleaseConfig
) -> ReleaseState:
    now = now_iso()
    return ReleaseState(
        release_id=f"release-{uuid4().hex[:12]}",
        target_version=target_version,
        version_bump=bump,
        current_phase=Phase.VALIDATION,
        started_at=now,
        updated_at=now,
        config=config,
    )


def touch(state: ReleaseState, **changes: object) -> ReleaseState:
    """Apply changes and refresh ``updated_at``."""
    return replace(state, updated_at=now_iso(), **changes)  # type: ignore[arg-type]


def with_checkpoint(
    state: ReleaseState, name: str, phase: Phase, *, completed: bool
) -> ReleaseState:
    """Append a checkpoint and move ``current_phase`` to its phase."""
    cp = Checkpoint(name=name, phase=phase, timestamp=now_iso(), completed=completed)
    return touch(state, checkpoints=(*state.checkpoints, cp), current_phase=phase)


def with_error(state: ReleaseState, error: ReleaseError) -> ReleaseState:
    record = ErrorRecord(
        message=error.pretty(),
        phase=state.current_phase,
        category=error.category,
        kind=error.kind,
        recoverable=error.recoverable,
        timestamp=now_iso(),
    )
    return touch(state, errors=(*state.errors, record))


# -----------------------------------------------------------------------------
# Serialization
# -----------------------------------------------------------------------------


def state_to_dict(state: ReleaseState) -> dict[str, object]:
    cfg = state.config
    payload: dict[str, object] = {
        "schema": STATE_SCHEMA,
        "release_id": state.release_id,
        "target_version": state.target_version,
        "version_bump": state.version_bump,
        "current_phase": state.current_phase.value,
        "started_at": state.started_at,
        "updated_at": state.updated_at,
        "config": {
            "push_to_remote": cfg.push_to_remote,
            "remote": cfg.remote,
            "inter_package_delay": cfg.inter_package_delay,
            "max_retries": cfg.max_retries,
            "retry_backoff": cfg.retry_backoff,
            "max_backoff": cfg.max_backoff,
            "max_concurrent_per_tier": cfg.max_concurrent_per_tier,
            "timeout": cfg.timeout,
            "allow_dirty": cfg.allow_dirty,
            "skip_validation": cfg.skip_validation,
            "reset_mode": cfg.reset_mode,
        },
        "checkpoints": [
            {
                "name": c.name,
                "phase": c.phase.value,
                "timestamp": c.timestamp,
                "completed": c.completed,
            }
            for c in state.checkpoints
        ],
        "errors": [
            {
                "message": e.message,
                "phase": e.phase.value,
                "category": e.category,
                "kind": e.kind,
                "recoverable": e.recoverable,
                "timestamp": e.timestamp,
            }
            for e in state.errors
        ],
        "version_state": None,
        "git_state": None,
        "publish_state": None,
    }

    if state.version_state is not None:
        vs = state.version_state
        payload["version_state"] = {
            "previous_version": vs.previous_version,
            "new_version": vs.new_version,
            "updated_files": list(vs.updated_files),
            "summary": vs.summary,
        }

    if state.git_state is not None:
        gs = state.git_state
        payload["git_state"] = {
            "commit_hash": gs.commit_hash,
            "pre_release_commit": gs.pre_release_commit,
            "tag_name": gs.tag_name,
            "pushed": gs.pushed,
            "remote": gs.remote,
            "commits_pushed": gs.commits_pushed,
            "tags_pushed": gs.tags_pushed,
            "tag_deleted": gs.tag_deleted,
            "reset_done": gs.reset_done,
        }

    if state.publish_state is not None:
        ps = state.publish_state
        payload["publish_state"] = {
            "tier_count": ps.tier_count,
            "successful_publishes": {
                name: {
                    "package": p.package,
                    "version": p.version,
                    "attempts": p.attempts,
                    "published_at": p.published_at,
                    "already_published": p.already_published,
                }
                for name, p in ps.successful_publishes.items()
            },
            "failed_packages": {
                name: {
                    "package": f.package,
                    "kind": f.kind,
                    "message": f.message,
                    "attempts": f.attempts,
                }
                for name, f in ps.failed_packages.items()
            },
            "yanked": list(ps.yanked),
        }

    return payload


def _corrupted(message: str) -> Err[ReleaseError]:
    return Err(ReleaseError(category="state", kind="corrupted", message=message))


def _phase(value: str | None) -> Phase | None:
    if value is None:
        return None
    try:
        return Phase(value)
    except ValueError:
        return None


def _opt_str(table: StrDict, key: str) -> str | None:
    value = table.get(key)
    return value if isinstance(value, str) else None


def _parse_config(data: StrDict) -> ReleaseConfig:
    d = ReleaseConfig()
    reset_mode = get_str(data, "reset_mode")
    if reset_mode not in ("soft", "mixed", "hard"):
        reset_mode = d.reset_mode

    def flt(key: str, default: float) -> float:
        v = get_float(data, key)
        return default if v is None else v

    def num(key: str, default: int) -> int:
        v = get_int(data, key)
        return default if v is None else v

    def flag(key: str, default: bool) -> bool:
        v = get_bool(data, key)
        return default if v is None else v

    return ReleaseConfig(
        push_to_remote=flag("push_to_remote", d.push_to_remote),
        remote=get_str(data, "remote") or d.remote,
        inter_package_delay=flt("inter_package_delay", d.inter_package_delay),
        max_retries=num("max_retries", d.max_retries),
        retry_backoff=flt("retry_backoff", d.retry_backoff),
        max_backoff=flt("max_backoff", d.max_backoff),
        max_concurrent_per_tier=num("max_concurrent_per_tier", d.max_concurrent_per_tier),
        timeout=flt("timeout", d.timeout),
        allow_dirty=flag("allow_dirty", d.allow_dirty),
        skip_validation=flag("skip_validation", d.skip_validation),
        reset_mode=cast(ResetMode, reset_mode),
    )


def _parse_git_state(data: StrDict) -> GitState:
    return GitState(
        commit_hash=_opt_str(data, "commit_hash"),
        pre_release_commit=_opt_str(data, "pre_release_commit"),
        tag_name=_opt_str(data, "tag_name"),
        pushed=get_bool(data, "pushed") or False,
        remote=_opt_str(data, "remote"),
        commits_pushed=get_int(data, "commits_pushed") or 0,
        tags_pushed=get_int(data, "tags_pushed") or 0,
        tag_deleted=get_bool(data, "tag_deleted") or False,
        reset_done=get_bool(data, "reset_done") or False,
    )


def _parse_publish_state(data: StrDict) -> Result[PublishState, ReleaseError]:
    tier_count = get_int(data, "tier_count")
    if tier_count is None:
        return _corrupted("publish_state.tier_count missing")

    successes: dict[str, PackagePublish] = {}
    for name, raw in (get_table(data, "successful_publishes") or {}).items():
        item = as_str_dict(raw)
        if item is None:
            return _corrupted(f"publish_state entry for {name} is not an object")
        version = _opt_str(item, "version")
        published_at = _opt_str(item, "published_at")
        if version is None or published_at is None:
            return _corrupted(f"publish_state entry for {name} is incomplete")
        successes[name] = PackagePublish(
            package=_opt_str(item, "package") or name,
            version=version,
            attempts=get_int(item, "attempts") or 1,
            published_at=published_at,
            already_published=get_bool(item, "already_published") or False,
        )

    failures: dict[str, PublishFailure] = {}
    for name, raw in (get_table(data, "failed_packages") or {}).items():
        item = as_str_dict(raw)
        if item is None:
            return _corrupted(f"failed_packages entry for {name} is not an object")
        failures[name] = PublishFailure(
            package=_opt_str(item, "package") or name,
            kind=_opt_str(item, "kind") or "publish_failed",
            message=_opt_str(item, "message") or "",
            attempts=get_int(item, "attempts") or 1,
        )

    yanked = get_str_list(data, "yanked") or []
    return Ok(
        PublishState(
            tier_count=tier_count,
            successful_publishes=successes,
            failed_packages=failures,
            yanked=tuple(yanked),
        )
    )


def state_from_dict(data: StrDict) -> Result[ReleaseState, ReleaseError]:
    """Rebuild a state from its JSON document.

    Returns ``state.schema_mismatch`` for another schema and
    ``state.corrupted`` for anything structurally wrong.
    """
    schema = get_int(data, "schema")
    if schema != STATE_SCHEMA:
        return Err(
            ReleaseError(
                category="state",
                kind="schema_mismatch",
                message=f"State file version mismatch: expected {STATE_SCHEMA}, found {schema}",
            )
        )

    release_id = get_str(data, "release_id")
    target_version = get_str(data, "target_version")
    bump = get_str(data, "version_bump")
    phase = _phase(get_str(data, "current_phase"))
    started_at = get_str(data, "started_at")
    updated_at = get_str(data, "updated_at")
    if (
        release_id is None
        or target_version is None
        or started_at is None
        or updated_at is None
        or phase is None
    ):
        return _corrupted("missing required release fields")
    if bump not in BUMP_KINDS:
        return _corrupted(f"invalid version_bump: {bump!r}")

    checkpoints: list[Checkpoint] = []
    for raw in as_obj_list(data.get("checkpoints")) or []:
        item = as_str_dict(raw)
        if item is None:
            return _corrupted("checkpoint is not an object")
        cp_phase = _phase(get_str(item, "phase"))
        name = _opt_str(item, "name")
        timestamp = _opt_str(item, "timestamp")
        if cp_phase is None or name is None or timestamp is None:
            return _corrupted("checkpoint is incomplete")
        checkpoints.append(
            Checkpoint(
                name=name,
                phase=cp_phase,
                timestamp=timestamp,
                completed=get_bool(item, "completed") or False,
            )
        )

    errors: list[ErrorRecord] = []
    for raw in as_obj_list(data.get("errors")) or []:
        item = as_str_dict(raw)
        if item is None:
            return _corrupted("error record is not an object")
        err_phase = _phase(get_str(item, "phase"))
        recoverable = get_bool(item, "recoverable")
        if err_phase is None or recoverable is None:
            return _corrupted("error record is incomplete")
        errors.append(
            ErrorRecord(
                message=_opt_str(item, "message") or "",
                phase=err_phase,
                category=_opt_str(item, "category") or "",
                kind=_opt_str(item, "kind") or "",
                recoverable=recoverable,
                timestamp=_opt_str(item, "timestamp") or "",
            )
        )

    version_state: VersionState | None = None
    vs = get_table(data, "version_state")
    if vs is not None:
        previous = _opt_str(vs, "previous_version")
        new = _opt_str(vs, "new_version")
        if previous is None or new is None:
            return _corrupted("version_state is incomplete")
        version_state = VersionState(
            previous_version=previous,
            new_version=new,
            updated_files=tuple(get_str_list(vs, "updated_files") or []),
            summary=_opt_str(vs, "summary") or "",
        )

    gs = get_table(data, "git_state")
    git_state = _parse_git_state(gs) if gs is not None else None

    publish_state: PublishState | None = None
    ps = get_table(data, "publish_state")
    if ps is not None:
        parsed = _parse_publish_state(ps)
        if isinstance(parsed, Err):
            return parsed
        publish_state = parsed.value

    return Ok(
        ReleaseState(
            release_id=release_id,
            target_version=target_version,
            version_bump=cast(BumpKind, bump),
            current_phase=phase,
            started_at=started_at,
            updated_at=updated_at,
            config=_parse_config(get_table(data, "config") or {}),
            checkpoints=tuple(checkpoints),
            errors=tuple(errors),
            version_state=version_state,
            git_state=git_state,
            publish_state=publish_state,
        )
    )
