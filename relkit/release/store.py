"""Durable release state storage.

The state file is written atomically (temp file + replace), so a crash
mid-write leaves the previous version in place. Backups are full snapshots
kept next to it; ``load`` falls back to the newest readable backup when the
primary file is corrupt or carries another schema.
"""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from relkit.core.result import Err, Ok, Result
from relkit.core.structured import as_str_dict
from relkit.platform.files import atomic_write_bytes, atomic_write_text
from relkit.release.errors import ReleaseError, state_error
from relkit.release.state import ReleaseState, state_from_dict, state_to_dict

__all__ = ["DEFAULT_MAX_BACKUPS", "LoadedState", "StateStore"]

DEFAULT_MAX_BACKUPS = 5

_BACKUP_PREFIX = "release-state-"


@dataclass(frozen=True, slots=True)
class LoadedState:
    state: ReleaseState
    recovered_from_backup: bool
    source: Path


class StateStore:
    """Load/save/backup/cleanup for one workspace's release state.

    Attributes:
        path: The active state file.
        backup_dir: Directory holding timestamped snapshots.
        max_backups: Snapshots kept after each ``backup()``.
    """

    def __init__(
        self,
        path: Path,
        backup_dir: Path | None = None,
        *,
        max_backups: int = DEFAULT_MAX_BACKUPS,
    ) -> None:
        self.path = path
        self.backup_dir = backup_dir or path.parent / "backups"
        self.max_backups = max(1, max_backups)

    def has_active_release(self) -> bool:
        """Existence check only; the file is not parsed."""
        return self.path.is_file()

    def save(self, state: ReleaseState) -> Result[None, ReleaseError]:
        payload = json.dumps(state_to_dict(state), indent=2, sort_keys=False) + "\n"
        try:
            atomic_write_text(self.path, payload, encoding="utf-8")
        except OSError as e:
            return Err(state_error("save_failed", f"Failed to save state: {e}", hint=str(self.path)))
        return Ok(None)

    def load(self) -> Result[LoadedState, ReleaseError]:
        """Load the active state, falling back to backups only when it is unreadable.

        A missing state file means no release is in progress, even when
        backups from earlier releases remain.
        """
        if not self.path.exists():
            return Err(
                state_error(
                    "not_found",
                    "State file not found. No release in progress.",
                    hint=str(self.path),
                )
            )

        primary = self._read(self.path)
        if isinstance(primary, Ok):
            return Ok(LoadedState(state=primary.value, recovered_from_backup=False, source=self.path))

        for backup in reversed(self.list_backups()):
            parsed = self._read(backup)
            if isinstance(parsed, Ok):
                return Ok(LoadedState(state=parsed.value, recovered_from_backup=True, source=backup))

        reason = primary.error.message
        return Err(
            state_error(
                "corrupted",
                f"State file corrupted and no readable backup: {reason}",
                hint=str(self.path),
            )
        )

    def backup(self) -> Result[Path | None, ReleaseError]:
        """Snapshot the current state file. Ok(None) when there is nothing to copy."""
        if not self.path.is_file():
            return Ok(None)

        try:
            content = self.path.read_bytes()
            target = self._next_backup_path()
            atomic_write_bytes(target, content)
        except OSError as e:
            return Err(state_error("save_failed", f"Failed to back up state: {e}", hint=str(self.path)))

        self._prune_backups()
        return Ok(target)

    def cleanup(self, *, include_backups: bool = False) -> Result[None, ReleaseError]:
        """Remove the active state file (and optionally every backup)."""
        try:
            self.path.unlink(missing_ok=True)
            if include_backups and self.backup_dir.exists():
                shutil.rmtree(self.backup_dir)
        except OSError as e:
            return Err(state_error("save_failed", f"Failed to clean up state: {e}", hint=str(self.path)))
        return Ok(None)

    def list_backups(self) -> list[Path]:
        """Backups oldest first."""
        if not self.backup_dir.is_dir():
            return []
        return sorted(
            p for p in self.backup_dir.glob(f"{_BACKUP_PREFIX}*.json") if p.is_file()
        )

    def _read(self, path: Path) -> Result[ReleaseState, ReleaseError]:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return Err(state_error("load_failed", f"Failed to read {path.name}: {e}", hint=str(path)))

        try:
            obj: object = json.loads(text)
        except json.JSONDecodeError as e:
            return Err(state_error("corrupted", f"invalid JSON in {path.name}: {e}", hint=str(path)))

        data = as_str_dict(obj)
        if data is None:
            return Err(state_error("corrupted", f"{path.name} root must be a JSON object", hint=str(path)))
        return state_from_dict(data)

    def _next_backup_path(self) -> Path:
        stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%S%fZ")
        # The counter keeps names unique and lexicographically ordered within one tick.
        n = 0
        while True:
            candidate = self.backup_dir / f"{_BACKUP_PREFIX}{stamp}-{n:03d}.json"
            if not candidate.exists():
                return candidate
            n += 1

    def _prune_backups(self) -> None:
        backups = self.list_backups()
        for old in backups[: max(0, len(backups) - self.max_backups)]:
            old.unlink(missing_ok=True)
