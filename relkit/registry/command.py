"""Registry collaborator running configured build/publish/yank commands.

Command templates come from ``[registry]`` in ``relkit.toml``. Failures are
classified from the command output, following the way upload tools report
them (HTTP status lines, "already exists" messages, connection errors).
"""

from __future__ import annotations

import glob
import re
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path

from relkit.core.config import RegistryConfig
from relkit.core.result import Err, Ok, Result
from relkit.platform.process import ProcessError
from relkit.platform.process import run as run_process
from relkit.release.contracts import PackageInfo, RegistryReceipt
from relkit.release.errors import ReleaseError, publish_error
from relkit.release.timeouts import BUILD_TIMEOUT_SECONDS

__all__ = ["CommandRegistry", "classify_publish_failure", "render_command"]

Runner = Callable[..., Result[str, ProcessError]]

_ALREADY_PUBLISHED_MARKERS = (
    "already exists",
    "file already exists",
    "already been published",
    "cannot overwrite",
    "http 409",
    "409 conflict",
)

_RATE_LIMIT_MARKERS = (
    "429",
    "too many requests",
    "rate limit",
)

_AUTH_MARKERS = (
    "http 401",
    "http 403",
    "401 unauthorized",
    "403 forbidden",
    "invalid or non-existent authentication",
    "invalid credentials",
    "missing credentials",
    "authentication failed",
)

_NETWORK_MARKERS = (
    "connection reset",
    "connection refused",
    "connection aborted",
    "temporarily unavailable",
    "temporary failure in name resolution",
    "could not resolve",
    "name or service not known",
    "network is unreachable",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
    "http 500",
    "http 502",
    "http 503",
    "http 504",
    "ssl",
)

_RETRY_AFTER = re.compile(r"retry[- ]after[\s:=]+(\d+(?:\.\d+)?)", re.IGNORECASE)


def render_command(template: Sequence[str], values: dict[str, str]) -> list[str]:
    """Fill placeholders and expand glob arguments (no shell is involved)."""
    cmd: list[str] = []
    for part in template:
        arg = part.format(**values)
        if any(ch in arg for ch in "*?["):
            matches = sorted(glob.glob(arg))
            if matches:
                cmd.extend(matches)
                continue
        cmd.append(arg)
    return cmd


def classify_publish_failure(error: ProcessError, *, package: str, version: str) -> ReleaseError:
    text = error.output.lower()
    detail = error.stderr.strip() or error.stdout.strip() or str(error)
    label = f"{package} {version}"

    if error.timed_out:
        return publish_error("timeout", f"Publishing {label} timed out", hint=detail)
    if any(marker in text for marker in _ALREADY_PUBLISHED_MARKERS):
        return publish_error("already_published", f"{label} is already on the registry")
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        m = _RETRY_AFTER.search(error.output)
        retry_after = float(m.group(1)) if m is not None else None
        return publish_error("rate_limited", f"Rate limited while publishing {label}", hint=detail, retry_after=retry_after)
    if any(marker in text for marker in _AUTH_MARKERS):
        return publish_error("auth", f"Registry rejected credentials for {label}", hint=detail)
    if any(marker in text for marker in _NETWORK_MARKERS) or "timed out" in text:
        return publish_error("network", f"Network error while publishing {label}", hint=detail)
    return publish_error("publish_failed", f"Publishing {label} failed", hint=detail)


class CommandRegistry:
    """Registry capability backed by external commands.

    Attributes:
        config: Command templates.
        root: Workspace root; commands run there.
        dist_root: Parent of the per-package build output directories.
    """

    def __init__(
        self,
        config: RegistryConfig,
        root: Path,
        *,
        dist_root: Path | None = None,
        runner: Runner = run_process,
    ) -> None:
        self.config = config
        self.root = root
        self.dist_root = dist_root or root / ".relkit" / "dist"
        self._run = runner

    def dist_dir(self, name: str, version: str) -> Path:
        return self.dist_root / f"{name}-{version}"

    def publish(self, package: PackageInfo, version: str, *, timeout: float) -> Result[RegistryReceipt, ReleaseError]:
        dist = self.dist_dir(package.name, version)
        values = {"name": package.name, "version": version, "path": str(package.path), "dist": str(dist)}
        details: list[str] = []

        if self.config.build:
            try:
                if dist.exists():
                    shutil.rmtree(dist)
                dist.mkdir(parents=True)
            except OSError as e:
                return Err(publish_error("publish_failed", f"Cannot prepare {dist}: {e}", hint=str(dist)))

            built = self._run(render_command(self.config.build, values), cwd=self.root, timeout=BUILD_TIMEOUT_SECONDS)
            if isinstance(built, Err):
                error = built.error
                if error.timed_out:
                    return Err(publish_error("timeout", f"Building {package.name} timed out", hint=str(error)))
                return Err(
                    publish_error(
                        "publish_failed",
                        f"Building {package.name} failed",
                        hint=error.stderr.strip() or str(error),
                    )
                )
            details.append(f"built into {dist}")

        published = self._run(render_command(self.config.publish, values), cwd=self.root, timeout=timeout)
        if isinstance(published, Err):
            return Err(classify_publish_failure(published.error, package=package.name, version=version))
        details.extend(line for line in published.value.splitlines() if line.strip())

        return Ok(RegistryReceipt(package=package.name, version=version, details=tuple(details)))

    def yank(self, package: str, version: str, *, timeout: float) -> Result[None, ReleaseError]:
        if not self.config.yank:
            return Err(
                publish_error(
                    "yank_failed",
                    f"No yank command configured for {package} {version}",
                    hint="yank it on the registry by hand, or set [registry] yank in relkit.toml",
                )
            )

        values = {"name": package, "version": version, "path": "", "dist": str(self.dist_dir(package, version))}
        result = self._run(render_command(self.config.yank, values), cwd=self.root, timeout=timeout)
        if isinstance(result, Err):
            error = result.error
            return Err(
                publish_error(
                    "yank_failed",
                    f"Yanking {package} {version} failed",
                    hint=error.stderr.strip() or str(error),
                )
            )
        return Ok(None)
