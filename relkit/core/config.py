"""Typed configuration loading.

``relkit.toml`` at the workspace root describes the workspace members, the
release defaults and the registry commands. Every table is optional; a
missing file yields the defaults.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_bool, get_float, get_int, get_str, get_str_list, get_table

__all__ = [
    "CONFIG_FILE_NAME",
    "Config",
    "ConfigError",
    "RegistryConfig",
    "ReleaseDefaults",
    "ResetMode",
    "WorkspaceConfig",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILE_NAME = "relkit.toml"

ResetMode = Literal["soft", "mixed", "hard"]

DEFAULT_BUILD_COMMAND: tuple[str, ...] = ("uv", "build", "{path}", "--out-dir", "{dist}")
DEFAULT_PUBLISH_COMMAND: tuple[str, ...] = ("uv", "publish", "{dist}/*")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class WorkspaceConfig:
    """Glob patterns (relative to the root) locating member packages."""

    members: tuple[str, ...] = ("packages/*",)


@dataclass(frozen=True, slots=True)
class ReleaseDefaults:
    """Release settings; CLI options override them per run."""

    remote: str = "origin"
    push: bool = True
    package_delay: float = 5.0
    max_retries: int = 3
    retry_backoff: float = 2.0
    max_backoff: float = 60.0
    concurrency: int = 1
    timeout: float = 300.0
    reset_mode: ResetMode = "mixed"
    prerelease_label: str = "rc"
    max_backups: int = 5


@dataclass(frozen=True, slots=True)
class RegistryConfig:
    """Command templates run per package.

    Placeholders: ``{name}``, ``{version}``, ``{path}`` (package directory)
    and ``{dist}`` (per-package build output directory).
    An empty ``build`` skips the build step; an empty ``yank`` means yanks
    must be done by hand.
    """

    build: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    publish: tuple[str, ...] = DEFAULT_PUBLISH_COMMAND
    yank: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    release: ReleaseDefaults = field(default_factory=ReleaseDefaults)
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from parsed TOML.

        Raises:
            ValueError: On values of the right type but out of range.
        """
        workspace: StrDict = get_table(data, "workspace") or {}
        release: StrDict = get_table(data, "release") or {}
        registry: StrDict = get_table(data, "registry") or {}

        d = ReleaseDefaults()
        reset_mode = get_str(release, "reset_mode") or d.reset_mode
        if reset_mode not in ("soft", "mixed", "hard"):
            raise ValueError(f"release.reset_mode must be soft, mixed or hard: {reset_mode!r}")

        defaults = ReleaseDefaults(
            remote=get_str(release, "remote") or d.remote,
            push=_bool_or(get_bool(release, "push"), d.push),
            package_delay=_float_or(get_float(release, "package_delay"), d.package_delay),
            max_retries=_int_or(get_int(release, "max_retries"), d.max_retries),
            retry_backoff=_float_or(get_float(release, "retry_backoff"), d.retry_backoff),
            max_backoff=_float_or(get_float(release, "max_backoff"), d.max_backoff),
            concurrency=_int_or(get_int(release, "concurrency"), d.concurrency),
            timeout=_float_or(get_float(release, "timeout"), d.timeout),
            reset_mode=reset_mode,
            prerelease_label=get_str(release, "prerelease_label") or d.prerelease_label,
            max_backups=_int_or(get_int(release, "max_backups"), d.max_backups),
        )
        if defaults.max_retries < 0:
            raise ValueError("release.max_retries must be >= 0")
        if defaults.concurrency < 1:
            raise ValueError("release.concurrency must be >= 1")
        if defaults.package_delay < 0:
            raise ValueError("release.package_delay must be >= 0")

        members = get_str_list(workspace, "members")
        r = RegistryConfig()
        build = get_str_list(registry, "build")
        publish = get_str_list(registry, "publish")
        yank = get_str_list(registry, "yank")

        return cls(
            workspace=WorkspaceConfig(members=tuple(members) if members else WorkspaceConfig().members),
            release=defaults,
            registry=RegistryConfig(
                build=tuple(build) if build is not None else r.build,
                publish=tuple(publish) if publish else r.publish,
                yank=tuple(yank) if yank is not None else r.yank,
            ),
        )


def _int_or(value: int | None, default: int) -> int:
    return default if value is None else value


def _float_or(value: float | None, default: float) -> float:
    return default if value is None else value


def _bool_or(value: bool | None, default: bool) -> bool:
    return default if value is None else value


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse ``relkit.toml``.

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path) -> Result[Config, ConfigError]:
    """Like load_config, but a missing file yields the defaults."""
    if not path.exists():
        return Ok(Config())
    return load_config(path)
