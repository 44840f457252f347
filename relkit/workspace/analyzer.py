"""Workspace collaborator for Python monorepos.

Members are directories matched by the ``[workspace] members`` globs of
``relkit.toml``; each holds a ``pyproject.toml`` with a ``[project]`` table.
"""

from __future__ import annotations

from pathlib import Path

from relkit.core.config import WorkspaceConfig
from relkit.core.result import Err, Ok, Result
from relkit.core.structured import get_str, get_str_list, get_table
from relkit.release.contracts import (
    PackageInfo,
    ValidationCheck,
    ValidationReport,
    WorkspaceInfo,
)
from relkit.release.errors import ReleaseError, workspace_error
from relkit.release.graph import build_graph
from relkit.version.semver import parse_version
from relkit.workspace.manifest import (
    MANIFEST_NAME,
    canonicalize_name,
    pinned_version,
    read_manifest,
    requirement_name,
)

__all__ = ["PythonWorkspace"]


class PythonWorkspace:
    def __init__(self, config: WorkspaceConfig | None = None) -> None:
        self.config = config or WorkspaceConfig()

    def member_dirs(self, root: Path) -> list[Path]:
        """Member directories in pattern order, without duplicates."""
        seen: set[Path] = set()
        dirs: list[Path] = []
        for pattern in self.config.members:
            for match in sorted(root.glob(pattern)):
                if not match.is_dir():
                    continue
                resolved = match.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                dirs.append(match)
        return dirs

    def analyze(self, root: Path) -> Result[WorkspaceInfo, ReleaseError]:
        if not root.is_dir():
            return Err(workspace_error("root_not_found", f"Workspace root not found: {root}", hint=str(root)))

        dirs = self.member_dirs(root)
        if not dirs:
            return Err(
                workspace_error(
                    "invalid_structure",
                    "No workspace members found",
                    hint=f"members = {list(self.config.members)}",
                )
            )

        raw: list[tuple[str, str, Path, Path, tuple[str, ...]]] = []
        for directory in dirs:
            manifest_path = directory / MANIFEST_NAME
            data = read_manifest(manifest_path)
            if isinstance(data, Err):
                return data

            project = get_table(data.value, "project")
            name = get_str(project, "name") if project is not None else None
            if project is None or name is None:
                return Err(
                    workspace_error(
                        "invalid_structure",
                        f"{manifest_path.parent.name}: [project] name is missing",
                        hint=str(manifest_path),
                    )
                )
            version = get_str(project, "version") or ""
            requirements = tuple(get_str_list(project, "dependencies") or [])
            raw.append((canonicalize_name(name), version, directory, manifest_path, requirements))

        members = {entry[0] for entry in raw}
        packages: list[PackageInfo] = []
        for name, version, directory, manifest_path, requirements in raw:
            internal: list[str] = []
            for requirement in requirements:
                dep = requirement_name(requirement)
                if dep is not None and dep in members and dep not in internal:
                    internal.append(dep)
            packages.append(
                PackageInfo(
                    name=name,
                    version=version,
                    path=directory,
                    manifest_path=manifest_path,
                    dependencies=tuple(internal),
                    requirements=requirements,
                )
            )

        return Ok(WorkspaceInfo(root=root, packages=tuple(packages)))

    def validate(self, info: WorkspaceInfo) -> Result[ValidationReport, ReleaseError]:
        checks: list[ValidationCheck] = []

        missing = [str(p.manifest_path) for p in info.packages if not p.manifest_path.is_file()]
        checks.append(
            ValidationCheck(
                name="manifests",
                passed=not missing and bool(info.packages),
                message=(
                    f"{len(info.packages)} members found"
                    if not missing
                    else f"missing: {', '.join(missing)}"
                ),
            )
        )

        names = [p.name for p in info.packages]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        checks.append(
            ValidationCheck(
                name="unique_names",
                passed=not duplicates,
                message="package names are unique" if not duplicates else f"duplicated: {', '.join(duplicates)}",
            )
        )

        unversioned = [p.name for p in info.packages if not p.version]
        checks.append(
            ValidationCheck(
                name="versions_present",
                passed=not unversioned,
                message=(
                    "every member declares a version"
                    if not unversioned
                    else f"no literal [project] version: {', '.join(unversioned)}"
                ),
            )
        )

        invalid = [f"{p.name}={p.version}" for p in info.packages if p.version and parse_version(p.version) is None]
        checks.append(
            ValidationCheck(
                name="versions_valid",
                passed=not invalid,
                message="versions are semantic versions" if not invalid else f"not semver: {', '.join(invalid)}",
            )
        )

        versions = sorted({p.version for p in info.packages if p.version})
        checks.append(
            ValidationCheck(
                name="versions_consistent",
                passed=len(versions) <= 1,
                message=(
                    f"all members at {versions[0]}"
                    if len(versions) == 1
                    else ("no versions" if not versions else f"versions differ: {', '.join(versions)}")
                ),
            )
        )

        stale: list[str] = []
        if len(versions) == 1:
            internal = set(names)
            for p in info.packages:
                for requirement in p.requirements:
                    dep = requirement_name(requirement)
                    pin = pinned_version(requirement)
                    if dep in internal and pin is not None and pin != versions[0]:
                        stale.append(f"{p.name} -> {dep}=={pin}")
        checks.append(
            ValidationCheck(
                name="internal_pins",
                passed=not stale,
                message="internal pins match" if not stale else f"stale pins: {', '.join(stale)}",
                critical=False,
            )
        )

        graph = build_graph(info)
        checks.append(
            ValidationCheck(
                name="acyclic",
                passed=isinstance(graph, Ok),
                message="no dependency cycles" if isinstance(graph, Ok) else graph.error.message,
            )
        )

        critical = tuple(c.message for c in checks if not c.passed and c.critical)
        warnings = tuple(c.message for c in checks if not c.passed and not c.critical)
        return Ok(
            ValidationReport(
                success=not critical,
                critical_errors=critical,
                warnings=warnings,
                checks=tuple(checks),
            )
        )
