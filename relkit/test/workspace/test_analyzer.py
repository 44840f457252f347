"""Tests for relkit.workspace.analyzer."""

from __future__ import annotations

from pathlib import Path

import pytest

from relkit.core.config import WorkspaceConfig
from relkit.core.result import Err, Ok
from relkit.release.contracts import ValidationReport, WorkspaceInfo
from relkit.test.fakes import write_pyproject, write_python_workspace
from relkit.workspace.analyzer import PythonWorkspace


def _analyze(root: Path, config: WorkspaceConfig | None = None) -> WorkspaceInfo:
    result = PythonWorkspace(config).analyze(root)
    assert isinstance(result, Ok), result
    return result.value


def _validate(info: WorkspaceInfo) -> ValidationReport:
    result = PythonWorkspace().validate(info)
    assert isinstance(result, Ok)
    return result.value


@pytest.fixture
def abc(tmp_path: Path) -> Path:
    return write_python_workspace(tmp_path, {"a": (), "b": ("a",), "c": ("a",)})


class TestAnalyze:
    def test_members_and_internal_dependencies(self, abc: Path) -> None:
        info = _analyze(abc)

        assert info.package_names == ("a", "b", "c")
        b = info.get("b")
        assert b is not None
        assert b.version == "1.0.0"
        assert b.dependencies == ("a",)
        assert b.requirements == ("a==1.0.0",)
        assert b.manifest_path == abc / "packages" / "b" / "pyproject.toml"

    def test_external_requirements_are_not_edges(self, tmp_path: Path) -> None:
        write_pyproject(tmp_path / "packages" / "web", "web", "0.3.0", ("httpx>=0.27", "Acme_Core==0.3.0"))
        write_pyproject(tmp_path / "packages" / "core", "acme.core", "0.3.0")

        info = _analyze(tmp_path)

        assert sorted(info.package_names) == ["acme-core", "web"]
        web = info.get("web")
        assert web is not None and web.dependencies == ("acme-core",)

    def test_patterns_are_deduplicated(self, tmp_path: Path) -> None:
        write_pyproject(tmp_path / "libs" / "core", "core", "1.0.0")
        write_pyproject(tmp_path / "apps" / "cli", "cli", "1.0.0", ("core==1.0.0",))

        info = _analyze(tmp_path, WorkspaceConfig(members=("libs/*", "libs/core", "apps/cli")))

        assert info.package_names == ("core", "cli")

    def test_files_matching_patterns_are_skipped(self, abc: Path) -> None:
        (abc / "packages" / "README.md").write_text("members live here\n", encoding="utf-8")
        assert _analyze(abc).package_names == ("a", "b", "c")

    def test_missing_root(self, tmp_path: Path) -> None:
        result = PythonWorkspace().analyze(tmp_path / "missing")
        assert isinstance(result, Err)
        assert result.error.kind == "root_not_found"

    def test_no_members(self, tmp_path: Path) -> None:
        result = PythonWorkspace().analyze(tmp_path)
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_structure"
        assert result.error.hint == "members = ['packages/*']"

    def test_member_without_manifest(self, abc: Path) -> None:
        (abc / "packages" / "docs").mkdir()
        result = PythonWorkspace().analyze(abc)
        assert isinstance(result, Err)
        assert result.error.kind == "missing_manifest"

    def test_member_without_project_name(self, abc: Path) -> None:
        (abc / "packages" / "a" / "pyproject.toml").write_text('[project]\nversion = "1.0.0"\n', encoding="utf-8")
        result = PythonWorkspace().analyze(abc)
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_structure"
        assert "a: [project] name is missing" in result.error.message


class TestValidate:
    def test_consistent_workspace_passes(self, abc: Path) -> None:
        report = _validate(_analyze(abc))

        assert report.success
        assert report.critical_errors == ()
        assert report.warnings == ()
        assert [c.name for c in report.checks] == [
            "manifests",
            "unique_names",
            "versions_present",
            "versions_valid",
            "versions_consistent",
            "internal_pins",
            "acyclic",
        ]
        assert all(c.passed for c in report.checks)

    def test_diverging_versions_are_critical(self, abc: Path) -> None:
        write_pyproject(abc / "packages" / "c", "c", "1.1.0", ("a==1.0.0",))
        report = _validate(_analyze(abc))

        assert not report.success
        assert report.critical_errors == ("versions differ: 1.0.0, 1.1.0",)

    def test_stale_pin_is_a_warning(self, abc: Path) -> None:
        write_pyproject(abc / "packages" / "c", "c", "1.0.0", ("a==0.9.0",))
        report = _validate(_analyze(abc))

        assert report.success
        assert report.warnings == ("stale pins: c -> a==0.9.0",)

    def test_invalid_version(self, tmp_path: Path) -> None:
        write_pyproject(tmp_path / "packages" / "a", "a", "banana")
        report = _validate(_analyze(tmp_path))

        assert not report.success
        assert report.critical_errors == ("not semver: a=banana",)

    def test_cycle_is_critical(self, tmp_path: Path) -> None:
        write_python_workspace(tmp_path, {"a": ("b",), "b": ("a",)})
        report = _validate(_analyze(tmp_path))

        assert not report.success
        failed = [c for c in report.checks if not c.passed]
        assert [c.name for c in failed] == ["acyclic"]

    def test_missing_manifest_after_analysis(self, abc: Path) -> None:
        info = _analyze(abc)
        (abc / "packages" / "b" / "pyproject.toml").unlink()

        report = _validate(info)

        assert not report.success
        assert report.checks[0].name == "manifests"
        assert not report.checks[0].passed
