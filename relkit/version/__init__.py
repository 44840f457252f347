"""Semantic versions and the workspace version collaborator."""

from relkit.version.manager import VersionManager
from relkit.version.semver import DEFAULT_PRERELEASE_LABEL, SemVer, parse_version

__all__ = ["DEFAULT_PRERELEASE_LABEL", "SemVer", "VersionManager", "parse_version"]
