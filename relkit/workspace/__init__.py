"""Workspace discovery and validation for pyproject-based monorepos."""

from relkit.workspace.analyzer import PythonWorkspace
from relkit.workspace.manifest import MANIFEST_NAME, canonicalize_name, requirement_name

__all__ = ["MANIFEST_NAME", "PythonWorkspace", "canonicalize_name", "requirement_name"]
