"""pyproject.toml reading and targeted text edits.

Edits are regex based so comments and formatting survive: only the
``version = "..."`` line of the ``[project]`` table and ``name==version``
pins of workspace members are touched.
"""

from __future__ import annotations

import re
import tomllib
from collections.abc import Iterable
from pathlib import Path

from relkit.core.result import Err, Ok, Result
from relkit.core.structured import StrDict, as_str_dict
from relkit.release.errors import ReleaseError, workspace_error

MANIFEST_NAME = "pyproject.toml"

_NAME_SEPARATORS = re.compile(r"[-_.]+")
_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?)")
_PROJECT_HEADER = re.compile(r"(?m)^\[project\]\s*(?:#.*)?$")
_NEXT_HEADER = re.compile(r"(?m)^\[")
_VERSION_LINE = re.compile(r'(?m)^(version\s*=\s*)"([^"]*)"')


def canonicalize_name(name: str) -> str:
    """PEP 503 normalized project name."""
    return _NAME_SEPARATORS.sub("-", name).lower()


def requirement_name(requirement: str) -> str | None:
    m = _REQUIREMENT_NAME.match(requirement)
    if m is None:
        return None
    return canonicalize_name(m.group(1))


def pinned_version(requirement: str) -> str | None:
    """Version of an exact ``==`` pin, or None."""
    m = re.search(r"(?<![=!<>~])==\s*([^\s,;]+)", requirement)
    if m is None or m.group(1).endswith("*"):
        return None
    return m.group(1)


def read_manifest(path: Path) -> Result[StrDict, ReleaseError]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Err(workspace_error("missing_manifest", f"Missing {path.name}", hint=str(path)))
    except OSError as e:
        return Err(workspace_error("missing_manifest", f"Failed to read {path.name}: {e}", hint=str(path)))

    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        return Err(workspace_error("invalid_structure", f"Invalid TOML in {path.name}: {e}", hint=str(path)))

    table = as_str_dict(data)
    if table is None:
        return Err(workspace_error("invalid_structure", f"Invalid TOML root in {path.name}", hint=str(path)))
    return Ok(table)


def project_section(text: str) -> tuple[int, int] | None:
    """(start, end) offsets of the [project] table body."""
    m = _PROJECT_HEADER.search(text)
    if m is None:
        return None
    nxt = _NEXT_HEADER.search(text, m.end())
    return (m.end(), nxt.start() if nxt is not None else len(text))


def read_project_version(text: str) -> str | None:
    span = project_section(text)
    if span is None:
        return None
    m = _VERSION_LINE.search(text, span[0], span[1])
    return m.group(2) if m is not None else None


def replace_project_version(text: str, version: str) -> str | None:
    """Rewrite ``[project] version``; None when the table has no literal version."""
    span = project_section(text)
    if span is None:
        return None
    start, end = span
    m = _VERSION_LINE.search(text, start, end)
    if m is None:
        return None
    return text[: m.start()] + f'{m.group(1)}"{version}"' + text[m.end() :]


def replace_pins(text: str, names: Iterable[str], old: str, new: str) -> str:
    """Rewrite ``name==old`` requirement strings for the given canonical names."""
    for name in names:
        flexible = "[-_.]+".join(re.escape(part) for part in name.split("-"))
        pattern = re.compile(
            r"""(["'])(""" + flexible + r""")(\s*(?:\[[^\]]*\])?\s*==\s*)""" + re.escape(old) + r"""(?=\s*[;,"'])""",
            re.IGNORECASE,
        )
        text = pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}{m.group(3)}{new}", text)
    return text
