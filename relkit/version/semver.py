from __future__ import annotations

import re
from dataclasses import dataclass

from relkit.release.state import BumpKind

__all__ = ["DEFAULT_PRERELEASE_LABEL", "SemVer", "parse_version"]

DEFAULT_PRERELEASE_LABEL = "rc"

_SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)(?:\.(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True, slots=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def base(self) -> SemVer:
        return SemVer(self.major, self.minor, self.patch)

    def to_tag(self) -> str:
        return f"v{self}"

    def sort_key(self) -> tuple[int, int, int, int, tuple[tuple[int, int, str], ...]]:
        """Precedence key: a pre-release sorts before its release; build is ignored."""
        ids = tuple(
            (0, int(p), "") if p.isdigit() else (1, 0, p) for p in self.prerelease
        )
        return (self.major, self.minor, self.patch, 0 if self.prerelease else 1, ids)

    def bump(self, kind: BumpKind, *, label: str = DEFAULT_PRERELEASE_LABEL) -> SemVer:
        """Next version for ``kind``.

        A pre-release graduates to its own release when the bump would not
        go past it (1.2.0-rc.2 + minor = 1.2.0). ``prerelease`` increments
        the trailing number of a matching pre-release, or starts
        ``<next patch>-<label>.1``.
        """
        match kind:
            case "major":
                if self.prerelease and self.minor == 0 and self.patch == 0:
                    return self.base
                return SemVer(self.major + 1, 0, 0)
            case "minor":
                if self.prerelease and self.patch == 0:
                    return self.base
                return SemVer(self.major, self.minor + 1, 0)
            case "patch":
                if self.prerelease:
                    return self.base
                return SemVer(self.major, self.minor, self.patch + 1)
            case "prerelease":
                pre = self.prerelease
                if pre and pre[0] == label and len(pre) >= 2 and pre[-1].isdigit():
                    return SemVer(self.major, self.minor, self.patch, (*pre[:-1], str(int(pre[-1]) + 1)))
                if pre:
                    return SemVer(self.major, self.minor, self.patch, (label, "1"))
                return SemVer(self.major, self.minor, self.patch + 1, (label, "1"))
            case "exact":
                raise ValueError("an exact bump has no computed version; give the target version")


def parse_version(text: str) -> SemVer | None:
    m = _SEMVER_RE.match(text.strip())
    if m is None:
        return None
    pre = tuple(m.group(4).split(".")) if m.group(4) else ()
    build = tuple(m.group(5).split(".")) if m.group(5) else ()
    return SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3)), pre, build)
