"""Dependency graph and tiered publish order.

Packages are nodes addressed by name; edges point from a package to the
internal packages it depends on. A cycle is a terminal workspace error.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Literal

from relkit.core.result import Err, Ok, Result
from relkit.release.contracts import WorkspaceInfo
from relkit.release.errors import ReleaseError, workspace_error

__all__ = ["DependencyGraph", "TierPlan", "build_graph", "find_cycle", "publish_order"]


@dataclass(frozen=True, slots=True)
class DependencyGraph:
    """Acyclic package graph.

    Attributes:
        packages: Package names in workspace (insertion) order.
        dependencies: Internal dependencies per package, same order rules.
    """

    packages: tuple[str, ...]
    dependencies: Mapping[str, tuple[str, ...]]

    @classmethod
    def build(
        cls,
        packages: Iterable[str],
        edges: Iterable[tuple[str, str]],
    ) -> Result[DependencyGraph, ReleaseError]:
        """Build the graph from package names and (dependent, dependency) edges.

        Edges that mention an unknown package are ignored: only internal
        dependencies constrain the publish order.
        """
        names: list[str] = []
        seen: set[str] = set()
        for name in packages:
            if name not in seen:
                seen.add(name)
                names.append(name)

        deps: dict[str, list[str]] = {name: [] for name in names}
        for dependent, dependency in edges:
            if dependent not in seen or dependency not in seen:
                continue
            if dependency not in deps[dependent]:
                deps[dependent].append(dependency)

        frozen = {name: tuple(d) for name, d in deps.items()}
        cycle = find_cycle(names, frozen)
        if cycle is not None:
            return Err(
                workspace_error(
                    "circular_dependency",
                    f"Circular dependency detected in packages: {' -> '.join((*cycle, cycle[0]))}",
                    hint=", ".join(cycle),
                )
            )

        return Ok(cls(packages=tuple(names), dependencies=frozen))

    def dependents_of(self, package: str) -> tuple[str, ...]:
        return tuple(p for p in self.packages if package in self.dependencies[p])


@dataclass(frozen=True, slots=True)
class TierPlan:
    """Ordered, disjoint tiers; tier k only depends on tiers < k."""

    tiers: tuple[tuple[str, ...], ...]

    @property
    def tier_count(self) -> int:
        return len(self.tiers)

    @property
    def packages(self) -> tuple[str, ...]:
        return tuple(p for tier in self.tiers for p in tier)

    def tier_of(self, package: str) -> int | None:
        for i, tier in enumerate(self.tiers):
            if package in tier:
                return i
        return None


_Color = Literal["white", "grey", "black"]


def find_cycle(
    packages: Iterable[str], dependencies: Mapping[str, tuple[str, ...]]
) -> tuple[str, ...] | None:
    """Return the members of one dependency cycle, or None.

    Iterative three-colour DFS. When a back edge reaches a grey node, the
    stack slice from that node to the top is exactly one cycle.
    """
    color: dict[str, _Color] = {name: "white" for name in packages}

    for root in color:
        if color[root] != "white":
            continue

        stack: list[tuple[str, int]] = [(root, 0)]
        path: list[str] = [root]
        color[root] = "grey"

        while stack:
            node, idx = stack[-1]
            deps = dependencies.get(node, ())
            if idx >= len(deps):
                stack.pop()
                path.pop()
                color[node] = "black"
                continue

            stack[-1] = (node, idx + 1)
            nxt = deps[idx]
            state = color.get(nxt)
            if state == "grey":
                return tuple(path[path.index(nxt) :])
            if state == "white":
                color[nxt] = "grey"
                stack.append((nxt, 0))
                path.append(nxt)

    return None


def publish_order(graph: DependencyGraph) -> Result[TierPlan, ReleaseError]:
    """Layered topological sort.

    Tier k holds every package whose internal dependencies all sit in
    tiers < k. Within a tier, packages keep workspace order. Packages that
    can never be placed (a graph built by hand around a cycle) are a
    circular dependency error.
    """
    placed: set[str] = set()
    remaining = list(graph.packages)
    tiers: list[tuple[str, ...]] = []

    while remaining:
        tier = tuple(p for p in remaining if all(d in placed for d in graph.dependencies[p]))
        if not tier:
            return Err(
                workspace_error(
                    "circular_dependency",
                    f"Packages cannot be ordered: {', '.join(remaining)}",
                    hint=", ".join(remaining),
                )
            )
        tiers.append(tier)
        placed.update(tier)
        remaining = [p for p in remaining if p not in placed]

    return Ok(TierPlan(tiers=tuple(tiers)))


def build_graph(info: WorkspaceInfo) -> Result[DependencyGraph, ReleaseError]:
    return DependencyGraph.build(info.package_names, info.internal_edges)
