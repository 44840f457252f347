"""Tests for relkit.release.graph."""

from __future__ import annotations

from pathlib import Path

import pytest

from relkit.core.result import Err, Ok
from relkit.release.graph import DependencyGraph, TierPlan, build_graph, find_cycle, publish_order
from relkit.test.fakes import make_workspace


def _graph(packages: list[str], edges: list[tuple[str, str]]) -> DependencyGraph:
    result = DependencyGraph.build(packages, edges)
    assert isinstance(result, Ok)
    return result.value


def _order(graph: DependencyGraph) -> TierPlan:
    result = publish_order(graph)
    assert isinstance(result, Ok), result
    return result.value


class TestBuild:
    def test_keeps_insertion_order_and_drops_duplicates(self) -> None:
        graph = _graph(["b", "a", "b", "c"], [])
        assert graph.packages == ("b", "a", "c")

    def test_ignores_edges_to_unknown_packages(self) -> None:
        graph = _graph(["a", "b"], [("a", "requests"), ("b", "a")])
        assert graph.dependencies == {"a": (), "b": ("a",)}

    def test_duplicate_edges_collapse(self) -> None:
        graph = _graph(["a", "b"], [("b", "a"), ("b", "a")])
        assert graph.dependencies["b"] == ("a",)

    def test_dependents_of(self) -> None:
        graph = _graph(["a", "b", "c"], [("b", "a"), ("c", "a")])
        assert graph.dependents_of("a") == ("b", "c")
        assert graph.dependents_of("c") == ()

    def test_cycle_is_a_workspace_error(self) -> None:
        result = DependencyGraph.build(["x", "y"], [("x", "y"), ("y", "x")])
        assert isinstance(result, Err)
        assert result.error.category == "workspace"
        assert result.error.kind == "circular_dependency"
        assert result.error.recoverable is False
        assert "x" in result.error.message and "y" in result.error.message

    def test_self_dependency_is_a_cycle(self) -> None:
        result = DependencyGraph.build(["solo"], [("solo", "solo")])
        assert isinstance(result, Err)
        assert result.error.hint == "solo"


class TestFindCycle:
    def test_acyclic(self) -> None:
        assert find_cycle(["a", "b", "c"], {"a": (), "b": ("a",), "c": ("a", "b")}) is None

    def test_reports_only_cycle_members(self) -> None:
        # entry -> x -> y -> z -> x; entry is not part of the cycle.
        deps = {"entry": ("x",), "x": ("y",), "y": ("z",), "z": ("x",)}
        cycle = find_cycle(["entry", "x", "y", "z"], deps)
        assert cycle is not None
        assert set(cycle) == {"x", "y", "z"}
        assert "entry" not in cycle

    def test_diamond_is_not_a_cycle(self) -> None:
        deps = {"a": (), "b": ("a",), "c": ("a",), "d": ("b", "c")}
        assert find_cycle(["d", "c", "b", "a"], deps) is None


class TestPublishOrder:
    def test_chain_gives_one_package_per_tier(self) -> None:
        graph = _graph(["a", "b", "c"], [("b", "a"), ("c", "b")])
        plan = _order(graph)
        assert plan.tiers == (("a",), ("b",), ("c",))
        assert plan.tier_count == 3

    def test_independent_packages_share_tier_zero(self) -> None:
        plan = _order(_graph(["x", "y", "z"], []))
        assert plan.tiers == (("x", "y", "z"),)

    def test_siblings_share_a_tier(self) -> None:
        # A has no deps, B and C depend on A.
        plan = _order(_graph(["A", "B", "C"], [("B", "A"), ("C", "A")]))
        assert plan.tiers == (("A",), ("B", "C"))

    def test_dependency_between_siblings_splits_the_tier(self) -> None:
        plan = _order(_graph(["A", "B", "C"], [("B", "A"), ("C", "A"), ("C", "B")]))
        assert plan.tiers == (("A",), ("B",), ("C",))

    def test_tier_is_one_past_deepest_dependency(self) -> None:
        graph = _graph(
            ["core", "util", "api", "cli", "docs"],
            [("util", "core"), ("api", "core"), ("cli", "api"), ("cli", "util")],
        )
        plan = _order(graph)
        assert plan.tiers == (("core", "docs"), ("util", "api"), ("cli",))
        assert plan.tier_of("cli") == 2
        assert plan.tier_of("missing") is None

    @pytest.mark.parametrize(
        "edges",
        [
            [("b", "a"), ("c", "a"), ("d", "b"), ("d", "c")],
            [("e", "d"), ("d", "c"), ("c", "b"), ("b", "a")],
            [("a", "e"), ("b", "e"), ("c", "a"), ("c", "b")],
        ],
    )
    def test_every_package_once_and_deps_in_earlier_tiers(self, edges: list[tuple[str, str]]) -> None:
        names = ["a", "b", "c", "d", "e"]
        graph = _graph(names, edges)
        plan = _order(graph)

        assert sorted(plan.packages) == sorted(names)
        assert len(plan.packages) == len(set(plan.packages))
        for dependent, dependency in edges:
            tier_dependent = plan.tier_of(dependent)
            tier_dependency = plan.tier_of(dependency)
            assert tier_dependent is not None and tier_dependency is not None
            assert tier_dependency < tier_dependent
        # Tier k holds packages whose deepest dependency sits in tier k-1.
        for k, tier in enumerate(plan.tiers):
            for package in tier:
                deps = graph.dependencies[package]
                expected = 0 if not deps else 1 + max(plan.tier_of(d) or 0 for d in deps)
                assert k == expected

    def test_hand_made_cycle_is_an_error(self) -> None:
        graph = DependencyGraph(packages=("a", "b", "c"), dependencies={"a": (), "b": ("c",), "c": ("b",)})
        result = publish_order(graph)
        assert isinstance(result, Err)
        assert result.error.kind == "circular_dependency"
        assert "b, c" in result.error.message


def test_build_graph_from_workspace_info(tmp_path: Path) -> None:
    info = make_workspace(tmp_path, {"a": (), "b": ("a",)})
    result = build_graph(info)
    assert isinstance(result, Ok)
    assert _order(result.value).tiers == (("a",), ("b",))
