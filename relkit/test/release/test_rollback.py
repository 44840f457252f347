"""Tests for relkit.release.rollback."""

from __future__ import annotations

from relkit.core.result import Err, Ok, Result
from relkit.output.console import MockConsole
from relkit.release.errors import ReleaseError, git_error, state_error
from relkit.release.publish import PublishPipeline, PublishSettings
from relkit.release.rollback import RollbackCoordinator
from relkit.release.state import (
    GitState,
    PackagePublish,
    PublishState,
    ReleaseConfig,
    ReleaseState,
    VersionState,
    new_release_state,
    touch,
)
from relkit.test.fakes import FakeRegistry, InMemoryGit


class Saves:
    def __init__(self, error: ReleaseError | None = None) -> None:
        self.states: list[ReleaseState] = []
        self.error = error

    def __call__(self, state: ReleaseState) -> Result[None, ReleaseError]:
        if self.error is not None:
            return Err(self.error)
        self.states.append(state)
        return Ok(None)


def _coordinator(git: InMemoryGit, registry: FakeRegistry, save: Saves) -> RollbackCoordinator:
    console = MockConsole()
    return RollbackCoordinator(
        git=git,
        registry=registry,
        pipeline=PublishPipeline(PublishSettings(inter_package_delay=0.0), console=console, sleep=lambda _: None),
        console=console,
        save=save,
    )


def _released(*, pushed: bool = True, pre_release: str | None = "c0000000") -> ReleaseState:
    ps = PublishState(tier_count=2)
    for name in ("core", "cli"):
        ps = ps.with_success(
            PackagePublish(package=name, version="2.0.0", attempts=1, published_at="2026-03-01T10:00:00+00:00")
        )
    state = new_release_state(target_version="2.0.0", bump="major", config=ReleaseConfig())
    return touch(
        state,
        version_state=VersionState(
            previous_version="1.4.2",
            new_version="2.0.0",
            updated_files=("core/pyproject.toml", "cli/pyproject.toml"),
            summary="",
        ),
        git_state=GitState(
            commit_hash="c0000001",
            pre_release_commit=pre_release,
            tag_name="v2.0.0",
            pushed=pushed,
            remote="origin",
        ),
        publish_state=ps,
    )


def _git_with_release() -> InMemoryGit:
    git = InMemoryGit(head="c0000001", commits=["c0000000", "c0000001"])
    git.tags["v2.0.0"] = "c0000001"
    git.remote_tags.add("v2.0.0")
    return git


def test_full_rollback_records_every_step() -> None:
    git, registry, saves = _git_with_release(), FakeRegistry(), Saves()
    result = _coordinator(git, registry, saves).rollback(_released(), "full")

    assert isinstance(result, Ok)
    state, summary = result.value
    assert registry.yank_calls == ["cli", "core"]
    assert git.head == "c0000000"
    assert git.tags == {}
    assert state.publish_state is not None and state.publish_state.yanked == ("cli", "core")
    assert state.git_state is not None
    assert state.git_state.tag_deleted and state.git_state.reset_done
    # two yanks, tag deletion, reset
    assert len(saves.states) == 4
    assert summary.success
    assert summary.git is not None and summary.git.format_result() == "tag deleted, commit reset"


def test_rollback_of_rolled_back_state_repeats_nothing() -> None:
    git, registry, saves = _git_with_release(), FakeRegistry(), Saves()
    coordinator = _coordinator(git, registry, saves)
    first = coordinator.rollback(_released(), "full")
    assert isinstance(first, Ok)

    second = coordinator.rollback(first.value[0], "full")

    assert isinstance(second, Ok)
    assert registry.yank_calls == ["cli", "core"]
    assert git.count("delete_tag") == 1
    assert git.count("reset") == 1
    assert second.value[1].packages is not None
    assert second.value[1].packages.already_yanked == ("cli", "core")


def test_pushed_tag_missing_locally_is_deleted_on_remote() -> None:
    git, saves = InMemoryGit(head="c0000001"), Saves()
    git.remote_tags.add("v2.0.0")
    result = _coordinator(git, FakeRegistry(), saves).rollback_git(_released(pushed=True))

    assert isinstance(result, Ok)
    state, report = result.value
    assert git.count("delete_tag") == 1
    assert git.remote_tags == set()
    assert git.timeouts == [ReleaseConfig().timeout]
    assert report is not None and report.tag_deleted
    assert state.git_state is not None and state.git_state.tag_deleted


def test_unpushed_missing_tag_counts_as_deleted() -> None:
    git, saves = InMemoryGit(head="c0000001"), Saves()
    result = _coordinator(git, FakeRegistry(), saves).rollback_git(_released(pushed=False))

    assert isinstance(result, Ok)
    state, report = result.value
    assert git.count("delete_tag") == 0
    assert report is not None and report.tag_deleted
    assert state.git_state is not None and state.git_state.tag_deleted


def test_unknown_pre_release_commit_is_a_manual_action() -> None:
    git, saves = _git_with_release(), Saves()
    result = _coordinator(git, FakeRegistry(), saves).rollback(_released(pre_release=None, pushed=False), "git_only")

    assert isinstance(result, Ok)
    _, summary = result.value
    assert git.count("reset") == 0
    assert any("reset the branch by hand" in a for a in summary.manual_actions)
    assert summary.packages is None


def test_pushed_commit_is_reported_for_manual_revert() -> None:
    result = _coordinator(_git_with_release(), FakeRegistry(), Saves()).rollback(_released(), "git_only")
    assert isinstance(result, Ok)
    assert any("revert it there by hand" in a for a in result.value[1].manual_actions)


def test_packages_only_reports_no_version_action() -> None:
    result = _coordinator(_git_with_release(), FakeRegistry(), Saves()).rollback(_released(), "packages_only")
    assert isinstance(result, Ok)
    assert result.value[1].manual_actions == ()


def test_version_edits_are_manual_actions() -> None:
    result = _coordinator(_git_with_release(), FakeRegistry(), Saves()).rollback(_released(), "full")
    assert isinstance(result, Ok)
    actions = result.value[1].manual_actions
    assert "revert version 1.4.2 -> 2.0.0 in: core/pyproject.toml, cli/pyproject.toml" in actions


def test_failed_yank_becomes_manual_action() -> None:
    registry = FakeRegistry()
    registry.yank_failures["core"] = ReleaseError(category="publish", kind="yank_failed", message="no")
    result = _coordinator(_git_with_release(), registry, Saves()).rollback(_released(), "packages_only")

    assert isinstance(result, Ok)
    state, summary = result.value
    assert not summary.success
    assert "yank core 2.0.0 by hand" in summary.manual_actions
    assert state.publish_state is not None and state.publish_state.yanked == ("cli",)


def test_git_error_stops_rollback() -> None:
    git = _git_with_release()
    git.fail_on["delete_tag"] = git_error("remote_failed", "remote down")
    result = _coordinator(git, FakeRegistry(), Saves()).rollback(_released(), "git_only")
    assert isinstance(result, Err)
    assert result.error.kind == "remote_failed"


def test_save_failure_is_returned() -> None:
    saves = Saves(state_error("save_failed", "disk full"))
    result = _coordinator(_git_with_release(), FakeRegistry(), saves).rollback(_released(), "packages_only")
    assert isinstance(result, Err)
    assert result.error.kind == "save_failed"


def test_nothing_to_undo() -> None:
    state = new_release_state(target_version="2.0.0", bump="major", config=ReleaseConfig())
    result = _coordinator(InMemoryGit(), FakeRegistry(), Saves()).rollback(state, "full")
    assert isinstance(result, Ok)
    _, summary = result.value
    assert summary.packages is None
    assert summary.git is None
    assert summary.manual_actions == ()
