"""Tests for relkit.release.errors."""

from __future__ import annotations

import pytest

from relkit.release.errors import (
    ReleaseError,
    cli_error,
    git_error,
    publish_error,
    state_error,
    version_error,
    workspace_error,
)


@pytest.mark.parametrize(
    "error",
    [
        workspace_error("root_not_found", "x"),
        workspace_error("circular_dependency", "x"),
        workspace_error("missing_manifest", "x"),
        version_error("invalid_version", "x"),
        git_error("not_repository", "x"),
        state_error("corrupted", "x"),
        state_error("not_resumable", "x"),
    ],
)
def test_non_recoverable(error: ReleaseError) -> None:
    assert error.recoverable is False


@pytest.mark.parametrize(
    "error",
    [
        publish_error("network", "x"),
        publish_error("rate_limited", "x", retry_after=3.0),
        publish_error("publish_failed", "x"),
        git_error("dirty_working_tree", "x"),
        git_error("auth_failed", "x"),
        state_error("cancelled", "x"),
        version_error("dependency_mismatch", "x"),
    ],
)
def test_recoverable(error: ReleaseError) -> None:
    assert error.recoverable is True


def test_transient_kinds() -> None:
    assert publish_error("network", "x").is_transient
    assert publish_error("rate_limited", "x").is_transient
    assert publish_error("timeout", "x").is_transient
    assert not publish_error("auth", "x").is_transient
    assert not publish_error("already_published", "x").is_transient
    # Only publish errors are retried in place.
    assert not git_error("remote_failed", "x").is_transient


def test_pretty_includes_hint() -> None:
    assert git_error("tag_exists", "Tag v1.0.0 already exists", hint="v1.0.0").pretty() == (
        "Tag v1.0.0 already exists (hint: v1.0.0)"
    )
    assert cli_error("missing_argument", "need --version").pretty() == "need --version"


def test_suggestions_are_specific() -> None:
    rate = publish_error("rate_limited", "slow down", retry_after=30.0)
    assert rate.suggestions()[0] == "Wait 30 seconds before retrying"

    tag = git_error("tag_exists", "exists", hint="v2.0.0")
    assert "git tag -d v2.0.0" in tag.suggestions()[1]

    assert state_error("release_active", "busy").suggestions()[0] == "Continue it: relkit resume"


def test_unknown_combination_has_generic_suggestion() -> None:
    assert cli_error("invalid_arguments", "bad").suggestions() == (
        "Check the error message above for specific details",
    )
