"""Tests for relkit.release.publish."""

from __future__ import annotations

import threading
import time

from relkit.core.result import Err, Ok, Result
from relkit.output.console import MockConsole
from relkit.release.contracts import CancelToken
from relkit.release.errors import ReleaseError, publish_error
from relkit.release.graph import TierPlan
from relkit.release.publish import PackageOutcome, PublishPipeline, PublishSettings
from relkit.release.state import PackagePublish, PublishState, ReleaseConfig
from relkit.test.fakes import auth_error, network_error


class Scripted:
    """publish_one callable driven by per-package error scripts."""

    def __init__(self, script: dict[str, list[ReleaseError]] | None = None) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, name: str) -> Result[object, ReleaseError]:
        with self._lock:
            self.calls.append(name)
            pending = self.script.get(name)
            if pending:
                return Err(pending.pop(0))
        return Ok(name)


def _pipeline(sleeps: list[float] | None = None, cancel: CancelToken | None = None, **settings: object) -> PublishPipeline:
    defaults: dict[str, object] = {"inter_package_delay": 0.0, "retry_backoff": 1.0, "max_backoff": 8.0}
    defaults.update(settings)
    record = sleeps if sleeps is not None else []
    return PublishPipeline(
        PublishSettings(**defaults),  # type: ignore[arg-type]
        console=MockConsole(),
        sleep=record.append,
        cancel=cancel,
    )


class TestSettings:
    def test_exponential_backoff_is_capped(self) -> None:
        settings = PublishSettings(retry_backoff=2.0, max_backoff=5.0)
        error = network_error()
        assert [settings.backoff_for(i, error) for i in range(4)] == [2.0, 4.0, 5.0, 5.0]

    def test_rate_limit_honours_retry_after(self) -> None:
        settings = PublishSettings(retry_backoff=2.0)
        error = publish_error("rate_limited", "slow down", retry_after=42.0)
        assert settings.backoff_for(0, error) == 42.0

    def test_from_release_config(self) -> None:
        config = ReleaseConfig(inter_package_delay=1.5, max_retries=7, max_concurrent_per_tier=4)
        settings = PublishSettings.from_release_config(config)
        assert settings.inter_package_delay == 1.5
        assert settings.max_retries == 7
        assert settings.max_concurrent_per_tier == 4


class TestPublishAll:
    def test_tiers_publish_in_order(self) -> None:
        publish = Scripted()
        plan = TierPlan(tiers=(("a",), ("b", "c"), ("d",)))
        report = _pipeline().publish_all(plan, publish)

        assert publish.calls == ["a", "b", "c", "d"]
        assert report.all_successful
        assert report.successful == ("a", "b", "c", "d")
        assert report.tier_count == 3

    def test_network_failure_retried_then_succeeds(self) -> None:
        publish = Scripted({"b": [network_error("b"), network_error("b")]})
        plan = TierPlan(tiers=(("a",), ("b",)))
        sleeps: list[float] = []
        report = _pipeline(sleeps, max_retries=2).publish_all(plan, publish)

        assert publish.calls == ["a", "b", "b", "b"]
        assert report.all_successful
        outcome = next(o for o in report.outcomes if o.package == "b")
        assert outcome.attempts == 3
        assert sleeps == [1.0, 2.0]

    def test_retries_exhausted_marks_failure(self) -> None:
        publish = Scripted({"a": [network_error("a")] * 5})
        report = _pipeline(max_retries=2).publish_all(TierPlan(tiers=(("a",),)), publish)

        assert publish.calls == ["a", "a", "a"]
        assert set(report.failed) == {"a"}
        assert report.failed["a"].kind == "network"

    def test_non_transient_failure_is_not_retried(self) -> None:
        publish = Scripted({"a": [auth_error("a")]})
        report = _pipeline(max_retries=3).publish_all(TierPlan(tiers=(("a", "b"),)), publish)

        assert publish.calls == ["a", "b"]
        assert set(report.failed) == {"a"}
        assert report.successful == ("b",)

    def test_already_published_counts_as_success(self) -> None:
        publish = Scripted({"a": [publish_error("already_published", "exists")]})
        report = _pipeline().publish_all(TierPlan(tiers=(("a",),)), publish)

        assert report.all_successful
        assert report.outcomes[0].status == "already_published"

    def test_failed_package_does_not_stop_later_tiers(self) -> None:
        publish = Scripted({"a": [auth_error("a")]})
        plan = TierPlan(tiers=(("a", "b"), ("c",)))
        report = _pipeline().publish_all(plan, publish)

        assert publish.calls == ["a", "b", "c"]
        assert set(report.failed) == {"a"}
        assert set(report.successful) == {"b", "c"}

    def test_skip_set_is_not_republished(self) -> None:
        publish = Scripted()
        plan = TierPlan(tiers=(("a",), ("b",), ("c",)))
        report = _pipeline().publish_all(plan, publish, skip={"a", "b"})

        assert publish.calls == ["c"]
        assert report.skipped == ("a", "b")
        assert report.all_successful

    def test_inter_package_delay_between_publishes_only(self) -> None:
        sleeps: list[float] = []
        plan = TierPlan(tiers=(("a", "b"), ("c",)))
        _pipeline(sleeps, inter_package_delay=3.0).publish_all(plan, Scripted())
        assert sleeps == [3.0, 3.0]

    def test_on_outcome_sees_every_attempted_package(self) -> None:
        seen: list[PackageOutcome] = []
        plan = TierPlan(tiers=(("a",), ("b",)))
        _pipeline().publish_all(plan, Scripted(), skip={"a"}, on_outcome=seen.append)
        assert [o.package for o in seen] == ["b"]

    def test_cancel_stops_before_next_package(self) -> None:
        token = CancelToken()
        calls: list[str] = []

        def publish(name: str) -> Result[object, ReleaseError]:
            calls.append(name)
            token.cancel()
            return Ok(name)

        plan = TierPlan(tiers=(("a", "b"), ("c",)))
        report = _pipeline(cancel=token).publish_all(plan, publish)

        assert calls == ["a"]
        assert report.cancelled
        assert not report.all_successful
        assert "(cancelled)" in report.format_summary()


class TestConcurrentTier:
    def test_concurrency_is_bounded_and_tier_is_a_barrier(self) -> None:
        lock = threading.Lock()
        running = 0
        peak = 0
        finished_first_tier: list[str] = []
        order: list[str] = []

        def publish(name: str) -> Result[object, ReleaseError]:
            nonlocal running, peak
            with lock:
                running += 1
                peak = max(peak, running)
                order.append(name)
            time.sleep(0.02)
            with lock:
                running -= 1
                if name.startswith("t0"):
                    finished_first_tier.append(name)
            return Ok(name)

        plan = TierPlan(tiers=(("t0a", "t0b", "t0c", "t0d"), ("t1",)))
        report = _pipeline(max_concurrent_per_tier=2).publish_all(plan, publish)

        assert report.all_successful
        assert peak <= 2
        assert order[-1] == "t1"
        assert len(finished_first_tier) == 4

    def test_outcomes_reported_on_calling_thread(self) -> None:
        caller = threading.get_ident()
        threads: set[int] = set()

        def on_outcome(outcome: PackageOutcome) -> None:
            threads.add(threading.get_ident())

        plan = TierPlan(tiers=(("a", "b", "c"),))
        _pipeline(max_concurrent_per_tier=3).publish_all(plan, Scripted(), on_outcome=on_outcome)
        assert threads == {caller}


class TestRollbackPublished:
    def _published(self, *names: str) -> PublishState:
        ps = PublishState(tier_count=len(names))
        for name in names:
            ps = ps.with_success(
                PackagePublish(package=name, version="1.1.0", attempts=1, published_at="2026-01-01T00:00:00+00:00")
            )
        return ps

    def test_yanks_in_reverse_publish_order(self) -> None:
        calls: list[tuple[str, str]] = []

        def yank(name: str, version: str) -> Result[None, ReleaseError]:
            calls.append((name, version))
            return Ok(None)

        report = _pipeline().rollback_published(self._published("a", "b", "c"), yank)
        assert calls == [("c", "1.1.0"), ("b", "1.1.0"), ("a", "1.1.0")]
        assert report.yanked == ("c", "b", "a")
        assert report.fully_successful

    def test_already_yanked_packages_are_skipped(self) -> None:
        calls: list[str] = []

        def yank(name: str, version: str) -> Result[None, ReleaseError]:
            calls.append(name)
            return Ok(None)

        ps = self._published("a", "b").with_yanked("b")
        report = _pipeline().rollback_published(ps, yank)
        assert calls == ["a"]
        assert report.already_yanked == ("b",)

    def test_failures_are_collected_not_fatal(self) -> None:
        yanked: list[str] = []

        def yank(name: str, version: str) -> Result[None, ReleaseError]:
            if name == "b":
                return Err(publish_error("yank_failed", "nope"))
            return Ok(None)

        report = _pipeline().rollback_published(self._published("a", "b", "c"), yank, on_yanked=yanked.append)
        assert yanked == ["c", "a"]
        assert set(report.failed) == {"b"}
        assert not report.fully_successful
