"""Tiered publish pipeline.

Pure orchestration plus bookkeeping: registry access is the injected
``publish_one``/``yank_one`` callables. Tiers run strictly in order with a
barrier between them; packages inside a tier run sequentially or on a
bounded thread pool. Per-package outcomes are reported back on the calling
thread so the caller can persist them as they happen.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Collection
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Literal

from relkit.core.result import Ok, Result
from relkit.output.console import ConsoleProtocol, Style
from relkit.release.contracts import CancelToken
from relkit.release.errors import ReleaseError
from relkit.release.graph import TierPlan
from relkit.release.state import PublishState, ReleaseConfig
from relkit.release.timeouts import (
    INTER_PACKAGE_DELAY_SECONDS,
    PUBLISH_MAX_BACKOFF_SECONDS,
    PUBLISH_RETRY_ATTEMPTS,
    PUBLISH_RETRY_BACKOFF_SECONDS,
)

__all__ = [
    "PackageOutcome",
    "PublishOne",
    "PublishPipeline",
    "PublishReport",
    "PublishSettings",
    "RollbackReport",
    "YankOne",
]

PublishOne = Callable[[str], Result[object, ReleaseError]]
YankOne = Callable[[str, str], Result[None, ReleaseError]]

OutcomeStatus = Literal["published", "already_published", "failed", "skipped"]


@dataclass(frozen=True, slots=True)
class PublishSettings:
    inter_package_delay: float = INTER_PACKAGE_DELAY_SECONDS
    max_retries: int = PUBLISH_RETRY_ATTEMPTS
    retry_backoff: float = PUBLISH_RETRY_BACKOFF_SECONDS
    max_backoff: float = PUBLISH_MAX_BACKOFF_SECONDS
    max_concurrent_per_tier: int = 1

    @classmethod
    def from_release_config(cls, config: ReleaseConfig) -> PublishSettings:
        return cls(
            inter_package_delay=config.inter_package_delay,
            max_retries=config.max_retries,
            retry_backoff=config.retry_backoff,
            max_backoff=config.max_backoff,
            max_concurrent_per_tier=config.max_concurrent_per_tier,
        )

    def backoff_for(self, retry_index: int, error: ReleaseError) -> float:
        """Seconds to wait before retry number ``retry_index`` (0-based)."""
        if error.kind == "rate_limited" and error.retry_after is not None:
            return max(0.0, error.retry_after)
        return min(self.retry_backoff * (2**retry_index), self.max_backoff)


@dataclass(frozen=True, slots=True)
class PackageOutcome:
    package: str
    tier: int
    status: OutcomeStatus
    attempts: int
    error: ReleaseError | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in ("published", "already_published")


def _no_outcomes() -> tuple[PackageOutcome, ...]:
    return ()


@dataclass(frozen=True, slots=True)
class PublishReport:
    tier_count: int
    outcomes: tuple[PackageOutcome, ...] = field(default_factory=_no_outcomes)
    cancelled: bool = False

    @property
    def successful(self) -> tuple[str, ...]:
        return tuple(o.package for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> dict[str, ReleaseError]:
        return {o.package: o.error for o in self.outcomes if o.error is not None}

    @property
    def skipped(self) -> tuple[str, ...]:
        return tuple(o.package for o in self.outcomes if o.status == "skipped")

    @property
    def all_successful(self) -> bool:
        return not self.cancelled and not self.failed

    def format_summary(self) -> str:
        return (
            f"{len(self.successful)} published, {len(self.failed)} failed, "
            f"{len(self.skipped)} skipped across {self.tier_count} tiers"
            + (" (cancelled)" if self.cancelled else "")
        )


@dataclass(frozen=True, slots=True)
class RollbackReport:
    yanked: tuple[str, ...] = ()
    already_yanked: tuple[str, ...] = ()
    failed: dict[str, ReleaseError] = field(default_factory=dict)

    @property
    def fully_successful(self) -> bool:
        return not self.failed

    def format_summary(self) -> str:
        text = f"{len(self.yanked)} yanked, {len(self.failed)} failed"
        if self.already_yanked:
            text += f", {len(self.already_yanked)} already yanked"
        return text


class PublishPipeline:
    """Publishes a tier plan with pacing, retries and partial-failure tracking."""

    def __init__(
        self,
        settings: PublishSettings,
        *,
        console: ConsoleProtocol,
        sleep: Callable[[float], None] = time.sleep,
        cancel: CancelToken | None = None,
    ) -> None:
        self.settings = settings
        self._console = console
        self._sleep = sleep
        self._cancel = cancel
        self._started = False

    def publish_all(
        self,
        plan: TierPlan,
        publish_one: PublishOne,
        *,
        skip: Collection[str] = frozenset(),
        on_outcome: Callable[[PackageOutcome], None] | None = None,
    ) -> PublishReport:
        """Publish every package of ``plan`` not in ``skip``.

        A failed package never aborts its tier; the next tier starts only
        once every package of the current one reached an outcome. A
        cancellation stops before the next package and the report is marked
        ``cancelled``.
        """
        outcomes: list[PackageOutcome] = []
        cancelled = False
        self._started = False

        def record(outcome: PackageOutcome) -> None:
            outcomes.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)

        for tier_index, tier in enumerate(plan.tiers):
            if self._cancelled():
                cancelled = True
                break

            self._console.print(f"tier {tier_index + 1}/{plan.tier_count}: {', '.join(tier)}", Style.BOLD)
            pending: list[str] = []
            for package in tier:
                if package in skip:
                    self._console.print(f"  {package}: already published, skipping", Style.DIM)
                    outcomes.append(PackageOutcome(package=package, tier=tier_index, status="skipped", attempts=0))
                else:
                    pending.append(package)

            if self.settings.max_concurrent_per_tier <= 1 or len(pending) <= 1:
                for package in pending:
                    if self._cancelled():
                        cancelled = True
                        break
                    self._pace()
                    record(self._publish_with_retry(package, tier_index, publish_one))
            else:
                cancelled = self._publish_tier_concurrently(pending, tier_index, publish_one, record)

            if cancelled:
                break

        return PublishReport(tier_count=plan.tier_count, outcomes=tuple(outcomes), cancelled=cancelled)

    def rollback_published(
        self,
        publish_state: PublishState,
        yank_one: YankOne,
        *,
        on_yanked: Callable[[str], None] | None = None,
    ) -> RollbackReport:
        """Yank every successfully published package, dependents first.

        Packages already recorded in ``publish_state.yanked`` are not yanked
        again. Failures are collected, not fatal.
        """
        yanked: list[str] = []
        already: list[str] = []
        failed: dict[str, ReleaseError] = {}

        for name, published in reversed(list(publish_state.successful_publishes.items())):
            if name in publish_state.yanked:
                already.append(name)
                continue

            result = yank_one(name, published.version)
            if isinstance(result, Ok):
                self._console.success(f"yanked {name} {published.version}")
                yanked.append(name)
                if on_yanked is not None:
                    on_yanked(name)
            else:
                self._console.warning(f"could not yank {name} {published.version}: {result.error.message}")
                failed[name] = result.error

        return RollbackReport(yanked=tuple(yanked), already_yanked=tuple(already), failed=failed)

    def _publish_tier_concurrently(
        self,
        pending: list[str],
        tier_index: int,
        publish_one: PublishOne,
        record: Callable[[PackageOutcome], None],
    ) -> bool:
        cancelled = False
        workers = min(self.settings.max_concurrent_per_tier, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="relkit-publish") as pool:
            futures: list[Future[PackageOutcome]] = []
            for package in pending:
                if self._cancelled():
                    cancelled = True
                    break
                self._pace()
                futures.append(pool.submit(self._publish_with_retry, package, tier_index, publish_one))

            # Barrier: the tier ends only when every submitted package is done.
            for future in as_completed(futures):
                record(future.result())
        return cancelled

    def _publish_with_retry(
        self, package: str, tier_index: int, publish_one: PublishOne
    ) -> PackageOutcome:
        max_attempts = 1 + max(0, self.settings.max_retries)
        attempts = 0
        while True:
            attempts += 1
            result = publish_one(package)
            if isinstance(result, Ok):
                self._console.success(f"published {package}")
                return PackageOutcome(package=package, tier=tier_index, status="published", attempts=attempts)

            error = result.error
            if error.kind == "already_published":
                self._console.print(f"  {package}: already on the registry", Style.DIM)
                return PackageOutcome(
                    package=package, tier=tier_index, status="already_published", attempts=attempts
                )

            if error.is_transient and attempts < max_attempts:
                delay = self.settings.backoff_for(attempts - 1, error)
                self._console.warning(
                    f"{package}: {error.message}; retry {attempts}/{max_attempts - 1} in {delay:g}s"
                )
                self._sleep(delay)
                continue

            self._console.error(f"{package}: {error.pretty()}")
            return PackageOutcome(
                package=package, tier=tier_index, status="failed", attempts=attempts, error=error
            )

    def _pace(self) -> None:
        if self._started and self.settings.inter_package_delay > 0:
            self._sleep(self.settings.inter_package_delay)
        self._started = True

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.cancelled
