"""Adaptive rate limiter with circuit-breaker semantics.

Gates every upstream call against a per-minute and a per-month credit
budget. The per-minute budget spreads whatever is left of the monthly
budget evenly over the remaining minutes of the month and is recomputed
once per UTC day.

Breaker states::

    CLOSED ──(utilization >= emergency | failures >= threshold)──> OPEN
    OPEN ──(recovery_interval elapsed)──> HALF_OPEN (one probe admitted)
    HALF_OPEN ──(probe success)──> CLOSED
    HALF_OPEN ──(probe failure)──> OPEN (recovery timer restarts)

An instance is owned by the composition root and shared by reference with
every symbol task. All state lives behind a single lock that is never held
across I/O.
"""

from __future__ import annotations

import calendar
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from pydantic import BaseModel, ConfigDict

from core.models.config import RateLimitConfig
from core.models.market import ErrorKind

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class AdmissionReason(str, Enum):
    THROTTLED = "throttled"
    CIRCUIT_OPEN = "circuit_open"
    BUDGET_EXCEEDED = "budget_exceeded"


@dataclass(frozen=True)
class Admission:
    """Outcome of ``try_acquire``.

    ``reason`` is None for a normal admission, THROTTLED for an admission in
    the throttle band, and CIRCUIT_OPEN / BUDGET_EXCEEDED for rejections.
    """

    admitted: bool
    reason: AdmissionReason | None = None

    @property
    def throttled(self) -> bool:
        return self.admitted and self.reason == AdmissionReason.THROTTLED


class RateLimiterState(BaseModel):
    """Read-only telemetry snapshot."""

    model_config = ConfigDict(frozen=True)

    requests_this_minute: int
    requests_this_month: int
    monthly_budget: int
    remaining_monthly_budget: int
    per_minute_budget: int
    utilization: float
    breaker_state: BreakerState
    circuit_breaker_open: bool
    breaker_opened_at: datetime | None
    seconds_until_recovery: float
    consecutive_failures: int
    admitted_total: int
    throttled_total: int
    rejected: dict[str, int]
    successes_total: int
    failures_total: int


def derive_per_minute_budget(remaining: int, now: datetime) -> int:
    """Spread ``remaining`` credits over the minutes left in ``now``'s month.

    Today counts as a full day. Never returns less than 1.
    """
    days_in_month = calendar.monthrange(now.year, now.month)[1]
    days_remaining = days_in_month - now.day + 1
    return max(1, remaining // (days_remaining * MINUTES_PER_DAY))


class AdaptiveRateLimiter:
    """Budget-aware admission control for upstream calls.

    Parameters
    ----------
    config : RateLimitConfig
        Budgets, thresholds and breaker timing.
    clock : Callable[[], float]
        Returns the current time as epoch seconds. Injected so tests can
        drive minute, day and month rollovers deterministically.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._lock = threading.Lock()

        now = self._clock()
        dt = self._to_datetime(now)
        self._minute = int(now // 60)
        self._day = dt.date()
        self._month = (dt.year, dt.month)

        self._requests_this_minute = 0
        self._requests_this_month = 0
        self._per_minute_budget = self._compute_per_minute_budget(dt)

        self._state = BreakerState.CLOSED
        self._opened_at: float | None = None
        self._consecutive_failures = 0
        self._probe_started_at: float | None = None

        self._admitted_total = 0
        self._throttled_total = 0
        self._rejected = {AdmissionReason.CIRCUIT_OPEN: 0, AdmissionReason.BUDGET_EXCEEDED: 0}
        self._successes_total = 0
        self._failures_total = 0

    @staticmethod
    def _to_datetime(ts: float) -> datetime:
        return datetime.fromtimestamp(ts, tz=timezone.utc)

    def _compute_per_minute_budget(self, dt: datetime) -> int:
        if self.config.per_minute_override is not None:
            return self.config.per_minute_override
        remaining = max(0, self.config.monthly_budget - self._requests_this_month)
        return derive_per_minute_budget(remaining, dt)

    # ------------------------------------------------------------------
    # Internal state transitions (caller holds the lock)
    # ------------------------------------------------------------------

    def _roll_windows(self, now: float) -> None:
        minute = int(now // 60)
        if minute != self._minute:
            self._minute = minute
            self._requests_this_minute = 0

        dt = self._to_datetime(now)
        month = (dt.year, dt.month)
        if month != self._month:
            self._month = month
            self._requests_this_month = 0
            logger.info("Rate limiter: new billing month %04d-%02d", *month)

        if dt.date() != self._day:
            self._day = dt.date()
            self._per_minute_budget = self._compute_per_minute_budget(dt)
            logger.info(
                "Rate limiter: per-minute budget recomputed to %d (%d/%d used this month)",
                self._per_minute_budget,
                self._requests_this_month,
                self.config.monthly_budget,
            )

    def _open(self, now: float, why: str) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = now
        self._probe_started_at = None
        logger.warning(
            "Circuit breaker OPEN (%s), rejecting upstream calls for %.0fs",
            why,
            self.config.recovery_interval,
        )

    def _close(self) -> None:
        self._state = BreakerState.CLOSED
        self._opened_at = None
        self._probe_started_at = None
        self._consecutive_failures = 0
        logger.info("Circuit breaker CLOSED")

    def _utilization(self) -> float:
        return self._requests_this_minute / self._per_minute_budget

    def _reject(self, reason: AdmissionReason) -> Admission:
        self._rejected[reason] += 1
        return Admission(admitted=False, reason=reason)

    def _admit(self, reason: AdmissionReason | None = None) -> Admission:
        self._requests_this_minute += 1
        self._requests_this_month += 1
        self._admitted_total += 1
        if reason == AdmissionReason.THROTTLED:
            self._throttled_total += 1
        return Admission(admitted=True, reason=reason)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def try_acquire(self) -> Admission:
        """Decide whether one upstream call may be made now.

        Never raises and never blocks. An admitted call must be followed by
        exactly one ``record_success`` or ``record_failure``.
        """
        with self._lock:
            now = self._clock()
            self._roll_windows(now)

            probing = False
            if self._state == BreakerState.OPEN:
                if now - self._opened_at < self.config.recovery_interval:
                    return self._reject(AdmissionReason.CIRCUIT_OPEN)
                self._state = BreakerState.HALF_OPEN
                self._probe_started_at = None
                logger.info("Circuit breaker HALF_OPEN, admitting one probe")

            if self._state == BreakerState.HALF_OPEN:
                # An unreported probe is abandoned after one recovery interval.
                if (
                    self._probe_started_at is not None
                    and now - self._probe_started_at < self.config.recovery_interval
                ):
                    return self._reject(AdmissionReason.CIRCUIT_OPEN)
                probing = True

            if (
                self._requests_this_minute >= self._per_minute_budget
                or self._requests_this_month >= self.config.monthly_budget
            ):
                return self._reject(AdmissionReason.BUDGET_EXCEEDED)

            if probing:
                self._probe_started_at = now
                return self._admit()

            utilization = self._utilization()
            if utilization >= self.config.emergency_threshold:
                self._open(now, f"utilization {utilization:.0%}")
                return self._reject(AdmissionReason.CIRCUIT_OPEN)

            if utilization >= self.config.throttle_threshold:
                return self._admit(AdmissionReason.THROTTLED)
            return self._admit()

    def record_success(self) -> None:
        """Report that an admitted upstream call succeeded."""
        with self._lock:
            self._successes_total += 1
            if self._state == BreakerState.HALF_OPEN:
                self._close()
            else:
                self._consecutive_failures = 0

    def record_failure(self, kind: ErrorKind | None = None) -> None:
        """Report that an admitted upstream call failed.

        Only hard failures (timeouts, 429, 5xx, transport errors) count
        toward the breaker threshold. Any failure of a half-open probe
        re-opens the breaker.
        """
        with self._lock:
            now = self._clock()
            self._failures_total += 1

            if self._state == BreakerState.HALF_OPEN:
                self._open(now, f"probe failed: {kind.value if kind else 'error'}")
                return

            if kind is not None and not kind.is_hard:
                return

            self._consecutive_failures += 1
            if (
                self._state == BreakerState.CLOSED
                and self._consecutive_failures >= self.config.failure_threshold
            ):
                self._open(now, f"{self._consecutive_failures} consecutive failures")

    @property
    def state(self) -> BreakerState:
        """Breaker state, resolving an elapsed OPEN period to HALF_OPEN."""
        with self._lock:
            if (
                self._state == BreakerState.OPEN
                and self._clock() - self._opened_at >= self.config.recovery_interval
            ):
                return BreakerState.HALF_OPEN
            return self._state

    @property
    def per_minute_budget(self) -> int:
        with self._lock:
            return self._per_minute_budget

    def snapshot(self) -> RateLimiterState:
        """Telemetry snapshot. No side effects on counters or breaker state."""
        with self._lock:
            now = self._clock()
            minute_stale = int(now // 60) != self._minute
            in_minute = 0 if minute_stale else self._requests_this_minute

            until_recovery = 0.0
            if self._state == BreakerState.OPEN:
                until_recovery = max(
                    0.0, self.config.recovery_interval - (now - self._opened_at)
                )

            return RateLimiterState(
                requests_this_minute=in_minute,
                requests_this_month=self._requests_this_month,
                monthly_budget=self.config.monthly_budget,
                remaining_monthly_budget=max(
                    0, self.config.monthly_budget - self._requests_this_month
                ),
                per_minute_budget=self._per_minute_budget,
                utilization=in_minute / self._per_minute_budget,
                breaker_state=self._state,
                circuit_breaker_open=self._state != BreakerState.CLOSED,
                breaker_opened_at=(
                    self._to_datetime(self._opened_at) if self._opened_at is not None else None
                ),
                seconds_until_recovery=until_recovery,
                consecutive_failures=self._consecutive_failures,
                admitted_total=self._admitted_total,
                throttled_total=self._throttled_total,
                rejected={r.value: n for r, n in self._rejected.items()},
                successes_total=self._successes_total,
                failures_total=self._failures_total,
            )
