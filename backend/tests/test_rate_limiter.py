"""Tests for the adaptive rate limiter and circuit breaker."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from core.models import ErrorKind, RateLimitConfig
from core.rate_limiter import (
    AdaptiveRateLimiter,
    AdmissionReason,
    BreakerState,
    derive_per_minute_budget,
)

# 2024-06-01 00:00:00 UTC (June has 30 days)
JUNE_1 = 1717200000.0
DAY = 86400.0


class FakeClock:
    def __init__(self, now: float = JUNE_1):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_limiter(clock=None, **overrides) -> AdaptiveRateLimiter:
    return AdaptiveRateLimiter(RateLimitConfig(**overrides), clock=clock or FakeClock())


def admit_until_rejected(limiter: AdaptiveRateLimiter, limit: int = 10_000):
    admitted = []
    for _ in range(limit):
        result = limiter.try_acquire()
        if not result.admitted:
            return admitted, result
        admitted.append(result)
    raise AssertionError("limiter never rejected")


class TestPerMinuteBudget:
    """Tests for monthly -> per-minute budget derivation."""

    def test_first_day_of_month(self):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert derive_per_minute_budget(110_000, now) == 110_000 // (30 * 1440)

    def test_last_day_of_month(self):
        now = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)
        assert derive_per_minute_budget(110_000, now) == 110_000 // 1440

    def test_never_below_one(self):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert derive_per_minute_budget(0, now) == 1

    def test_limiter_uses_derived_budget(self):
        limiter = make_limiter()
        assert limiter.per_minute_budget == 2

    def test_recomputed_on_day_change(self):
        clock = FakeClock()
        limiter = make_limiter(clock)
        assert limiter.per_minute_budget == 2

        clock.advance(29 * DAY)  # June 30
        limiter.try_acquire()
        assert limiter.per_minute_budget == 110_000 // 1440

    def test_override(self):
        limiter = make_limiter(per_minute_override=7)
        assert limiter.per_minute_budget == 7


class TestBudget:
    """Hard per-minute and per-month budgets."""

    @pytest.mark.parametrize("n", [1, 2, 10, 50])
    def test_exactly_n_admissions_per_minute(self, n):
        limiter = make_limiter(per_minute_override=n)
        admitted, rejection = admit_until_rejected(limiter)

        assert len(admitted) == n
        assert rejection.reason == AdmissionReason.BUDGET_EXCEEDED
        # and it stays rejected for the rest of the minute
        assert limiter.try_acquire().reason == AdmissionReason.BUDGET_EXCEEDED

    def test_new_minute_resets_counter(self):
        clock = FakeClock()
        limiter = make_limiter(clock, per_minute_override=3)
        admit_until_rejected(limiter)

        clock.advance(60)
        assert limiter.try_acquire().admitted

    def test_budget_exceeded_does_not_open_breaker(self):
        limiter = make_limiter(per_minute_override=2)
        admit_until_rejected(limiter)
        assert limiter.state == BreakerState.CLOSED

    def test_monthly_budget(self):
        clock = FakeClock()
        limiter = make_limiter(clock, monthly_budget=5, per_minute_override=100)
        admitted, rejection = admit_until_rejected(limiter)

        assert len(admitted) == 5
        assert rejection.reason == AdmissionReason.BUDGET_EXCEEDED

        clock.advance(DAY)
        assert limiter.try_acquire().reason == AdmissionReason.BUDGET_EXCEEDED

        clock.advance(29 * DAY)  # July 1
        assert limiter.try_acquire().admitted
        assert limiter.snapshot().requests_this_month == 1

    def test_counters_are_atomic_across_threads(self):
        limiter = make_limiter(per_minute_override=50)

        def worker(_):
            return sum(1 for _ in range(20) if limiter.try_acquire().admitted)

        with ThreadPoolExecutor(max_workers=8) as pool:
            total = sum(pool.map(worker, range(8)))

        assert total == 50
        assert limiter.snapshot().requests_this_minute == 50


class TestThrottleAndEmergency:
    """Utilization bands."""

    def test_throttle_band_admits_and_marks(self):
        limiter = make_limiter(
            per_minute_override=10, throttle_threshold=0.5, emergency_threshold=0.8
        )
        results = [limiter.try_acquire() for _ in range(8)]

        assert all(r.admitted for r in results)
        assert [r.throttled for r in results] == [False] * 5 + [True] * 3
        assert limiter.snapshot().throttled_total == 3

    def test_emergency_opens_breaker(self):
        limiter = make_limiter(
            per_minute_override=10, throttle_threshold=0.5, emergency_threshold=0.8
        )
        admitted, rejection = admit_until_rejected(limiter)

        assert len(admitted) == 8
        assert rejection.reason == AdmissionReason.CIRCUIT_OPEN
        assert limiter.state == BreakerState.OPEN
        # the very next call is rejected without touching the budget
        assert limiter.try_acquire().reason == AdmissionReason.CIRCUIT_OPEN
        assert limiter.snapshot().requests_this_minute == 8

    def test_default_derived_budget_only_hits_hard_limit(self):
        limiter = make_limiter()
        admitted, rejection = admit_until_rejected(limiter)

        # 2 per minute never reaches the throttle or emergency band
        assert len(admitted) == 2
        assert not any(r.throttled for r in admitted)
        assert rejection.reason == AdmissionReason.BUDGET_EXCEEDED
        assert limiter.state == BreakerState.CLOSED

    def test_default_bands_with_hundred_per_minute(self):
        limiter = make_limiter(per_minute_override=100)
        admitted, rejection = admit_until_rejected(limiter)

        assert len(admitted) == 99
        assert sum(r.throttled for r in admitted) == 4
        assert rejection.reason == AdmissionReason.CIRCUIT_OPEN
        assert limiter.state == BreakerState.OPEN

    def test_emergency_band_unreachable_below_hundred_per_minute(self):
        limiter = make_limiter(per_minute_override=99)
        admitted, rejection = admit_until_rejected(limiter)

        assert len(admitted) == 99
        assert rejection.reason == AdmissionReason.BUDGET_EXCEEDED
        assert limiter.state == BreakerState.CLOSED


class TestCircuitBreaker:
    """OPEN -> HALF_OPEN -> CLOSED transitions."""

    def _opened(self, clock):
        limiter = make_limiter(
            clock,
            per_minute_override=10,
            throttle_threshold=0.5,
            emergency_threshold=0.8,
            recovery_interval=15.0,
        )
        admit_until_rejected(limiter)
        assert limiter.state == BreakerState.OPEN
        return limiter

    def test_rejects_until_recovery_interval(self):
        clock = FakeClock()
        limiter = self._opened(clock)

        clock.advance(14.9)
        assert limiter.try_acquire().reason == AdmissionReason.CIRCUIT_OPEN

    def test_single_probe_then_closed(self):
        clock = FakeClock()
        limiter = self._opened(clock)
        clock.advance(60)

        assert limiter.state == BreakerState.HALF_OPEN
        probe = limiter.try_acquire()
        assert probe.admitted
        # exactly one probe while it is in flight
        assert limiter.try_acquire().reason == AdmissionReason.CIRCUIT_OPEN

        limiter.record_success()
        assert limiter.state == BreakerState.CLOSED
        assert limiter.try_acquire().admitted
        assert limiter.try_acquire().admitted

    def test_probe_failure_reopens_and_restarts_timer(self):
        clock = FakeClock()
        limiter = self._opened(clock)
        clock.advance(60)

        assert limiter.try_acquire().admitted
        limiter.record_failure(ErrorKind.SERVER_ERROR)
        assert limiter.state == BreakerState.OPEN

        clock.advance(10)
        assert limiter.try_acquire().reason == AdmissionReason.CIRCUIT_OPEN
        clock.advance(5)
        assert limiter.try_acquire().admitted

    def test_abandoned_probe_is_replaced(self):
        clock = FakeClock()
        limiter = self._opened(clock)
        clock.advance(60)

        assert limiter.try_acquire().admitted
        clock.advance(15)
        assert limiter.try_acquire().admitted

    def test_consecutive_failures_open_breaker(self):
        limiter = make_limiter(failure_threshold=3, per_minute_override=100)
        for _ in range(2):
            assert limiter.try_acquire().admitted
            limiter.record_failure(ErrorKind.TIMEOUT)
        assert limiter.state == BreakerState.CLOSED

        assert limiter.try_acquire().admitted
        limiter.record_failure(ErrorKind.RATE_LIMITED)
        assert limiter.state == BreakerState.OPEN
        assert limiter.try_acquire().reason == AdmissionReason.CIRCUIT_OPEN

    def test_success_resets_failure_count(self):
        limiter = make_limiter(failure_threshold=3, per_minute_override=100)
        limiter.record_failure(ErrorKind.TIMEOUT)
        limiter.record_failure(ErrorKind.TIMEOUT)
        limiter.record_success()
        limiter.record_failure(ErrorKind.TIMEOUT)
        limiter.record_failure(ErrorKind.TIMEOUT)

        assert limiter.state == BreakerState.CLOSED
        assert limiter.snapshot().consecutive_failures == 2

    def test_client_errors_do_not_count(self):
        limiter = make_limiter(failure_threshold=2, per_minute_override=100)
        for _ in range(5):
            limiter.record_failure(ErrorKind.CLIENT_ERROR)
            limiter.record_failure(ErrorKind.MALFORMED)
        assert limiter.state == BreakerState.CLOSED


class TestTelemetry:
    """Read-only state snapshot."""

    def test_snapshot_fields(self):
        limiter = make_limiter(per_minute_override=4)
        limiter.try_acquire()
        limiter.record_success()
        limiter.try_acquire()

        state = limiter.snapshot()
        assert state.requests_this_minute == 2
        assert state.requests_this_month == 2
        assert state.per_minute_budget == 4
        assert state.utilization == pytest.approx(0.5)
        assert state.remaining_monthly_budget == 110_000 - 2
        assert state.breaker_state == BreakerState.CLOSED
        assert state.circuit_breaker_open is False
        assert state.breaker_opened_at is None
        assert state.successes_total == 1

    def test_snapshot_has_no_side_effects(self):
        limiter = make_limiter(per_minute_override=4)
        limiter.try_acquire()
        first = limiter.snapshot()
        second = limiter.snapshot()
        assert first == second
        assert second.admitted_total == 1

    def test_snapshot_while_open(self):
        clock = FakeClock()
        limiter = make_limiter(clock, failure_threshold=1, recovery_interval=15.0)
        limiter.record_failure(ErrorKind.SERVER_ERROR)
        clock.advance(5)

        state = limiter.snapshot()
        assert state.circuit_breaker_open is True
        assert state.breaker_opened_at == datetime.fromtimestamp(JUNE_1, tz=timezone.utc)
        assert state.seconds_until_recovery == pytest.approx(10.0)

    def test_rejections_counted_by_reason(self):
        limiter = make_limiter(per_minute_override=1)
        limiter.try_acquire()
        limiter.try_acquire()
        limiter.try_acquire()
        assert limiter.snapshot().rejected == {"circuit_open": 0, "budget_exceeded": 2}


class TestConfigValidation:
    def test_threshold_order(self):
        with pytest.raises(ValueError, match="throttle_threshold"):
            RateLimitConfig(throttle_threshold=0.99, emergency_threshold=0.9)

    def test_positive_budget(self):
        with pytest.raises(ValueError, match="monthly_budget"):
            RateLimitConfig(monthly_budget=0)
