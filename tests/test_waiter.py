"""Tests for researchaid.engine.waiter.

A fake clock advances only when the waiter sleeps, so timing assertions are
exact.  Only the slow-check tests run against the real clock.

Covers:
  1. PollSpec validation
  2. Satisfied / timed out / errored outcomes
  3. Attempt bounds and sleep clipping
  4. Cancellation and predicate exceptions
  5. Slow checks bounded by the interval
"""

from __future__ import annotations

import math
import threading
import time

import pytest

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import AutomationCancelled, InvalidPollSpec, ScriptExecutionFailed, TimeoutExceeded
from researchaid.engine.waiter import PollingWaiter, PollOutcome, PollSpec, PollStatus


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def waiter(clock: FakeClock) -> PollingWaiter:
    return PollingWaiter(clock=clock, sleep=clock.sleep)


def counting(results):
    """Predicate returning *results* in turn, then the last one forever."""
    calls = {"n": 0}

    def predicate():
        index = min(calls["n"], len(results) - 1)
        calls["n"] += 1
        return results[index]

    predicate.calls = calls
    return predicate


# ---------------------------------------------------------------------------
# 1. PollSpec
# ---------------------------------------------------------------------------

class TestPollSpec:
    """interval > 0 and max_wait >= interval."""

    def test_zero_interval(self) -> None:
        with pytest.raises(InvalidPollSpec):
            PollSpec(lambda: True, interval=0, max_wait=5)

    def test_max_wait_below_interval(self) -> None:
        with pytest.raises(InvalidPollSpec):
            PollSpec(lambda: True, interval=2, max_wait=1)

    def test_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            PollSpec(lambda: True, interval=-1, max_wait=1)

    def test_equal_bounds_allowed(self) -> None:
        assert PollSpec(lambda: True, interval=1, max_wait=1).max_wait == 1


# ---------------------------------------------------------------------------
# 2. Outcomes
# ---------------------------------------------------------------------------

class TestOutcomes:
    """Tri-state predicate results map to wait outcomes."""

    def test_satisfied_immediately_without_sleeping(self, waiter: PollingWaiter, clock: FakeClock) -> None:
        result = waiter.wait_until(PollSpec(lambda: True, interval=1, max_wait=10))
        assert result.satisfied
        assert result.attempts == 1
        assert clock.sleeps == []

    def test_satisfied_after_retries(self, waiter: PollingWaiter) -> None:
        predicate = counting([PollStatus.NOT_YET, PollStatus.NOT_YET, PollStatus.SATISFIED])
        result = waiter.wait_until(PollSpec(predicate, interval=1, max_wait=10))
        assert result.outcome is PollOutcome.SATISFIED
        assert result.attempts == 3
        assert result.elapsed == pytest.approx(2.0)

    def test_timed_out(self, waiter: PollingWaiter) -> None:
        result = waiter.wait_until(PollSpec(lambda: False, interval=1, max_wait=5, description="spinner gone"))
        assert result.outcome is PollOutcome.TIMED_OUT
        assert result.detail == "spinner gone"
        with pytest.raises(TimeoutExceeded, match="spinner gone"):
            result.raise_for_outcome()

    def test_error_ends_wait_early(self, waiter: PollingWaiter, clock: FakeClock) -> None:
        predicate = counting([PollStatus.NOT_YET, (PollStatus.ERROR, "compile state unreadable")])
        result = waiter.wait_until(PollSpec(predicate, interval=1, max_wait=30))
        assert result.outcome is PollOutcome.ERRORED
        assert result.attempts == 2
        assert clock.now == pytest.approx(1.0)
        with pytest.raises(ScriptExecutionFailed, match="compile state unreadable"):
            result.raise_for_outcome()

    def test_satisfied_result_returns_self(self, waiter: PollingWaiter) -> None:
        result = waiter.wait_for(lambda: PollStatus.SATISFIED, max_wait=1, interval=0.5)
        assert result.raise_for_outcome() is result

    def test_wrong_return_type(self, waiter: PollingWaiter) -> None:
        with pytest.raises(TypeError):
            waiter.wait_until(PollSpec(lambda: "yes", interval=1, max_wait=1))  # type: ignore[arg-type, return-value]


# ---------------------------------------------------------------------------
# 3. Bounds
# ---------------------------------------------------------------------------

class TestBounds:
    """At most max_wait/interval + 1 evaluations; never sleeps past the budget."""

    @pytest.mark.parametrize("interval,max_wait", [(1, 5), (0.5, 2), (2, 5), (3, 3)])
    def test_attempt_bound(self, waiter: PollingWaiter, interval: float, max_wait: float) -> None:
        predicate = counting([False])
        result = waiter.wait_until(PollSpec(predicate, interval=interval, max_wait=max_wait))
        assert result.attempts <= math.ceil(max_wait / interval) + 1
        assert predicate.calls["n"] == result.attempts
        assert result.elapsed == pytest.approx(max_wait)

    def test_last_sleep_clipped(self, waiter: PollingWaiter, clock: FakeClock) -> None:
        waiter.wait_until(PollSpec(lambda: False, interval=2, max_wait=5))
        assert clock.sleeps == [2, 2, 1]
        assert clock.now == pytest.approx(5.0)


# ---------------------------------------------------------------------------
# 4. Cancellation and exceptions
# ---------------------------------------------------------------------------

class TestCancellationAndExceptions:
    def test_cancelled_before_first_check(self, clock: FakeClock) -> None:
        token = CancellationToken()
        token.cancel("preempted")
        predicate = counting([True])
        with pytest.raises(AutomationCancelled, match="preempted"):
            PollingWaiter(token, clock=clock, sleep=clock.sleep).wait_for(predicate, max_wait=5, interval=1)
        assert predicate.calls["n"] == 0

    def test_cancelled_between_checks(self, clock: FakeClock) -> None:
        token = CancellationToken()

        def predicate():
            token.cancel("user")
            return False

        with pytest.raises(AutomationCancelled):
            PollingWaiter(token, clock=clock, sleep=clock.sleep).wait_for(predicate, max_wait=5, interval=1)

    def test_default_sleep_is_interruptible(self) -> None:
        token = CancellationToken()

        def predicate():
            token.cancel("user")
            return False

        with pytest.raises(AutomationCancelled):
            PollingWaiter(token).wait_for(predicate, max_wait=60, interval=30)

    def test_predicate_exception_propagates(self, waiter: PollingWaiter) -> None:
        def predicate():
            raise KeyError("compiling")

        with pytest.raises(KeyError):
            waiter.wait_for(predicate, max_wait=5, interval=1)


# ---------------------------------------------------------------------------
# 5. Slow checks (real clock)
# ---------------------------------------------------------------------------

class TestSlowChecks:
    """A check that blocks cannot stretch the wait past max_wait + interval."""

    def test_hung_check_still_times_out_on_budget(self) -> None:
        release = threading.Event()

        def hung_check():
            release.wait(1.5)
            return False

        started = time.monotonic()
        try:
            result = PollingWaiter().wait_until(PollSpec(hung_check, interval=0.2, max_wait=0.5))
        finally:
            release.set()
        wall = time.monotonic() - started

        assert result.outcome is PollOutcome.TIMED_OUT
        assert wall <= 0.5 + 0.2 + 0.15
        assert result.attempts == 1
        assert "still running" in result.detail

    def test_slow_check_is_collected_not_restarted(self) -> None:
        calls = []

        def slow_check():
            calls.append(1)
            time.sleep(0.3)
            return True

        result = PollingWaiter().wait_until(PollSpec(slow_check, interval=0.2, max_wait=2))
        assert result.satisfied
        assert result.attempts == 1
        assert len(calls) == 1

    def test_exception_from_slow_check_propagates(self) -> None:
        def failing_check():
            time.sleep(0.05)
            raise ScriptExecutionFailed("osascript exited 1")

        with pytest.raises(ScriptExecutionFailed, match="osascript"):
            PollingWaiter().wait_for(failing_check, max_wait=1, interval=0.5)
