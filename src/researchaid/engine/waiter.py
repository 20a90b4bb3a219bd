"""Bounded polling of asynchronously changing external state.

Replaces fixed sleeps: instead of "wait two seconds and hope compilation
finished", a workflow states the condition and a budget.
"""

from __future__ import annotations

import concurrent.futures
import dataclasses
import enum
import logging
import time
from collections.abc import Callable
from typing import Union

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import InvalidPollSpec, ScriptExecutionFailed, TimeoutExceeded
from researchaid.models import DEFAULT_POLL_INTERVAL

logger = logging.getLogger("researchaid.engine.waiter")


class PollStatus(str, enum.Enum):
    """What one predicate evaluation observed."""

    SATISFIED = "satisfied"
    NOT_YET = "not_yet"
    ERROR = "error"


class PollOutcome(str, enum.Enum):
    """How a wait ended."""

    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"


# A predicate may also return (status, detail) to explain itself.
PredicateResult = Union[PollStatus, bool, tuple[PollStatus, str]]


@dataclasses.dataclass(frozen=True)
class PollSpec:
    """Condition to wait for, how often to check, and for how long."""

    predicate: Callable[[], PredicateResult]
    interval: float = DEFAULT_POLL_INTERVAL
    max_wait: float = 10.0
    description: str = ""

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise InvalidPollSpec(f"interval must be > 0, got {self.interval}")
        if self.max_wait < self.interval:
            raise InvalidPollSpec(f"max_wait ({self.max_wait}) must be >= interval ({self.interval})")


@dataclasses.dataclass(frozen=True)
class WaitResult:
    outcome: PollOutcome
    attempts: int
    elapsed: float
    detail: str = ""

    @property
    def satisfied(self) -> bool:
        return self.outcome is PollOutcome.SATISFIED

    def raise_for_outcome(self) -> WaitResult:
        """Return self if satisfied, else raise the matching AutomationError."""
        if self.outcome is PollOutcome.TIMED_OUT:
            raise TimeoutExceeded(f"Timed out after {self.elapsed:.1f}s ({self.attempts} checks): {self.detail}")
        if self.outcome is PollOutcome.ERRORED:
            raise ScriptExecutionFailed(f"Condition check failed: {self.detail}")
        return self


def _normalize(value: PredicateResult) -> tuple[PollStatus, str]:
    detail = ""
    if isinstance(value, tuple):
        value, detail = value
    if isinstance(value, PollStatus):
        return value, detail
    if isinstance(value, bool):
        return (PollStatus.SATISFIED if value else PollStatus.NOT_YET), detail
    raise TypeError(f"Poll predicate must return PollStatus or bool, got {type(value).__name__}")


class PollingWaiter:
    """Evaluates a PollSpec immediately, then every interval, until done.

    Args:
        cancel: Token observed before every evaluation and during sleeps.
        clock: Monotonic clock; injectable for tests.
        sleep: Sleep function; defaults to the token's interruptible sleep.
    """

    def __init__(
        self,
        cancel: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.cancel = cancel or CancellationToken()
        self.clock = clock
        self.sleep = sleep or self.cancel.sleep

    def wait_until(self, spec: PollSpec) -> WaitResult:
        """Poll until satisfied, errored, or ``max_wait`` has elapsed.

        Each evaluation runs on a worker thread and is given at most
        ``interval`` seconds (less near the end of the budget), so a check
        that hangs on a slow host script cannot stretch the wait: the whole
        call returns within ``max_wait + interval``.  A check still running
        when its slot ends counts as NOT_YET and is collected on the next
        tick instead of being started again.

        Exceptions raised by the predicate propagate unchanged.
        """
        label = spec.description or getattr(spec.predicate, "__name__", "condition")
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="researchaid-poll")
        pending: concurrent.futures.Future | None = None
        start = self.clock()
        attempts = 0
        try:
            while True:
                self.cancel.raise_if_cancelled()
                elapsed = self.clock() - start
                slot = max(min(spec.interval, spec.max_wait + spec.interval - elapsed), 0.0)
                if pending is None:
                    attempts += 1
                    pending = executor.submit(spec.predicate)
                done, _ = concurrent.futures.wait([pending], timeout=slot)
                still_running = not done
                if still_running:
                    status, detail = PollStatus.NOT_YET, f"check still running after {slot:.1f}s"
                else:
                    finished, pending = pending, None
                    status, detail = _normalize(finished.result())
                elapsed = self.clock() - start

                if status is PollStatus.SATISFIED:
                    logger.debug("%s satisfied after %d checks (%.1fs)", label, attempts, elapsed)
                    return WaitResult(PollOutcome.SATISFIED, attempts, elapsed, detail or label)
                if status is PollStatus.ERROR:
                    logger.warning("%s errored after %d checks: %s", label, attempts, detail)
                    return WaitResult(PollOutcome.ERRORED, attempts, elapsed, detail or label)
                if elapsed >= spec.max_wait:
                    logger.warning("%s not met within %.1fs (%d checks)", label, spec.max_wait, attempts)
                    return WaitResult(PollOutcome.TIMED_OUT, attempts, elapsed, detail or label)

                # A check that used its whole slot has already spent the interval.
                if not still_running:
                    self.sleep(min(spec.interval, spec.max_wait - elapsed))
        finally:
            if pending is not None:
                logger.debug("%s: abandoning a check that is still running", label)
            executor.shutdown(wait=False)

    def wait_for(
        self,
        predicate: Callable[[], PredicateResult],
        max_wait: float,
        interval: float = DEFAULT_POLL_INTERVAL,
        description: str = "",
    ) -> WaitResult:
        """Shorthand for ``wait_until(PollSpec(...))``."""
        return self.wait_until(PollSpec(predicate, interval=interval, max_wait=max_wait, description=description))
