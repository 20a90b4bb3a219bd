"""Ordered automation steps with per-step failure policy.

An :class:`AutomationSequence` is the policy boundary of the engine: lower
layers raise or return typed results, and the sequence decides whether a
failure ends the workflow.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import FATAL_ERRORS, AutomationError, ScriptExecutionFailed
from researchaid.engine.script_runner import ExecutionResult

logger = logging.getLogger("researchaid.engine.sequence")


class FailurePolicy(str, enum.Enum):
    ABORT = "abort"
    LOG_AND_CONTINUE = "log_and_continue"


class StepStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class AutomationStep:
    """One named action.

    The action receives a :class:`StepContext` and returns an
    ExecutionResult, any other value, or raises.
    """

    name: str
    action: Callable[[StepContext], Any]
    post_delay: float = 0.0
    policy: FailurePolicy = FailurePolicy.ABORT


@dataclasses.dataclass
class StepOutcome:
    name: str
    status: StepStatus
    value: Any = None
    error: AutomationError | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is StepStatus.SUCCEEDED


class StepContext:
    """What a step can see: earlier results and the cancellation token."""

    def __init__(self, outcomes: list[StepOutcome], cancel: CancellationToken) -> None:
        self._outcomes = outcomes
        self.cancel = cancel

    def value_of(self, step_name: str, default: Any = None) -> Any:
        """Return value of an earlier successful step, else *default*."""
        for outcome in self._outcomes:
            if outcome.name == step_name and outcome.succeeded:
                return outcome.value
        return default

    def succeeded(self, step_name: str) -> bool:
        return any(o.name == step_name and o.succeeded for o in self._outcomes)


@dataclasses.dataclass
class SequenceResult:
    outcomes: list[StepOutcome] = dataclasses.field(default_factory=list)
    failed_step: str | None = None
    error: AutomationError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failures(self) -> list[StepOutcome]:
        """Every failed step, including ones the sequence continued past."""
        return [o for o in self.outcomes if not o.succeeded]

    def value_of(self, step_name: str, default: Any = None) -> Any:
        return StepContext(self.outcomes, CancellationToken()).value_of(step_name, default)


def _as_automation_error(exc: Exception, step: str) -> AutomationError:
    if isinstance(exc, AutomationError):
        if exc.step is None:
            exc.step = step
        return exc
    wrapped = AutomationError(f"{type(exc).__name__}: {exc}", step=step)
    wrapped.__cause__ = exc
    return wrapped


class AutomationSequence:
    """Runs steps strictly in order.

    Usage::

        seq = AutomationSequence("compile")
        seq.add("activate", lambda ctx: session.require_tab("overleaf.com"))
        seq.add("click", lambda ctx: session.click(RECOMPILE), post_delay=0.5)
        result = seq.run(cancel)
    """

    def __init__(self, name: str = "", steps: Iterable[AutomationStep] = ()) -> None:
        self.name = name
        self.steps: list[AutomationStep] = list(steps)

    def add(
        self,
        name: str,
        action: Callable[[StepContext], Any],
        post_delay: float = 0.0,
        policy: FailurePolicy = FailurePolicy.ABORT,
    ) -> AutomationSequence:
        self.steps.append(AutomationStep(name, action, post_delay, policy))
        return self

    def run(self, cancel: CancellationToken | None = None) -> SequenceResult:
        """Execute every step; stop at the first ABORT-policy or fatal failure."""
        cancel = cancel or CancellationToken()
        result = SequenceResult()
        context = StepContext(result.outcomes, cancel)
        last = len(self.steps) - 1

        for index, step in enumerate(self.steps):
            try:
                cancel.raise_if_cancelled()
            except AutomationError as exc:
                exc.step = step.name
                result.failed_step, result.error = step.name, exc
                logger.info("[%s] cancelled before step %s", self.name, step.name)
                return result

            logger.debug("[%s] step %d/%d: %s", self.name, index + 1, len(self.steps), step.name)
            start = time.monotonic()
            try:
                value = step.action(context)
                if isinstance(value, ExecutionResult) and not value.ok:
                    reason = "timed out" if value.timed_out else f"exited {value.exit_code}"
                    raise ScriptExecutionFailed(f"Step {step.name} {reason}", result=value, step=step.name)
            except Exception as exc:
                error = _as_automation_error(exc, step.name)
                result.outcomes.append(
                    StepOutcome(step.name, StepStatus.FAILED, error=error, duration_seconds=time.monotonic() - start)
                )
                stderr = (error.stderr or "").strip()[:300]
                if isinstance(error, FATAL_ERRORS) or step.policy is FailurePolicy.ABORT:
                    logger.error("[%s] step %s failed: %s %s", self.name, step.name, error.message, stderr)
                    result.failed_step, result.error = step.name, error
                    return result
                logger.warning("[%s] step %s failed, continuing: %s %s", self.name, step.name, error.message, stderr)
            else:
                result.outcomes.append(
                    StepOutcome(step.name, StepStatus.SUCCEEDED, value=value, duration_seconds=time.monotonic() - start)
                )

            if index < last and step.post_delay > 0:
                try:
                    cancel.sleep(step.post_delay)
                except AutomationError as exc:
                    exc.step = step.name
                    result.failed_step, result.error = step.name, exc
                    return result

        return result
