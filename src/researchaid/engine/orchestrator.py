"""ResearchAid Workflow Orchestrator.

Runs workflows on daemon threads so the caller (a button, the CLI) returns
immediately.  A single automation lock keeps two workflows from driving the
browser at the same time; ``preempt=True`` cancels the running one first.

Each run writes ``run-status.json`` under ``status_dir/<run_id>/`` as it moves
through queued, running, and a final status.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
import random
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Union

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import AutomationCancelled, AutomationError
from researchaid.engine.sequence import AutomationSequence, AutomationStep, SequenceResult

logger = logging.getLogger("researchaid.engine.orchestrator")

# Builders get the run's token and return a sequence or a plain step list.
StepBuilder = Callable[[CancellationToken], Union[AutomationSequence, list[AutomationStep]]]

_LOCK_POLL_INTERVAL = 0.1


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")


class WorkflowHandle:
    """One submitted workflow: its id, live status, token and final result."""

    def __init__(self, run_id: str, name: str, status_dir: Path | None) -> None:
        self.run_id = run_id
        self.name = name
        self.status = "queued"
        self.cancel = CancellationToken()
        self.result: SequenceResult | None = None
        self.error: AutomationError | None = None
        self.submitted_at = _now_iso()
        self.status_dir = status_dir / run_id if status_dir is not None else None
        self._done = threading.Event()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def failed_step(self) -> str | None:
        return self.result.failed_step if self.result is not None else None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the workflow finishes; False if *timeout* ran out first."""
        return self._done.wait(timeout)

    def cancel_run(self, reason: str = "cancelled by user") -> None:
        self.cancel.cancel(reason)

    def __repr__(self) -> str:
        return f"WorkflowHandle({self.run_id!r}, {self.name!r}, status={self.status!r})"


class WorkflowOrchestrator:
    """Serializes workflows behind one automation lock.

    Usage::

        orchestrator = WorkflowOrchestrator(config.status_dir)
        handle = orchestrator.submit("compile", builder, preempt=True)
        handle.wait(120)
    """

    def __init__(self, status_dir: Path | None = None) -> None:
        self.status_dir = status_dir
        self._automation_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._current: WorkflowHandle | None = None

    @property
    def current(self) -> WorkflowHandle | None:
        """The workflow holding the automation lock, if any."""
        with self._state_lock:
            return self._current

    def submit(self, name: str, build_steps: StepBuilder, preempt: bool = False) -> WorkflowHandle:
        """Start *name* on a daemon thread and return its handle immediately."""
        handle = WorkflowHandle(self._generate_run_id(), name, self.status_dir)
        self._write_status_file(handle)
        logger.info("Queued %s as %s", name, handle.run_id)

        if preempt:
            with self._state_lock:
                running = self._current
            if running is not None and not running.done:
                logger.info("Preempting %s (%s) for %s", running.name, running.run_id, name)
                running.cancel_run(f"preempted by {name}")

        thread = threading.Thread(
            target=self._run,
            args=(handle, build_steps),
            name=f"researchaid-{name}",
            daemon=True,
        )
        thread.start()
        return handle

    # -- Execution ------------------------------------------------------------

    def _acquire(self, handle: WorkflowHandle) -> bool:
        """Wait for the automation lock; False if cancelled while queued."""
        while not self._automation_lock.acquire(timeout=_LOCK_POLL_INTERVAL):
            if handle.cancel.cancelled:
                return False
        if handle.cancel.cancelled:
            self._automation_lock.release()
            return False
        return True

    def _run(self, handle: WorkflowHandle, build_steps: StepBuilder) -> None:
        if not self._acquire(handle):
            handle.error = AutomationCancelled(f"Automation cancelled: {handle.cancel.reason}")
            self._finish(handle, "cancelled")
            return

        with self._state_lock:
            self._current = handle
        try:
            handle.status = "running"
            self._write_status_file(handle)
            logger.info("Running %s (%s)", handle.name, handle.run_id)

            try:
                built = build_steps(handle.cancel)
                sequence = built if isinstance(built, AutomationSequence) else AutomationSequence(handle.name, built)
                handle.result = sequence.run(handle.cancel)
            except AutomationError as exc:
                handle.error = exc
            except Exception as exc:
                logger.exception("Workflow %s crashed", handle.name)
                handle.error = AutomationError(f"{type(exc).__name__}: {exc}")

            if handle.result is not None and handle.result.error is not None:
                handle.error = handle.result.error

            if handle.error is None:
                final = "completed"
            elif isinstance(handle.error, AutomationCancelled):
                final = "cancelled"
            else:
                final = "failed"
            self._finish(handle, final)
        finally:
            with self._state_lock:
                if self._current is handle:
                    self._current = None
            self._automation_lock.release()

    def _finish(self, handle: WorkflowHandle, status: str) -> None:
        # Final status is written before waiters are released.
        handle.status = status
        self._write_status_file(handle, end_time=_now_iso())
        if status == "completed":
            logger.info("%s (%s) completed", handle.name, handle.run_id)
        else:
            logger.warning(
                "%s (%s) %s at step %s: %s",
                handle.name,
                handle.run_id,
                status,
                handle.failed_step or "-",
                handle.error.message if handle.error else "",
            )
        handle._done.set()

    # -- Status side channel --------------------------------------------------

    def _write_status_file(self, handle: WorkflowHandle, end_time: str | None = None) -> None:
        """Write or update the run-status.json file."""
        if handle.status_dir is None:
            return
        data: dict[str, Any] = {
            "status": handle.status,
            "pid": os.getpid(),
            "run_id": handle.run_id,
            "workflow": handle.name,
            "submitted_at": handle.submitted_at,
        }
        if end_time is not None:
            data["end_time"] = end_time
        if handle.result is not None:
            data["steps"] = [
                {"name": o.name, "status": o.status.value, "duration_seconds": round(o.duration_seconds, 3)}
                for o in handle.result.outcomes
            ]
        if handle.failed_step is not None:
            data["failed_step"] = handle.failed_step
        if handle.error is not None:
            data["error"] = handle.error.context()
        try:
            handle.status_dir.mkdir(parents=True, exist_ok=True)
            (handle.status_dir / "run-status.json").write_text(json.dumps(data, indent=2))
        except OSError as exc:
            logger.warning("Failed to write run-status.json: %s", exc)

    @staticmethod
    def _generate_run_id() -> str:
        """Generate a unique run ID."""
        ts = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%d-%H%M%S")
        suffix = "".join(random.choices("abcdefghijklmnopqrstuvwxyz0123456789", k=4))
        return f"RA-RUN-{ts}-{suffix}"
