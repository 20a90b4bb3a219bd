"""Cancellation token threaded through every suspension point."""

from __future__ import annotations

import threading

from researchaid.engine.errors import AutomationCancelled


class CancellationToken:
    """A one-shot cancellation signal backed by ``threading.Event``.

    Workflows sleep through :meth:`sleep` rather than ``time.sleep`` so a
    second user action can interrupt a stuck first one.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str = ""

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AutomationCancelled(f"Automation cancelled: {self.reason}")

    def sleep(self, seconds: float) -> None:
        """Sleep up to *seconds*; raise AutomationCancelled if cancelled meanwhile."""
        if seconds > 0 and self._event.wait(seconds):
            self.raise_if_cancelled()
        self.raise_if_cancelled()


def never_cancelled() -> CancellationToken:
    """A fresh token nobody holds a reference to cancel."""
    return CancellationToken()
