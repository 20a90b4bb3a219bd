"""Automation error taxonomy.

Low-level components return typed results for "the external thing did not
behave as hoped" and raise only for the conditions below.  The
AutomationSequence decides, per step, whether a raised error ends the
workflow.
"""

from __future__ import annotations

from typing import Any


class AutomationError(Exception):
    """Base class for every automation failure.

    Carries optional diagnostic context so a failure can be traced back to
    the step, selector chain and raw host output that produced it.
    """

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        selector_chain: str | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.selector_chain = selector_chain
        self.stderr = stderr

    def context(self) -> dict[str, Any]:
        """Diagnostic fields that are set, for logs and status files."""
        data: dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.step:
            data["step"] = self.step
        if self.selector_chain:
            data["selector_chain"] = self.selector_chain
        if self.stderr:
            data["stderr"] = self.stderr[:500]
        return data


class InterpreterNotFound(AutomationError):
    """The scripting host binary (osascript, powershell.exe) is absent. Fatal."""


class ScriptExecutionFailed(AutomationError):
    """A host or page script exited non-zero, timed out, or returned garbage."""

    def __init__(self, message: str, *, result: Any = None, **kwargs: Any) -> None:
        if result is not None and "stderr" not in kwargs:
            kwargs["stderr"] = getattr(result, "stderr", None)
        super().__init__(message, **kwargs)
        self.result = result


class NoMatchingTab(AutomationError):
    """No open tab's URL contains the requested fragment."""


class SelectorChainExhausted(AutomationError):
    """Every strategy in a selector chain came back empty."""


class NoInputElementFound(SelectorChainExhausted):
    """No writable element matched the injection target chain."""


class TimeoutExceeded(AutomationError):
    """A poll or host run hit its deadline before the condition held."""


class PayloadEncodingFailure(AutomationError):
    """A payload could not be encoded or written. Indicates a bug, so fatal."""


class UnsupportedHostLanguage(PayloadEncodingFailure):
    """No literal encoding exists for the requested host language."""


class AutomationCancelled(AutomationError):
    """The workflow's cancellation token fired."""


class UnsupportedPlatform(AutomationError):
    """No Automator implementation exists for this operating system."""


class ClipboardUnavailable(AutomationError):
    """The system clipboard could not be read or written."""


class InvalidPollSpec(ValueError):
    """A PollSpec violated interval > 0 and max_wait >= interval."""


# Errors that end a workflow regardless of the failing step's policy.
FATAL_ERRORS: tuple[type[AutomationError], ...] = (
    InterpreterNotFound,
    PayloadEncodingFailure,
    AutomationCancelled,
)
