"""Automation Protocols.

These protocols define the contract between ResearchAid's workflow engine and
the platform-specific pieces underneath it: the OS scripting host
(:class:`Automator`), the browser channel (:class:`BrowserTransport`), and the
system clipboard (:class:`ClipboardBackend`).  Tests inject fakes for all
three.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from researchaid.engine.cancellation import CancellationToken
    from researchaid.engine.payload import HostLanguage
    from researchaid.engine.script_runner import ExecutionResult, Platform


@dataclasses.dataclass(frozen=True)
class TabDescriptor:
    """Snapshot of one browser tab, valid for a single lookup only."""

    url: str
    title: str
    window_index: int  # 1-based, as AppleScript counts
    tab_index: int  # 1-based within its window
    target_id: str | None = None  # DevTools target id
    debugger_url: str | None = None  # DevTools webSocketDebuggerUrl


@runtime_checkable
class Automator(Protocol):
    """OS scripting capability, picked once at startup by ``select_automator()``.

    MacAutomator drives ``osascript``; WindowsAutomator drives PowerShell.
    """

    @property
    def platform(self) -> Platform: ...

    @property
    def host_language(self) -> HostLanguage: ...

    def run_host_script(
        self,
        body: str,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> ExecutionResult: ...

    def send_shortcut(
        self,
        key: str,
        modifiers: tuple[str, ...] = (),
        cancel: CancellationToken | None = None,
    ) -> ExecutionResult: ...

    def open_url(self, url: str, cancel: CancellationToken | None = None) -> ExecutionResult: ...


@runtime_checkable
class BrowserTransport(Protocol):
    """Channel into the browser: tab listing, activation, page JavaScript.

    ``evaluate`` runs *script* in the active tab and returns its completion
    value as stdout.  When *indirect* is set the transport must not inline
    the body in host-script text.  ``list_tabs`` returns an empty list only
    when the browser answered with no tabs; a browser it cannot reach raises
    ScriptExecutionFailed with the host's stderr.
    """

    def list_tabs(self, cancel: CancellationToken | None = None) -> list[TabDescriptor]: ...

    def activate_tab(self, tab: TabDescriptor, cancel: CancellationToken | None = None) -> ExecutionResult: ...

    def evaluate(
        self,
        script: str,
        cancel: CancellationToken | None = None,
        indirect: bool = False,
    ) -> ExecutionResult: ...

    def open_url(self, url: str, cancel: CancellationToken | None = None) -> ExecutionResult: ...


@runtime_checkable
class ClipboardBackend(Protocol):
    """Narrow read/write contract for the system clipboard."""

    def read(self) -> str: ...

    def write(self, text: str) -> None: ...
