"""Shared plumbing for workflow builders."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from typing import Any

from researchaid.clipboard import Clipboard
from researchaid.config import ResearchAidConfig
from researchaid.engine.automator import select_automator
from researchaid.engine.browser_session import RemoteBrowserSession, build_transport
from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import ScriptExecutionFailed
from researchaid.engine.locator import SelectorChain
from researchaid.engine.protocols import Automator, BrowserTransport, ClipboardBackend
from researchaid.engine.sequence import AutomationStep, FailurePolicy, StepContext
from researchaid.engine.waiter import PollingWaiter, PollStatus, WaitResult

logger = logging.getLogger("researchaid.workflows.base")


@dataclasses.dataclass
class WorkflowEnv:
    """Everything a workflow's steps may touch, built fresh per run."""

    config: ResearchAidConfig
    session: RemoteBrowserSession
    automator: Automator
    clipboard: ClipboardBackend
    cancel: CancellationToken
    # Per-run options from `researchaid run --param KEY=VALUE`
    params: dict[str, str] = dataclasses.field(default_factory=dict)

    def param(self, name: str, default: str | None = None) -> str | None:
        value = self.params.get(name)
        return value if value not in (None, "") else default

    @property
    def waiter(self) -> PollingWaiter:
        return PollingWaiter(self.cancel)

    def step(
        self,
        name: str,
        action: Callable[[StepContext], Any],
        policy: FailurePolicy = FailurePolicy.ABORT,
        post_delay: float | None = None,
    ) -> AutomationStep:
        """AutomationStep with the configured inter-step delay."""
        delay = self.config.step_delay if post_delay is None else post_delay
        return AutomationStep(name, action, post_delay=delay, policy=policy)

    def element_present(self, chain: SelectorChain) -> Callable[[], PollStatus | tuple[PollStatus, str]]:
        """Poll predicate: satisfied once *chain* matches an element."""

        def check() -> PollStatus | tuple[PollStatus, str]:
            try:
                return PollStatus.SATISFIED if self.session.exists(chain) else PollStatus.NOT_YET
            except ScriptExecutionFailed as exc:
                # Pages mid-navigation reject scripts; keep polling.
                return PollStatus.NOT_YET, exc.message

        check.__name__ = f"{chain.name or 'element'} present"
        return check

    def wait_for_element(self, chain: SelectorChain, max_wait: float | None = None) -> WaitResult:
        """Block until *chain* matches; raises TimeoutExceeded when it never does."""
        budget = max_wait if max_wait is not None else self.config.page_load_timeout
        interval = min(self.config.poll_interval, budget)
        return self.waiter.wait_for(
            self.element_present(chain),
            max_wait=budget,
            interval=interval,
            description=f"{chain.name or 'element'} present",
        ).raise_for_outcome()


def create_env(
    config: ResearchAidConfig,
    cancel: CancellationToken | None = None,
    automator: Automator | None = None,
    transport: BrowserTransport | None = None,
    clipboard: ClipboardBackend | None = None,
    params: dict[str, str] | None = None,
) -> WorkflowEnv:
    """Wire up a WorkflowEnv for the current platform.

    Raises:
        UnsupportedPlatform: No automator exists for this OS.
    """
    cancel = cancel or CancellationToken()
    automator = automator or select_automator(browser_app=config.browser_app, timeout=config.script_timeout)
    transport = transport or build_transport(config, automator)
    session = RemoteBrowserSession(transport, cancel=cancel, inline_limit=config.inline_script_limit)
    return WorkflowEnv(
        config=config,
        session=session,
        automator=automator,
        clipboard=clipboard or Clipboard(),
        cancel=cancel,
        params=dict(params or {}),
    )
