"""Shared fixtures for ResearchAid unit tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from researchaid.config import ResearchAidConfig
from researchaid.engine.browser_session import RemoteBrowserSession
from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.payload import HostLanguage
from researchaid.engine.protocols import TabDescriptor
from researchaid.engine.script_runner import ExecutionResult, Platform
from researchaid.workflows.base import WorkflowEnv


def make_result(stdout: str = "", exit_code: int = 0, stderr: str = "", timed_out: bool = False) -> ExecutionResult:
    return ExecutionResult(
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        duration_seconds=0.01,
        timed_out=timed_out,
    )


def page_result(value: Any) -> ExecutionResult:
    """ExecutionResult as a page script that printed JSON.stringify(value)."""
    return make_result(json.dumps(value))


def tab(url: str, window: int = 1, index: int = 1, title: str = "") -> TabDescriptor:
    return TabDescriptor(url=url, title=title or url, window_index=window, tab_index=index)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeTransport:
    """BrowserTransport that records calls and answers page scripts.

    ``responses`` are consumed in order; once empty, ``handler(script)`` is
    asked.  A response may be an ExecutionResult or any JSON-able value.
    """

    def __init__(
        self,
        tabs: list[TabDescriptor] | None = None,
        responses: list[Any] | None = None,
        handler: Callable[[str], Any] | None = None,
        list_error: Exception | None = None,
    ) -> None:
        self.tabs = list(tabs or [])
        self.list_error = list_error
        self.responses = list(responses or [])
        self.handler = handler
        self.scripts: list[str] = []
        self.indirect: list[bool] = []
        self.activated: list[TabDescriptor] = []
        self.opened: list[str] = []

    def list_tabs(self, cancel=None) -> list[TabDescriptor]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.tabs)

    def activate_tab(self, tab: TabDescriptor, cancel=None) -> ExecutionResult:
        self.activated.append(tab)
        return make_result()

    def evaluate(self, script: str, cancel=None, indirect: bool = False) -> ExecutionResult:
        self.scripts.append(script)
        self.indirect.append(indirect)
        if self.responses:
            response = self.responses.pop(0)
        elif self.handler is not None:
            response = self.handler(script)
        else:
            response = None
        if isinstance(response, ExecutionResult):
            return response
        return page_result(response)

    def open_url(self, url: str, cancel=None) -> ExecutionResult:
        self.opened.append(url)
        return make_result()


class FakeAutomator:
    """Automator that records shortcuts and host scripts."""

    def __init__(self, platform: Platform = Platform.MACOS) -> None:
        self._platform = platform
        self.shortcuts: list[tuple[str, tuple[str, ...]]] = []
        self.scripts: list[str] = []
        self.opened: list[str] = []
        self.on_shortcut: Callable[[str, tuple[str, ...]], None] | None = None

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def host_language(self) -> HostLanguage:
        return HostLanguage.APPLESCRIPT if self._platform is Platform.MACOS else HostLanguage.POWERSHELL

    def run_host_script(self, body: str, timeout=None, cancel=None) -> ExecutionResult:
        self.scripts.append(body)
        return make_result()

    def send_shortcut(self, key: str, modifiers: tuple[str, ...] = (), cancel=None) -> ExecutionResult:
        self.shortcuts.append((key, tuple(modifiers)))
        if self.on_shortcut is not None:
            self.on_shortcut(key, tuple(modifiers))
        return make_result()

    def open_url(self, url: str, cancel=None) -> ExecutionResult:
        self.opened.append(url)
        return make_result()


class FakeClipboard:
    def __init__(self, text: str = "") -> None:
        self.text = text
        self.writes: list[str] = []

    def read(self) -> str:
        return self.text

    def write(self, text: str) -> None:
        self.writes.append(text)
        self.text = text


class FakeRunner:
    """PlatformScriptRunner stand-in that records invocations."""

    def __init__(self, result: ExecutionResult | None = None) -> None:
        self.result = result or make_result()
        self.invocations = []
        self.seen_files: list[tuple[Path, bool]] = []

    def run(self, invocation, cancel=None) -> ExecutionResult:
        self.invocations.append(invocation)
        if "-File" in invocation.args:
            path = Path(invocation.args[invocation.args.index("-File") + 1])
            self.seen_files.append((path, path.exists()))
        return self.result


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ~ at a temp dir and clear RESEARCHAID_CONFIG for every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.delenv("RESEARCHAID_CONFIG", raising=False)
    return home


@pytest.fixture
def fast_config(tmp_path: Path) -> ResearchAidConfig:
    """Config with tiny timings so workflow tests run instantly."""
    return ResearchAidConfig(
        script_timeout=1.0,
        poll_interval=0.01,
        compile_timeout=0.2,
        page_load_timeout=0.2,
        step_delay=0.0,
        status_dir=tmp_path / "status",
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_automator() -> FakeAutomator:
    return FakeAutomator()


@pytest.fixture
def fake_clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def make_env(fast_config: ResearchAidConfig, fake_automator: FakeAutomator, fake_clipboard: FakeClipboard):
    """Factory: WorkflowEnv around a given FakeTransport."""

    def _make(transport: FakeTransport, params: dict[str, str] | None = None) -> WorkflowEnv:
        cancel = CancellationToken()
        session = RemoteBrowserSession(transport, cancel=cancel, inline_limit=fast_config.inline_script_limit)
        return WorkflowEnv(
            config=fast_config,
            session=session,
            automator=fake_automator,
            clipboard=fake_clipboard,
            cancel=cancel,
            params=dict(params or {}),
        )

    return _make
