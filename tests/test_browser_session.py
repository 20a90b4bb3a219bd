"""Tests for researchaid.engine.browser_session.

Covers:
  1. Deterministic tab selection
  2. Activation and required tabs
  3. Inline versus indirect script delivery
  4. Text injection outcomes
  5. Clicking and existence checks
  6. Transport selection
"""

from __future__ import annotations

import json

import pytest

from conftest import FakeAutomator, FakeTransport, make_result, tab
from researchaid.config import ResearchAidConfig
from researchaid.engine.browser_session import (
    InjectionOutcome,
    RemoteBrowserSession,
    build_transport,
    select_tab,
)
from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.chrome_applescript import AppleScriptBrowserTransport
from researchaid.engine.devtools import DevToolsTransport
from researchaid.engine.errors import (
    AutomationCancelled,
    NoInputElementFound,
    NoMatchingTab,
    ScriptExecutionFailed,
    SelectorChainExhausted,
    UnsupportedPlatform,
)
from researchaid.engine.locator import SelectorChain
from researchaid.engine.script_runner import Platform

TABS = [
    tab("https://x.com", window=1, index=1),
    tab("https://www.overleaf.com/project/p1", window=1, index=2),
    tab("https://www.overleaf.com/project/p2", window=2, index=1),
]

INPUT = SelectorChain.from_css(["#prompt-textarea", "textarea"], name="prompt")
SEND = SelectorChain.from_css(['button[data-testid="send-button"]'], name="send")


# ---------------------------------------------------------------------------
# 1. Tab selection
# ---------------------------------------------------------------------------

class TestSelectTab:
    """First match in window-then-tab order, case-sensitive."""

    def test_first_match_wins(self) -> None:
        assert select_tab(TABS, "overleaf.com").url.endswith("/p1")

    def test_order_independent_of_listing_order(self) -> None:
        assert select_tab(list(reversed(TABS)), "overleaf.com").url.endswith("/p1")

    def test_case_sensitive(self) -> None:
        assert select_tab(TABS, "Overleaf.com") is None

    def test_no_tabs(self) -> None:
        assert select_tab([], "overleaf.com") is None


# ---------------------------------------------------------------------------
# 2. Activation
# ---------------------------------------------------------------------------

class TestActivation:
    """activate_tab_matching and require_tab."""

    def test_activates_first_match(self) -> None:
        transport = FakeTransport(tabs=TABS)
        assert RemoteBrowserSession(transport).activate_tab_matching("overleaf.com") is True
        assert [t.url for t in transport.activated] == ["https://www.overleaf.com/project/p1"]

    def test_no_match_returns_false(self) -> None:
        transport = FakeTransport(tabs=TABS)
        assert RemoteBrowserSession(transport).activate_tab_matching("gemini.google.com") is False
        assert transport.activated == []

    def test_require_tab_raises_on_zero_tabs(self) -> None:
        with pytest.raises(NoMatchingTab, match="overleaf.com"):
            RemoteBrowserSession(FakeTransport()).require_tab("overleaf.com")

    def test_unreachable_browser_is_not_a_missing_tab(self) -> None:
        failure = ScriptExecutionFailed(
            "Cannot list browser tabs",
            result=make_result(exit_code=1, stderr="Connection refused"),
        )
        session = RemoteBrowserSession(FakeTransport(list_error=failure))
        with pytest.raises(ScriptExecutionFailed) as excinfo:
            session.require_tab("overleaf.com")
        assert not isinstance(excinfo.value, NoMatchingTab)
        assert excinfo.value.stderr == "Connection refused"

    def test_require_tab_activation_failure(self) -> None:
        transport = FakeTransport(tabs=TABS)
        transport.activate_tab = lambda t, cancel=None: make_result(exit_code=1)  # type: ignore[method-assign]
        with pytest.raises(ScriptExecutionFailed):
            RemoteBrowserSession(transport).require_tab("overleaf.com")

    def test_cancelled_session_refuses_work(self) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(AutomationCancelled):
            RemoteBrowserSession(FakeTransport(tabs=TABS), cancel=token).list_tabs()


# ---------------------------------------------------------------------------
# 3. Script delivery
# ---------------------------------------------------------------------------

class TestExecuteScript:
    """Long or multi-line scripts go through an indirect payload."""

    def test_short_single_line_inline(self) -> None:
        transport = FakeTransport()
        RemoteBrowserSession(transport, inline_limit=100).execute_script("document.title")
        assert transport.indirect == [False]

    def test_over_limit_is_indirect(self) -> None:
        transport = FakeTransport()
        RemoteBrowserSession(transport, inline_limit=10).execute_script("x" * 11)
        assert transport.indirect == [True]

    def test_newline_is_indirect(self) -> None:
        transport = FakeTransport()
        RemoteBrowserSession(transport, inline_limit=1000).execute_script("var a = 1;\na")
        assert transport.indirect == [True]

    def test_query_decodes_json(self) -> None:
        transport = FakeTransport(responses=[make_result(json.dumps({"url": "https://arxiv.org/abs/1"}))])
        assert RemoteBrowserSession(transport).query("location.href") == {"url": "https://arxiv.org/abs/1"}
        assert "location.href" in transport.scripts[0]

    def test_open_url(self) -> None:
        transport = FakeTransport()
        assert RemoteBrowserSession(transport).open_url("https://chatgpt.com/").ok
        assert transport.opened == ["https://chatgpt.com/"]


# ---------------------------------------------------------------------------
# 4. Injection
# ---------------------------------------------------------------------------

class TestInjectText:
    """inject_text resolves the chain and writes in one page script."""

    def test_injected(self) -> None:
        transport = FakeTransport(
            responses=[{"status": "injected", "index": 1, "label": "css:textarea", "kind": "textarea",
                        "submitted_via": "enter"}]
        )
        result = RemoteBrowserSession(transport).inject_text(INPUT, "Analyze this", submit_after=True)
        outcome = InjectionOutcome.parse(result)
        assert outcome.injected
        assert outcome.strategy_index == 1
        assert outcome.submitted_via == "enter"

    def test_text_and_submit_chain_embedded_as_json(self) -> None:
        transport = FakeTransport(responses=[{"status": "injected", "index": 0}])
        text = 'He said "stop"\n</script>'
        RemoteBrowserSession(transport).inject_text(INPUT, text, submit_after=True, submit_chain=SEND)
        script = transport.scripts[0]
        assert json.dumps(text) in script
        assert SEND.to_json() in script
        assert "__TEXT__" not in script and "__SUBMIT__" not in script

    def test_no_submit_chain_is_null(self) -> None:
        transport = FakeTransport(responses=[{"status": "injected", "index": 0}])
        RemoteBrowserSession(transport).inject_text(INPUT, "x")
        assert "if (false)" in transport.scripts[0]
        assert "var button = null ? locate(null)" in transport.scripts[0]

    def test_not_found(self) -> None:
        transport = FakeTransport(responses=[{"status": "not_found"}])
        with pytest.raises(NoInputElementFound) as excinfo:
            RemoteBrowserSession(transport).inject_text(INPUT, "x")
        assert excinfo.value.selector_chain == INPUT.describe()

    def test_not_writable_counts_as_not_found(self) -> None:
        transport = FakeTransport(responses=[{"status": "not_writable", "index": 0, "kind": "div"}])
        with pytest.raises(SelectorChainExhausted):
            RemoteBrowserSession(transport).inject_text(INPUT, "x")

    def test_page_error(self) -> None:
        transport = FakeTransport(responses=[{"status": "error", "message": "boom"}])
        with pytest.raises(ScriptExecutionFailed):
            RemoteBrowserSession(transport).inject_text(INPUT, "x")

    def test_host_failure(self) -> None:
        transport = FakeTransport(responses=[make_result(exit_code=1, stderr="JavaScript disabled")])
        with pytest.raises(ScriptExecutionFailed) as excinfo:
            RemoteBrowserSession(transport).inject_text(INPUT, "x")
        assert "JavaScript disabled" in excinfo.value.stderr


# ---------------------------------------------------------------------------
# 5. Click / exists
# ---------------------------------------------------------------------------

class TestClickAndExists:
    def test_click(self) -> None:
        transport = FakeTransport(responses=[{"status": "clicked", "index": 0, "label": "css:#go"}])
        assert RemoteBrowserSession(transport).click(SEND).ok

    def test_click_not_found(self) -> None:
        transport = FakeTransport(responses=[{"status": "not_found"}])
        with pytest.raises(SelectorChainExhausted):
            RemoteBrowserSession(transport).click(SEND)

    def test_exists(self) -> None:
        transport = FakeTransport(responses=[{"status": "found", "index": 0, "kind": "button"}, {"status": "not_found"}])
        session = RemoteBrowserSession(transport)
        assert session.exists(SEND) is True
        assert session.exists(SEND) is False


# ---------------------------------------------------------------------------
# 6. Transport selection
# ---------------------------------------------------------------------------

class TestBuildTransport:
    """auto means AppleScript on macOS, DevTools elsewhere."""

    def test_auto_on_macos(self) -> None:
        transport = build_transport(ResearchAidConfig(), FakeAutomator(Platform.MACOS))
        assert isinstance(transport, AppleScriptBrowserTransport)

    def test_auto_on_windows(self) -> None:
        config = ResearchAidConfig(devtools_port=9333)
        transport = build_transport(config, FakeAutomator(Platform.WINDOWS))
        assert isinstance(transport, DevToolsTransport)
        assert transport.client.port == 9333

    def test_devtools_on_macos(self) -> None:
        transport = build_transport(ResearchAidConfig(transport="devtools"), FakeAutomator(Platform.MACOS))
        assert isinstance(transport, DevToolsTransport)

    def test_applescript_on_windows_rejected(self) -> None:
        with pytest.raises(UnsupportedPlatform):
            build_transport(ResearchAidConfig(transport="applescript"), FakeAutomator(Platform.WINDOWS))
