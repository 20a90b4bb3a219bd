"""Remote browser session: the single point of contact with the browser.

Every "do something in the browser" call in the package goes through a
:class:`RemoteBrowserSession`.  The session picks inline versus indirect
delivery for page scripts, resolves selector chains in the page, and turns
page-side outcomes into typed errors.  It never retries; waiting is the
PollingWaiter's job.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.chrome_applescript import AppleScriptBrowserTransport
from researchaid.engine.devtools import DevToolsClient, DevToolsTransport
from researchaid.engine.errors import (
    NoInputElementFound,
    NoMatchingTab,
    ScriptExecutionFailed,
    SelectorChainExhausted,
    UnsupportedPlatform,
)
from researchaid.engine.locator import ElementLocator, SelectorChain, decode_page_result, js_data, script_for
from researchaid.engine.protocols import BrowserTransport, TabDescriptor
from researchaid.engine.script_runner import ExecutionResult, Platform
from researchaid.models import INLINE_SCRIPT_LIMIT

if TYPE_CHECKING:
    from researchaid.config import ResearchAidConfig
    from researchaid.engine.protocols import Automator

logger = logging.getLogger("researchaid.engine.browser_session")


# Writes with the element-appropriate method, then optionally submits.
_INJECT_BODY = """
var hit = locate();
if (!hit) return {status: 'not_found'};
var el = hit.el, text = __TEXT__;
el.focus();
if (hit.kind === 'textarea' || hit.kind === 'input') {
  var proto = hit.kind === 'textarea' ? HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
  Object.getOwnPropertyDescriptor(proto, 'value').set.call(el, text);
  el.dispatchEvent(new Event('input', {bubbles: true}));
  el.dispatchEvent(new Event('change', {bubbles: true}));
} else if (hit.kind === 'contenteditable') {
  var range = document.createRange();
  range.selectNodeContents(el);
  var selection = window.getSelection();
  selection.removeAllRanges();
  selection.addRange(range);
  var inserted = false;
  try { inserted = document.execCommand('insertText', false, text); } catch (e) { inserted = false; }
  if (!inserted) {
    el.textContent = text;
    el.dispatchEvent(new InputEvent('input', {bubbles: true, inputType: 'insertText', data: text}));
  }
} else {
  return {status: 'not_writable', index: hit.index, label: hit.label, kind: hit.kind};
}
var via = null;
if (__SUBMIT__) {
  var button = __SUBMIT_CHAIN__ ? locate(__SUBMIT_CHAIN__) : null;
  if (button && !button.el.disabled && button.el.getAttribute('aria-disabled') !== 'true') {
    button.el.click();
    via = 'button:' + button.label;
  } else {
    ['keydown', 'keyup'].forEach(function (type) {
      el.dispatchEvent(new KeyboardEvent(type, {key: 'Enter', code: 'Enter', keyCode: 13, which: 13, bubbles: true}));
    });
    via = 'enter';
  }
}
return {status: 'injected', index: hit.index, label: hit.label, kind: hit.kind, submitted_via: via};
"""

_CLICK_BODY = """
var hit = locate();
if (!hit) return {status: 'not_found'};
if (hit.el.scrollIntoView) hit.el.scrollIntoView({block: 'center'});
hit.el.click();
return {status: 'clicked', index: hit.index, label: hit.label, kind: hit.kind};
"""


@dataclasses.dataclass(frozen=True)
class InjectionOutcome:
    """Page-side result of :meth:`RemoteBrowserSession.inject_text`."""

    status: str
    strategy_index: int | None = None
    strategy_label: str | None = None
    element_kind: str | None = None
    submitted_via: str | None = None

    @property
    def injected(self) -> bool:
        return self.status == "injected"

    @classmethod
    def parse(cls, result: ExecutionResult) -> InjectionOutcome:
        """Decode the JSON the injection script printed.

        Raises:
            ScriptExecutionFailed: The run failed or printed something else.
        """
        data = decode_page_result(result, "inject text")
        if not isinstance(data, dict) or "status" not in data:
            raise ScriptExecutionFailed(f"Injection script returned {data!r}", result=result)
        return cls(
            status=str(data["status"]),
            strategy_index=data.get("index"),
            strategy_label=data.get("label"),
            element_kind=data.get("kind"),
            submitted_via=data.get("submitted_via"),
        )


def select_tab(tabs: list[TabDescriptor], url_fragment: str) -> TabDescriptor | None:
    """First tab, in window-then-tab order, whose URL contains *url_fragment*.

    Case-sensitive substring match; the same list always gives the same tab.
    """
    ordered = sorted(tabs, key=lambda t: (t.window_index, t.tab_index))
    return next((t for t in ordered if url_fragment in t.url), None)


class RemoteBrowserSession:
    """Browser operations over a :class:`BrowserTransport`.

    Args:
        transport: AppleScript or DevTools transport.
        cancel: Token observed by every host run this session starts.
        inline_limit: Page scripts longer than this, or containing a
            newline, travel as an indirect payload file.
    """

    def __init__(
        self,
        transport: BrowserTransport,
        cancel: CancellationToken | None = None,
        inline_limit: int = INLINE_SCRIPT_LIMIT,
    ) -> None:
        self.transport = transport
        self.cancel = cancel or CancellationToken()
        self.inline_limit = inline_limit
        self.locator = ElementLocator(self)

    # -- Scripts --------------------------------------------------------------

    def execute_script(self, body: str) -> ExecutionResult:
        """Run page JavaScript in the active tab; its completion value is stdout."""
        self.cancel.raise_if_cancelled()
        indirect = len(body) > self.inline_limit or "\n" in body or "\r" in body
        logger.debug("Executing %d-char page script (%s)", len(body), "indirect" if indirect else "inline")
        return self.transport.evaluate(body, cancel=self.cancel, indirect=indirect)

    def query(self, expression: str) -> Any:
        """Evaluate a JavaScript *expression* and return its JSON-decoded value."""
        script = f"JSON.stringify((function () {{ return ({expression}); }})() ?? null)"
        return decode_page_result(self.execute_script(script), "query")

    # -- Tabs -----------------------------------------------------------------

    def list_tabs(self) -> list[TabDescriptor]:
        self.cancel.raise_if_cancelled()
        return self.transport.list_tabs(cancel=self.cancel)

    def find_tab(self, url_fragment: str) -> TabDescriptor | None:
        return select_tab(self.list_tabs(), url_fragment)

    def activate_tab_matching(self, url_fragment: str) -> bool:
        """Activate the first tab whose URL contains *url_fragment*.

        Returns:
            True if a tab matched and was activated, False if none matched.

        Raises:
            ScriptExecutionFailed: A tab matched but activating it failed.
        """
        tab = self.find_tab(url_fragment)
        if tab is None:
            logger.info("No tab matches %r", url_fragment)
            return False
        result = self.transport.activate_tab(tab, cancel=self.cancel)
        if not result.ok:
            raise ScriptExecutionFailed(f"Could not activate tab {tab.url}", result=result)
        logger.info("Activated tab %d.%d: %s", tab.window_index, tab.tab_index, tab.url)
        return True

    def require_tab(self, url_fragment: str) -> TabDescriptor:
        """Like :meth:`activate_tab_matching` but raises NoMatchingTab."""
        tab = self.find_tab(url_fragment)
        if tab is None:
            raise NoMatchingTab(f"No open tab matches {url_fragment!r}")
        result = self.transport.activate_tab(tab, cancel=self.cancel)
        if not result.ok:
            raise ScriptExecutionFailed(f"Could not activate tab {tab.url}", result=result)
        return tab

    def open_url(self, url: str) -> ExecutionResult:
        self.cancel.raise_if_cancelled()
        logger.info("Opening %s", url)
        return self.transport.open_url(url, cancel=self.cancel)

    # -- Elements -------------------------------------------------------------

    def inject_text(
        self,
        target: SelectorChain,
        text: str,
        submit_after: bool = False,
        submit_chain: SelectorChain | None = None,
    ) -> ExecutionResult:
        """Write *text* into the first element *target* finds.

        Raises:
            NoInputElementFound: No strategy matched a writable element.
            ScriptExecutionFailed: The host run failed or timed out.
        """
        submit_json = submit_chain.to_json() if submit_chain is not None else "null"
        body = (
            _INJECT_BODY.replace("__SUBMIT_CHAIN__", submit_json)
            .replace("__SUBMIT__", js_data(bool(submit_after)))
            .replace("__TEXT__", js_data(text))
        )
        result = self.execute_script(script_for(target, body))
        outcome = InjectionOutcome.parse(result)
        if outcome.status == "error":
            raise ScriptExecutionFailed("Injection script raised in the page", result=result)
        if not outcome.injected:
            raise NoInputElementFound(
                f"No writable input for {target.name or 'injection target'} ({outcome.status})",
                selector_chain=target.describe(),
            )
        logger.info(
            "Injected %d chars via %s (%s)%s",
            len(text),
            outcome.strategy_label,
            outcome.element_kind,
            f", submitted via {outcome.submitted_via}" if outcome.submitted_via else "",
        )
        return result

    def click(self, target: SelectorChain) -> ExecutionResult:
        """Click the first element *target* finds.

        Raises:
            SelectorChainExhausted: Nothing matched.
        """
        result = self.execute_script(script_for(target, _CLICK_BODY))
        data = decode_page_result(result, f"click {target.name or 'element'}")
        status = data.get("status") if isinstance(data, dict) else None
        if status == "not_found":
            raise SelectorChainExhausted(
                f"Nothing to click for {target.name or 'selector chain'}",
                selector_chain=target.describe(),
            )
        if status != "clicked":
            raise ScriptExecutionFailed(f"Click script returned {data!r}", result=result)
        logger.debug("Clicked %s via %s", target.name or "element", data.get("label"))
        return result

    def exists(self, target: SelectorChain) -> bool:
        """True if any strategy in *target* currently matches."""
        try:
            self.locator.locate(target)
        except SelectorChainExhausted:
            return False
        return True


# ---------------------------------------------------------------------------
# Transport selection
# ---------------------------------------------------------------------------

def build_transport(config: ResearchAidConfig, automator: Automator) -> BrowserTransport:
    """Pick the browser transport named by ``config.transport``.

    ``auto`` means AppleScript on macOS and DevTools everywhere else.
    """
    kind = config.transport
    if kind == "auto":
        kind = "applescript" if automator.platform is Platform.MACOS else "devtools"

    if kind == "applescript":
        if automator.platform is not Platform.MACOS:
            raise UnsupportedPlatform("The AppleScript transport needs macOS; use transport: devtools")
        return AppleScriptBrowserTransport(automator, browser_app=config.browser_app)

    client = DevToolsClient(config.devtools_host, config.devtools_port)
    return DevToolsTransport(client, timeout=config.script_timeout)
