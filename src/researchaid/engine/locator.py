"""Element location through ordered fallback strategies.

A :class:`SelectorChain` is evaluated in the page in one round-trip: the
chain is serialized as JSON into a fixed JavaScript runtime that walks the
strategies in declared order and stops at the first one that finds an
element.  Selector text is data, never script.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any

from researchaid.engine.errors import ScriptExecutionFailed, SelectorChainExhausted
from researchaid.engine.payload import encode_for_structured_literal
from researchaid.engine.script_runner import ExecutionResult

if TYPE_CHECKING:
    from researchaid.engine.browser_session import RemoteBrowserSession

logger = logging.getLogger("researchaid.engine.locator")

STRATEGY_KINDS = ("css", "visible", "last_visible", "shadow", "text", "heuristic")
HEURISTICS = ("first-visible-contenteditable", "focused-element", "largest-textarea")
DEFAULT_TEXT_TAGS = 'button, a, [role="button"]'


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class SelectorStrategy:
    """One way of finding an element.

    ``scope`` is the shadow host selector for ``shadow`` strategies and the
    candidate tag set for ``text`` strategies; other kinds ignore it.
    """

    kind: str
    value: str
    label: str = ""
    scope: str = ""

    def __post_init__(self) -> None:
        if self.kind not in STRATEGY_KINDS:
            raise ValueError(f"Unknown selector kind: {self.kind!r}")
        if not self.value:
            raise ValueError(f"Empty {self.kind} selector")
        if self.kind == "heuristic" and self.value not in HEURISTICS:
            raise ValueError(f"Unknown heuristic: {self.value!r}")
        if self.kind == "shadow" and not self.scope:
            raise ValueError("shadow strategy needs a host selector in scope")
        if not self.label:
            object.__setattr__(self, "label", f"{self.kind}:{self.value}")

    @classmethod
    def css(cls, selector: str, label: str = "") -> SelectorStrategy:
        return cls("css", selector, label)

    @classmethod
    def visible(cls, selector: str, label: str = "") -> SelectorStrategy:
        return cls("visible", selector, label)

    @classmethod
    def last_visible(cls, selector: str, label: str = "") -> SelectorStrategy:
        return cls("last_visible", selector, label)

    @classmethod
    def shadow(cls, host: str, selector: str, label: str = "") -> SelectorStrategy:
        return cls("shadow", selector, label, scope=host)

    @classmethod
    def text(cls, pattern: str, tags: str = DEFAULT_TEXT_TAGS, label: str = "") -> SelectorStrategy:
        return cls("text", pattern, label, scope=tags)

    @classmethod
    def heuristic(cls, name: str, label: str = "") -> SelectorStrategy:
        return cls("heuristic", name, label)

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "value": self.value, "label": self.label, "scope": self.scope}


@dataclasses.dataclass(frozen=True)
class SelectorChain:
    """Ordered, immutable fallback list of strategies. Never empty."""

    strategies: tuple[SelectorStrategy, ...]
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategies", tuple(self.strategies))
        if not self.strategies:
            raise ValueError("SelectorChain needs at least one strategy")

    @classmethod
    def of(cls, *strategies: SelectorStrategy, name: str = "") -> SelectorChain:
        return cls(strategies, name)

    @classmethod
    def from_css(cls, selectors: Iterable[str], name: str = "") -> SelectorChain:
        """Chain of plain ``css`` strategies, one per selector."""
        return cls(tuple(SelectorStrategy.css(s) for s in selectors), name)

    def __iter__(self) -> Iterator[SelectorStrategy]:
        return iter(self.strategies)

    def __len__(self) -> int:
        return len(self.strategies)

    def __getitem__(self, index: int) -> SelectorStrategy:
        return self.strategies[index]

    def labels(self) -> list[str]:
        return [s.label for s in self.strategies]

    def describe(self) -> str:
        """``name: label > label > ...`` for logs and error context."""
        joined = " > ".join(self.labels())
        return f"{self.name}: {joined}" if self.name else joined

    def to_json(self) -> str:
        return json.dumps([s.to_dict() for s in self.strategies], ensure_ascii=True)


@dataclasses.dataclass(frozen=True)
class LocateResult:
    """Which strategy matched, and what kind of element it found."""

    index: int
    strategy: SelectorStrategy
    element_kind: str


# ---------------------------------------------------------------------------
# Page runtime
# ---------------------------------------------------------------------------

# Defines locate(); the action body runs after it and returns a plain object,
# which the wrapper serializes with JSON.stringify.
_RUNTIME = r"""
function __raVisible(el) {
  if (!el || !el.getClientRects || !el.getClientRects().length) return false;
  var style = window.getComputedStyle(el);
  return style.visibility !== 'hidden' && style.display !== 'none';
}
function __raAll(root, selector) {
  try { return Array.prototype.slice.call(root.querySelectorAll(selector)); }
  catch (e) { return []; }
}
var __raHeuristics = {
  'first-visible-contenteditable': function () {
    return __raAll(document, '[contenteditable="true"]').filter(__raVisible)[0] || null;
  },
  'focused-element': function () {
    var el = document.activeElement;
    return el && el !== document.body ? el : null;
  },
  'largest-textarea': function () {
    var best = null;
    __raAll(document, 'textarea').forEach(function (el) {
      if (!best || (el.value || '').length > (best.value || '').length) best = el;
    });
    return best;
  }
};
function __raFind(s) {
  var found, i;
  switch (s.kind) {
    case 'css':
      try { return document.querySelector(s.value); } catch (e) { return null; }
    case 'visible':
      return __raAll(document, s.value).filter(__raVisible)[0] || null;
    case 'last_visible':
      found = __raAll(document, s.value).filter(__raVisible);
      return found.length ? found[found.length - 1] : null;
    case 'shadow':
      found = __raAll(document, s.scope);
      for (i = 0; i < found.length; i++) {
        var inner = null;
        try {
          if (found[i].shadowRoot) inner = found[i].shadowRoot.querySelector(s.value);
          if (!inner) inner = found[i].querySelector(s.value);
        } catch (e) { inner = null; }
        if (inner) return inner;
      }
      return null;
    case 'text':
      var re;
      try { re = new RegExp(s.value, 'i'); } catch (e) { return null; }
      found = __raAll(document, s.scope);
      for (i = 0; i < found.length; i++) {
        var el = found[i];
        var fields = [el.innerText || el.textContent || '',
                      el.getAttribute('aria-label') || '',
                      el.getAttribute('title') || ''];
        if (fields.some(function (f) { return f && re.test(f); })) return el;
      }
      return null;
    case 'heuristic':
      return __raHeuristics[s.value] ? __raHeuristics[s.value]() : null;
  }
  return null;
}
function __raKind(el) {
  if (el.isContentEditable) return 'contenteditable';
  return el.tagName.toLowerCase();
}
function locate(chain) {
  chain = chain || __raChain;
  for (var i = 0; i < chain.length; i++) {
    var el = __raFind(chain[i]);
    if (el) return {index: i, label: chain[i].label, kind: __raKind(el), el: el};
  }
  return null;
}
"""

LOCATE_BODY = """
var hit = locate();
if (!hit) return {status: 'not_found'};
return {status: 'found', index: hit.index, label: hit.label, kind: hit.kind};
"""


def script_for(chain: SelectorChain, body: str) -> str:
    """Page script that defines ``locate()`` for *chain*, then runs *body*.

    *body* is trusted JavaScript that returns a plain object; caller data
    must reach it through :func:`js_data` literals only.  ``locate(other)``
    evaluates another serialized chain in the same round-trip.  An
    exception in the body becomes ``{status: 'error', message}``.
    """
    return (
        "(function () {\n"
        f"var __raChain = {chain.to_json()};\n"
        f"{_RUNTIME}\n"
        "var __raResult;\n"
        "try { __raResult = (function () {\n"
        f"{body}\n"
        "})(); } catch (e) { __raResult = {status: 'error', message: String(e)}; }\n"
        "return JSON.stringify(__raResult === undefined ? null : __raResult);\n"
        "})()"
    )


def js_data(value: Any) -> str:
    """JSON-encode *value* for embedding in a page script body."""
    if isinstance(value, str):
        return encode_for_structured_literal(value)
    return json.dumps(value, ensure_ascii=True)


def decode_page_result(result: ExecutionResult, what: str) -> Any:
    """Parse the JSON a page script printed.

    Raises:
        ScriptExecutionFailed: The run failed, timed out or printed non-JSON.
    """
    if not result.ok:
        reason = "timed out" if result.timed_out else f"exited {result.exit_code}"
        raise ScriptExecutionFailed(f"{what}: host run {reason}", result=result)
    text = result.output
    if not text or text == "missing value":
        return None
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ScriptExecutionFailed(f"{what}: unexpected output {text[:120]!r}", result=result) from exc


# ---------------------------------------------------------------------------
# Locator
# ---------------------------------------------------------------------------

class ElementLocator:
    """Evaluates selector chains through a :class:`RemoteBrowserSession`."""

    def __init__(self, session: RemoteBrowserSession) -> None:
        self.session = session

    script_for = staticmethod(script_for)

    def locate(self, chain: SelectorChain) -> LocateResult:
        """Find the first strategy in *chain* that matches an element.

        Raises:
            SelectorChainExhausted: No strategy matched.
            ScriptExecutionFailed: The page script could not run.
        """
        result = self.session.execute_script(script_for(chain, LOCATE_BODY))
        data = decode_page_result(result, f"locate {chain.describe()}")
        if not isinstance(data, dict) or data.get("status") == "error":
            message = data.get("message") if isinstance(data, dict) else data
            raise ScriptExecutionFailed(f"Locator script error: {message}", result=result)
        if data.get("status") != "found":
            logger.debug("Selector chain exhausted: %s", chain.describe())
            raise SelectorChainExhausted(
                f"No element matched {chain.name or 'selector chain'}",
                selector_chain=chain.describe(),
            )
        index = int(data["index"])
        logger.debug("Located %s via strategy %d (%s)", chain.name or "element", index, chain[index].label)
        return LocateResult(index=index, strategy=chain[index], element_kind=str(data.get("kind", "")))
