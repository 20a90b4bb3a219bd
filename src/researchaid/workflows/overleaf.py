"""Overleaf workflows: open, compile, toggle logs, ask for a fix, paste.

Workflows act on an existing Overleaf tab; only open-overleaf creates one.
Fixed sleeps are replaced by polling observable page state.
"""

from __future__ import annotations

import logging
from typing import Any

from researchaid.clipboard import preserved_clipboard
from researchaid.engine.automator import PRIMARY
from researchaid.engine.errors import AutomationError, ScriptExecutionFailed, SelectorChainExhausted
from researchaid.engine.locator import decode_page_result, js_data, script_for
from researchaid.engine.script_runner import Platform
from researchaid.engine.sequence import AutomationStep, FailurePolicy, StepContext
from researchaid.engine.waiter import PollStatus
from researchaid.models import AI_CHAT_URLS
from researchaid.workflows import selectors
from researchaid.workflows.ai_chat import build_fix_prompt
from researchaid.workflows.base import WorkflowEnv

logger = logging.getLogger("researchaid.workflows.overleaf")

MAX_ERRORS = 3
MAX_SOURCE_CHARS = 5000
# How long a triggered compile may take to show its spinner
COMPILE_START_WAIT = 5.0

_COMPILE_STATE_BODY = """
var button = locate();
var spinner = locate(__SPINNER__);
var busy = !!(button && (button.el.disabled || button.el.getAttribute('aria-busy') === 'true'));
return {button: !!button, compiling: busy || !!spinner};
"""

_EXTRACT_ERRORS_BODY = """
var hit = locate();
if (!hit) return {status: 'not_found', errors: []};
var headers = Array.prototype.slice.call(document.querySelectorAll(__raChain[hit.index].value), 0, __MAX__);
var errors = headers.map(function (header) {
  var entry = header.closest ? (header.closest('.log-entry') || header) : header;
  var title = header.querySelector('.log-entry-header-title, .log-entry-content-raw-container') || header;
  var location = header.querySelector('.log-entry-header-link-location, [class*="location"]');
  var details = '';
  var blocks = entry.querySelectorAll('.log-entry-content, .log-entry-content-raw-container, pre');
  for (var i = 0; i < blocks.length; i++) {
    var text = (blocks[i].textContent || '').trim();
    if (text.length > 10) { details = text.substring(0, 500); break; }
  }
  return {
    title: (title.textContent || '').trim().substring(0, 300),
    location: location ? location.textContent.trim() : '',
    details: details
  };
});
return {status: 'found', errors: errors};
"""

_EXTRACT_SOURCE_BODY = """
var hit = locate();
if (!hit) return {status: 'not_found'};
var el = hit.el, text = '';
if (el.classList.contains('cm-content')) {
  text = Array.prototype.map.call(el.querySelectorAll('.cm-line'), function (line) {
    return line.textContent;
  }).join('\\n');
} else if (el.CodeMirror && el.CodeMirror.getValue) {
  text = el.CodeMirror.getValue();
} else if (el.classList.contains('ace_editor') && window.ace) {
  text = window.ace.edit(el).getValue();
} else if ('value' in el) {
  text = el.value;
}
return {status: 'found', label: hit.label, text: text};
"""


# -- Page queries ---------------------------------------------------------------

def compile_state(env: WorkflowEnv) -> dict[str, Any]:
    """``{"button": bool, "compiling": bool}`` for the active Overleaf tab."""
    body = _COMPILE_STATE_BODY.replace("__SPINNER__", selectors.COMPILE_SPINNER.to_json())
    result = env.session.execute_script(script_for(selectors.RECOMPILE_BUTTON, body))
    data = decode_page_result(result, "compile state")
    if not isinstance(data, dict) or "compiling" not in data:
        raise ScriptExecutionFailed(f"Compile state script returned {data!r}", result=result)
    return data


def extract_errors(env: WorkflowEnv) -> list[dict[str, str]]:
    body = _EXTRACT_ERRORS_BODY.replace("__MAX__", js_data(MAX_ERRORS))
    result = env.session.execute_script(script_for(selectors.LOG_ERROR_ENTRIES, body))
    data = decode_page_result(result, "extract errors")
    if not isinstance(data, dict):
        raise ScriptExecutionFailed(f"Error extraction returned {data!r}", result=result)
    return list(data.get("errors") or [])


def format_errors(errors: list[dict[str, str]]) -> str:
    blocks = []
    for number, error in enumerate(errors, start=1):
        lines = [f"=== ERROR {number} ===", f"Error: {error.get('title', '')}"]
        if error.get("location"):
            lines.append(f"Location: {error['location']}")
        if error.get("details"):
            lines.extend(["", "Details:", error["details"]])
        blocks.append("\n".join(lines))
    return "\n---\n\n".join(blocks)


def extract_source(env: WorkflowEnv) -> str:
    """Text of the open editor, truncated to MAX_SOURCE_CHARS."""
    result = env.session.execute_script(script_for(selectors.EDITOR_CONTENT, _EXTRACT_SOURCE_BODY))
    data = decode_page_result(result, "extract source")
    if not isinstance(data, dict) or data.get("status") != "found":
        raise SelectorChainExhausted(
            "No editor found; open the main .tex file first",
            selector_chain=selectors.EDITOR_CONTENT.describe(),
        )
    text = str(data.get("text") or "")
    if len(text) > MAX_SOURCE_CHARS:
        logger.info("Source is %d chars, truncating to %d", len(text), MAX_SOURCE_CHARS)
        text = text[:MAX_SOURCE_CHARS]
    return text


# -- Shared steps ---------------------------------------------------------------

def activate_overleaf(env: WorkflowEnv) -> AutomationStep:
    """Step that brings the Overleaf tab to the front, failing if none is open."""
    return env.step("activate-overleaf", lambda ctx: env.session.require_tab(env.config.overleaf_tab_fragment))


def paste_text(env: WorkflowEnv, text: str) -> None:
    """Paste *text* where the caret is, through a clipboard round-trip.

    The user's clipboard is restored afterwards.
    """
    with preserved_clipboard(env.clipboard):
        env.clipboard.write(text)
        result = env.automator.send_shortcut("v", (PRIMARY,), cancel=env.cancel)
        if not result.ok:
            raise ScriptExecutionFailed("Paste shortcut failed", result=result)
        # Keep the paste data on the clipboard until the editor has taken it.
        env.cancel.sleep(env.config.step_delay)


def _compile_steps(env: WorkflowEnv) -> list[AutomationStep]:
    def trigger(ctx: StepContext) -> str:
        try:
            env.session.click(selectors.RECOMPILE_BUTTON)
            return "button"
        except SelectorChainExhausted:
            logger.info("Recompile button not found, sending save shortcut")
        result = env.automator.send_shortcut("s", (PRIMARY,), cancel=env.cancel)
        if not result.ok:
            raise ScriptExecutionFailed("Save shortcut failed", result=result)
        return "shortcut"

    def compiling(expected: bool):
        def check() -> PollStatus | tuple[PollStatus, str]:
            try:
                state = compile_state(env)
            except ScriptExecutionFailed as exc:
                return PollStatus.ERROR, exc.message
            return PollStatus.SATISFIED if bool(state["compiling"]) == expected else PollStatus.NOT_YET

        return check

    def wait_started(ctx: StepContext) -> Any:
        budget = min(COMPILE_START_WAIT, env.config.compile_timeout)
        interval = min(env.config.poll_interval, budget)
        return env.waiter.wait_for(
            compiling(True), max_wait=budget, interval=interval, description="compile started"
        ).raise_for_outcome()

    def wait_finished(ctx: StepContext) -> Any:
        interval = min(env.config.poll_interval, env.config.compile_timeout)
        return env.waiter.wait_for(
            compiling(False),
            max_wait=env.config.compile_timeout,
            interval=interval,
            description="compile finished",
        ).raise_for_outcome()

    return [
        env.step("trigger-compile", trigger),
        # A fast compile can finish before the first check sees the spinner.
        env.step("wait-compile-start", wait_started, FailurePolicy.LOG_AND_CONTINUE, post_delay=0),
        env.step("wait-compile-finish", wait_finished),
    ]


# -- Workflows ------------------------------------------------------------------

def open_overleaf(env: WorkflowEnv) -> list[AutomationStep]:
    """Activate an Overleaf tab, or open one and wait for it."""
    fragment = env.config.overleaf_tab_fragment

    def open_if_missing(ctx: StepContext) -> Any:
        if ctx.value_of("find-overleaf-tab"):
            return "already open"
        return env.session.open_url(env.config.overleaf_url)

    def wait_for_tab(ctx: StepContext) -> Any:
        if ctx.value_of("find-overleaf-tab"):
            return None
        interval = min(env.config.poll_interval, env.config.page_load_timeout)
        return env.waiter.wait_for(
            lambda: env.session.find_tab(fragment) is not None,
            max_wait=env.config.page_load_timeout,
            interval=interval,
            description="Overleaf tab open",
        ).raise_for_outcome()

    return [
        env.step("find-overleaf-tab", lambda ctx: env.session.activate_tab_matching(fragment), post_delay=0),
        env.step("open-overleaf", open_if_missing),
        env.step("wait-for-tab", wait_for_tab),
    ]


def compile_project(env: WorkflowEnv) -> list[AutomationStep]:
    """Recompile, wait for the result, and show the logs if it has errors."""

    def show_logs_on_error(ctx: StepContext) -> Any:
        if not ctx.value_of("check-errors", False):
            return "no errors"
        return env.session.click(selectors.LOG_TOGGLE_BUTTON)

    return [
        activate_overleaf(env),
        *_compile_steps(env),
        env.step(
            "check-errors",
            lambda ctx: env.session.exists(selectors.COMPILE_ERROR_BADGE),
            FailurePolicy.LOG_AND_CONTINUE,
        ),
        env.step("show-logs", show_logs_on_error, FailurePolicy.LOG_AND_CONTINUE),
    ]


def toggle_logs(env: WorkflowEnv) -> list[AutomationStep]:
    """Switch the Overleaf preview between PDF and logs."""
    return [
        activate_overleaf(env),
        env.step("toggle-logs", lambda ctx: env.session.click(selectors.LOG_TOGGLE_BUTTON)),
    ]


def ask_for_fix(env: WorkflowEnv) -> list[AutomationStep]:
    """Send the compile errors and source to Gemini and ask for a fix."""

    def ensure_logs(ctx: StepContext) -> Any:
        if env.session.exists(selectors.LOGS_PANE):
            return "visible"
        env.session.click(selectors.LOG_TOGGLE_BUTTON)
        return env.wait_for_element(selectors.LOGS_PANE)

    def errors(ctx: StepContext) -> str:
        found = extract_errors(env)
        if not found:
            raise SelectorChainExhausted(
                "No compile errors in the logs; the document may have compiled cleanly",
                selector_chain=selectors.LOG_ERROR_ENTRIES.describe(),
            )
        logger.info("Extracted %d compile errors", len(found))
        return format_errors(found)

    def prompt(ctx: StepContext) -> str:
        source = ctx.value_of("extract-source") or "(source code unavailable)"
        return build_fix_prompt(ctx.value_of("extract-errors"), source)

    def open_gemini(ctx: StepContext) -> Any:
        return env.session.open_url(AI_CHAT_URLS["gemini"])

    def inject(ctx: StepContext) -> Any:
        return env.session.inject_text(
            selectors.GEMINI_INPUT,
            ctx.value_of("build-prompt"),
            submit_after=True,
            submit_chain=selectors.GEMINI_SEND,
        )

    return [
        activate_overleaf(env),
        *_compile_steps(env),
        env.step("show-logs", ensure_logs, FailurePolicy.LOG_AND_CONTINUE),
        env.step("extract-errors", errors),
        env.step("extract-source", lambda ctx: extract_source(env), FailurePolicy.LOG_AND_CONTINUE),
        env.step("build-prompt", prompt, post_delay=0),
        env.step("open-gemini", open_gemini),
        env.step("wait-for-gemini-input", lambda ctx: env.wait_for_element(selectors.GEMINI_INPUT)),
        env.step("inject-prompt", inject),
    ]


def paste_to_target(env: WorkflowEnv) -> list[AutomationStep]:
    """Paste the clipboard into the configured target file in Overleaf.

    Appends at the end of the file, or replaces its whole content when
    ``replace_file_content`` is set.  The clipboard is restored afterwards.
    """
    target = env.config.target_file_name

    def read_clipboard(ctx: StepContext) -> str:
        text = env.clipboard.read()
        if not text.strip():
            raise AutomationError("Clipboard is empty; copy something to paste first")
        return text

    def paste(ctx: StepContext) -> str:
        text = ctx.value_of("read-clipboard")
        paste_text(env, text)
        return f"pasted {len(text)} chars into {target}"

    def place_caret(ctx: StepContext) -> Any:
        env.session.click(selectors.EDITOR_CONTENT)
        if env.config.replace_file_content:
            return env.automator.send_shortcut("a", (PRIMARY,), cancel=env.cancel)
        end_key = "down" if env.automator.platform is Platform.MACOS else "end"
        return env.automator.send_shortcut(end_key, (PRIMARY,), cancel=env.cancel)

    return [
        env.step("read-clipboard", read_clipboard, post_delay=0),
        activate_overleaf(env),
        env.step("open-target-file", lambda ctx: env.session.click(selectors.file_tree_entry(target))),
        env.step("wait-for-editor", lambda ctx: env.wait_for_element(selectors.EDITOR_CONTENT)),
        env.step("place-caret", place_caret),
        env.step("paste", paste),
    ]
