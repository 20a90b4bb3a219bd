"""Spell-check navigation in the Overleaf editor.

``spell-check-next`` and ``spell-check-prev`` move to the following or
preceding word the editor underlines as misspelled, wrapping at either end,
and open its suggestion menu.  The position is kept in the page
(``window.__raSpellIndex``), so consecutive runs walk the list.
"""

from __future__ import annotations

import logging
from typing import Any

from researchaid.engine.errors import ScriptExecutionFailed
from researchaid.engine.locator import decode_page_result, js_data, script_for
from researchaid.engine.sequence import AutomationStep, StepContext
from researchaid.workflows import selectors
from researchaid.workflows.base import WorkflowEnv
from researchaid.workflows.overleaf import activate_overleaf

logger = logging.getLogger("researchaid.workflows.spellcheck")

_MOVE_BODY = """
document.dispatchEvent(new KeyboardEvent('keydown', {key: 'Escape', keyCode: 27, bubbles: true}));
var hit = locate();
if (!hit) return {status: 'none'};
var marks = document.querySelectorAll(__raChain[hit.index].value);
var step = __STEP__;
var last = typeof window.__raSpellIndex === 'number' ? window.__raSpellIndex : (step > 0 ? -1 : 0);
var index = ((last + step) % marks.length + marks.length) % marks.length;
window.__raSpellIndex = index;
var mark = marks[index];
if (mark.scrollIntoView) mark.scrollIntoView({block: 'center'});
mark.click();
var rect = mark.getBoundingClientRect();
mark.dispatchEvent(new MouseEvent('contextmenu', {
  bubbles: true, cancelable: true, view: window, button: 2, buttons: 2,
  clientX: rect.left + rect.width / 2, clientY: rect.top + rect.height / 2
}));
return {status: 'found', index: index, count: marks.length, word: (mark.textContent || '').trim()};
"""


def move_to_spelling_error(env: WorkflowEnv, step: int) -> dict[str, Any]:
    """Select the misspelling *step* places from the last one and open its menu.

    Returns the page's report: ``status`` is ``found`` (with ``index``,
    ``count`` and ``word``) or ``none`` when nothing is underlined.
    """
    body = _MOVE_BODY.replace("__STEP__", js_data(step))
    result = env.session.execute_script(script_for(selectors.SPELLING_ERRORS, body))
    data = decode_page_result(result, "spell check")
    if not isinstance(data, dict) or data.get("status") not in ("found", "none"):
        raise ScriptExecutionFailed(f"Spell check script returned {data!r}", result=result)
    return data


def _spell_check(env: WorkflowEnv, step: int) -> list[AutomationStep]:
    def move(ctx: StepContext) -> str:
        data = move_to_spelling_error(env, step)
        if data["status"] == "none":
            logger.info("No spelling errors marked in the editor")
            return "no spelling errors"
        logger.info("Spelling error %d of %d: %s", data["index"] + 1, data["count"], data.get("word"))
        return f"{data['index'] + 1}/{data['count']} {data.get('word', '')}".rstrip()

    return [
        activate_overleaf(env),
        env.step("select-spelling-error", move),
    ]


def spell_check_next(env: WorkflowEnv) -> list[AutomationStep]:
    """Jump to the next misspelled word and show its suggestions."""
    return _spell_check(env, 1)


def spell_check_prev(env: WorkflowEnv) -> list[AutomationStep]:
    """Jump to the previous misspelled word and show its suggestions."""
    return _spell_check(env, -1)
