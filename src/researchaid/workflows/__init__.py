"""ResearchAid workflows.

Each builder takes a :class:`WorkflowEnv` and returns the list of
AutomationSteps for one user action.  ``WORKFLOWS`` maps the CLI name of
each workflow to ``(description, builder)``.
"""

from __future__ import annotations

from collections.abc import Callable

from researchaid.engine.sequence import AutomationStep
from researchaid.workflows.ai_chat import analyze_paper
from researchaid.workflows.base import WorkflowEnv, create_env
from researchaid.workflows.overleaf import ask_for_fix, compile_project, open_overleaf, paste_to_target, toggle_logs
from researchaid.workflows.projects import clone_template, sync_to_github
from researchaid.workflows.snippets import insert_snippet
from researchaid.workflows.spellcheck import spell_check_next, spell_check_prev

WorkflowBuilder = Callable[[WorkflowEnv], list[AutomationStep]]

WORKFLOWS: dict[str, tuple[str, WorkflowBuilder]] = {
    "open-overleaf": ("Switch to the Overleaf tab, opening one if needed", open_overleaf),
    "compile": ("Recompile and show the logs if there are errors", compile_project),
    "toggle-logs": ("Toggle the Overleaf preview between PDF and logs", toggle_logs),
    "ask-for-fix": ("Send compile errors and source to Gemini for a fix", ask_for_fix),
    "analyze-paper": ("Ask ChatGPT, Gemini and Claude to analyze the open paper", analyze_paper),
    "paste-to-target": ("Paste the clipboard into the configured Overleaf file", paste_to_target),
    "insert-snippet": ("Paste a LaTeX snippet at the editor caret (--param snippet=NAME)", insert_snippet),
    "spell-check-next": ("Jump to the next misspelled word and show suggestions", spell_check_next),
    "spell-check-prev": ("Jump to the previous misspelled word and show suggestions", spell_check_prev),
    "sync-to-github": ("Push the Overleaf project to GitHub with a commit message", sync_to_github),
    "clone-template": ("Copy a template project under a new name (--param template=ID)", clone_template),
}

__all__ = ["WORKFLOWS", "WorkflowBuilder", "WorkflowEnv", "create_env"]
