"""Selector chains for the pages ResearchAid drives.

Overleaf and the chat UIs change their markup often; each chain lists the
current selector first and older or more generic fallbacks after it.
"""

from __future__ import annotations

from researchaid.engine.locator import SelectorChain
from researchaid.engine.locator import SelectorStrategy as S

# ── Overleaf ────────────────────────────────────────────────────────────────

RECOMPILE_BUTTON = SelectorChain.of(
    S.css(".btn-recompile", "recompile-class"),
    S.css('button[ng-click*="recompile"]', "recompile-angular"),
    S.css('button[aria-label*="Recompile"]', "recompile-aria"),
    S.text(r"^\s*recompile\s*$", tags="button", label="recompile-text"),
    name="recompile button",
)

COMPILE_SPINNER = SelectorChain.of(
    S.visible(".fa-spinner", "fa-spinner"),
    S.visible(".loading-spinner", "loading-spinner"),
    S.visible('.btn-recompile[aria-busy="true"]', "recompile-busy"),
    name="compile spinner",
)

COMPILE_ERROR_BADGE = SelectorChain.of(
    S.css(".toolbar-pdf-orphan-refresh-error", "orphan-refresh-error"),
    S.css('.toolbar-pdf [aria-label*="error"]', "toolbar-aria-error"),
    S.visible(".alert-danger", "alert-danger"),
    name="compile error badge",
)

LOG_TOGGLE_BUTTON = SelectorChain.of(
    S.css("button.log-btn", "log-btn"),
    S.css('button[aria-label*="logs" i]', "logs-aria"),
    S.text(r"logs", tags="button", label="logs-text"),
    name="log toggle button",
)

LOGS_PANE = SelectorChain.of(
    S.visible(".logs-pane", "logs-pane"),
    S.visible(".log-entries", "log-entries"),
    S.visible('[class*="log"][class*="panel"]', "log-panel"),
    name="logs pane",
)

LOG_ERROR_ENTRIES = SelectorChain.of(
    S.css(".log-entry-header-error", "log-entry-header-error"),
    S.css(".log-entry.log-entry-error", "log-entry-error"),
    S.css('[class*="error"][class*="log"]', "error-log-class"),
    name="log error entries",
)

EDITOR_CONTENT = SelectorChain.of(
    S.css('.cm-content[contenteditable="true"]', "codemirror6"),
    S.css(".CodeMirror", "codemirror5"),
    S.css(".ace_editor", "ace"),
    S.heuristic("largest-textarea", "textarea"),
    name="editor content",
)

FILE_TREE = SelectorChain.of(
    S.css(".file-tree", "file-tree"),
    S.css('[role="tree"]', "aria-tree"),
    name="file tree",
)


def file_tree_entry(file_name: str) -> SelectorChain:
    """Chain for the file-tree row named exactly *file_name*.

    The pattern is anchored: a folder row's text contains its children's
    names, and ``old-references.bib`` must not match ``references.bib``.
    The row's name button is tried before the ``treeitem`` itself.
    """
    pattern = rf"^\s*{_literal_pattern(file_name)}\s*$"
    return SelectorChain.of(
        S.text(pattern, tags=".file-tree .item-name-button, .file-tree .entity-name", label="file-tree-name"),
        S.text(pattern, tags='.file-tree [role="treeitem"]', label="file-tree-item"),
        S.text(pattern, tags=".file-tree a, .file-tree button, .file-tree span", label="file-tree-link"),
        name=f"file tree entry {file_name}",
    )


def _literal_pattern(text: str) -> str:
    # JavaScript and Python agree on these escapes.
    return "".join("\\" + ch if ch in r"\^$.|?*+()[]{}/" else ch for ch in text)


SPELLING_ERRORS = SelectorChain.of(
    S.css(".ol-cm-spelling-error", "ol-spelling-error"),
    S.css(".cm-spelling-error", "cm-spelling-error"),
    S.css(".cm-lintRange-spelling", "lint-spelling"),
    S.css('.cm-content [class*="spell"][class*="error"]', "spell-error-class"),
    S.css('.cm-content span[style*="wavy"]', "wavy-underline"),
    name="spelling errors",
)

# ── Overleaf GitHub sync ────────────────────────────────────────────────────

MENU_BUTTON = SelectorChain.of(
    S.css('button[aria-label="Menu"]', "menu-aria"),
    S.text(r"^\s*menu\s*$", tags="button", label="menu-text"),
    S.css(".toolbar-left button:first-child", "toolbar-left"),
    S.css("header nav button", "header-nav"),
    S.css(".navbar-toggle", "navbar-toggle"),
    name="editor menu button",
)

_MENU_ITEMS = 'button, a, [role="menuitem"], div[role="button"]'

GITHUB_MENU_ITEM = SelectorChain.of(
    S.text(r"^\s*github\s*$", tags=_MENU_ITEMS, label="github-exact"),
    # The sync dialog's own heading also says GitHub.
    S.text(r"^(?![\s\S]*sync to github)[\s\S]*github", tags=_MENU_ITEMS, label="github-text"),
    S.text(r"^(?![\s\S]*sync to github)[\s\S]*github", tags="li", label="github-item"),
    name="GitHub menu entry",
)

PUSH_TO_GITHUB_BUTTON = SelectorChain.of(
    S.text(r"push overleaf changes to github", tags="button", label="push-text"),
    S.text(r"^\s*push\b[\s\S]*github", tags="button", label="push-github"),
    name="push to GitHub button",
)

COMMIT_MESSAGE_INPUT = SelectorChain.of(
    S.visible('textarea[placeholder*="Commit message" i]', "commit-placeholder"),
    S.last_visible('.modal textarea, [role="dialog"] textarea', "modal-textarea"),
    S.last_visible("textarea", "last-textarea"),
    name="commit message input",
)

SYNC_CONFIRM_BUTTON = SelectorChain.of(
    S.text(r"^\s*(sync|push)\s*$", tags='.modal-footer button, [role="dialog"] button', label="sync-modal"),
    S.text(r"^\s*(sync|push)\s*$", tags="button", label="sync-text"),
    name="sync confirm button",
)

# ── Overleaf project list ───────────────────────────────────────────────────

PROJECT_NAME_INPUT = SelectorChain.of(
    S.visible('input[name="projectName"]', "project-name-input"),
    S.visible('.modal input[type="text"], [role="dialog"] input[type="text"]', "modal-text-input"),
    S.visible('input[type="text"]', "text-input"),
    name="project name input",
)

PROJECT_NAME_SUBMIT = SelectorChain.of(
    S.css(".modal-footer button.btn-primary", "modal-primary"),
    S.css('[role="dialog"] button[type="submit"]', "dialog-submit"),
    S.css('button[type="submit"]', "submit"),
    name="copy project confirm button",
)


def project_row(project_id: str) -> SelectorChain:
    """Chain for the project-list link to project *project_id*."""
    return SelectorChain.of(
        S.css(f'tbody tr a[href*="/project/{project_id}"]', "project-link"),
        S.css(f'a[href$="/project/{project_id}"]', "project-href"),
        name=f"project {project_id}",
    )


def project_copy_button(project_id: str) -> SelectorChain:
    """Chain for the Copy action on the project-list row of *project_id*."""
    row = f'tbody tr:has(a[href*="/project/{project_id}"])'
    return SelectorChain.of(
        S.css(f'{row} button[aria-label="Copy"]', "copy-aria"),
        S.text(r"^\s*file_copy\s*$", tags=f"{row} button", label="copy-icon"),
        name=f"copy button for project {project_id}",
    )


# ── AI chat UIs ─────────────────────────────────────────────────────────────

CHATGPT_INPUT = SelectorChain.of(
    S.visible("#prompt-textarea", "prompt-textarea"),
    S.visible('textarea[placeholder*="Message"]', "textarea-placeholder"),
    S.visible('textarea[data-id="root"]', "textarea-root"),
    S.visible(".ProseMirror[contenteditable='true']", "prosemirror"),
    S.heuristic("first-visible-contenteditable", "contenteditable"),
    S.visible("textarea", "textarea"),
    S.visible('input[type="text"]', "text-input"),
    name="ChatGPT prompt input",
)

CHATGPT_SEND = SelectorChain.of(
    S.css('button[data-testid="send-button"]', "send-testid"),
    S.css('button[aria-label*="Send"]', "send-aria"),
    S.css('button[type="submit"]', "submit"),
    name="ChatGPT send button",
)

GEMINI_INPUT = SelectorChain.of(
    S.shadow("rich-textarea", 'div[contenteditable="true"]', "rich-textarea"),
    S.heuristic("first-visible-contenteditable", "contenteditable"),
    S.visible("textarea", "textarea"),
    name="Gemini prompt input",
)

GEMINI_SEND = SelectorChain.of(
    S.css('button[aria-label*="Send"]', "send-aria"),
    S.css("button.send-button", "send-class"),
    S.css('button[type="submit"]', "submit"),
    name="Gemini send button",
)

CLAUDE_INPUT = SelectorChain.of(
    S.visible('div.ProseMirror[contenteditable="true"]', "prosemirror"),
    S.visible('[aria-label*="prompt" i][contenteditable="true"]', "prompt-aria"),
    S.heuristic("first-visible-contenteditable", "contenteditable"),
    S.visible("textarea", "textarea"),
    name="Claude prompt input",
)

CLAUDE_SEND = SelectorChain.of(
    S.css('button[aria-label*="Send"]', "send-aria"),
    S.css('button[type="submit"]', "submit"),
    name="Claude send button",
)

CHAT_TARGETS = {
    "chatgpt": (CHATGPT_INPUT, CHATGPT_SEND),
    "gemini": (GEMINI_INPUT, GEMINI_SEND),
    "claude": (CLAUDE_INPUT, CLAUDE_SEND),
}
