"""LaTeX snippet insertion.

``insert-snippet`` pastes a template at the caret of the Overleaf editor.
The template is picked with ``--param snippet=<name>``; tables also take
``rows`` and ``cols``.
"""

from __future__ import annotations

import logging

from researchaid.engine.errors import AutomationError
from researchaid.engine.sequence import AutomationStep, StepContext
from researchaid.models import DEFAULT_TABLE_SIZE, MAX_TABLE_SIZE
from researchaid.workflows.base import WorkflowEnv
from researchaid.workflows.overleaf import activate_overleaf, paste_text

logger = logging.getLogger("researchaid.workflows.snippets")

SNIPPETS: dict[str, str] = {
    "section": "\\section{Section Title}\n",
    "subsection": "\\subsection{Subsection Title}\n",
    "subsubsection": "\\subsubsection{Subsubsection Title}\n",
    "figure": (
        "\\begin{figure}[htbp]\n"
        "    \\centering\n"
        "    \\includegraphics[width=0.8\\textwidth]{filename.png}\n"
        "    \\caption{Your caption here}\n"
        "    \\label{fig:label}\n"
        "\\end{figure}"
    ),
    "equation": "\\begin{equation}\n    E = mc^2\n    \\label{eq:label}\n\\end{equation}",
    "itemize": "\\begin{itemize}\n    \\item Item 1\n    \\item Item 2\n\\end{itemize}",
    "enumerate": "\\begin{enumerate}\n    \\item Item 1\n    \\item Item 2\n\\end{enumerate}",
    "frame": "\\begin{frame}{Title}\n    Content\n\\end{frame}",
    "python": "\\begin{lstlisting}[language=Python, caption=Code description]\n# Your code here\n\n\\end{lstlisting}",
    "javascript": (
        "\\begin{lstlisting}[language=JavaScript, caption=Code description]\n"
        "// Your JavaScript code here\n\n"
        "\\end{lstlisting}"
    ),
}

# Generated from rows/cols, see table_template()
SNIPPET_NAMES = sorted([*SNIPPETS, "table"])


def clamp_table_size(value: int) -> int:
    return max(1, min(MAX_TABLE_SIZE, value))


def table_template(rows: int = DEFAULT_TABLE_SIZE, cols: int = DEFAULT_TABLE_SIZE) -> str:
    """A ruled ``tabular`` of *rows* x *cols* placeholder cells, each clamped to 1..20."""
    rows, cols = clamp_table_size(rows), clamp_table_size(cols)
    lines = [
        "\\begin{table}[htbp]",
        "    \\centering",
        "    \\begin{tabular}{|" + "c|" * cols + "}",
        "        \\hline",
    ]
    for r in range(1, rows + 1):
        cells = " & ".join(f"Cell {r},{c}" for c in range(1, cols + 1))
        lines.append(f"        {cells} \\\\")
        lines.append("        \\hline")
    lines += [
        "    \\end{tabular}",
        "    \\caption{Your table caption}",
        "    \\label{tab:label}",
        "\\end{table}",
        "",
    ]
    return "\n".join(lines)


def snippet_text(name: str, rows: int = DEFAULT_TABLE_SIZE, cols: int = DEFAULT_TABLE_SIZE) -> str:
    """Template text for snippet *name* (case-insensitive).

    Raises:
        AutomationError: *name* is not a known snippet.
    """
    key = name.strip().lower()
    if key == "table":
        return table_template(rows, cols)
    if key not in SNIPPETS:
        raise AutomationError(f"Unknown snippet {name!r}; choose one of: {', '.join(SNIPPET_NAMES)}")
    return SNIPPETS[key]


def _int_param(env: WorkflowEnv, name: str) -> int:
    raw = env.param(name, str(DEFAULT_TABLE_SIZE))
    try:
        return int(raw)
    except ValueError:
        raise AutomationError(f"--param {name} must be a whole number, got {raw!r}") from None


def insert_snippet(env: WorkflowEnv) -> list[AutomationStep]:
    """Paste the chosen LaTeX snippet at the caret of the Overleaf editor."""

    def choose(ctx: StepContext) -> str:
        name = env.param("snippet")
        if name is None:
            raise AutomationError(f"Pass --param snippet=<name>; choose one of: {', '.join(SNIPPET_NAMES)}")
        text = snippet_text(name, _int_param(env, "rows"), _int_param(env, "cols"))
        logger.info("Inserting %s snippet (%d chars)", name, len(text))
        return text

    def paste(ctx: StepContext) -> str:
        text = ctx.value_of("choose-snippet")
        paste_text(env, text)
        return f"pasted {len(text)} chars"

    return [
        env.step("choose-snippet", choose, post_delay=0),
        activate_overleaf(env),
        env.step("paste-snippet", paste),
    ]
