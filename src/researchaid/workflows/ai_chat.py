"""AI chat workflows and prompt builders.

``analyze-paper`` sends the paper in the active tab to ChatGPT, Gemini and
Claude.  Each chat is independent: one UI that fails to load does not stop
the others.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from researchaid.engine.errors import ScriptExecutionFailed
from researchaid.engine.sequence import AutomationStep, FailurePolicy, StepContext
from researchaid.models import AI_CHAT_URLS
from researchaid.workflows import selectors
from researchaid.workflows.base import WorkflowEnv

logger = logging.getLogger("researchaid.workflows.ai_chat")

_DOI_PATTERNS = [
    re.compile(r"doi\.org/(10\.\d{4,}[^\s]+)", re.IGNORECASE),
    re.compile(r"dx\.doi\.org/(10\.\d{4,}[^\s]+)", re.IGNORECASE),
    re.compile(r"doi:\s*(10\.\d{4,}[^\s]+)", re.IGNORECASE),
    re.compile(r"/doi/(10\.\d{4,}[^\s]+)", re.IGNORECASE),
]

RESEARCH_DOMAINS = (
    "arxiv.org",
    "doi.org",
    "pubmed.ncbi.nlm.nih.gov",
    "scholar.google.com",
    "ieee.org",
    "acm.org",
    "springer.com",
    "sciencedirect.com",
    "nature.com",
    "researchgate.net",
    "semanticscholar.org",
    "biorxiv.org",
    "medrxiv.org",
    "papers.ssrn.com",
)

# Reads the URL plus the DOI meta tag most publishers emit.
_PAGE_INFO_EXPRESSION = (
    "{url: location.href, title: document.title, "
    "doi: (document.querySelector('meta[name=\"citation_doi\"], meta[name=\"dc.identifier\"]') "
    "|| {}).content || null}"
)


def extract_doi(text: str) -> str | None:
    """First DOI found in *text* (a URL or citation string), or None."""
    if not text:
        return None
    for pattern in _DOI_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).rstrip(".,;)]")
    return None


def is_research_url(url: str) -> bool:
    if not url:
        return False
    lowered = url.lower()
    if any(domain in lowered for domain in RESEARCH_DOMAINS):
        return True
    return extract_doi(url) is not None


def build_analysis_prompt(paper_url: str, doi: str | None = None) -> str:
    identifier = f"DOI: {doi}" if doi else f"URL: {paper_url}"
    return f"""I need you to analyze the following research paper for an academic researcher:

{identifier}

Please provide a comprehensive analysis with the following sections:

1. **EXECUTIVE SUMMARY** (3-4 sentences)
   - Main contribution and significance of the paper

2. **KEY HIGHLIGHTS** (5-7 bullet points)
   - Most important findings and innovations
   - Novel methodologies or approaches
   - Significant results or breakthroughs

3. **CRITICAL FINDINGS FOR AUTHORS** (5-7 bullet points)
   - Technical insights that would benefit researchers in this field
   - Methodological considerations
   - Limitations or gaps identified
   - Future research directions mentioned

4. **RECOMMENDATIONS FOR SIMILAR WORK** (3-5 bullet points)
   - How this paper's insights could inform similar research
   - Techniques or approaches worth adopting
   - Pitfalls to avoid based on this work

Format your response with clear markdown sections. Focus on actionable insights that would be valuable to researchers working in related areas.

Note: If you cannot directly access the paper content, provide analysis based on the paper's abstract, title, and any publicly available information about this DOI/URL."""


def build_fix_prompt(errors: str, source: str) -> str:
    return f"""I'm working on a LaTeX document in Overleaf. I need you to analyze the compilation errors and provide CORRECTED CODE.

**INSTRUCTIONS:**
1. Review the error messages and the LaTeX source code below
2. Identify the exact problematic lines
3. Provide COMPLETE CORRECTED CODE for the problematic sections
4. Include surrounding context (5-10 lines before/after the fix)
5. Clearly mark what you changed

Format your response like this:
```
ERROR 1: [error description]
LINE: [line number]

CORRECTED CODE (with context):
[5-10 lines before]
[YOUR FIX HERE] <- Fixed line
[5-10 lines after]

EXPLANATION: [what was wrong and why this fixes it]
```

---
COMPILATION ERRORS:
{errors}

---
LATEX SOURCE CODE:
```latex
{source}
```

Please provide the corrected code sections now.
"""


def analyze_paper(env: WorkflowEnv) -> list[AutomationStep]:
    """Ask every chat UI for an analysis of the paper in the active tab."""

    def read_page(ctx: StepContext) -> dict[str, Any]:
        info = env.session.query(_PAGE_INFO_EXPRESSION)
        if not isinstance(info, dict) or not info.get("url"):
            raise ScriptExecutionFailed(f"Could not read the active tab: {info!r}")
        if not is_research_url(info["url"]):
            logger.warning("%s does not look like a research paper, continuing anyway", info["url"])
        return info

    def prompt(ctx: StepContext) -> str:
        page = ctx.value_of("read-page")
        doi = extract_doi(page["url"]) or extract_doi(f"doi:{page.get('doi') or ''}")
        if doi:
            logger.info("Paper DOI: %s", doi)
        return build_analysis_prompt(page["url"], doi)

    def ask(name: str):
        input_chain, send_chain = selectors.CHAT_TARGETS[name]

        def run(ctx: StepContext) -> Any:
            result = env.session.open_url(AI_CHAT_URLS[name])
            if not result.ok:
                return result
            env.wait_for_element(input_chain)
            return env.session.inject_text(
                input_chain, ctx.value_of("build-prompt"), submit_after=True, submit_chain=send_chain
            )

        return run

    return [
        env.step("read-page", read_page, post_delay=0),
        env.step("build-prompt", prompt, post_delay=0),
        env.step(
            "copy-prompt",
            lambda ctx: env.clipboard.write(ctx.value_of("build-prompt")),
            FailurePolicy.LOG_AND_CONTINUE,
            post_delay=0,
        ),
        *(env.step(f"ask-{name}", ask(name), FailurePolicy.LOG_AND_CONTINUE) for name in ("chatgpt", "gemini", "claude")),
    ]
