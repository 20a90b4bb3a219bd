"""Overleaf project management: GitHub sync and template cloning."""

from __future__ import annotations

import logging
import re
import threading
from typing import Any

from researchaid.engine.errors import AutomationError, ScriptExecutionFailed, SelectorChainExhausted
from researchaid.engine.locator import SelectorChain, decode_page_result, script_for
from researchaid.engine.sequence import AutomationStep, FailurePolicy, StepContext
from researchaid.engine.waiter import PollStatus
from researchaid.workflows import selectors
from researchaid.workflows.base import WorkflowEnv
from researchaid.workflows.overleaf import activate_overleaf

logger = logging.getLogger("researchaid.workflows.projects")

DEFAULT_TEMPLATE = "TemplateA"

_BUTTON_STATE_BODY = """
var hit = locate();
if (!hit) return {status: 'not_found'};
var off = !!hit.el.disabled || hit.el.getAttribute('aria-disabled') === 'true';
return {status: off ? 'disabled' : 'enabled', index: hit.index, label: hit.label};
"""

_PROJECT_NAMES = (
    "Array.prototype.map.call(document.querySelectorAll('tbody tr a[href*=\"/project/\"]'),"
    " function (a) { return (a.textContent || '').trim(); })"
)


def click_enabled(env: WorkflowEnv, chain: SelectorChain, disabled_message: str) -> Any:
    """Click the element *chain* finds, refusing when it is disabled.

    Raises:
        SelectorChainExhausted: Nothing matched.
        AutomationError: The element is disabled; *disabled_message* says why.
    """
    result = env.session.execute_script(script_for(chain, _BUTTON_STATE_BODY))
    data = decode_page_result(result, f"{chain.name} state")
    status = data.get("status") if isinstance(data, dict) else None
    if status == "not_found":
        raise SelectorChainExhausted(f"Nothing to click for {chain.name}", selector_chain=chain.describe())
    if status == "disabled":
        raise AutomationError(disabled_message, selector_chain=chain.describe())
    if status != "enabled":
        raise ScriptExecutionFailed(f"Button state script returned {data!r}", result=result)
    return env.session.click(chain)


# -- sync-to-github -------------------------------------------------------------

def sync_to_github(env: WorkflowEnv) -> list[AutomationStep]:
    """Push the open Overleaf project to its linked GitHub repository.

    Menu, GitHub, "Push Overleaf changes to GitHub", commit message, Sync.
    The message is ``--param message=...`` or ``commit_message`` from config.
    """
    message = env.param("message", env.config.commit_message)

    def dialog_closed() -> PollStatus | tuple[PollStatus, str]:
        try:
            present = env.session.exists(selectors.COMMIT_MESSAGE_INPUT)
        except ScriptExecutionFailed as exc:
            return PollStatus.NOT_YET, exc.message
        return PollStatus.NOT_YET if present else PollStatus.SATISFIED

    def wait_for_sync(ctx: StepContext) -> Any:
        interval = min(env.config.poll_interval, env.config.page_load_timeout)
        return env.waiter.wait_for(
            dialog_closed,
            max_wait=env.config.page_load_timeout,
            interval=interval,
            description="GitHub sync dialog closed",
        ).raise_for_outcome()

    def push(ctx: StepContext) -> Any:
        return click_enabled(
            env,
            selectors.PUSH_TO_GITHUB_BUTTON,
            "Push to GitHub is disabled; pull the GitHub changes into Overleaf first",
        )

    def confirm(ctx: StepContext) -> Any:
        return click_enabled(env, selectors.SYNC_CONFIRM_BUTTON, "Sync button is disabled")

    def wait_for(chain: SelectorChain):
        return lambda ctx: env.wait_for_element(chain)

    return [
        activate_overleaf(env),
        env.step("open-menu", lambda ctx: env.session.click(selectors.MENU_BUTTON)),
        env.step("wait-for-github-entry", wait_for(selectors.GITHUB_MENU_ITEM), post_delay=0),
        env.step("open-github", lambda ctx: env.session.click(selectors.GITHUB_MENU_ITEM)),
        env.step("wait-for-push-button", wait_for(selectors.PUSH_TO_GITHUB_BUTTON), post_delay=0),
        env.step("push-changes", push),
        env.step("wait-for-commit-message", wait_for(selectors.COMMIT_MESSAGE_INPUT), post_delay=0),
        env.step("enter-commit-message", lambda ctx: env.session.inject_text(selectors.COMMIT_MESSAGE_INPUT, message)),
        env.step("confirm-sync", confirm),
        # Overleaf keeps the dialog open while the push runs.
        env.step("wait-for-sync", wait_for_sync, FailurePolicy.LOG_AND_CONTINUE),
    ]


# -- clone-template -------------------------------------------------------------

def project_id_from_url(url: str) -> str:
    """Last path segment of an Overleaf project URL.

    Raises:
        AutomationError: The segment is not a plain alphanumeric id.
    """
    project_id = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    if not re.fullmatch(r"[0-9A-Za-z]+", project_id):
        raise AutomationError(f"Not an Overleaf project URL: {url}")
    return project_id


class ProjectCounter:
    """Numbers the copies made from each template.

    The next number is one past the highest ``New Project<N> - <template>``
    already in the project list, and never reuses a number handed out
    earlier in this process, even before the list shows it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._issued: dict[str, int] = {}

    def next_name(self, template: str, existing: list[str]) -> str:
        pattern = re.compile(rf"^New Project(\d+) - {re.escape(template)}$")
        seen = [int(m.group(1)) for name in existing if (m := pattern.match(name.strip()))]
        with self._lock:
            number = max([0, self._issued.get(template, 0), *seen]) + 1
            self._issued[template] = number
        return f"New Project{number} - {template}"


project_counter = ProjectCounter()


def clone_template(env: WorkflowEnv) -> list[AutomationStep]:
    """Copy a template project from the Overleaf project list under a fresh name.

    The template is ``--param template=<id>`` (default ``TemplateA``), looked
    up in the ``clone_templates`` config mapping.
    """
    template = env.param("template", DEFAULT_TEMPLATE)

    def resolve(ctx: StepContext) -> str:
        url = env.config.clone_templates.get(template)
        if url is None:
            raise AutomationError(
                f"Unknown template {template!r}; configured: {', '.join(env.config.clone_templates)}"
            )
        return project_id_from_url(url)

    def wait_for_list(ctx: StepContext) -> Any:
        return env.wait_for_element(selectors.project_row(ctx.value_of("resolve-template")))

    def name_copy(ctx: StepContext) -> str:
        existing = env.session.query(_PROJECT_NAMES)
        name = project_counter.next_name(template, [str(n) for n in existing or []])
        logger.info("Cloning %s as %r", template, name)
        return name

    def copy(ctx: StepContext) -> Any:
        return env.session.click(selectors.project_copy_button(ctx.value_of("resolve-template")))

    def enter_name(ctx: StepContext) -> Any:
        return env.session.inject_text(selectors.PROJECT_NAME_INPUT, ctx.value_of("choose-name"))

    return [
        env.step("resolve-template", resolve, post_delay=0),
        env.step("open-project-list", lambda ctx: env.session.open_url(env.config.overleaf_url)),
        env.step("wait-for-project-list", wait_for_list, post_delay=0),
        env.step("choose-name", name_copy, post_delay=0),
        env.step("copy-project", copy),
        env.step("wait-for-name-input", lambda ctx: env.wait_for_element(selectors.PROJECT_NAME_INPUT), post_delay=0),
        env.step("enter-name", enter_name),
        env.step("confirm-copy", lambda ctx: env.session.click(selectors.PROJECT_NAME_SUBMIT)),
        env.step(
            "wait-for-new-project",
            lambda ctx: env.wait_for_element(selectors.EDITOR_CONTENT),
            FailurePolicy.LOG_AND_CONTINUE,
        ),
    ]
