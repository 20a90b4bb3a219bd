"""Browser transport over AppleScript (macOS, Chromium-family browsers).

Each operation is a single ``osascript`` run through the Automator.  Page
JavaScript never appears inside AppleScript text when it is long or
multi-line: it is written to an indirect payload file and read back with
``read POSIX file ... as «class utf8»``.
"""

from __future__ import annotations

import logging

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import ScriptExecutionFailed
from researchaid.engine.payload import HostLanguage, encode_for_host_literal, write_indirect_payload
from researchaid.engine.protocols import Automator, TabDescriptor
from researchaid.engine.script_runner import ExecutionResult
from researchaid.models import DEFAULT_BROWSER_APP

logger = logging.getLogger("researchaid.engine.chrome_applescript")

# Inside a Chrome tell block ``tab`` names the tab class, so separators are
# built from ASCII codes.  URLs and titles are cleaned of tabs and newlines so
# every tab produces exactly one row.
_LIST_TABS = """\
on clean(txt)
    set AppleScript's text item delimiters to {{ASCII character 9, ASCII character 10, ASCII character 13}}
    set parts to text items of (txt as text)
    set AppleScript's text item delimiters to " "
    set cleaned to parts as text
    set AppleScript's text item delimiters to ""
    return cleaned
end clean

set sep to ASCII character 9
set nl to ASCII character 10
set output to ""
if application {app} is not running then return output
tell application {app}
    set winIndex to 0
    repeat with aWindow in every window
        set winIndex to winIndex + 1
        set tabIndex to 0
        repeat with aTab in every tab of aWindow
            set tabIndex to tabIndex + 1
            set output to output & winIndex & sep & tabIndex & sep & my clean(URL of aTab) & sep & my clean(title of aTab) & nl
        end repeat
    end repeat
end tell
return output
"""

_ACTIVATE_TAB = """\
tell application {app}
    set aWindow to window {window_index}
    set active tab index of aWindow to {tab_index}
    set index of aWindow to 1
    activate
end tell
"""

_EXECUTE_INLINE = """\
tell application {app}
    return execute (active tab of front window) javascript {source}
end tell
"""

_EXECUTE_FROM_FILE = """\
set js to read (POSIX file {path}) as «class utf8»
tell application {app}
    return execute (active tab of front window) javascript js
end tell
"""

_OPEN_URL = """\
tell application {app}
    activate
    if (count of windows) is 0 then make new window
    tell front window to make new tab with properties {{URL:{url}}}
end tell
"""


def parse_tab_listing(output: str) -> list[TabDescriptor]:
    """Parse the rows printed by the tab-listing script, keeping their order."""
    tabs = []
    for line in output.splitlines():
        if not line.strip():
            continue
        fields = line.split("\t", 3)
        if len(fields) < 3:
            logger.debug("Skipping malformed tab row: %r", line)
            continue
        try:
            window_index, tab_index = int(fields[0]), int(fields[1])
        except ValueError:
            logger.debug("Skipping malformed tab row: %r", line)
            continue
        title = fields[3] if len(fields) > 3 else ""
        tabs.append(TabDescriptor(url=fields[2], title=title, window_index=window_index, tab_index=tab_index))
    return tabs


class AppleScriptBrowserTransport:
    """BrowserTransport that scripts the browser application directly."""

    def __init__(self, automator: Automator, browser_app: str = DEFAULT_BROWSER_APP) -> None:
        self.automator = automator
        self.browser_app = browser_app

    @property
    def _app(self) -> str:
        return encode_for_host_literal(self.browser_app, HostLanguage.APPLESCRIPT)

    def list_tabs(self, cancel: CancellationToken | None = None) -> list[TabDescriptor]:
        result = self.automator.run_host_script(_LIST_TABS.format(app=self._app), cancel=cancel)
        if not result.ok:
            logger.warning("Tab listing failed (exit %d): %s", result.exit_code, result.stderr.strip()[:300])
            raise ScriptExecutionFailed(f"Cannot list {self.browser_app} tabs", result=result)
        return parse_tab_listing(result.stdout)

    def activate_tab(self, tab: TabDescriptor, cancel: CancellationToken | None = None) -> ExecutionResult:
        script = _ACTIVATE_TAB.format(
            app=self._app,
            window_index=int(tab.window_index),
            tab_index=int(tab.tab_index),
        )
        return self.automator.run_host_script(script, cancel=cancel)

    def evaluate(
        self,
        script: str,
        cancel: CancellationToken | None = None,
        indirect: bool = False,
    ) -> ExecutionResult:
        if not indirect:
            source = encode_for_host_literal(script, HostLanguage.APPLESCRIPT)
            return self.automator.run_host_script(_EXECUTE_INLINE.format(app=self._app, source=source), cancel=cancel)

        with write_indirect_payload(script, suffix=".js") as payload:
            path = encode_for_host_literal(str(payload.path), HostLanguage.APPLESCRIPT)
            host_script = _EXECUTE_FROM_FILE.format(app=self._app, path=path)
            return self.automator.run_host_script(host_script, cancel=cancel)

    def open_url(self, url: str, cancel: CancellationToken | None = None) -> ExecutionResult:
        literal = encode_for_host_literal(url, HostLanguage.APPLESCRIPT)
        return self.automator.run_host_script(_OPEN_URL.format(app=self._app, url=literal), cancel=cancel)
