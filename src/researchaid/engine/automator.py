"""OS scripting automators.

One :class:`~researchaid.engine.protocols.Automator` per supported platform.
``select_automator()`` is the only place in the package that looks at
``sys.platform``.
"""

from __future__ import annotations

import logging
import sys

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import UnsupportedPlatform
from researchaid.engine.payload import (
    HostLanguage,
    encode_for_host_literal,
    encode_powershell_command,
    write_indirect_payload,
)
from researchaid.engine.script_runner import (
    ExecutionResult,
    Platform,
    PlatformScriptRunner,
    ScriptInvocation,
)
from researchaid.models import DEFAULT_BROWSER_APP, DEFAULT_SCRIPT_TIMEOUT, MAX_ENCODED_COMMAND_LENGTH

logger = logging.getLogger("researchaid.engine.automator")

# "primary" is Cmd on macOS and Ctrl on Windows.
PRIMARY = "primary"

_MAC_MODIFIERS = {
    PRIMARY: "command down",
    "cmd": "command down",
    "command": "command down",
    "ctrl": "control down",
    "control": "control down",
    "alt": "option down",
    "option": "option down",
    "shift": "shift down",
}

# System Events key codes for non-character keys
_MAC_KEY_CODES = {
    "return": 36,
    "enter": 36,
    "tab": 48,
    "escape": 53,
    "home": 115,
    "end": 119,
    "left": 123,
    "right": 124,
    "down": 125,
    "up": 126,
}

_WIN_MODIFIERS = {
    PRIMARY: "^",
    "cmd": "^",
    "command": "^",
    "ctrl": "^",
    "control": "^",
    "alt": "%",
    "option": "%",
    "shift": "+",
}

_WIN_KEYS = {
    "return": "{ENTER}",
    "enter": "{ENTER}",
    "tab": "{TAB}",
    "escape": "{ESC}",
    "home": "{HOME}",
    "end": "{END}",
    "left": "{LEFT}",
    "right": "{RIGHT}",
    "down": "{DOWN}",
    "up": "{UP}",
}

# Characters SendKeys treats as syntax; a literal one must be braced.
_SENDKEYS_SPECIAL = set("+^%~(){}[]")


def _check_modifiers(modifiers: tuple[str, ...], table: dict[str, str]) -> list[str]:
    mapped = []
    for mod in modifiers:
        try:
            mapped.append(table[mod.lower()])
        except KeyError:
            raise ValueError(f"Unknown modifier: {mod!r}") from None
    return mapped


# ---------------------------------------------------------------------------
# macOS
# ---------------------------------------------------------------------------

class MacAutomator:
    """AppleScript through ``osascript``."""

    def __init__(
        self,
        runner: PlatformScriptRunner | None = None,
        browser_app: str = DEFAULT_BROWSER_APP,
        timeout: float = DEFAULT_SCRIPT_TIMEOUT,
    ) -> None:
        self.runner = runner or PlatformScriptRunner()
        self.browser_app = browser_app
        self.timeout = timeout

    @property
    def platform(self) -> Platform:
        return Platform.MACOS

    @property
    def host_language(self) -> HostLanguage:
        return HostLanguage.APPLESCRIPT

    def run_host_script(
        self,
        body: str,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> ExecutionResult:
        invocation = ScriptInvocation.applescript(body, timeout=timeout or self.timeout)
        return self.runner.run(invocation, cancel)

    def shortcut_script(self, key: str, modifiers: tuple[str, ...] = ()) -> str:
        """AppleScript that sends *key* with *modifiers* to the frontmost app."""
        mods = _check_modifiers(modifiers, _MAC_MODIFIERS)
        using = f" using {{{', '.join(mods)}}}" if mods else ""
        name = key.lower()
        if name in _MAC_KEY_CODES:
            press = f"key code {_MAC_KEY_CODES[name]}{using}"
        elif len(key) == 1:
            press = f"keystroke {encode_for_host_literal(key, HostLanguage.APPLESCRIPT)}{using}"
        else:
            raise ValueError(f"Unknown key: {key!r}")
        return f'tell application "System Events"\n    {press}\nend tell'

    def send_shortcut(
        self,
        key: str,
        modifiers: tuple[str, ...] = (),
        cancel: CancellationToken | None = None,
    ) -> ExecutionResult:
        script = self.shortcut_script(key, modifiers)
        logger.debug("Sending shortcut %s+%s", "+".join(modifiers), key)
        return self.run_host_script(script, cancel=cancel)

    def open_url(self, url: str, cancel: CancellationToken | None = None) -> ExecutionResult:
        app = encode_for_host_literal(self.browser_app, HostLanguage.APPLESCRIPT)
        target = encode_for_host_literal(url, HostLanguage.APPLESCRIPT)
        script = f"tell application {app}\n    activate\n    open location {target}\nend tell"
        return self.run_host_script(script, cancel=cancel)


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

class WindowsAutomator:
    """PowerShell with ``-EncodedCommand``, or ``-File`` for long bodies."""

    def __init__(
        self,
        runner: PlatformScriptRunner | None = None,
        timeout: float = DEFAULT_SCRIPT_TIMEOUT,
        max_encoded_length: int = MAX_ENCODED_COMMAND_LENGTH,
    ) -> None:
        self.runner = runner or PlatformScriptRunner()
        self.timeout = timeout
        self.max_encoded_length = max_encoded_length

    @property
    def platform(self) -> Platform:
        return Platform.WINDOWS

    @property
    def host_language(self) -> HostLanguage:
        return HostLanguage.POWERSHELL

    def run_host_script(
        self,
        body: str,
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> ExecutionResult:
        timeout = timeout or self.timeout
        if len(encode_powershell_command(body)) <= self.max_encoded_length:
            return self.runner.run(ScriptInvocation.powershell(body, timeout=timeout), cancel)

        # Command line would overflow; run the body from a .ps1 file instead.
        # The BOM makes Windows PowerShell read the file as UTF-8.
        with write_indirect_payload("﻿" + body, suffix=".ps1") as payload:
            logger.debug("PowerShell body too long to encode inline, using %s", payload.path)
            invocation = ScriptInvocation.powershell_file(str(payload.path), timeout=timeout)
            return self.runner.run(invocation, cancel)

    def shortcut_script(self, key: str, modifiers: tuple[str, ...] = ()) -> str:
        """PowerShell that sends *key* with *modifiers* through SendKeys."""
        prefix = "".join(_check_modifiers(modifiers, _WIN_MODIFIERS))
        name = key.lower()
        if name in _WIN_KEYS:
            keys = prefix + _WIN_KEYS[name]
        elif len(key) == 1:
            keys = prefix + (f"{{{key}}}" if key in _SENDKEYS_SPECIAL else key.lower())
        else:
            raise ValueError(f"Unknown key: {key!r}")
        literal = encode_for_host_literal(keys, HostLanguage.POWERSHELL)
        return (
            "Add-Type -AssemblyName System.Windows.Forms\n"
            f"[System.Windows.Forms.SendKeys]::SendWait({literal})"
        )

    def send_shortcut(
        self,
        key: str,
        modifiers: tuple[str, ...] = (),
        cancel: CancellationToken | None = None,
    ) -> ExecutionResult:
        script = self.shortcut_script(key, modifiers)
        logger.debug("Sending shortcut %s+%s", "+".join(modifiers), key)
        return self.run_host_script(script, cancel=cancel)

    def open_url(self, url: str, cancel: CancellationToken | None = None) -> ExecutionResult:
        target = encode_for_host_literal(url, HostLanguage.POWERSHELL)
        return self.run_host_script(f"Start-Process {target}", cancel=cancel)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def select_automator(
    platform: str | None = None,
    runner: PlatformScriptRunner | None = None,
    browser_app: str = DEFAULT_BROWSER_APP,
    timeout: float = DEFAULT_SCRIPT_TIMEOUT,
) -> MacAutomator | WindowsAutomator:
    """Return the automator for *platform* (default: ``sys.platform``).

    Raises:
        UnsupportedPlatform: Neither macOS nor Windows.
    """
    platform = platform or sys.platform
    if platform == "darwin":
        return MacAutomator(runner=runner, browser_app=browser_app, timeout=timeout)
    if platform.startswith("win"):
        return WindowsAutomator(runner=runner, timeout=timeout)
    raise UnsupportedPlatform(
        f"No automator for platform {platform!r}; ResearchAid supports macOS and Windows"
    )
