"""Tests for researchaid.engine.automator.

Covers:
  1. macOS shortcut and open-url scripts
  2. Windows SendKeys scripts and long-body fallback
  3. Platform selection
"""

from __future__ import annotations

import base64

import pytest

from conftest import FakeRunner
from researchaid.engine.automator import PRIMARY, MacAutomator, WindowsAutomator, select_automator
from researchaid.engine.errors import UnsupportedPlatform
from researchaid.engine.payload import HostLanguage
from researchaid.engine.script_runner import Platform


# ---------------------------------------------------------------------------
# 1. macOS
# ---------------------------------------------------------------------------

class TestMacAutomator:
    """AppleScript through System Events."""

    def test_primary_is_command(self) -> None:
        script = MacAutomator(runner=FakeRunner()).shortcut_script("s", (PRIMARY,))
        assert 'keystroke "s" using {command down}' in script
        assert 'tell application "System Events"' in script

    def test_named_key_uses_key_code(self) -> None:
        script = MacAutomator(runner=FakeRunner()).shortcut_script("down", ("cmd",))
        assert "key code 125 using {command down}" in script

    def test_multiple_modifiers(self) -> None:
        script = MacAutomator(runner=FakeRunner()).shortcut_script("z", ("cmd", "shift"))
        assert "using {command down, shift down}" in script

    def test_no_modifiers(self) -> None:
        script = MacAutomator(runner=FakeRunner()).shortcut_script("return")
        assert "key code 36" in script
        assert "using" not in script

    def test_quote_key_is_escaped(self) -> None:
        script = MacAutomator(runner=FakeRunner()).shortcut_script('"')
        assert 'keystroke "\\""' in script

    def test_unknown_modifier(self) -> None:
        with pytest.raises(ValueError, match="Unknown modifier"):
            MacAutomator(runner=FakeRunner()).shortcut_script("s", ("hyper",))

    def test_unknown_key(self) -> None:
        with pytest.raises(ValueError, match="Unknown key"):
            MacAutomator(runner=FakeRunner()).shortcut_script("pagedownish")

    def test_send_shortcut_runs_osascript(self) -> None:
        runner = FakeRunner()
        MacAutomator(runner=runner, timeout=7).send_shortcut("v", (PRIMARY,))
        (inv,) = runner.invocations
        assert inv.interpreter == "osascript"
        assert "keystroke" in inv.stdin
        assert inv.timeout == 7

    def test_open_url_escapes_url(self) -> None:
        runner = FakeRunner()
        MacAutomator(runner=runner, browser_app="Brave Browser").open_url('https://x.org/?q="a"')
        body = runner.invocations[0].stdin
        assert 'tell application "Brave Browser"' in body
        assert 'open location "https://x.org/?q=\\"a\\""' in body

    def test_host_language(self) -> None:
        automator = MacAutomator(runner=FakeRunner())
        assert automator.host_language is HostLanguage.APPLESCRIPT
        assert automator.platform is Platform.MACOS


# ---------------------------------------------------------------------------
# 2. Windows
# ---------------------------------------------------------------------------

class TestWindowsAutomator:
    """PowerShell SendKeys and -EncodedCommand."""

    def test_primary_is_ctrl(self) -> None:
        script = WindowsAutomator(runner=FakeRunner()).shortcut_script("S", (PRIMARY,))
        assert "SendWait('^s')" in script
        assert "System.Windows.Forms" in script

    def test_named_key(self) -> None:
        script = WindowsAutomator(runner=FakeRunner()).shortcut_script("end", ("ctrl",))
        assert "SendWait('^{END}')" in script

    def test_special_character_is_braced(self) -> None:
        script = WindowsAutomator(runner=FakeRunner()).shortcut_script("+", ("ctrl",))
        assert "SendWait('^{+}')" in script

    def test_short_body_uses_encoded_command(self) -> None:
        runner = FakeRunner()
        WindowsAutomator(runner=runner).run_host_script("Write-Output 1")
        (inv,) = runner.invocations
        assert "-EncodedCommand" in inv.args
        assert "-File" not in inv.args

    def test_long_body_uses_temp_file(self) -> None:
        runner = FakeRunner()
        automator = WindowsAutomator(runner=runner, max_encoded_length=100)
        automator.run_host_script("Write-Output '" + "x" * 200 + "'")
        (inv,) = runner.invocations
        assert "-File" in inv.args
        (path, existed) = runner.seen_files[0]
        assert path.suffix == ".ps1"
        assert existed
        assert not path.exists()

    def test_open_url_uses_start_process(self) -> None:
        runner = FakeRunner()
        automator = WindowsAutomator(runner=runner)
        automator.open_url("https://overleaf.com/project")
        (inv,) = runner.invocations
        assert inv.platform is Platform.WINDOWS
        encoded = inv.args[inv.args.index("-EncodedCommand") + 1]
        assert base64.b64decode(encoded).decode("utf-16-le") == "Start-Process 'https://overleaf.com/project'"


# ---------------------------------------------------------------------------
# 3. Selection
# ---------------------------------------------------------------------------

class TestSelectAutomator:
    """select_automator is the only reader of sys.platform."""

    def test_darwin(self) -> None:
        assert isinstance(select_automator("darwin", runner=FakeRunner()), MacAutomator)

    def test_windows(self) -> None:
        assert isinstance(select_automator("win32", runner=FakeRunner()), WindowsAutomator)

    def test_linux_unsupported(self) -> None:
        with pytest.raises(UnsupportedPlatform, match="linux"):
            select_automator("linux", runner=FakeRunner())

    def test_browser_app_passed_through(self) -> None:
        automator = select_automator("darwin", runner=FakeRunner(), browser_app="Chromium")
        assert automator.browser_app == "Chromium"
