"""Platform script runner.

Spawns one scripting-host process per call (``osascript`` on macOS,
``powershell.exe`` on Windows), feeds it the script, and reports the outcome
as an :class:`ExecutionResult`.  A non-zero exit code is a normal outcome
(the user dismissed a dialog, an element was missing) and is never raised.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import shutil
import subprocess
import time

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import InterpreterNotFound
from researchaid.engine.payload import encode_powershell_command
from researchaid.models import DEFAULT_SCRIPT_TIMEOUT

logger = logging.getLogger("researchaid.engine.script_runner")

# How often a waiting run wakes up to check its cancellation token
_CANCEL_CHECK_INTERVAL = 0.1

_POWERSHELL_FLAGS = ("-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass")


class Platform(str, enum.Enum):
    MACOS = "macos"
    WINDOWS = "windows"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class ScriptInvocation:
    """One scripting-host run: what to spawn and what to feed it."""

    platform: Platform
    interpreter: str
    args: tuple[str, ...] = ()
    stdin: str | None = None
    timeout: float = DEFAULT_SCRIPT_TIMEOUT

    @classmethod
    def applescript(cls, body: str, timeout: float = DEFAULT_SCRIPT_TIMEOUT) -> ScriptInvocation:
        """``osascript -`` with the script body on stdin (no argv escaping)."""
        return cls(Platform.MACOS, "osascript", ("-",), stdin=body, timeout=timeout)

    @classmethod
    def powershell(cls, body: str, timeout: float = DEFAULT_SCRIPT_TIMEOUT) -> ScriptInvocation:
        """``powershell.exe -EncodedCommand`` with a UTF-16LE base64 body."""
        return cls(
            Platform.WINDOWS,
            "powershell.exe",
            (*_POWERSHELL_FLAGS, "-EncodedCommand", encode_powershell_command(body)),
            timeout=timeout,
        )

    @classmethod
    def powershell_file(cls, path: str, timeout: float = DEFAULT_SCRIPT_TIMEOUT) -> ScriptInvocation:
        """``powershell.exe -File`` for bodies too long for a command line."""
        return cls(Platform.WINDOWS, "powershell.exe", (*_POWERSHELL_FLAGS, "-File", path), timeout=timeout)

    def describe(self) -> str:
        """Short human-readable form for logs (encoded bodies elided)."""
        shown = [a if len(a) <= 60 else a[:57] + "..." for a in self.args]
        return " ".join([self.interpreter, *shown])


@dataclasses.dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one scripting-host run."""

    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Stripped stdout."""
        return self.stdout.strip()


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

class PlatformScriptRunner:
    """Runs a :class:`ScriptInvocation` to completion, timeout or cancellation.

    Usage::

        runner = PlatformScriptRunner()
        result = runner.run(ScriptInvocation.applescript('return "hi"'))
        if result.ok:
            print(result.output)
    """

    def run(
        self,
        invocation: ScriptInvocation,
        cancel: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Spawn the interpreter and wait for it.

        Raises:
            InterpreterNotFound: The interpreter is not on PATH.
            AutomationCancelled: *cancel* fired while the process ran; the
                process is killed first.
        """
        if cancel is not None:
            cancel.raise_if_cancelled()

        executable = shutil.which(invocation.interpreter)
        if executable is None:
            raise InterpreterNotFound(
                f"Scripting host not found: {invocation.interpreter} "
                f"(required for {invocation.platform.value} automation)"
            )

        logger.debug("Spawning %s (timeout=%.1fs)", invocation.describe(), invocation.timeout)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                [executable, *invocation.args],
                stdin=subprocess.PIPE if invocation.stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as exc:
            raise InterpreterNotFound(f"Scripting host not found: {invocation.interpreter} ({exc})") from exc

        deadline = start + invocation.timeout
        payload = invocation.stdin
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                stdout, stderr = self._kill(proc)
                duration = time.monotonic() - start
                logger.warning(
                    "%s timed out after %.1fs", invocation.interpreter, duration
                )
                return ExecutionResult(
                    exit_code=proc.returncode if proc.returncode is not None else -1,
                    stdout=stdout,
                    stderr=stderr,
                    duration_seconds=duration,
                    timed_out=True,
                )

            wait = remaining if cancel is None else min(remaining, _CANCEL_CHECK_INTERVAL)
            try:
                stdout, stderr = proc.communicate(input=payload, timeout=wait)
                break
            except subprocess.TimeoutExpired:
                # Input was delivered on the first call; retries only drain output.
                payload = None
                if cancel is not None and cancel.cancelled:
                    self._kill(proc)
                    logger.info("Killed %s: workflow cancelled", invocation.interpreter)
                    cancel.raise_if_cancelled()

        duration = time.monotonic() - start
        result = ExecutionResult(
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration_seconds=duration,
        )
        if not result.ok:
            logger.debug(
                "%s exited %d in %.2fs: %s",
                invocation.interpreter,
                result.exit_code,
                duration,
                result.stderr.strip()[:300],
            )
        return result

    @staticmethod
    def _kill(proc: subprocess.Popen) -> tuple[str, str]:
        """Kill *proc* and collect whatever it wrote before dying."""
        proc.kill()
        try:
            stdout, stderr = proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            return "", ""
        return stdout or "", stderr or ""
