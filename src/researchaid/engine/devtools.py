"""Chrome DevTools Protocol transport.

Talks to a browser started with ``--remote-debugging-port``: target listing,
activation and new tabs over the HTTP ``/json`` endpoints (requests), and
``Runtime.evaluate`` over the target's WebSocket (websocket-client).

Failures to reach the endpoint are reported as non-zero ExecutionResults,
the same way a failing ``osascript`` run is, so callers handle both
transports alike.  Tab listing has no result to return, so it raises
ScriptExecutionFailed carrying one instead.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.parse
from typing import Any

import requests
import websocket

from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import ScriptExecutionFailed
from researchaid.engine.protocols import TabDescriptor
from researchaid.engine.script_runner import ExecutionResult
from researchaid.models import DEFAULT_DEVTOOLS_HOST, DEFAULT_DEVTOOLS_PORT, DEFAULT_SCRIPT_TIMEOUT

logger = logging.getLogger("researchaid.engine.devtools")

# recv() slice so a waiting evaluate notices cancellation and its deadline
_RECV_SLICE = 0.25
_HTTP_TIMEOUT = 5


class DevToolsError(Exception):
    """Raised inside the client; the transport turns it into a failed result."""


class DevToolsClient:
    """Thin client for the DevTools HTTP endpoints and one-shot evaluation.

    Usage::

        client = DevToolsClient("127.0.0.1", 9222)
        for target in client.list_targets():
            print(target["url"])
        value = client.evaluate(target["webSocketDebuggerUrl"], "document.title")
    """

    def __init__(self, host: str = DEFAULT_DEVTOOLS_HOST, port: int = DEFAULT_DEVTOOLS_PORT) -> None:
        self.host = host
        self.port = port
        self._msg_id = 0

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    # -- HTTP endpoints -------------------------------------------------------

    def list_targets(self) -> list[dict[str, Any]]:
        """All ``page`` targets, in the order the browser returns them."""
        try:
            resp = requests.get(f"{self.base_url}/json", timeout=_HTTP_TIMEOUT)
            resp.raise_for_status()
            targets = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise DevToolsError(f"DevTools endpoint {self.base_url} unavailable: {exc}") from exc
        return [t for t in targets if t.get("type") == "page"]

    def activate(self, target_id: str) -> None:
        try:
            resp = requests.get(f"{self.base_url}/json/activate/{target_id}", timeout=_HTTP_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DevToolsError(f"Cannot activate target {target_id}: {exc}") from exc

    def new_tab(self, url: str) -> dict[str, Any]:
        quoted = urllib.parse.quote(url, safe=":/?&=#%")
        try:
            resp = requests.put(f"{self.base_url}/json/new?{quoted}", timeout=_HTTP_TIMEOUT)
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise DevToolsError(f"Cannot open {url}: {exc}") from exc

    # -- WebSocket ------------------------------------------------------------

    def evaluate(
        self,
        debugger_url: str,
        expression: str,
        timeout: float = DEFAULT_SCRIPT_TIMEOUT,
        cancel: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """Send ``Runtime.evaluate`` and return the command's ``result`` object.

        Events arriving on the socket before the response are ignored.

        Raises:
            DevToolsError: Connection failure or protocol error.
            TimeoutError: No response within *timeout*.
            AutomationCancelled: *cancel* fired while waiting.
        """
        self._msg_id += 1
        msg_id = self._msg_id
        command = {
            "id": msg_id,
            "method": "Runtime.evaluate",
            "params": {"expression": expression, "returnByValue": True, "awaitPromise": True},
        }

        try:
            ws = websocket.create_connection(debugger_url, timeout=_HTTP_TIMEOUT, suppress_origin=True)
        except (websocket.WebSocketException, OSError) as exc:
            raise DevToolsError(f"Cannot connect to {debugger_url}: {exc}") from exc

        try:
            ws.send(json.dumps(command))
            deadline = time.monotonic() + timeout
            ws.settimeout(_RECV_SLICE)
            while time.monotonic() < deadline:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                try:
                    raw = ws.recv()
                except websocket.WebSocketTimeoutException:
                    continue
                message = json.loads(raw)
                if message.get("id") != msg_id:
                    continue
                if "error" in message:
                    raise DevToolsError(message["error"].get("message", "CDP error"))
                return message.get("result", {})
        except (websocket.WebSocketException, OSError) as exc:
            raise DevToolsError(f"WebSocket failure on {debugger_url}: {exc}") from exc
        finally:
            ws.close()

        raise TimeoutError(f"Runtime.evaluate did not answer within {timeout:.1f}s")


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

def _failed(message: str, start: float, *, timed_out: bool = False) -> ExecutionResult:
    return ExecutionResult(
        exit_code=1,
        stdout="",
        stderr=message,
        duration_seconds=time.monotonic() - start,
        timed_out=timed_out,
    )


def _ok(stdout: str, start: float) -> ExecutionResult:
    return ExecutionResult(exit_code=0, stdout=stdout, stderr="", duration_seconds=time.monotonic() - start)


class DevToolsTransport:
    """BrowserTransport over the DevTools protocol.

    Chrome lists page targets most-recently-activated first, so the "active
    tab" is the first target of a fresh listing.
    """

    def __init__(self, client: DevToolsClient | None = None, timeout: float = DEFAULT_SCRIPT_TIMEOUT) -> None:
        self.client = client or DevToolsClient()
        self.timeout = timeout

    def list_tabs(self, cancel: CancellationToken | None = None) -> list[TabDescriptor]:
        if cancel is not None:
            cancel.raise_if_cancelled()
        start = time.monotonic()
        try:
            targets = self.client.list_targets()
        except DevToolsError as exc:
            logger.warning("Tab listing failed: %s", exc)
            raise ScriptExecutionFailed("Cannot list browser tabs", result=_failed(str(exc), start)) from exc
        return [
            TabDescriptor(
                url=t.get("url", ""),
                title=t.get("title", ""),
                window_index=1,
                tab_index=i,
                target_id=t.get("id"),
                debugger_url=t.get("webSocketDebuggerUrl"),
            )
            for i, t in enumerate(targets, start=1)
        ]

    def activate_tab(self, tab: TabDescriptor, cancel: CancellationToken | None = None) -> ExecutionResult:
        start = time.monotonic()
        if cancel is not None:
            cancel.raise_if_cancelled()
        if not tab.target_id:
            return _failed(f"Tab has no DevTools target id: {tab.url}", start)
        try:
            self.client.activate(tab.target_id)
        except DevToolsError as exc:
            return _failed(str(exc), start)
        return _ok("", start)

    def evaluate(
        self,
        script: str,
        cancel: CancellationToken | None = None,
        indirect: bool = False,
    ) -> ExecutionResult:
        # The body always travels as a JSON string field, so *indirect* needs no temp file here.
        start = time.monotonic()
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            targets = self.client.list_targets()
        except DevToolsError as exc:
            return _failed(str(exc), start)
        target = next((t for t in targets if t.get("webSocketDebuggerUrl")), None)
        if target is None:
            return _failed("No debuggable page target (is DevTools already attached?)", start)

        try:
            result = self.client.evaluate(target["webSocketDebuggerUrl"], script, self.timeout, cancel)
        except DevToolsError as exc:
            return _failed(str(exc), start)
        except TimeoutError as exc:
            logger.warning("Runtime.evaluate timed out on %s", target.get("url", "?"))
            return _failed(str(exc), start, timed_out=True)

        details = result.get("exceptionDetails")
        if details:
            exception = details.get("exception") or {}
            text = exception.get("description") or details.get("text") or "Uncaught exception"
            return _failed(text, start)

        value = (result.get("result") or {}).get("value")
        if value is None:
            stdout = ""
        elif isinstance(value, str):
            stdout = value
        else:
            stdout = json.dumps(value)
        return _ok(stdout, start)

    def open_url(self, url: str, cancel: CancellationToken | None = None) -> ExecutionResult:
        start = time.monotonic()
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            target = self.client.new_tab(url)
        except DevToolsError as exc:
            return _failed(str(exc), start)
        logger.debug("Opened %s as target %s", url, target.get("id"))
        return _ok(target.get("id", ""), start)
