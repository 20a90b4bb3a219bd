"""ResearchAid engine: the automation controller core.

- ScriptPayloadEncoder (payload): host literals, structured literals, indirect payload files
- PlatformScriptRunner: one osascript / powershell.exe run per call
- MacAutomator / WindowsAutomator: OS scripting capability, picked by ``select_automator()``
- AppleScriptBrowserTransport / DevToolsTransport: channels into the browser
- RemoteBrowserSession: tabs, page scripts, text injection, clicks
- ElementLocator: first-match-wins selector chains
- PollingWaiter: bounded polling with a tri-state predicate
- AutomationSequence: ordered steps with per-step failure policy
- WorkflowOrchestrator: background runs behind one automation lock
"""

from researchaid.engine.automator import MacAutomator, WindowsAutomator, select_automator
from researchaid.engine.browser_session import (
    InjectionOutcome,
    RemoteBrowserSession,
    build_transport,
    select_tab,
)
from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.errors import (
    FATAL_ERRORS,
    AutomationCancelled,
    AutomationError,
    ClipboardUnavailable,
    InterpreterNotFound,
    InvalidPollSpec,
    NoInputElementFound,
    NoMatchingTab,
    PayloadEncodingFailure,
    ScriptExecutionFailed,
    SelectorChainExhausted,
    TimeoutExceeded,
    UnsupportedHostLanguage,
    UnsupportedPlatform,
)
from researchaid.engine.locator import ElementLocator, LocateResult, SelectorChain, SelectorStrategy
from researchaid.engine.orchestrator import WorkflowHandle, WorkflowOrchestrator
from researchaid.engine.payload import (
    HostLanguage,
    IndirectPayload,
    decode_host_literal,
    encode_for_host_literal,
    encode_for_structured_literal,
    write_indirect_payload,
)
from researchaid.engine.protocols import Automator, BrowserTransport, ClipboardBackend, TabDescriptor
from researchaid.engine.script_runner import ExecutionResult, Platform, PlatformScriptRunner, ScriptInvocation
from researchaid.engine.sequence import (
    AutomationSequence,
    AutomationStep,
    FailurePolicy,
    SequenceResult,
    StepContext,
    StepOutcome,
    StepStatus,
)
from researchaid.engine.waiter import PollingWaiter, PollOutcome, PollSpec, PollStatus, WaitResult

__all__ = [
    "FATAL_ERRORS",
    "AutomationCancelled",
    "AutomationError",
    "AutomationSequence",
    "AutomationStep",
    "Automator",
    "BrowserTransport",
    "CancellationToken",
    "ClipboardBackend",
    "ClipboardUnavailable",
    "ElementLocator",
    "ExecutionResult",
    "FailurePolicy",
    "HostLanguage",
    "IndirectPayload",
    "InjectionOutcome",
    "InterpreterNotFound",
    "InvalidPollSpec",
    "LocateResult",
    "MacAutomator",
    "NoInputElementFound",
    "NoMatchingTab",
    "PayloadEncodingFailure",
    "Platform",
    "PlatformScriptRunner",
    "PollOutcome",
    "PollSpec",
    "PollStatus",
    "PollingWaiter",
    "RemoteBrowserSession",
    "ScriptExecutionFailed",
    "ScriptInvocation",
    "SelectorChain",
    "SelectorChainExhausted",
    "SelectorStrategy",
    "SequenceResult",
    "StepContext",
    "StepOutcome",
    "StepStatus",
    "TabDescriptor",
    "TimeoutExceeded",
    "UnsupportedHostLanguage",
    "UnsupportedPlatform",
    "WaitResult",
    "WindowsAutomator",
    "WorkflowHandle",
    "WorkflowOrchestrator",
    "build_transport",
    "decode_host_literal",
    "encode_for_host_literal",
    "encode_for_structured_literal",
    "select_automator",
    "select_tab",
    "write_indirect_payload",
]
