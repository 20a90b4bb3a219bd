"""Script payload encoding.

Every piece of variable text that ends up inside a generated script passes
through this module: AppleScript and PowerShell string literals, JavaScript
literals embedded in page scripts, and shell words.  Nothing else in the
package builds a literal by hand.

When a payload must cross two or more language boundaries (page script inside
AppleScript inside a process argument) the safest route is not to escape at
all: :func:`write_indirect_payload` puts the text in a temp file and the host
reads it back by path.
"""

from __future__ import annotations

import base64
import enum
import json
import logging
import os
import shlex
import tempfile
from pathlib import Path
from types import TracebackType

from researchaid.engine.errors import PayloadEncodingFailure, UnsupportedHostLanguage

logger = logging.getLogger("researchaid.engine.payload")


class HostLanguage(str, enum.Enum):
    """Languages whose string-literal syntax the encoder knows."""

    APPLESCRIPT = "applescript"
    POWERSHELL = "powershell"
    JAVASCRIPT = "javascript"
    SHELL = "shell"


# PowerShell treats all of these as single quotes inside '...' literals.
_PS_SINGLE_QUOTES = frozenset("'‘’‚‛")

_APPLESCRIPT_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}
_APPLESCRIPT_UNESCAPES = {"\\": "\\", '"': '"', "n": "\n", "r": "\r", "t": "\t"}


def _coerce_host(host: HostLanguage | str) -> HostLanguage:
    if isinstance(host, HostLanguage):
        return host
    try:
        return HostLanguage(str(host).lower())
    except ValueError:
        raise UnsupportedHostLanguage(f"No literal encoding for host language: {host!r}") from None


# ---------------------------------------------------------------------------
# Host literals
# ---------------------------------------------------------------------------

def encode_for_host_literal(text: str, host: HostLanguage | str) -> str:
    """Return *text* as a complete, quoted string literal for *host*.

    The result can be pasted verbatim into a script of that language and
    evaluates to exactly *text*.  Empty input gives an empty literal.

    Raises:
        UnsupportedHostLanguage: *host* is not a known HostLanguage.
    """
    lang = _coerce_host(host)
    if not isinstance(text, str):
        raise PayloadEncodingFailure(f"Payload must be str, got {type(text).__name__}")

    if lang is HostLanguage.APPLESCRIPT:
        return '"' + "".join(_APPLESCRIPT_ESCAPES.get(ch, ch) for ch in text) + '"'
    if lang is HostLanguage.POWERSHELL:
        return "'" + "".join(ch * 2 if ch in _PS_SINGLE_QUOTES else ch for ch in text) + "'"
    if lang is HostLanguage.JAVASCRIPT:
        return encode_for_structured_literal(text)
    return shlex.quote(text)


def decode_host_literal(literal: str, host: HostLanguage | str) -> str:
    """Inverse of :func:`encode_for_host_literal`.

    Interprets *literal* the way the host language would and returns the
    string value.  Malformed literals raise PayloadEncodingFailure.
    """
    lang = _coerce_host(host)

    if lang is HostLanguage.APPLESCRIPT:
        return _decode_applescript(literal)
    if lang is HostLanguage.POWERSHELL:
        return _decode_powershell(literal)
    if lang is HostLanguage.JAVASCRIPT:
        try:
            value = json.loads(literal)
        except ValueError as exc:
            raise PayloadEncodingFailure(f"Malformed JavaScript literal: {exc}") from exc
        if not isinstance(value, str):
            raise PayloadEncodingFailure("JavaScript literal is not a string")
        return value
    try:
        words = shlex.split(literal)
    except ValueError as exc:
        raise PayloadEncodingFailure(f"Malformed shell word: {exc}") from exc
    if len(words) != 1:
        raise PayloadEncodingFailure(f"Expected one shell word, got {len(words)}")
    return words[0]


def _decode_applescript(literal: str) -> str:
    if len(literal) < 2 or literal[0] != '"' or literal[-1] != '"':
        raise PayloadEncodingFailure("AppleScript literal must be wrapped in double quotes")
    body = literal[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            if i + 1 >= len(body):
                raise PayloadEncodingFailure("Dangling backslash in AppleScript literal")
            nxt = body[i + 1]
            if nxt not in _APPLESCRIPT_UNESCAPES:
                raise PayloadEncodingFailure(f"Unknown AppleScript escape: \\{nxt}")
            out.append(_APPLESCRIPT_UNESCAPES[nxt])
            i += 2
            continue
        if ch == '"':
            raise PayloadEncodingFailure("Unescaped double quote inside AppleScript literal")
        out.append(ch)
        i += 1
    return "".join(out)


def _decode_powershell(literal: str) -> str:
    if len(literal) < 2 or literal[0] not in _PS_SINGLE_QUOTES or literal[-1] not in _PS_SINGLE_QUOTES:
        raise PayloadEncodingFailure("PowerShell literal must be wrapped in single quotes")
    body = literal[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch in _PS_SINGLE_QUOTES:
            if i + 1 >= len(body) or body[i + 1] not in _PS_SINGLE_QUOTES:
                raise PayloadEncodingFailure("Unpaired quote inside PowerShell literal")
            out.append(ch)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


# ---------------------------------------------------------------------------
# Structured encodings
# ---------------------------------------------------------------------------

def encode_for_structured_literal(text: str) -> str:
    """JSON-encode *text* as a double-quoted literal.

    ASCII-only output, so U+2028/U+2029 and other characters that break
    older JavaScript parsers arrive escaped.  Valid as both JSON and
    JavaScript source.
    """
    if not isinstance(text, str):
        raise PayloadEncodingFailure(f"Payload must be str, got {type(text).__name__}")
    return json.dumps(text, ensure_ascii=True)


def encode_powershell_command(script: str) -> str:
    """Base64 of the UTF-16LE script, as ``powershell -EncodedCommand`` expects."""
    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


# ---------------------------------------------------------------------------
# Indirect payloads
# ---------------------------------------------------------------------------

class IndirectPayload:
    """A temp file holding a payload, deleted when released.

    Use as a context manager; ``release()`` is idempotent and safe to call on
    any exit path.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to remove payload file %s: %s", self.path, exc)

    def __enter__(self) -> IndirectPayload:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"IndirectPayload({str(self.path)!r}, released={self._released})"


def write_indirect_payload(text: str, suffix: str = ".txt", directory: Path | None = None) -> IndirectPayload:
    """Write *text* (UTF-8, no newline translation) to a unique temp file.

    Returns:
        An IndirectPayload handle; the caller must release it, normally via
        ``with write_indirect_payload(...) as payload:``.

    Raises:
        PayloadEncodingFailure: The file could not be created or written.
            A partially written file is removed before raising.
    """
    if not isinstance(text, str):
        raise PayloadEncodingFailure(f"Payload must be str, got {type(text).__name__}")
    try:
        fd, name = tempfile.mkstemp(prefix="researchaid-", suffix=suffix, dir=directory)
    except OSError as exc:
        raise PayloadEncodingFailure(f"Cannot create payload file: {exc}") from exc

    handle = IndirectPayload(Path(name))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
    except BaseException as exc:
        handle.release()
        if isinstance(exc, Exception):
            raise PayloadEncodingFailure(f"Cannot write payload file {name}: {exc}") from exc
        raise
    logger.debug("Wrote %d-char payload to %s", len(text), name)
    return handle
