"""System clipboard access (pyperclip) with a save/restore guard."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator

import pyperclip

from researchaid.engine.errors import ClipboardUnavailable
from researchaid.engine.protocols import ClipboardBackend

logger = logging.getLogger("researchaid.clipboard")


class Clipboard:
    """ClipboardBackend over pyperclip (pbcopy/pbpaste, Win32, xclip)."""

    def read(self) -> str:
        try:
            return pyperclip.paste() or ""
        except pyperclip.PyperclipException as exc:
            raise ClipboardUnavailable(f"Cannot read clipboard: {exc}") from exc

    def write(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            raise ClipboardUnavailable(f"Cannot write clipboard: {exc}") from exc


@contextlib.contextmanager
def preserved_clipboard(clipboard: ClipboardBackend) -> Iterator[str]:
    """Snapshot the clipboard, yield the snapshot, restore it on exit.

    The restore runs on error and cancellation too.  A failed restore is
    logged rather than raised so it never masks the original error.
    """
    saved = clipboard.read()
    try:
        yield saved
    finally:
        try:
            clipboard.write(saved)
        except ClipboardUnavailable as exc:
            logger.warning("Failed to restore clipboard: %s", exc)
        else:
            logger.debug("Restored %d-char clipboard", len(saved))
